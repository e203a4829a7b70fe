"""Unit of work: one commit or one rollback per public service call.

Nested ``unit_of_work`` blocks on the same session join the outer one, so a
service method may delegate to another (update-to-zero delegating to remove)
without committing half of the work.
"""

from contextlib import contextmanager

import structlog
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from ..errors import CartflowError, ConflictError, DatabaseError

logger = structlog.get_logger(__name__)

_DEPTH_KEY = "cartflow_uow_depth"


@contextmanager
def unit_of_work(session, name: str = "unit_of_work"):
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    outermost = depth == 0
    try:
        yield session
        if outermost:
            session.commit()
    except CartflowError as e:
        if outermost:
            session.rollback()
            logger.warning("Unit of work aborted", operation=name, error_code=e.code, reason=e.message)
        raise
    except IntegrityError as e:
        if not outermost:
            raise
        session.rollback()
        logger.error("DB integrity error", operation=name, error=str(e.orig))
        raise ConflictError("Integrity constraint violated", operation=name) from e
    except OperationalError as e:
        if not outermost:
            raise
        session.rollback()
        logger.error("DB operational error", operation=name, error=str(e.orig))
        raise DatabaseError("Connection or operational error", name) from e
    except SQLAlchemyError as e:
        if not outermost:
            raise
        session.rollback()
        logger.error("SQLAlchemy error", operation=name, error=str(e))
        raise DatabaseError("Database operation failed", name) from e
    except Exception:
        if outermost:
            session.rollback()
        raise
    finally:
        session.info[_DEPTH_KEY] = depth
