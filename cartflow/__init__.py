from flask import Flask

from .config import Config
from .extensions import db, migrate
from .utils.logging import setup_logging


def create_app(config=None, **overrides):
    """Build the Flask host for the cart/order core.

    ``config`` is a config class (defaults to :class:`Config`); keyword
    overrides are applied after ``init_app`` so tests can swap the URI.
    """
    app = Flask(__name__, instance_relative_config=True)

    config = config or Config
    app.config.from_object(config)
    config.init_app(app)
    app.config.update(overrides)

    setup_logging(app.config["LOG_LEVEL"], app.config["LOG_FORMAT"])

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)

    from . import model  # noqa: F401  (register tables on the metadata)
    from .cli import register_cli
    register_cli(app)

    return app
