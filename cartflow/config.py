import os


class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    ENV = os.getenv("FLASK_ENV", "development")

    LOG_LEVEL = os.getenv("CARTFLOW_LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("CARTFLOW_LOG_FORMAT", "console")  # "json" | "console"

    # code generators
    CUSTOMER_CODE_PREFIX = os.getenv("CUSTOMER_CODE_PREFIX", "CH")
    CUSTOMER_CODE_WIDTH = int(os.getenv("CUSTOMER_CODE_WIDTH", "3"))
    ORDER_CODE_PREFIX = os.getenv("ORDER_CODE_PREFIX", "ORD")
    ORDER_CODE_WIDTH = int(os.getenv("ORDER_CODE_WIDTH", "3"))

    @staticmethod
    def init_app(app):
        if not os.getenv("DATABASE_URL"):
            os.makedirs(app.instance_path, exist_ok=True)
            app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(app.instance_path, 'cartflow.db')}"
        else:
            app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL")


class TestConfig(Config):
    TESTING = True
    LOG_LEVEL = "WARNING"
    SQLALCHEMY_ENGINE_OPTIONS = {}

    @staticmethod
    def init_app(app):
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
