# backend/locksmith/__init__.py
from flask import Flask, request
from sqlalchemy import event

from .config import Config
from .extensions import db, migrate
from .logging_config import configure_logging


def _configure_sqlite(engine) -> None:
    """
    pysqlite opens transactions lazily and breaks SAVEPOINT handling; take
    over BEGIN ourselves so begin_nested() behaves as on other databases.
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)

    with app.app_context():
        if db.engine.dialect.name == "sqlite":
            _configure_sqlite(db.engine)

    # Registers tables on db.metadata
    from . import models  # noqa: F401

    # Session listeners that feed committed changes to subscribers
    from .services import change_capture  # noqa: F401
    from .services.change_feed import ChangeFeed

    app.extensions["change_feed"] = ChangeFeed(queue_size=app.config["CHANGE_FEED_QUEUE_SIZE"])

    # HTTP surface
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # flask inventory ...
    from .cli import register_commands
    register_commands(app)

    return app
