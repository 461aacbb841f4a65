# backend/storefront/__init__.py
import logging

from flask import Flask, jsonify
from sqlalchemy.exc import OperationalError

from .config import Config, engine_options
from .errors import ServiceUnavailableError
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", engine_options(app.config))

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services import notification_service
    notification_service.init_app(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.orders import orders_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(orders_bp)

    @app.errorhandler(OperationalError)
    def database_unavailable(exc):
        app.logger.exception("Database operation failed")
        db.session.rollback()
        error = ServiceUnavailableError()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(500)
    def internal_error(exc):
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR", "details": {}}), 500

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
