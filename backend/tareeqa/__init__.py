# backend/tareeqa/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def _create_backend(app: Flask):
    from .services.storage_backend import DatabaseStorage, MemoryStorage

    backend_name = app.config.get("STORAGE_BACKEND", "database")
    if backend_name == "memory":
        return MemoryStorage()
    if backend_name == "database":
        return DatabaseStorage(app)
    raise ValueError(f"Unknown storage backend: {backend_name}")


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    logging.getLogger("tareeqa").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    with app.app_context():
        db.create_all()

    # Build the security core over the configured persistence medium
    from .services.bootstrap_service import EXTENSION_KEY, build_from_config

    backend = _create_backend(app)
    with app.app_context():
        app.extensions[EXTENSION_KEY] = build_from_config(backend, app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.admin import admin_bp
    from .routes.secure_data import secure_data_bp
    from .routes.audit import audit_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(secure_data_bp)
    app.register_blueprint(audit_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
