# backend/unitledger/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Low-stock notifier chain (LOW_STOCK_NOTIFIERS)
    from .services import notification_service
    notification_service.init_app(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.customers import customers_bp
    from .routes.units import units_bp
    from .routes.imports import imports_bp
    from .routes.consignees import consignees_bp
    from .routes.consignments import consignments_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(units_bp)
    app.register_blueprint(imports_bp)
    app.register_blueprint(consignees_bp)
    app.register_blueprint(consignments_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ALLOWED_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
