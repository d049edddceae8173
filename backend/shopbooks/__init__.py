# backend/shopbooks/__init__.py
import logging

from flask import Flask, jsonify, request

from .config import Config
from .errors import ShopbooksError
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    logging.getLogger("shopbooks").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.customers import customers_bp
    from .routes.ledger import ledger_bp
    from .routes.invoices import invoices_bp
    from .routes.payments import payments_bp
    from .routes.banks import banks_bp
    from .routes.vendors import vendors_bp
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.items import items_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(banks_bp)
    app.register_blueprint(vendors_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(items_bp)

    @app.errorhandler(ShopbooksError)
    def handle_domain_error(exc: ShopbooksError):
        if exc.status_code >= 500:
            app.logger.error("%s %s failed: %s", request.method, request.path, exc, exc_info=exc.__cause__)
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
