# backend/lotledger/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        # Engines are built in db.init_app, so overrides must land first
        app.config.update(config_overrides)

    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    # app.logger is the "lotledger" logger; service module loggers propagate to it
    app.logger.setLevel(level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.quotations import quotations_bp
    from .routes.sales import sales_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(quotations_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(inventory_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
