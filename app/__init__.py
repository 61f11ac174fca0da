"""Application factory for Job Tracker."""

import os
from flask import Flask
from config import config


def create_app(config_name=None):
    """Create and configure the Flask application."""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize extensions
    from app.extensions import db, migrate, cors
    db.init_app(app)
    migrate.init_app(app, db)
    cors.init_app(app, resources={r"/api/*": {"origins": "*"}})

    from app.services.notifier import Notifier
    app.extensions['notifier'] = Notifier(
        notify_url=app.config.get('NOTIFY_URL'),
        api_key=app.config.get('INTERNAL_API_KEY'),
        timeout=app.config.get('HTTP_TIMEOUT'),
        max_workers=app.config.get('NOTIFY_WORKERS', 2),
    )

    # Register blueprints
    from app.api import api_bp
    app.register_blueprint(api_bp, url_prefix='/api/v1')

    # Create tables if they don't exist
    with app.app_context():
        from app import models  # noqa: F401
        db.create_all()

    return app
