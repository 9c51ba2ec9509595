from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import os
from fulfil.logger import get_logger, configure_logging

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
limiter = Limiter(key_func=get_remote_address)


def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes', 'on')


def create_app(config_overrides=None):
    """
    Build the Flask application for the fulfillment engine.

    Configuration comes from environment variables; ``config_overrides`` is
    applied last so tests and scripts can swap the database or switch off
    rate limiting without touching the environment.
    """
    from pathlib import Path

    config_overrides = dict(config_overrides or {})

    configure_logging(
        level=config_overrides.get('LOG_LEVEL', os.environ.get('LOG_LEVEL', 'INFO')),
        log_dir=config_overrides.get('LOG_DIR', os.environ.get('LOG_DIR', 'logs')),
        log_to_file=config_overrides.get('LOG_TO_FILE', _env_flag('LOG_TO_FILE', 'True')),
    )
    logger = get_logger("fulfil")
    logger.info("Initializing Flask application")

    app = Flask(__name__)

    # SECURITY: Require SECRET_KEY - no fallback
    app.config['SECRET_KEY'] = config_overrides.get('SECRET_KEY', os.environ.get('SECRET_KEY'))
    if not app.config['SECRET_KEY']:
        logger.critical("SECRET_KEY not set in environment! Application cannot start.")
        raise RuntimeError("SECRET_KEY environment variable is required")

    # Prefer an explicit DATABASE_URL; otherwise keep the SQLite file in instance/
    db_env = os.environ.get('DATABASE_URL')
    if db_env:
        app.config['SQLALCHEMY_DATABASE_URI'] = db_env
    else:
        instance_dir = Path(__file__).parent.parent / 'instance'
        instance_dir.mkdir(parents=True, exist_ok=True)
        default_db_path = instance_dir / 'fulfil.db'
        app.config['SQLALCHEMY_DATABASE_URI'] = f"sqlite:///{str(default_db_path.resolve())}"

    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['FULFIL_URL_PREFIX'] = os.environ.get('FULFIL_URL_PREFIX', '')

    # Rate limiting (Flask-Limiter reads these keys on init_app)
    app.config['RATELIMIT_ENABLED'] = _env_flag('RATELIMIT_ENABLED', 'True')
    app.config['RATELIMIT_DEFAULT'] = os.environ.get('RATELIMIT_DEFAULT', '200 per minute')
    app.config['RATELIMIT_STORAGE_URI'] = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    app.config['RATELIMIT_WORKFLOW'] = os.environ.get('RATELIMIT_WORKFLOW', '60 per minute')

    app.config.update(config_overrides)

    if not app.config['RATELIMIT_ENABLED']:
        logger.warning("Rate limiting DISABLED")

    logger.debug(f"Database configured: {app.config['SQLALCHEMY_DATABASE_URI'].split(':', 1)[0]}")

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    logger.debug("Extensions initialized")

    # Import models to ensure they're registered with SQLAlchemy
    from fulfil import data  # noqa: F401

    # Actor identity loader for audit columns
    from fulfil import auth  # noqa: F401

    logger.debug("Models imported and registered")

    from fulfil.presentation.routes import init_app as init_routes
    init_routes(app)

    @app.after_request
    def set_security_headers(response):
        """Add security headers to all responses"""
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        return response

    logger.info("Flask application initialization complete")

    return app
