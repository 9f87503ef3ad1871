"""
Quality Management System
Flask Application Factory.

Usage:
    from qms import create_app
    app = create_app()           # APP_ENV, defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as sa_engine
from sqlalchemy import event as sa_event

from qms.config import config
from qms.models import db
from qms.middleware.jwt_auth import init_jwt_middleware
from qms.middleware.logging_config import configure_logging
from qms.middleware.rate_limiter import init_rate_limits
from qms.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

migrate = Migrate()
# Storage comes from RATELIMIT_STORAGE_URI in app config
limiter = Limiter(key_func=get_remote_address, default_limits=[])


@sa_event.listens_for(sa_engine.Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    # Cascades from assessments to responses, NCRs and actions rely on this
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = app.config.get("CORS_ORIGINS") or ""
    if origins == "*":
        CORS(app)
    elif origins:
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])


def _create_tables(app):
    # Registers every mapped class on db.metadata before create_all
    from qms.models import assessment, audit, nonconformity, organization, standard  # noqa: F401

    with app.app_context():
        db.create_all()


def _register_blueprints(app):
    from qms.blueprints.assessment_bp import assessment_bp
    from qms.blueprints.corrective_action_bp import corrective_action_bp
    from qms.blueprints.dashboard_bp import dashboard_bp
    from qms.blueprints.health_bp import health_bp
    from qms.blueprints.nonconformity_bp import nonconformity_bp
    from qms.blueprints.response_bp import response_bp
    from qms.blueprints.standards_bp import standards_bp

    for bp in (
        assessment_bp, response_bp, nonconformity_bp, corrective_action_bp,
        dashboard_bp, standards_bp, health_bp,
    ):
        app.register_blueprint(bp)


def _register_error_handlers(app):
    """JSON bodies for errors raised outside the blueprints' own mapping."""

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed", "method": request.method}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error on %s %s", request.method, request.path, exc_info=True)
        return {"error": "Internal server error"}, 500


def _register_cli(app):
    @app.cli.command("seed-standard")
    def seed_standard_cmd():
        """Load the ISO 9001:2015 clause tree and its audit questions."""
        from qms.services.standards_service import seed_standard

        result = seed_standard()
        logger.info(
            "Standard seeded: %s section(s), %s question(s) added",
            result["sections_added"], result["questions_added"],
        )


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to the APP_ENV env var, or "development".
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # Instantiated so ProductionConfig can refuse a missing DATABASE_URL / SECRET_KEY
    app.config.from_object(config[config_name]())

    # First, so extension start-up is logged in the configured format
    configure_logging(app)

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and not app.testing:
        os.makedirs(app.instance_path, exist_ok=True)

    _init_extensions(app)
    init_request_timing(app)
    init_jwt_middleware(app)
    _create_tables(app)
    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cli(app)

    # Needs the registered blueprints
    init_rate_limits(app, limiter)

    logger.debug("Application created with config=%s", config_name)
    return app
