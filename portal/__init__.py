"""
Contractor Delivery Portal
Flask Application Factory.

Usage:
    from portal import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from portal.config import config
from portal.core.exceptions import PortalError
from portal.middleware.identity import init_identity_middleware
from portal.middleware.logging_config import configure_logging
from portal.middleware.rate_limiter import init_rate_limits
from portal.middleware.security_headers import init_security_headers
from portal.middleware.timing import init_request_timing
from portal.models import db
from portal.services.subscriptions import init_subscriptions
from portal.utils.errors import E, api_error

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
)


def _register_error_handlers(app):
    @app.errorhandler(PortalError)
    def _portal_error(exc):
        if exc.status >= 500:
            logger.error("request_failed path=%s code=%s error=%s", request.path, exc.code, exc.message)
        return api_error(exc.code, exc.message, status=exc.status, details=exc.details)

    @app.errorhandler(404)
    def _not_found(exc):
        return api_error(E.NOT_FOUND, "Resource not found", status=404)

    @app.errorhandler(405)
    def _method_not_allowed(exc):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(429)
    def _rate_limited(exc):
        return jsonify({"error": "Too many requests", "code": "ERR_RATE_LIMITED"}), 429

    @app.errorhandler(SQLAlchemyError)
    def _store_error(exc):
        db.session.rollback()
        logger.exception("store_error path=%s", request.path)
        return api_error(E.STORE_UNAVAILABLE, "The data store is unavailable; please try again")

    @app.errorhandler(500)
    def _internal_error(exc):
        original = getattr(exc, "original_exception", None)
        if original is not None and not isinstance(original, HTTPException):
            logger.error("unhandled_error path=%s", request.path, exc_info=original)
        return api_error(E.INTERNAL, "Internal server error", status=500)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    cfg = config[config_name]
    app.config.from_object(cfg() if config_name == "production" else cfg)

    configure_logging(app)

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and ":memory:" not in app.config[
        "SQLALCHEMY_DATABASE_URI"
    ]:
        os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    init_security_headers(app)
    init_request_timing(app)
    init_identity_middleware(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 1 * 1024 * 1024)  # 1 MB, metadata only

    from portal.models import delivery as _delivery_models          # noqa: F401
    from portal.models import notification as _notification_models  # noqa: F401
    from portal.models import project as _project_models            # noqa: F401
    from portal.models import safety_doc as _safety_doc_models      # noqa: F401
    from portal.models import user as _user_models                  # noqa: F401
    from portal.repositories import load_scoped

    init_subscriptions(app, loader=load_scoped)

    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as e:
            app.logger.warning("db.create_all() failed: %s", e)

    from portal.blueprints.deliveries_bp import deliveries_bp
    from portal.blueprints.health_bp import health_bp
    from portal.blueprints.notifications_bp import notifications_bp
    from portal.blueprints.projects_bp import projects_bp
    from portal.blueprints.safety_docs_bp import safety_docs_bp
    from portal.blueprints.session_bp import session_bp
    from portal.blueprints.users_bp import users_bp

    app.register_blueprint(session_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(deliveries_bp)
    app.register_blueprint(safety_docs_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(health_bp)

    init_rate_limits(app, limiter)
    _register_error_handlers(app)

    @app.teardown_appcontext
    def _discard_unpublished(exc):
        # Staged changes never outlive the request that produced them
        db.session.info.pop("portal_staged_changes", None)

    logger.debug("App created config=%s", config_name)
    return app
