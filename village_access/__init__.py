"""
Village Access Platform
Flask Application Factory.

Usage:
    from village_access import create_app
    app = create_app()           # defaults to APP_ENV, then "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from village_access.config import config
from village_access.core.exceptions import (
    ConflictError,
    CredentialRefreshError,
    NotFoundError,
    ValidationError,
)
from village_access.middleware.jwt_auth import init_jwt_middleware
from village_access.middleware.logging_config import configure_logging
from village_access.middleware.tenant_context import init_tenant_context
from village_access.middleware.timing import init_request_timing
from village_access.models import db
from village_access.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()


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
    # Instantiated so ProductionConfig can refuse to start without its env vars
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request middleware (order matters) ───────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)
    init_tenant_context(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from village_access.models import auth as _auth_models          # noqa: F401
    from village_access.models import household as _household_models  # noqa: F401

    # ── Blueprints ───────────────────────────────────────────────────────
    from village_access.blueprints.auth_bp import auth_bp
    from village_access.blueprints.household_bp import household_bp
    from village_access.blueprints.membership_bp import membership_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(membership_bp)
    app.register_blueprint(household_bp)

    # ── CLI ──────────────────────────────────────────────────────────────
    @app.cli.command("seed-roles")
    def seed_roles_cmd():
        """Create or update the built-in community roles."""
        from village_access.services.role_catalog import seed_roles
        created, updated = seed_roles()
        print(f"Roles: {created} created, {updated} updated")

    # ── Health ───────────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok"}, 200

    _register_error_handlers(app)

    return app


def _register_error_handlers(app):
    @app.errorhandler(NotFoundError)
    def _not_found_error(e):
        return api_error(E.NOT_FOUND, f"{e.resource} not found")

    @app.errorhandler(ValidationError)
    def _validation_error(e):
        return api_error(E.VALIDATION_RULE, str(e), details=e.details or None)

    @app.errorhandler(ConflictError)
    def _conflict_error(e):
        return api_error(E.CONFLICT_DUPLICATE, str(e))

    @app.errorhandler(CredentialRefreshError)
    def _credential_refresh_error(e):
        return api_error(
            E.CREDENTIAL_REFRESH,
            "Tenant switch was accepted but a new credential could not be issued; retry the switch",
            details={"tenant_id": e.switch_result.tenant_id},
        )

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": E.NOT_FOUND}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": E.INTERNAL}, 500
