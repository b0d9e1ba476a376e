"""
Workflow Graph Engine: Flask application factory.

    from workflow_engine import create_app
    app = create_app()            # APP_ENV, else "development"
    app = create_app("testing")
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine

from workflow_engine.config import config
from workflow_engine.middleware.logging_config import configure_logging
from workflow_engine.middleware.timing import init_request_timing
from workflow_engine.models import db

logger = logging.getLogger(__name__)

migrate = Migrate()
# Only the sync endpoint carries a limit; storage comes from RATELIMIT_STORAGE_URI.
limiter = Limiter(key_func=get_remote_address, default_limits=[])


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, _record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection."""
    if "sqlite" in type(dbapi_conn).__module__:
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()


def create_app(config_name=None):
    """
    Build a configured application.

    Args:
        config_name: "development", "testing" or "production"; defaults to
            the APP_ENV environment variable.

    Raises:
        ValueError: unknown config name.
        RuntimeError: production settings are incomplete.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")
    if config_name not in config:
        raise ValueError(f"Unknown config {config_name!r}; expected one of {sorted(config)}")
    settings = config[config_name]
    settings.validate()

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(settings)
    os.makedirs(app.instance_path, exist_ok=True)

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)
    _create_schema(app)
    _register_blueprints(app)
    _register_cli(app)
    _register_app_routes(app)

    logger.info("Workflow engine ready env=%s", config_name)
    return app


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = [o.strip() for o in (app.config.get("CORS_ORIGINS") or "").split(",") if o.strip()]
    if origins and origins != ["*"]:
        CORS(app, origins=origins, expose_headers=["X-Request-ID", "X-Request-Duration-Ms"])
    else:
        CORS(app, expose_headers=["X-Request-ID", "X-Request-Duration-Ms"])


def _create_schema(app):
    # every model module must be imported before create_all
    from workflow_engine.models import audit, membership, project, workflow  # noqa: F401

    with app.app_context():
        try:
            db.create_all()
        except Exception:
            logger.exception("Schema creation failed; run `flask db upgrade`")


def _register_blueprints(app):
    from workflow_engine.blueprints.project_workflow_bp import project_workflow_bp
    from workflow_engine.blueprints.workflow_bp import workflow_bp

    app.register_blueprint(workflow_bp)
    app.register_blueprint(project_workflow_bp)


def _register_cli(app):
    @app.cli.command("seed-system-workflows")
    @click.option("--workspace", "workspace_id", required=True, help="Workspace to seed.")
    def seed_system_workflows_cmd(workspace_id):
        """Create the built-in, immutable starter workflows for a workspace."""
        from workflow_engine.services.workflow_service import seed_system_workflows

        created = seed_system_workflows(workspace_id)
        click.echo(f"Seeded {len(created)} system workflow(s) for workspace {workspace_id}")


def _register_app_routes(app):
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "service": "workflow-graph-engine"}

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": f"{request.method} not allowed on {request.path}", "code": "ERR_METHOD"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": "ERR_RATE_LIMITED", "limit": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled server error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500
