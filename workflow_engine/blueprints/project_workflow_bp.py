"""
Project-side workflow endpoints.

    GET /api/v1/projects/<project_id>/workflow-statuses
        Statuses the project's tasks can take: its workflow's statuses when
        connected, otherwise the built-in defaults.

    GET /api/v1/projects/<project_id>/status-set
        The project's own folded status set (defaults, columns, legacy
        types) with visibility flags, as reconciliation sees it.
"""

import logging

from flask import Blueprint, jsonify

from workflow_engine.blueprints import current_actor, register_error_handlers
from workflow_engine.services import project_status_service, reconciliation_service

logger = logging.getLogger(__name__)

project_workflow_bp = Blueprint("project_workflow", __name__, url_prefix="/api/v1")
register_error_handlers(project_workflow_bp)


@project_workflow_bp.route("/projects/<project_id>/workflow-statuses", methods=["GET"])
def project_workflow_statuses(project_id):
    project = project_status_service.get_project(project_id)
    _, err = current_actor(project.workspace_id)
    if err:
        return err
    return jsonify(reconciliation_service.get_project_statuses(project_id)), 200


@project_workflow_bp.route("/projects/<project_id>/status-set", methods=["GET"])
def project_status_set(project_id):
    project = project_status_service.get_project(project_id)
    _, err = current_actor(project.workspace_id)
    if err:
        return err
    items = project_status_service.load_project_status_set(project)
    return jsonify([s.to_dict() for s in items]), 200
