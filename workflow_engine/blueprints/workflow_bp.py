"""
Workflow Blueprint — graph lifecycle, transition checks, health and sync.

Endpoint groups:
  Workflows         POST/GET /api/v1/workflows
                    GET/PATCH/DELETE /api/v1/workflows/<wf_id>
  Statuses          POST/GET /api/v1/workflows/<wf_id>/statuses
                    POST     /api/v1/workflows/<wf_id>/statuses/bulk
                    PATCH/DELETE /api/v1/workflows/<wf_id>/statuses/<status_id>
  Transitions       POST/GET /api/v1/workflows/<wf_id>/transitions
                    POST     /api/v1/workflows/<wf_id>/transitions/bulk
                    PATCH/DELETE /api/v1/workflows/<wf_id>/transitions/<transition_id>
  Validation        POST /api/v1/workflows/validate-transition
                    GET  /api/v1/workflows/allowed-transitions
  Health            GET  /api/v1/workflows/<wf_id>/health
  Audit             GET  /api/v1/workflows/<wf_id>/audit
  Reconciliation    GET  /api/v1/workflows/<wf_id>/conflicts/<project_id>
                    POST /api/v1/workflows/<wf_id>/connect-project/<project_id>
                    POST /api/v1/workflows/<wf_id>/disconnect-project/<project_id>
                    POST /api/v1/workflows/<wf_id>/sync-with-resolution/<project_id>

The caller is identified by the ``X-User-Id`` header and resolved against
the workflow's workspace.  Service layer owns all business rules and commits.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from workflow_engine import limiter
from workflow_engine.blueprints import current_actor, register_error_handlers
from workflow_engine.models.audit import audit_trail
from workflow_engine.services import reconciliation_service, transition_service, workflow_service
from workflow_engine.utils.errors import E, api_error

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflows", __name__, url_prefix="/api/v1")
register_error_handlers(workflow_bp)


def _actor_for_workflow(workflow_id: str):
    wf = workflow_service.get_workflow(workflow_id)
    actor, err = current_actor(wf.workspace_id)
    return wf, actor, err


def _sync_rate_limit() -> str:
    return current_app.config.get("SYNC_RATE_LIMIT", "30 per minute")


# ═════════════════════════════════════════════════════════════════════════
# Workflows
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflows", methods=["POST"])
def create_workflow():
    """Create a workflow.

    Body: {
        workspace_id, name, key?, description?, space_id?, project_id?,
        is_default?, template? ("blank" | "software" | "kanban" | "bug_tracking"),
        copy_from_workflow_id?
    }
    Returns: the workflow with its statuses and transitions (201).
    """
    data = request.get_json(silent=True) or {}
    workspace_id = data.get("workspace_id")
    if not workspace_id:
        return api_error(E.VALIDATION_REQUIRED, "workspace_id is required")
    actor, err = current_actor(workspace_id)
    if err:
        return err
    wf = workflow_service.create_workflow(actor, data)
    return jsonify(wf.to_dict(include_graph=True)), 201


@workflow_bp.route("/workflows", methods=["GET"])
def list_workflows():
    """Query params: workspace_id (required), space_id, project_id, include_archived."""
    workspace_id = request.args.get("workspace_id")
    if not workspace_id:
        return api_error(E.VALIDATION_REQUIRED, "workspace_id is required")
    _, err = current_actor(workspace_id)
    if err:
        return err
    items = workflow_service.list_workflows(
        workspace_id,
        space_id=request.args.get("space_id"),
        project_id=request.args.get("project_id"),
        include_archived=request.args.get("include_archived", "false").lower() == "true",
    )
    return jsonify({"items": items, "total": len(items)}), 200


@workflow_bp.route("/workflows/<workflow_id>", methods=["GET"])
def get_workflow(workflow_id):
    wf, _, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    return jsonify(wf.to_dict(include_graph=True)), 200


@workflow_bp.route("/workflows/<workflow_id>", methods=["PATCH"])
def update_workflow(workflow_id):
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    wf = workflow_service.update_workflow(workflow_id, actor, data)
    return jsonify(wf.to_dict()), 200


@workflow_bp.route("/workflows/<workflow_id>", methods=["DELETE"])
def delete_workflow(workflow_id):
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    workflow_service.delete_workflow(workflow_id, actor)
    return jsonify({"deleted": True}), 200


# ═════════════════════════════════════════════════════════════════════════
# Statuses
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflows/<workflow_id>/statuses", methods=["GET"])
def list_statuses(workflow_id):
    _, _, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    return jsonify([s.to_dict() for s in workflow_service.list_statuses(workflow_id)]), 200


@workflow_bp.route("/workflows/<workflow_id>/statuses", methods=["POST"])
def create_status(workflow_id):
    """Body: { name, key?, category?, color?, icon?, description?, position?,
    position_x?, position_y?, is_initial?, is_final? }"""
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    status = workflow_service.create_status(workflow_id, actor, data)
    return jsonify(status.to_dict()), 201


@workflow_bp.route("/workflows/<workflow_id>/statuses/bulk", methods=["POST"])
def bulk_create_statuses(workflow_id):
    """Body: { statuses: [ {name, key?, ...}, ... ] }"""
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    created = workflow_service.bulk_create_statuses(workflow_id, actor, data.get("statuses"))
    return jsonify({"items": [s.to_dict() for s in created], "created": len(created)}), 201


@workflow_bp.route("/workflows/<workflow_id>/statuses/<status_id>", methods=["PATCH"])
def update_status(workflow_id, status_id):
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    status = workflow_service.update_status(workflow_id, status_id, actor, data)
    return jsonify(status.to_dict()), 200


@workflow_bp.route("/workflows/<workflow_id>/statuses/<status_id>", methods=["DELETE"])
def delete_status(workflow_id, status_id):
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    removed = workflow_service.delete_status(workflow_id, status_id, actor)
    return jsonify({"deleted": True, "transitions_removed": removed}), 200


# ═════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflows/<workflow_id>/transitions", methods=["GET"])
def list_transitions(workflow_id):
    _, _, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    return jsonify([t.to_dict() for t in workflow_service.list_transitions(workflow_id)]), 200


@workflow_bp.route("/workflows/<workflow_id>/transitions", methods=["POST"])
def create_transition(workflow_id):
    """Body: { from_status_id, to_status_id, name?, description?,
    allowed_team_ids?, allowed_member_roles?, requires_approval?,
    approver_team_ids?, auto_transition?, condition_type? }"""
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    t = workflow_service.create_transition(workflow_id, actor, data)
    return jsonify(t.to_dict()), 201


@workflow_bp.route("/workflows/<workflow_id>/transitions/bulk", methods=["POST"])
def bulk_create_transitions(workflow_id):
    """Body: { transitions: [ {from: KEY, to: KEY, name?}, ... ] } or { allow_all: true }"""
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    created = workflow_service.bulk_create_transitions(
        workflow_id, actor,
        items=data.get("transitions"),
        allow_all=bool(data.get("allow_all", False)),
    )
    return jsonify({"items": [t.to_dict() for t in created], "created": len(created)}), 201


@workflow_bp.route("/workflows/<workflow_id>/transitions/<transition_id>", methods=["PATCH"])
def update_transition(workflow_id, transition_id):
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    t = workflow_service.update_transition(workflow_id, transition_id, actor, data)
    return jsonify(t.to_dict()), 200


@workflow_bp.route("/workflows/<workflow_id>/transitions/<transition_id>", methods=["DELETE"])
def delete_transition(workflow_id, transition_id):
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    workflow_service.delete_transition(workflow_id, transition_id, actor)
    return jsonify({"deleted": True}), 200


# ═════════════════════════════════════════════════════════════════════════
# Validation & health
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflows/validate-transition", methods=["POST"])
def validate_transition():
    """Body: { workflow_id, from_status_id, to_status_id }

    Always 200: a denial is a decision, not an error.
    """
    data = request.get_json(silent=True) or {}
    missing = [f for f in ("workflow_id", "from_status_id", "to_status_id") if not data.get(f)]
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"Missing fields: {', '.join(missing)}")
    _, actor, err = _actor_for_workflow(data["workflow_id"])
    if err:
        return err
    decision = transition_service.validate_transition(
        data["workflow_id"], data["from_status_id"], data["to_status_id"], actor,
    )
    return jsonify(decision.to_dict()), 200


@workflow_bp.route("/workflows/allowed-transitions", methods=["GET"])
def allowed_transitions():
    """Query params: workflow_id, from_status_id (both required)."""
    workflow_id = request.args.get("workflow_id")
    from_status_id = request.args.get("from_status_id")
    if not workflow_id or not from_status_id:
        return api_error(E.VALIDATION_REQUIRED, "workflow_id and from_status_id are required")
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    items = transition_service.allowed_transitions(workflow_id, from_status_id, actor)
    return jsonify([a.to_dict() for a in items]), 200


@workflow_bp.route("/workflows/<workflow_id>/health", methods=["GET"])
def workflow_health(workflow_id):
    _, _, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    return jsonify(transition_service.analyze_workflow_health(workflow_id).to_dict()), 200


@workflow_bp.route("/workflows/<workflow_id>/audit", methods=["GET"])
def workflow_audit(workflow_id):
    """Query params: limit (default 100, max 500)."""
    _, _, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    limit = min(request.args.get("limit", 100, type=int), 500)
    items = [log.to_dict() for log in audit_trail(workflow_id, limit=limit)]
    return jsonify({"items": items, "total": len(items)}), 200


# ═════════════════════════════════════════════════════════════════════════
# Reconciliation
# ═════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflows/<workflow_id>/conflicts/<project_id>", methods=["GET"])
def detect_conflict(workflow_id, project_id):
    _, _, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    report = reconciliation_service.detect_conflict(workflow_id, project_id)
    return jsonify(report.to_dict()), 200


@workflow_bp.route("/workflows/<workflow_id>/connect-project/<project_id>", methods=["POST"])
def connect_project(workflow_id, project_id):
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    project = reconciliation_service.connect_project(workflow_id, project_id, actor)
    return jsonify(project.to_dict()), 200


@workflow_bp.route("/workflows/<workflow_id>/disconnect-project/<project_id>", methods=["POST"])
def disconnect_project(workflow_id, project_id):
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    project = reconciliation_service.disconnect_project(workflow_id, project_id, actor)
    return jsonify(project.to_dict()), 200


@workflow_bp.route("/workflows/<workflow_id>/sync-with-resolution/<project_id>", methods=["POST"])
@limiter.limit(_sync_rate_limit)
def sync_with_resolution(workflow_id, project_id):
    """Body: { resolution: "workflow" | "project", confirm?: bool }

    A workflow-priority sync that would drop project-only statuses answers
    409 SYNC_CONFIRMATION_REQUIRED until retried with ``confirm: true``.
    """
    _, actor, err = _actor_for_workflow(workflow_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    resolution = data.get("resolution") or data.get("strategy")
    if not resolution:
        return api_error(E.VALIDATION_REQUIRED, "resolution is required")
    summary = reconciliation_service.sync_statuses(
        workflow_id, project_id, resolution, actor,
        confirm=bool(data.get("confirm", False)),
    )
    return jsonify(summary.to_dict()), 200
