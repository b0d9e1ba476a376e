"""
Workflow Lifecycle service — workflows, statuses and transitions.

Centralises every ORM mutation of the workflow graph so that blueprints
remain HTTP-only.  Each mutation:

    1. takes the per-workflow lock and runs ``guard_workflow`` (row lock,
       system-workflow immutability, manage permission, version bump)
    2. checks structural rules (unknown ids, duplicate keys / edges)
    3. writes, appends an audit row, commits once

Any failure after the guard rolls the whole transaction back.
"""

import logging
import re
from contextlib import contextmanager
from itertools import permutations

from flask import current_app
from sqlalchemy import func, or_, select
from sqlalchemy.orm.exc import StaleDataError

from workflow_engine.core.exceptions import (
    ConcurrentModificationError,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    SystemWorkflowError,
    ValidationError,
)
from workflow_engine.engine.matching import normalize_key
from workflow_engine.engine.project_statuses import DEFAULT_COLOR, DEFAULT_ICON
from workflow_engine.engine.validator import Actor
from workflow_engine.models import db
from workflow_engine.models.audit import write_audit
from workflow_engine.models.project import Project
from workflow_engine.models.workflow import (
    CONDITION_TYPES,
    STATUS_CATEGORIES,
    WORKFLOW_TEMPLATES,
    Workflow,
    WorkflowStatus,
    WorkflowTransition,
    _utcnow,
)
from workflow_engine.services import locking

logger = logging.getLogger(__name__)

MANAGER_ROLES = ("OWNER", "ADMIN")
BLANK_TEMPLATE = "blank"

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")

WORKFLOW_FIELDS = ("name", "description", "is_default", "is_archived")
STATUS_FIELDS = (
    "name", "key", "category", "color", "icon", "description",
    "position", "position_x", "position_y", "is_initial", "is_final",
)
TRANSITION_FIELDS = (
    "name", "description", "allowed_team_ids", "allowed_member_roles",
    "requires_approval", "approver_team_ids", "auto_transition", "condition_type",
)


# ═════════════════════════════════════════════════════════════════════════════
# Permission & guard
# ═════════════════════════════════════════════════════════════════════════════

def can_manage_workflows(actor: Actor, space_id: str | None = None) -> bool:
    """Workspace OWNER/ADMIN, or space admin of the workflow's space."""
    if actor.role in MANAGER_ROLES:
        return True
    return bool(space_id) and space_id in actor.space_admin_ids


def _load_for_update(workflow_id: str) -> Workflow:
    wf = db.session.execute(
        select(Workflow)
        .where(Workflow.id == workflow_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if wf is None:
        raise NotFoundError(resource="Workflow", resource_id=workflow_id)
    return wf


def guard_workflow(workflow_id: str, actor: Actor, action: str) -> Workflow:
    """
    Single entry check for every workflow mutation.

    Locks the workflow row, rejects system workflows and callers who may not
    manage workflows, then touches ``updated_at`` so the version counter
    moves and a concurrent writer fails at flush.

    Raises:
        NotFoundError: unknown workflow id.
        SystemWorkflowError: the workflow is a system workflow.
        PermissionDenied: the actor may not manage workflows here.
    """
    wf = _load_for_update(workflow_id)
    if wf.is_system:
        raise SystemWorkflowError(workflow_id, action)
    if not can_manage_workflows(actor, wf.space_id):
        raise PermissionDenied(actor.user_id, action)
    wf.updated_at = _utcnow()
    return wf


@contextmanager
def workflow_mutation(workflow_id: str, actor: Actor, action: str):
    """Guard, yield the locked workflow, commit; roll back on any failure."""
    with locking.locked(workflow_id):
        try:
            wf = guard_workflow(workflow_id, actor, action)
            yield wf
            db.session.commit()
        except StaleDataError as exc:
            db.session.rollback()
            raise ConcurrentModificationError(workflow_id) from exc
        except Exception:
            db.session.rollback()
            raise


# ═════════════════════════════════════════════════════════════════════════════
# Input validation
# ═════════════════════════════════════════════════════════════════════════════

def _require_text(data: dict, field: str, max_len: int) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(
            f"{field} must be at most {max_len} characters",
            details={field: "too_long"},
        )
    return value


def _check_status_fields(data: dict) -> None:
    if "category" in data and data["category"] not in STATUS_CATEGORIES:
        raise ValidationError(
            f"category must be one of {', '.join(STATUS_CATEGORIES)}",
            details={"category": data["category"]},
        )
    if data.get("color") is not None and not _HEX_COLOR.match(str(data["color"])):
        raise ValidationError("color must be a hex value like #RRGGBB", details={"color": data["color"]})


def _check_id_list(data: dict, field: str) -> None:
    value = data.get(field)
    if value is None:
        return
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{field} must be a list of strings", details={field: "invalid"})


def _check_transition_fields(data: dict) -> None:
    for field in ("allowed_team_ids", "allowed_member_roles", "approver_team_ids"):
        _check_id_list(data, field)
    condition = data.get("condition_type")
    if condition is not None and condition not in CONDITION_TYPES:
        raise ValidationError(
            f"condition_type must be one of {', '.join(CONDITION_TYPES)}",
            details={"condition_type": condition},
        )


def _check_key(key) -> str:
    if not isinstance(key, str) or not key.strip():
        raise ValidationError("key cannot be empty", details={"key": "required"})
    if len(key) > 30:
        raise ValidationError("key must be at most 30 characters", details={"key": "too_long"})
    return key


def _status_key(data: dict, name: str) -> str:
    return _check_key(data.get("key") or normalize_key(name).upper())


def _check_position(data: dict, required: bool) -> None:
    if "position" in data and (data["position"] is not None or required):
        value = data["position"]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                "position must be a non-negative integer", details={"position": value},
            )
    for field in ("position_x", "position_y"):
        value = data.get(field)
        if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
            raise ValidationError(f"{field} must be a number", details={field: value})


def _check_status_update(data: dict) -> None:
    """Updates may not null out a column that creation always fills."""
    for field in ("category", "color", "icon", "is_initial", "is_final"):
        if field in data and data[field] is None:
            raise ValidationError(f"{field} cannot be null", details={field: "required"})
    _check_position(data, required=True)


# ═════════════════════════════════════════════════════════════════════════════
# Workflows
# ═════════════════════════════════════════════════════════════════════════════

def get_workflow(workflow_id: str) -> Workflow:
    wf = db.session.get(Workflow, workflow_id)
    if wf is None:
        raise NotFoundError(resource="Workflow", resource_id=workflow_id)
    return wf


def list_workflows(
    workspace_id: str,
    space_id: str | None = None,
    project_id: str | None = None,
    include_archived: bool = False,
) -> list[dict]:
    """Workflows of a workspace (optionally narrowed to a space or project), with status counts.

    Args:
        workspace_id: Owning workspace.
        space_id: Only workflows of this space.
        project_id: Only workflows of this project.
        include_archived: Include archived workflows.

    Returns:
        List of workflow dicts, each with ``status_count``.
    """
    counts = (
        select(WorkflowStatus.workflow_id, func.count(WorkflowStatus.id).label("n"))
        .group_by(WorkflowStatus.workflow_id)
        .subquery()
    )
    stmt = (
        select(Workflow, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.workflow_id == Workflow.id)
        .where(Workflow.workspace_id == workspace_id)
        .order_by(Workflow.is_system.desc(), Workflow.name)
    )
    if space_id:
        stmt = stmt.where(Workflow.space_id == space_id)
    if project_id:
        stmt = stmt.where(Workflow.project_id == project_id)
    if not include_archived:
        stmt = stmt.where(Workflow.is_archived.is_(False))

    result = []
    for wf, n in db.session.execute(stmt).all():
        d = wf.to_dict()
        d["status_count"] = n
        result.append(d)
    return result


def _add_status(wf: Workflow, **fields) -> WorkflowStatus:
    status = WorkflowStatus(workflow_id=wf.id, **fields)
    db.session.add(status)
    return status


def _apply_template(wf: Workflow, template_key: str) -> None:
    """Create a template's statuses laid out left to right, then its transitions."""
    template = WORKFLOW_TEMPLATES[template_key]
    origin = current_app.config.get("WORKFLOW_CANVAS_ORIGIN", 100)
    step_x = current_app.config.get("WORKFLOW_CANVAS_STEP_X", 250)

    by_key = {}
    for i, s in enumerate(template["statuses"]):
        by_key[s["key"]] = _add_status(
            wf,
            name=s["name"],
            key=s["key"],
            category=s["category"],
            color=s["color"],
            icon=s["icon"],
            position=i,
            position_x=origin + i * step_x,
            position_y=origin,
            is_initial=s.get("is_initial", False),
            is_final=s.get("is_final", False),
        )
    db.session.flush()

    if template["transitions"] == "ALL":
        pairs = [(a, b, None) for a, b in permutations(by_key, 2)]
    else:
        pairs = [(t["from"], t["to"], t.get("name")) for t in template["transitions"]]
    for from_key, to_key, name in pairs:
        db.session.add(WorkflowTransition(
            workflow_id=wf.id,
            from_status_id=by_key[from_key].id,
            to_status_id=by_key[to_key].id,
            name=name,
        ))
    db.session.flush()


def _clone_graph(source: Workflow, target: Workflow) -> None:
    """Copy statuses, then transitions with status ids remapped."""
    id_map = {}
    for s in source.statuses.order_by(WorkflowStatus.position).all():
        copy = _add_status(
            target,
            name=s.name,
            key=s.key,
            category=s.category,
            color=s.color,
            icon=s.icon,
            description=s.description,
            position=s.position,
            position_x=s.position_x or 0,
            position_y=s.position_y or 0,
            is_initial=s.is_initial,
            is_final=s.is_final,
        )
        db.session.flush()
        id_map[s.id] = copy.id

    for t in source.transitions.all():
        if t.from_status_id not in id_map or t.to_status_id not in id_map:
            continue
        db.session.add(WorkflowTransition(
            workflow_id=target.id,
            from_status_id=id_map[t.from_status_id],
            to_status_id=id_map[t.to_status_id],
            name=t.name,
            description=t.description,
            allowed_team_ids=list(t.allowed_team_ids or []),
            allowed_member_roles=list(t.allowed_member_roles or []),
            requires_approval=t.requires_approval,
            approver_team_ids=list(t.approver_team_ids or []),
            auto_transition=t.auto_transition,
            condition_type=t.condition_type,
        ))
    db.session.flush()


def create_workflow(actor: Actor, data: dict) -> Workflow:
    """Create a workflow: blank, from a starter template, or cloned.

    Args:
        actor: Caller; must be able to manage workflows in the target space.
        data: ``workspace_id``, ``name`` (required); ``key``, ``description``,
            ``space_id``, ``project_id``, ``is_default``; ``template``
            (``blank`` | ``software`` | ``kanban`` | ``bug_tracking``) or
            ``copy_from_workflow_id``.

    Returns:
        The new Workflow.

    Raises:
        ValidationError: missing name/workspace, unknown template, or a clone
            source from another workspace.
        NotFoundError: clone source does not exist.
        PermissionDenied: the actor may not manage workflows.
    """
    workspace_id = _require_text(data, "workspace_id", 36)
    name = _require_text(data, "name", 100)
    space_id = data.get("space_id")
    if not can_manage_workflows(actor, space_id):
        raise PermissionDenied(actor.user_id, "create_workflow")

    template = data.get("template") or BLANK_TEMPLATE
    source_id = data.get("copy_from_workflow_id")
    source = None
    if source_id:
        source = get_workflow(source_id)
        if source.workspace_id != workspace_id:
            raise ValidationError(
                "Cannot clone a workflow from another workspace",
                details={"copy_from_workflow_id": source_id},
            )
    elif template != BLANK_TEMPLATE and template not in WORKFLOW_TEMPLATES:
        raise ValidationError(
            f"Unknown template '{template}'",
            details={"template": template, "available": [BLANK_TEMPLATE, *WORKFLOW_TEMPLATES]},
        )

    try:
        wf = Workflow(
            workspace_id=workspace_id,
            space_id=space_id,
            project_id=data.get("project_id"),
            name=name,
            key=data.get("key") or normalize_key(name).upper()[:50],
            description=data.get("description"),
            is_default=bool(data.get("is_default", False)),
        )
        db.session.add(wf)
        db.session.flush()

        if source is not None:
            _clone_graph(source, wf)
        elif template != BLANK_TEMPLATE:
            _apply_template(wf, template)

        write_audit(
            entity_type="workflow",
            entity_id=wf.id,
            action="workflow.clone" if source is not None else "workflow.create",
            actor=actor.user_id,
            workflow_id=wf.id,
            diff={"name": name, "template": None if source else template, "source": source_id},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Workflow created id=%s template=%s",
        wf.id, "clone" if source is not None else template,
        extra={"workflow_id": wf.id, "workspace_id": workspace_id, "user_id": actor.user_id},
    )
    return wf


def seed_system_workflows(workspace_id: str) -> list[Workflow]:
    """Create one immutable system workflow per starter template, skipping existing ones."""
    existing = set(db.session.execute(
        select(Workflow.key).where(
            Workflow.workspace_id == workspace_id,
            Workflow.is_system.is_(True),
        )
    ).scalars())

    created = []
    for template_key, template in WORKFLOW_TEMPLATES.items():
        key = template_key.upper()
        if key in existing:
            continue
        wf = Workflow(
            workspace_id=workspace_id,
            name=template["name"],
            key=key,
            is_system=True,
            is_default=template_key == "software",
        )
        db.session.add(wf)
        db.session.flush()
        _apply_template(wf, template_key)
        created.append(wf)
    db.session.commit()
    logger.info(
        "Seeded %d system workflow(s)", len(created),
        extra={"workspace_id": workspace_id},
    )
    return created


def update_workflow(workflow_id: str, actor: Actor, data: dict) -> Workflow:
    with workflow_mutation(workflow_id, actor, "update_workflow") as wf:
        if "name" in data:
            data = {**data, "name": _require_text(data, "name", 100)}
        diff = {}
        for field in WORKFLOW_FIELDS:
            if field in data and getattr(wf, field) != data[field]:
                diff[field] = {"old": getattr(wf, field), "new": data[field]}
                setattr(wf, field, data[field])
        write_audit(
            entity_type="workflow", entity_id=wf.id, action="workflow.update",
            actor=actor.user_id, workflow_id=wf.id, diff=diff,
        )
    logger.info("Workflow updated id=%s", workflow_id, extra={"workflow_id": workflow_id})
    return wf


def delete_workflow(workflow_id: str, actor: Actor) -> None:
    """Delete transitions, then statuses, then the workflow; projects pointing at it are detached."""
    with workflow_mutation(workflow_id, actor, "delete_workflow") as wf:
        db.session.execute(
            WorkflowTransition.__table__.delete().where(WorkflowTransition.workflow_id == wf.id)
        )
        db.session.execute(
            WorkflowStatus.__table__.delete().where(WorkflowStatus.workflow_id == wf.id)
        )
        db.session.execute(
            Project.__table__.update().where(Project.workflow_id == wf.id).values(workflow_id=None)
        )
        write_audit(
            entity_type="workflow", entity_id=wf.id, action="workflow.delete",
            actor=actor.user_id, workflow_id=wf.id, diff={"name": wf.name},
        )
        db.session.delete(wf)
    locking.release(workflow_id)
    logger.info("Workflow deleted id=%s", workflow_id, extra={"workflow_id": workflow_id})


# ═════════════════════════════════════════════════════════════════════════════
# Statuses
# ═════════════════════════════════════════════════════════════════════════════

def list_statuses(workflow_id: str) -> list[WorkflowStatus]:
    get_workflow(workflow_id)
    return db.session.execute(
        select(WorkflowStatus)
        .where(WorkflowStatus.workflow_id == workflow_id)
        .order_by(WorkflowStatus.position)
    ).scalars().all()


def _get_status(workflow_id: str, status_id: str) -> WorkflowStatus:
    status = db.session.get(WorkflowStatus, status_id)
    if status is None or status.workflow_id != workflow_id:
        raise NotFoundError(resource="WorkflowStatus", resource_id=status_id)
    return status


def _key_exists(workflow_id: str, key: str, exclude_id: str | None = None) -> bool:
    stmt = select(WorkflowStatus.id).where(
        WorkflowStatus.workflow_id == workflow_id,
        WorkflowStatus.key == key,
    )
    if exclude_id:
        stmt = stmt.where(WorkflowStatus.id != exclude_id)
    return db.session.execute(stmt).first() is not None


def _next_position(workflow_id: str) -> int:
    current = db.session.execute(
        select(func.max(WorkflowStatus.position)).where(WorkflowStatus.workflow_id == workflow_id)
    ).scalar()
    return 0 if current is None else current + 1


def _build_status(wf: Workflow, data: dict) -> WorkflowStatus:
    name = _require_text(data, "name", 50)
    key = _status_key(data, name)
    _check_status_fields(data)
    _check_position(data, required=False)
    if _key_exists(wf.id, key):
        raise ConflictError("WorkflowStatus", "key", key)

    position = data.get("position")
    status = _add_status(
        wf,
        name=name,
        key=key,
        category=data.get("category", "OPEN"),
        color=data.get("color") or DEFAULT_COLOR,
        icon=data.get("icon") or DEFAULT_ICON,
        description=data.get("description"),
        position=_next_position(wf.id) if position is None else position,
        position_x=data.get("position_x") or 0,
        position_y=data.get("position_y") or 0,
        is_initial=bool(data.get("is_initial", False)),
        is_final=bool(data.get("is_final", False)),
    )
    db.session.flush()
    return status


def create_status(workflow_id: str, actor: Actor, data: dict) -> WorkflowStatus:
    """Add a status; ``position`` defaults to max(position) + 1, or 0 for the first.

    Raises:
        ConflictError: the key already exists in this workflow.
        ValidationError: missing name, bad category or color.
    """
    with workflow_mutation(workflow_id, actor, "create_status") as wf:
        status = _build_status(wf, data)
        write_audit(
            entity_type="workflow_status", entity_id=status.id, action="status.create",
            actor=actor.user_id, workflow_id=wf.id, diff={"key": status.key, "name": status.name},
        )
    logger.info(
        "WorkflowStatus created id=%s key=%s", status.id, status.key,
        extra={"workflow_id": workflow_id, "user_id": actor.user_id},
    )
    return status


def bulk_create_statuses(workflow_id: str, actor: Actor, items: list[dict]) -> list[WorkflowStatus]:
    """Create several statuses in one transaction; any failure rejects all of them."""
    if not isinstance(items, list) or not items:
        raise ValidationError("statuses must be a non-empty list", details={"statuses": "required"})
    with workflow_mutation(workflow_id, actor, "create_status") as wf:
        created = [_build_status(wf, item) for item in items]
        write_audit(
            entity_type="workflow", entity_id=wf.id, action="status.bulk_create",
            actor=actor.user_id, workflow_id=wf.id, diff={"keys": [s.key for s in created]},
        )
    logger.info(
        "Bulk-created %d status(es)", len(created),
        extra={"workflow_id": workflow_id, "user_id": actor.user_id},
    )
    return created


def update_status(workflow_id: str, status_id: str, actor: Actor, data: dict) -> WorkflowStatus:
    with workflow_mutation(workflow_id, actor, "update_status") as wf:
        status = _get_status(wf.id, status_id)
        _check_status_fields(data)
        _check_status_update(data)
        if "name" in data:
            data = {**data, "name": _require_text(data, "name", 50)}
        if "key" in data and data["key"] != status.key:
            _check_key(data["key"])
            if _key_exists(wf.id, data["key"], exclude_id=status.id):
                raise ConflictError("WorkflowStatus", "key", data["key"])

        diff = {}
        for field in STATUS_FIELDS:
            if field in data and getattr(status, field) != data[field]:
                diff[field] = {"old": getattr(status, field), "new": data[field]}
                setattr(status, field, data[field])
        write_audit(
            entity_type="workflow_status", entity_id=status.id, action="status.update",
            actor=actor.user_id, workflow_id=wf.id, diff=diff,
        )
    logger.info("WorkflowStatus updated id=%s", status_id, extra={"workflow_id": workflow_id})
    return status


def delete_status(workflow_id: str, status_id: str, actor: Actor) -> int:
    """Delete a status and every transition touching it.

    Returns:
        Number of transitions removed alongside the status.
    """
    with workflow_mutation(workflow_id, actor, "delete_status") as wf:
        status = _get_status(wf.id, status_id)
        removed = db.session.execute(
            WorkflowTransition.__table__.delete().where(
                WorkflowTransition.workflow_id == wf.id,
                or_(
                    WorkflowTransition.from_status_id == status.id,
                    WorkflowTransition.to_status_id == status.id,
                ),
            )
        ).rowcount
        write_audit(
            entity_type="workflow_status", entity_id=status.id, action="status.delete",
            actor=actor.user_id, workflow_id=wf.id,
            diff={"key": status.key, "transitions_removed": removed},
        )
        db.session.delete(status)
    logger.info(
        "WorkflowStatus deleted id=%s transitions_removed=%d", status_id, removed,
        extra={"workflow_id": workflow_id},
    )
    return removed


# ═════════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════════

def list_transitions(workflow_id: str) -> list[WorkflowTransition]:
    get_workflow(workflow_id)
    return db.session.execute(
        select(WorkflowTransition)
        .where(WorkflowTransition.workflow_id == workflow_id)
        .order_by(WorkflowTransition.created_at)
    ).scalars().all()


def _get_transition(workflow_id: str, transition_id: str) -> WorkflowTransition:
    t = db.session.get(WorkflowTransition, transition_id)
    if t is None or t.workflow_id != workflow_id:
        raise NotFoundError(resource="WorkflowTransition", resource_id=transition_id)
    return t


def _edge_exists(workflow_id: str, from_id: str, to_id: str) -> bool:
    return db.session.execute(
        select(WorkflowTransition.id).where(
            WorkflowTransition.workflow_id == workflow_id,
            WorkflowTransition.from_status_id == from_id,
            WorkflowTransition.to_status_id == to_id,
        )
    ).first() is not None


def _build_transition(wf: Workflow, from_id: str, to_id: str, data: dict) -> WorkflowTransition:
    if not from_id or not to_id:
        raise ValidationError(
            "from_status_id and to_status_id are required",
            details={"from_status_id": from_id, "to_status_id": to_id},
        )
    if from_id == to_id:
        raise ValidationError("A status cannot transition to itself", details={"status_id": from_id})
    _get_status(wf.id, from_id)
    _get_status(wf.id, to_id)
    _check_transition_fields(data)
    if _edge_exists(wf.id, from_id, to_id):
        raise ConflictError("WorkflowTransition", "from_status_id,to_status_id", f"{from_id}->{to_id}")

    t = WorkflowTransition(
        workflow_id=wf.id,
        from_status_id=from_id,
        to_status_id=to_id,
        name=data.get("name"),
        description=data.get("description"),
        allowed_team_ids=data.get("allowed_team_ids") or [],
        allowed_member_roles=data.get("allowed_member_roles") or [],
        requires_approval=bool(data.get("requires_approval", False)),
        approver_team_ids=data.get("approver_team_ids") or [],
        auto_transition=bool(data.get("auto_transition", False)),
        condition_type=data.get("condition_type"),
    )
    db.session.add(t)
    db.session.flush()
    return t


def create_transition(workflow_id: str, actor: Actor, data: dict) -> WorkflowTransition:
    """Add an edge between two statuses of the same workflow.

    Raises:
        NotFoundError: either endpoint is not a status of this workflow.
        ConflictError: the (from, to) edge already exists.
        ValidationError: missing endpoints, self-loop, bad rule lists or condition.
    """
    with workflow_mutation(workflow_id, actor, "create_transition") as wf:
        t = _build_transition(wf, data.get("from_status_id"), data.get("to_status_id"), data)
        write_audit(
            entity_type="workflow_transition", entity_id=t.id, action="transition.create",
            actor=actor.user_id, workflow_id=wf.id,
            diff={"from": t.from_status_id, "to": t.to_status_id},
        )
    logger.info(
        "WorkflowTransition created id=%s", t.id,
        extra={"workflow_id": workflow_id, "user_id": actor.user_id},
    )
    return t


def bulk_create_transitions(
    workflow_id: str,
    actor: Actor,
    items: list[dict] | None = None,
    allow_all: bool = False,
) -> list[WorkflowTransition]:
    """Create edges addressed by status key.

    Args:
        items: ``[{"from": KEY, "to": KEY, "name": ...}, ...]``.
        allow_all: Instead of *items*, connect every ordered pair of
            distinct statuses.

    Existing edges are skipped; unknown keys reject the whole batch.
    """
    with workflow_mutation(workflow_id, actor, "create_transition") as wf:
        by_key = {
            s.key: s for s in db.session.execute(
                select(WorkflowStatus).where(WorkflowStatus.workflow_id == wf.id)
            ).scalars()
        }
        if allow_all:
            pairs = [(a.id, b.id, {}) for a, b in permutations(by_key.values(), 2)]
        else:
            if not isinstance(items, list) or not items:
                raise ValidationError("transitions must be a non-empty list", details={"transitions": "required"})
            pairs = []
            for item in items:
                for end in ("from", "to"):
                    if item.get(end) not in by_key:
                        raise NotFoundError(resource="WorkflowStatus", resource_id=item.get(end))
                pairs.append((by_key[item["from"]].id, by_key[item["to"]].id, item))

        created = [
            _build_transition(wf, from_id, to_id, extra)
            for from_id, to_id, extra in pairs
            if not _edge_exists(wf.id, from_id, to_id)
        ]
        write_audit(
            entity_type="workflow", entity_id=wf.id, action="transition.bulk_create",
            actor=actor.user_id, workflow_id=wf.id,
            diff={"created": len(created), "allow_all": allow_all},
        )
    logger.info(
        "Bulk-created %d transition(s)", len(created),
        extra={"workflow_id": workflow_id, "user_id": actor.user_id},
    )
    return created


def update_transition(workflow_id: str, transition_id: str, actor: Actor, data: dict) -> WorkflowTransition:
    with workflow_mutation(workflow_id, actor, "update_transition") as wf:
        t = _get_transition(wf.id, transition_id)
        _check_transition_fields(data)
        diff = {}
        for field in TRANSITION_FIELDS:
            if field in data and getattr(t, field) != data[field]:
                diff[field] = {"old": getattr(t, field), "new": data[field]}
                setattr(t, field, data[field])
        write_audit(
            entity_type="workflow_transition", entity_id=t.id, action="transition.update",
            actor=actor.user_id, workflow_id=wf.id, diff=diff,
        )
    logger.info("WorkflowTransition updated id=%s", transition_id, extra={"workflow_id": workflow_id})
    return t


def delete_transition(workflow_id: str, transition_id: str, actor: Actor) -> None:
    with workflow_mutation(workflow_id, actor, "delete_transition") as wf:
        t = _get_transition(wf.id, transition_id)
        write_audit(
            entity_type="workflow_transition", entity_id=t.id, action="transition.delete",
            actor=actor.user_id, workflow_id=wf.id,
            diff={"from": t.from_status_id, "to": t.to_status_id},
        )
        db.session.delete(t)
    logger.info("WorkflowTransition deleted id=%s", transition_id, extra={"workflow_id": workflow_id})
