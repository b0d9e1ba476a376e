"""
Status Reconciler service — conflict detection and sync between a workflow
and a project board.

Planning is pure (``engine.reconciler``); this module fetches both sides,
applies the plan and commits once.  A sync either lands completely or is
rolled back and surfaces as ``ReconciliationFailure``.
"""

import logging

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from workflow_engine.core.exceptions import (
    PermissionDenied,
    ReconciliationFailure,
    SyncConfirmationRequired,
    ValidationError,
)
from workflow_engine.engine.matching import get_matcher, normalize_name
from workflow_engine.engine.project_statuses import DEFAULT_PROJECT_STATUSES
from workflow_engine.engine.reconciler import (
    CanvasLayout,
    ConflictReport,
    ProjectPriorityPlan,
    SyncStrategy,
    SyncSummary,
    WorkflowPriorityPlan,
    plan_project_priority,
    plan_workflow_priority,
)
from workflow_engine.engine.reconciler import detect_conflict as _detect_conflict
from workflow_engine.engine.validator import Actor
from workflow_engine.models import db
from workflow_engine.models.audit import write_audit
from workflow_engine.models.project import CustomColumn, Project, Task
from workflow_engine.models.workflow import Workflow, WorkflowStatus, _utcnow
from workflow_engine.services import locking
from workflow_engine.services.project_status_service import (
    get_project,
    legacy_work_item_types,
    list_custom_columns,
    load_project_status_set,
)
from workflow_engine.services.workflow_service import (
    _load_for_update,
    can_manage_workflows,
    get_workflow,
    guard_workflow,
    list_statuses,
)

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────────────────────

def _matcher():
    return get_matcher(current_app.config.get("WORKFLOW_STATUS_MATCHING", "normalized"))


def _layout(statuses) -> CanvasLayout:
    cfg = current_app.config
    return CanvasLayout.for_statuses(
        statuses,
        origin=cfg.get("WORKFLOW_CANVAS_ORIGIN", 100),
        step_x=cfg.get("WORKFLOW_CANVAS_STEP_X", 250),
        step_y=cfg.get("WORKFLOW_CANVAS_STEP_Y", 150),
    )


def _check_same_workspace(wf: Workflow, project: Project) -> None:
    if project.workspace_id != wf.workspace_id:
        raise ValidationError(
            "Project and workflow belong to different workspaces",
            details={"workflow_id": wf.id, "project_id": project.id},
        )


def _count_tasks_in(project_id: str, status_keys: list[str]) -> int:
    if not status_keys:
        return 0
    return db.session.execute(
        select(func.count(Task.id)).where(
            Task.project_id == project_id,
            Task.status.in_(status_keys),
        )
    ).scalar() or 0


# ═════════════════════════════════════════════════════════════════════════════
# Conflict detection
# ═════════════════════════════════════════════════════════════════════════════

def detect_conflict(workflow_id: str, project_id: str) -> ConflictReport:
    """Compare a workflow's statuses with a project's status set.

    Returns:
        ConflictReport with ``affected_task_count`` = tasks of the project
        sitting in a project-only status.
    """
    wf = get_workflow(workflow_id)
    project = get_project(project_id)
    _check_same_workspace(wf, project)

    report = _detect_conflict(list_statuses(wf.id), load_project_status_set(project), _matcher())
    report.affected_task_count = _count_tasks_in(project.id, report.project_only_keys)
    return report


# ═════════════════════════════════════════════════════════════════════════════
# Sync
# ═════════════════════════════════════════════════════════════════════════════

def _lock_for_workflow_sync(workflow_id: str, actor: Actor) -> Workflow:
    """Row lock + permission for a sync that only writes the project side."""
    wf = _load_for_update(workflow_id)
    if not can_manage_workflows(actor, wf.space_id):
        raise PermissionDenied(actor.user_id, "sync_workflow")
    if not wf.is_system:
        wf.updated_at = _utcnow()
    return wf


def _at_risk_statuses(report: ConflictReport, plan: WorkflowPriorityPlan) -> list[tuple[str, str]]:
    """Project-only statuses plus whatever the plan deletes, one per name."""
    seen = {}
    for key, name in [(p.key, p.name) for p in report.project_only] + plan.removed_statuses:
        seen.setdefault(normalize_name(name), (key, name))
    return list(seen.values())


def _apply_workflow_plan(project: Project, plan: WorkflowPriorityPlan) -> None:
    for u in plan.upserts:
        if u.column is not None:
            u.column.icon = u.icon
            u.column.color = u.color
            u.column.position = u.position
        else:
            db.session.add(CustomColumn(
                project_id=project.id,
                name=u.name,
                icon=u.icon,
                color=u.color,
                position=u.position,
            ))
    for col in plan.deletes:
        db.session.delete(col)
    project.custom_work_item_types = plan.work_item_types


def _apply_project_plan(wf: Workflow, plan: ProjectPriorityPlan) -> None:
    for m in plan.moves:
        m.status.position_x = m.position_x
        m.status.position_y = m.position_y
        if m.icon:
            m.status.icon = m.icon
        if m.color:
            m.status.color = m.color
    for c in plan.creates:
        db.session.add(WorkflowStatus(
            workflow_id=wf.id,
            key=c.key,
            name=c.name[:50],
            icon=c.icon,
            color=c.color,
            category=c.category,
            position=c.position,
            position_x=c.position_x,
            position_y=c.position_y,
            is_initial=False,
            is_final=False,
        ))


def sync_statuses(
    workflow_id: str,
    project_id: str,
    strategy: str,
    actor: Actor,
    confirm: bool = False,
) -> SyncSummary:
    """Reconcile a workflow and a project under the given priority.

    Args:
        workflow_id: Workflow to sync.
        project_id: Project to sync; must share the workflow's workspace.
        strategy: ``"workflow"`` (workflow wins, destructive) or
            ``"project"`` (project wins, additive).
        actor: Caller; must be able to manage workflows.
        confirm: Required for a workflow-priority sync that would drop
            project-only statuses.

    Returns:
        SyncSummary with added / updated / removed counts.

    Raises:
        ValidationError: unknown strategy or cross-workspace pair.
        SyncConfirmationRequired: destructive sync without ``confirm``.
        SystemWorkflowError: project-priority sync into a system workflow.
        PermissionDenied: the actor may not manage workflows.
        ReconciliationFailure: the database rejected the sync; nothing applied.
    """
    try:
        strategy = SyncStrategy(strategy)
    except ValueError:
        raise ValidationError(
            f"Unknown sync strategy '{strategy}'",
            details={"strategy": strategy, "available": [s.value for s in SyncStrategy]},
        ) from None

    with locking.locked(workflow_id):
        try:
            if strategy == SyncStrategy.PROJECT:
                wf = guard_workflow(workflow_id, actor, "sync_workflow")
            else:
                wf = _lock_for_workflow_sync(workflow_id, actor)
            project = get_project(project_id)
            _check_same_workspace(wf, project)

            statuses = list_statuses(wf.id)
            project_statuses = load_project_status_set(project)
            matcher = _matcher()

            if strategy == SyncStrategy.WORKFLOW:
                plan = plan_workflow_priority(
                    statuses, list_custom_columns(project.id), legacy_work_item_types(project),
                )
                at_risk = _at_risk_statuses(
                    _detect_conflict(statuses, project_statuses, matcher), plan,
                )
                if at_risk and not confirm:
                    raise SyncConfirmationRequired(
                        [name for _, name in at_risk],
                        _count_tasks_in(project.id, [key for key, _ in at_risk]),
                    )
                _apply_workflow_plan(project, plan)
                status_count = len(plan.work_item_types)
            else:
                plan = plan_project_priority(statuses, project_statuses, matcher, _layout(statuses))
                _apply_project_plan(wf, plan)
                status_count = len(statuses) + plan.added

            project.workflow_id = wf.id
            summary = SyncSummary.from_plan(strategy, plan, status_count)
            write_audit(
                entity_type="project", entity_id=project.id, action="project.sync_workflow",
                actor=actor.user_id, workflow_id=wf.id, diff=summary.to_dict(),
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(
                "Sync failed: %s", exc,
                extra={"workflow_id": workflow_id, "project_id": project_id, "strategy": strategy.value},
            )
            raise ReconciliationFailure(workflow_id, project_id, type(exc).__name__) from exc
        except Exception:
            db.session.rollback()
            raise

    logger.info(
        "Sync complete added=%d updated=%d removed=%d",
        summary.added, summary.updated, summary.removed,
        extra={
            "workflow_id": workflow_id,
            "project_id": project_id,
            "strategy": strategy.value,
            "user_id": actor.user_id,
        },
    )
    return summary


# ═════════════════════════════════════════════════════════════════════════════
# Project ↔ workflow pointer
# ═════════════════════════════════════════════════════════════════════════════

def connect_project(workflow_id: str, project_id: str, actor: Actor) -> Project:
    wf = get_workflow(workflow_id)
    project = get_project(project_id)
    _check_same_workspace(wf, project)
    if not can_manage_workflows(actor, wf.space_id):
        raise PermissionDenied(actor.user_id, "connect_project")
    if wf.is_archived:
        raise ValidationError("Cannot connect an archived workflow", details={"workflow_id": wf.id})

    previous = project.workflow_id
    project.workflow_id = wf.id
    write_audit(
        entity_type="project", entity_id=project.id, action="project.connect_workflow",
        actor=actor.user_id, workflow_id=wf.id,
        diff={"workflow_id": {"old": previous, "new": wf.id}},
    )
    db.session.commit()
    logger.info(
        "Project connected to workflow", extra={"workflow_id": wf.id, "project_id": project.id},
    )
    return project


def disconnect_project(workflow_id: str, project_id: str, actor: Actor) -> Project:
    wf = get_workflow(workflow_id)
    project = get_project(project_id)
    if not can_manage_workflows(actor, wf.space_id):
        raise PermissionDenied(actor.user_id, "disconnect_project")
    if project.workflow_id != wf.id:
        raise ValidationError(
            "Project is not connected to this workflow",
            details={"workflow_id": wf.id, "project_id": project.id},
        )

    project.workflow_id = None
    write_audit(
        entity_type="project", entity_id=project.id, action="project.disconnect_workflow",
        actor=actor.user_id, workflow_id=wf.id,
        diff={"workflow_id": {"old": wf.id, "new": None}},
    )
    db.session.commit()
    logger.info(
        "Project disconnected from workflow", extra={"workflow_id": wf.id, "project_id": project.id},
    )
    return project


def get_project_statuses(project_id: str) -> dict:
    """Statuses a project's tasks can take: its workflow's, else the built-in defaults."""
    project = get_project(project_id)
    if project.workflow_id:
        statuses = list_statuses(project.workflow_id)
        return {
            "project_id": project.id,
            "workflow_id": project.workflow_id,
            "source": "workflow",
            "statuses": [s.to_dict() for s in statuses],
        }
    return {
        "project_id": project.id,
        "workflow_id": None,
        "source": "default",
        "statuses": [
            {**s.to_dict(), "position": i} for i, s in enumerate(DEFAULT_PROJECT_STATUSES)
        ],
    }
