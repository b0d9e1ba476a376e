"""
Transition & health queries — fetch the graph, hand it to the pure engine.

Nothing here writes except ``auto_advance_task``, which moves a single task
along an automated transition.
"""

import logging

from sqlalchemy import select

from workflow_engine.core.exceptions import NotFoundError
from workflow_engine.engine.conditions import ConditionEvaluator
from workflow_engine.engine.conditions import find_auto_transition as _find_auto_transition
from workflow_engine.engine.health import HealthReport, analyze_health
from workflow_engine.engine.validator import (
    Actor,
    AllowedTransition,
    TransitionDecision,
)
from workflow_engine.engine.validator import allowed_transitions as _allowed_transitions
from workflow_engine.engine.validator import validate_transition as _validate_transition
from workflow_engine.models import db
from workflow_engine.models.project import Project, Task
from workflow_engine.models.workflow import WorkflowStatus, WorkflowTransition
from workflow_engine.services.condition_evaluators import TaskConditionEvaluator
from workflow_engine.services.workflow_service import get_workflow

logger = logging.getLogger(__name__)


def _statuses(workflow_id: str) -> list[WorkflowStatus]:
    return db.session.execute(
        select(WorkflowStatus)
        .where(WorkflowStatus.workflow_id == workflow_id)
        .order_by(WorkflowStatus.position)
    ).scalars().all()


def _outgoing(workflow_id: str, from_status_id: str) -> list[WorkflowTransition]:
    return db.session.execute(
        select(WorkflowTransition).where(
            WorkflowTransition.workflow_id == workflow_id,
            WorkflowTransition.from_status_id == from_status_id,
        )
    ).scalars().all()


def validate_transition(
    workflow_id: str,
    from_status_id: str,
    to_status_id: str,
    actor: Actor,
) -> TransitionDecision:
    """Fetch the (from, to) edge and run the validator's gates on it.

    Raises:
        NotFoundError: unknown workflow id.  A missing edge is a denial, not an error.
    """
    get_workflow(workflow_id)
    edge = db.session.execute(
        select(WorkflowTransition).where(
            WorkflowTransition.workflow_id == workflow_id,
            WorkflowTransition.from_status_id == from_status_id,
            WorkflowTransition.to_status_id == to_status_id,
        )
    ).scalar_one_or_none()
    decision = _validate_transition([edge] if edge else [], from_status_id, to_status_id, actor)
    if not decision.allowed:
        logger.info(
            "Transition denied reason=%s", decision.reason.value,
            extra={"workflow_id": workflow_id, "user_id": actor.user_id},
        )
    return decision


def allowed_transitions(workflow_id: str, from_status_id: str, actor: Actor) -> list[AllowedTransition]:
    get_workflow(workflow_id)
    statuses = {s.id: s for s in _statuses(workflow_id)}
    return _allowed_transitions(_outgoing(workflow_id, from_status_id), statuses, from_status_id, actor)


def analyze_workflow_health(workflow_id: str) -> HealthReport:
    get_workflow(workflow_id)
    transitions = db.session.execute(
        select(WorkflowTransition).where(WorkflowTransition.workflow_id == workflow_id)
    ).scalars().all()
    return analyze_health(_statuses(workflow_id), transitions)


def find_auto_transition(
    workflow_id: str,
    from_status_id: str,
    item,
    evaluator: ConditionEvaluator | None = None,
) -> WorkflowTransition | None:
    """First automated edge out of *from_status_id* whose condition holds for *item*.

    Without an *evaluator*, a ``TaskConditionEvaluator`` treating the
    workflow's CLOSED-category statuses as done is used.
    """
    get_workflow(workflow_id)
    if evaluator is None:
        closed = [s.key for s in _statuses(workflow_id) if s.category == "CLOSED"]
        evaluator = TaskConditionEvaluator(closed_status_keys=closed)
    return _find_auto_transition(_outgoing(workflow_id, from_status_id), from_status_id, item, evaluator)


def auto_advance_task(task_id: str, evaluator: ConditionEvaluator | None = None) -> Task:
    """Move a task along the first automated transition that fires, if any.

    The task's project must be connected to a workflow that has a status
    with the task's current key; otherwise the task is returned unchanged.
    """
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError(resource="Task", resource_id=task_id)
    project = db.session.get(Project, task.project_id)
    if project is None or not project.workflow_id:
        return task

    current = db.session.execute(
        select(WorkflowStatus).where(
            WorkflowStatus.workflow_id == project.workflow_id,
            WorkflowStatus.key == task.status,
        )
    ).scalar_one_or_none()
    if current is None:
        return task

    edge = find_auto_transition(project.workflow_id, current.id, task, evaluator)
    if edge is None:
        return task

    target = db.session.get(WorkflowStatus, edge.to_status_id)
    old_status = task.status
    task.status = target.key
    db.session.commit()
    logger.info(
        "Task auto-advanced id=%s %s -> %s", task.id, old_status, target.key,
        extra={"workflow_id": project.workflow_id, "project_id": project.id},
    )
    return task
