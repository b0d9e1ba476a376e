"""
Automated transition tests.

Covers:
    - find_auto_transition over plain edge objects
    - TaskConditionEvaluator for each condition tag
    - auto_advance_task moving a persisted task along its project's workflow
"""

from types import SimpleNamespace

import pytest

from workflow_engine.core.exceptions import NotFoundError
from workflow_engine.engine.conditions import ConditionType, find_auto_transition, parse_condition
from workflow_engine.models import db
from workflow_engine.models.project import Task
from workflow_engine.services import transition_service
from workflow_engine.services import workflow_service as svc
from workflow_engine.services.condition_evaluators import TaskConditionEvaluator

from tests.conftest import WORKSPACE_ID


def _edge(from_id, to_id, auto=True, condition="ALL_SUBTASKS_DONE"):
    return SimpleNamespace(
        id=f"{from_id}->{to_id}", from_status_id=from_id, to_status_id=to_id,
        auto_transition=auto, condition_type=condition,
    )


class _Always:
    def __init__(self, result=True):
        self.result = result
        self.calls = []

    def evaluate(self, condition, item, transition):
        self.calls.append((condition, transition.id))
        return self.result


# ═════════════════════════════════════════════════════════════════════════════
# Pure selection
# ═════════════════════════════════════════════════════════════════════════════


class TestFindAutoTransition:
    def test_first_firing_edge_wins(self):
        edges = [_edge("A", "B"), _edge("A", "C")]
        assert find_auto_transition(edges, "A", object(), _Always()).to_status_id == "B"

    def test_manual_and_untagged_edges_never_fire(self):
        evaluator = _Always()
        edges = [_edge("A", "B", auto=False), _edge("A", "C", condition=None), _edge("A", "D", condition="BOGUS")]
        assert find_auto_transition(edges, "A", object(), evaluator) is None
        assert evaluator.calls == []

    def test_other_source_ignored(self):
        assert find_auto_transition([_edge("X", "B")], "A", object(), _Always()) is None

    def test_condition_not_met(self):
        evaluator = _Always(result=False)
        assert find_auto_transition([_edge("A", "B")], "A", object(), evaluator) is None
        assert evaluator.calls == [(ConditionType.ALL_SUBTASKS_DONE, "A->B")]

    def test_parse_condition(self):
        assert parse_condition("CUSTOM") is ConditionType.CUSTOM
        assert parse_condition("") is None
        assert parse_condition("NOPE") is None


class TestTaskConditionEvaluator:
    def _task(self, subtask_statuses=(), approved=False):
        return SimpleNamespace(
            subtasks=[SimpleNamespace(status=s) for s in subtask_statuses],
            approved=approved,
        )

    def test_all_subtasks_done(self):
        ev = TaskConditionEvaluator(closed_status_keys=["DONE", "CLOSED"])
        edge = _edge("A", "B")
        assert ev.evaluate(ConditionType.ALL_SUBTASKS_DONE, self._task(["DONE", "CLOSED"]), edge)
        assert not ev.evaluate(ConditionType.ALL_SUBTASKS_DONE, self._task(["DONE", "TODO"]), edge)

    def test_no_subtasks_does_not_fire(self):
        ev = TaskConditionEvaluator()
        assert not ev.evaluate(ConditionType.ALL_SUBTASKS_DONE, self._task(), _edge("A", "B"))

    def test_approval_received(self):
        ev = TaskConditionEvaluator()
        edge = _edge("A", "B", condition="APPROVAL_RECEIVED")
        assert ev.evaluate(ConditionType.APPROVAL_RECEIVED, self._task(approved=True), edge)
        assert not ev.evaluate(ConditionType.APPROVAL_RECEIVED, self._task(), edge)

    def test_custom_delegates(self):
        edge = _edge("A", "B", condition="CUSTOM")
        assert not TaskConditionEvaluator().evaluate(ConditionType.CUSTOM, self._task(), edge)
        ev = TaskConditionEvaluator(custom=lambda item, t: t.to_status_id == "B")
        assert ev.evaluate(ConditionType.CUSTOM, self._task(), edge)


# ═════════════════════════════════════════════════════════════════════════════
# Persisted tasks
# ═════════════════════════════════════════════════════════════════════════════


class TestAutoAdvanceTask:
    @pytest.fixture()
    def wired(self, owner, project):
        """Software workflow with IN_REVIEW -> DONE automated on subtasks, connected to the project."""
        wf = svc.create_workflow(owner, {
            "workspace_id": WORKSPACE_ID, "name": "Auto", "template": "software",
        })
        by_key = {s.key: s for s in svc.list_statuses(wf.id)}
        edge = next(
            t for t in svc.list_transitions(wf.id)
            if t.from_status_id == by_key["IN_REVIEW"].id and t.to_status_id == by_key["DONE"].id
        )
        svc.update_transition(wf.id, edge.id, owner, {
            "auto_transition": True, "condition_type": "ALL_SUBTASKS_DONE",
        })
        project.workflow_id = wf.id
        db.session.commit()
        return wf, by_key

    def _task_with_subtasks(self, project, *statuses):
        parent = Task(project_id=project.id, title="Parent", status="IN_REVIEW")
        db.session.add(parent)
        for i, status in enumerate(statuses):
            db.session.add(Task(project_id=project.id, title=f"Sub {i}", status=status, parent=parent))
        db.session.commit()
        return parent

    def test_advances_when_subtasks_closed(self, wired, project):
        task = self._task_with_subtasks(project, "DONE", "DONE")
        advanced = transition_service.auto_advance_task(task.id)
        assert advanced.status == "DONE"
        assert db.session.get(Task, task.id).status == "DONE"

    def test_stays_when_a_subtask_is_open(self, wired, project):
        task = self._task_with_subtasks(project, "DONE", "IN_PROGRESS")
        assert transition_service.auto_advance_task(task.id).status == "IN_REVIEW"

    def test_unconnected_project_is_a_no_op(self, owner, project):
        task = self._task_with_subtasks(project, "DONE")
        assert transition_service.auto_advance_task(task.id).status == "IN_REVIEW"

    def test_unknown_task(self):
        with pytest.raises(NotFoundError):
            transition_service.auto_advance_task("missing")

    def test_find_with_custom_evaluator(self, wired, project):
        wf, by_key = wired
        task = self._task_with_subtasks(project)
        edge = transition_service.find_auto_transition(
            wf.id, by_key["IN_REVIEW"].id, task, evaluator=_Always(),
        )
        assert edge.to_status_id == by_key["DONE"].id
        assert transition_service.find_auto_transition(wf.id, by_key["IN_REVIEW"].id, task) is None
