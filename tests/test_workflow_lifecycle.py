"""
Workflow Lifecycle tests — workflows, statuses, transitions.

Covers:
    - Creation: blank, each starter template, clone with id remapping
    - System workflow immutability on every mutation path
    - Manage permission: workspace OWNER/ADMIN or space admin
    - Status key uniqueness, position auto-assignment, field validation
    - Status deletion cascades to every touching transition
    - Transition endpoint checks, duplicate edges, bulk creation
    - Workflow deletion order and project pointer cleanup
    - Audit rows, version bumps and stale-version rejection
"""

import pytest
from sqlalchemy import select

from workflow_engine.core.exceptions import (
    ConcurrentModificationError,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    SystemWorkflowError,
    ValidationError,
)
from workflow_engine.models import db
from workflow_engine.models.audit import AuditLog
from workflow_engine.models.project import Project
from workflow_engine.models.workflow import Workflow, WorkflowStatus, WorkflowTransition
from workflow_engine.services import workflow_service as svc

from tests.conftest import SPACE_ID, WORKSPACE_ID


def _blank(actor, **extra):
    return svc.create_workflow(actor, {"workspace_id": WORKSPACE_ID, "name": "Flow", **extra})


def _keys(workflow_id):
    return [s.key for s in svc.list_statuses(workflow_id)]


def _edges_by_key(workflow_id):
    by_id = {s.id: s.key for s in svc.list_statuses(workflow_id)}
    return {(by_id[t.from_status_id], by_id[t.to_status_id]) for t in svc.list_transitions(workflow_id)}


# ═════════════════════════════════════════════════════════════════════════════
# Creation
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateWorkflow:
    def test_blank_workflow_has_no_statuses(self, owner):
        wf = _blank(owner)
        assert wf.key == "FLOW"
        assert wf.version == 1
        assert _keys(wf.id) == []

    def test_software_template(self, owner):
        wf = _blank(owner, template="software")
        assert _keys(wf.id) == ["TODO", "IN_PROGRESS", "IN_REVIEW", "DONE"]
        assert _edges_by_key(wf.id) == {
            ("TODO", "IN_PROGRESS"),
            ("IN_PROGRESS", "IN_REVIEW"),
            ("IN_PROGRESS", "TODO"),
            ("IN_REVIEW", "DONE"),
            ("IN_REVIEW", "IN_PROGRESS"),
            ("DONE", "TODO"),
        }
        statuses = svc.list_statuses(wf.id)
        assert [(s.position_x, s.position_y) for s in statuses] == [
            (100, 100), (350, 100), (600, 100), (850, 100),
        ]
        assert statuses[0].is_initial and statuses[-1].is_final

    def test_kanban_template_connects_every_pair(self, owner):
        wf = _blank(owner, template="kanban")
        assert _keys(wf.id) == ["BACKLOG", "TODO", "IN_PROGRESS", "DONE"]
        assert len(svc.list_transitions(wf.id)) == 12

    def test_bug_tracking_template(self, owner):
        wf = _blank(owner, template="bug_tracking")
        assert len(_keys(wf.id)) == 7
        edges = _edges_by_key(wf.id)
        assert len(edges) == 10
        assert ("OPEN", "WONT_FIX") in edges
        assert ("VERIFIED", "CLOSED") in edges

    def test_unknown_template(self, owner):
        with pytest.raises(ValidationError):
            _blank(owner, template="waterfall")

    def test_name_required(self, owner):
        with pytest.raises(ValidationError):
            svc.create_workflow(owner, {"workspace_id": WORKSPACE_ID, "name": "  "})

    def test_clone_remaps_ids(self, owner):
        source = _blank(owner, template="software")
        edge = svc.list_transitions(source.id)[0]
        svc.update_transition(source.id, edge.id, owner, {"allowed_member_roles": ["ADMIN"]})

        clone = svc.create_workflow(owner, {
            "workspace_id": WORKSPACE_ID, "name": "Copy", "copy_from_workflow_id": source.id,
        })

        assert _keys(clone.id) == _keys(source.id)
        assert _edges_by_key(clone.id) == _edges_by_key(source.id)
        clone_status_ids = {s.id for s in svc.list_statuses(clone.id)}
        for t in svc.list_transitions(clone.id):
            assert t.from_status_id in clone_status_ids
            assert t.to_status_id in clone_status_ids
        assert any(t.allowed_member_roles == ["ADMIN"] for t in svc.list_transitions(clone.id))

    def test_clone_from_other_workspace_rejected(self, owner):
        foreign = Workflow(workspace_id="ws-other", name="Foreign", key="FOREIGN")
        db.session.add(foreign)
        db.session.commit()
        with pytest.raises(ValidationError):
            svc.create_workflow(owner, {
                "workspace_id": WORKSPACE_ID, "name": "Copy", "copy_from_workflow_id": foreign.id,
            })

    def test_member_cannot_create_workspace_workflow(self, member):
        with pytest.raises(PermissionDenied):
            _blank(member)

    def test_space_admin_can_create_in_their_space(self, member):
        wf = _blank(member, space_id=SPACE_ID)
        assert wf.space_id == SPACE_ID

    def test_creation_is_audited(self, owner):
        wf = _blank(owner, template="kanban")
        log = db.session.execute(
            select(AuditLog).where(AuditLog.entity_id == wf.id)
        ).scalar_one()
        assert log.action == "workflow.create"
        assert log.actor == owner.user_id
        assert log.diff["template"] == "kanban"


class TestListWorkflows:
    def test_status_counts_and_filters(self, owner):
        _blank(owner, template="software")
        _blank(owner, name="Spaced", space_id=SPACE_ID)
        archived = _blank(owner, name="Old")
        svc.update_workflow(archived.id, owner, {"is_archived": True})

        items = svc.list_workflows(WORKSPACE_ID)
        assert {i["name"]: i["status_count"] for i in items} == {"Flow": 4, "Spaced": 0}
        assert [i["name"] for i in svc.list_workflows(WORKSPACE_ID, space_id=SPACE_ID)] == ["Spaced"]
        assert len(svc.list_workflows(WORKSPACE_ID, include_archived=True)) == 3


# ═════════════════════════════════════════════════════════════════════════════
# System workflows & permissions
# ═════════════════════════════════════════════════════════════════════════════


class TestSystemWorkflowGuard:
    @pytest.fixture()
    def system_wf(self):
        return svc.seed_system_workflows(WORKSPACE_ID)[0]

    def test_seed_is_idempotent(self, system_wf):
        assert svc.seed_system_workflows(WORKSPACE_ID) == []
        assert len(svc.list_workflows(WORKSPACE_ID)) == 3

    def test_every_mutation_is_rejected(self, owner, system_wf):
        status = svc.list_statuses(system_wf.id)[0]
        transition = svc.list_transitions(system_wf.id)[0]
        attempts = [
            lambda: svc.update_workflow(system_wf.id, owner, {"name": "Hacked"}),
            lambda: svc.delete_workflow(system_wf.id, owner),
            lambda: svc.create_status(system_wf.id, owner, {"name": "Extra"}),
            lambda: svc.bulk_create_statuses(system_wf.id, owner, [{"name": "Extra"}]),
            lambda: svc.update_status(system_wf.id, status.id, owner, {"name": "X"}),
            lambda: svc.delete_status(system_wf.id, status.id, owner),
            lambda: svc.create_transition(system_wf.id, owner, {
                "from_status_id": status.id, "to_status_id": status.id,
            }),
            lambda: svc.bulk_create_transitions(system_wf.id, owner, allow_all=True),
            lambda: svc.update_transition(system_wf.id, transition.id, owner, {"name": "X"}),
            lambda: svc.delete_transition(system_wf.id, transition.id, owner),
        ]
        for attempt in attempts:
            with pytest.raises(SystemWorkflowError):
                attempt()

        assert db.session.get(Workflow, system_wf.id).name == "Software Development"
        assert len(svc.list_statuses(system_wf.id)) == 4
        assert len(svc.list_transitions(system_wf.id)) == 6

    def test_system_workflow_can_be_cloned(self, owner, system_wf):
        clone = svc.create_workflow(owner, {
            "workspace_id": WORKSPACE_ID, "name": "Mine", "copy_from_workflow_id": system_wf.id,
        })
        assert clone.is_system is False
        svc.create_status(clone.id, owner, {"name": "Blocked"})


class TestManagePermission:
    def test_member_rejected_outside_their_space(self, owner, member):
        wf = _blank(owner)
        with pytest.raises(PermissionDenied):
            svc.create_status(wf.id, member, {"name": "Nope"})

    def test_space_admin_allowed_in_their_space(self, owner, member):
        wf = _blank(owner, space_id=SPACE_ID)
        status = svc.create_status(wf.id, member, {"name": "Yes"})
        assert status.key == "YES"

    def test_unknown_workflow(self, owner):
        with pytest.raises(NotFoundError):
            svc.update_workflow("missing", owner, {"name": "x"})


# ═════════════════════════════════════════════════════════════════════════════
# Statuses
# ═════════════════════════════════════════════════════════════════════════════


class TestStatuses:
    def test_positions_auto_increment_from_zero(self, owner):
        wf = _blank(owner)
        a = svc.create_status(wf.id, owner, {"name": "A"})
        b = svc.create_status(wf.id, owner, {"name": "B"})
        c = svc.create_status(wf.id, owner, {"name": "C", "position": 10})
        d = svc.create_status(wf.id, owner, {"name": "D"})
        assert [a.position, b.position, c.position, d.position] == [0, 1, 10, 11]

    def test_key_derived_from_name(self, owner):
        wf = _blank(owner)
        status = svc.create_status(wf.id, owner, {"name": "Waiting for QA"})
        assert status.key == "WAITING_FOR_QA"
        assert status.icon == "Circle"
        assert status.category == "OPEN"
        assert not status.is_on_canvas

    def test_duplicate_key_rejected(self, owner):
        wf = _blank(owner)
        svc.create_status(wf.id, owner, {"name": "To Do", "key": "TODO"})
        with pytest.raises(ConflictError):
            svc.create_status(wf.id, owner, {"name": "Todo again", "key": "TODO"})
        assert _keys(wf.id) == ["TODO"]

    def test_same_key_in_other_workflow_is_fine(self, owner):
        a, b = _blank(owner), _blank(owner, name="Other")
        svc.create_status(a.id, owner, {"name": "To Do", "key": "TODO"})
        svc.create_status(b.id, owner, {"name": "To Do", "key": "TODO"})

    @pytest.mark.parametrize("data", [
        {"name": "X", "category": "WAITING"},
        {"name": "X", "color": "red"},
        {"name": ""},
    ])
    def test_invalid_fields(self, owner, data):
        wf = _blank(owner)
        with pytest.raises(ValidationError):
            svc.create_status(wf.id, owner, data)

    def test_rename_key_to_existing_rejected(self, owner):
        wf = _blank(owner, template="software")
        todo = svc.list_statuses(wf.id)[0]
        with pytest.raises(ConflictError):
            svc.update_status(wf.id, todo.id, owner, {"key": "DONE"})

    @pytest.mark.parametrize("data", [
        {"key": "K" * 31},
        {"key": ""},
        {"key": None},
        {"position": None},
        {"position": -1},
        {"position": "3"},
        {"position_x": "left"},
        {"color": None},
        {"is_final": None},
    ])
    def test_update_rejects_what_creation_would(self, owner, data):
        wf = _blank(owner, template="software")
        todo = svc.list_statuses(wf.id)[0]
        version = db.session.get(Workflow, wf.id).version
        with pytest.raises(ValidationError):
            svc.update_status(wf.id, todo.id, owner, data)
        reloaded = db.session.get(WorkflowStatus, todo.id)
        assert (reloaded.key, reloaded.position, reloaded.color) == ("TODO", 0, "#6B7280")
        assert db.session.get(Workflow, wf.id).version == version

    def test_update_accepts_key_at_limit(self, owner):
        wf = _blank(owner, template="software")
        todo = svc.list_statuses(wf.id)[0]
        assert svc.update_status(wf.id, todo.id, owner, {"key": "K" * 30}).key == "K" * 30

    def test_update_moves_status_off_canvas(self, owner):
        wf = _blank(owner, template="software")
        todo = svc.list_statuses(wf.id)[0]
        updated = svc.update_status(wf.id, todo.id, owner, {"position_x": 0, "position_y": 0})
        assert updated.is_on_canvas is False

    def test_status_of_other_workflow_not_found(self, owner):
        a, b = _blank(owner, template="software"), _blank(owner, name="Other")
        foreign = svc.list_statuses(a.id)[0]
        with pytest.raises(NotFoundError):
            svc.update_status(b.id, foreign.id, owner, {"name": "x"})

    def test_bulk_create_is_all_or_nothing(self, owner):
        wf = _blank(owner)
        with pytest.raises(ConflictError):
            svc.bulk_create_statuses(wf.id, owner, [
                {"name": "A"}, {"name": "B"}, {"name": "A again", "key": "A"},
            ])
        assert _keys(wf.id) == []

        created = svc.bulk_create_statuses(wf.id, owner, [{"name": "A"}, {"name": "B"}])
        assert [s.position for s in created] == [0, 1]


class TestDeleteStatus:
    def test_removes_every_touching_transition(self, owner):
        wf = _blank(owner, template="software")
        in_progress = next(s for s in svc.list_statuses(wf.id) if s.key == "IN_PROGRESS")

        removed = svc.delete_status(wf.id, in_progress.id, owner)

        assert removed == 4
        remaining = svc.list_transitions(wf.id)
        status_ids = {s.id for s in svc.list_statuses(wf.id)}
        assert all(t.from_status_id in status_ids and t.to_status_id in status_ids for t in remaining)
        assert _edges_by_key(wf.id) == {("IN_REVIEW", "DONE"), ("DONE", "TODO")}

    def test_unknown_status(self, owner):
        wf = _blank(owner)
        with pytest.raises(NotFoundError):
            svc.delete_status(wf.id, "missing", owner)


# ═════════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════════


class TestTransitions:
    def _two_statuses(self, owner):
        wf = _blank(owner)
        a = svc.create_status(wf.id, owner, {"name": "A"})
        b = svc.create_status(wf.id, owner, {"name": "B"})
        return wf, a, b

    def test_create_with_rules(self, owner):
        wf, a, b = self._two_statuses(owner)
        t = svc.create_transition(wf.id, owner, {
            "from_status_id": a.id,
            "to_status_id": b.id,
            "name": "Go",
            "allowed_member_roles": ["ADMIN"],
            "requires_approval": True,
            "approver_team_ids": ["team-a"],
            "auto_transition": True,
            "condition_type": "ALL_SUBTASKS_DONE",
        })
        d = t.to_dict()
        assert d["allowed_team_ids"] == []
        assert d["allowed_member_roles"] == ["ADMIN"]
        assert d["requires_approval"] is True
        assert d["condition_type"] == "ALL_SUBTASKS_DONE"

    def test_duplicate_edge_rejected(self, owner):
        wf, a, b = self._two_statuses(owner)
        svc.create_transition(wf.id, owner, {"from_status_id": a.id, "to_status_id": b.id})
        with pytest.raises(ConflictError):
            svc.create_transition(wf.id, owner, {"from_status_id": a.id, "to_status_id": b.id})
        svc.create_transition(wf.id, owner, {"from_status_id": b.id, "to_status_id": a.id})
        assert len(svc.list_transitions(wf.id)) == 2

    def test_endpoints_must_belong_to_workflow(self, owner):
        wf, a, _ = self._two_statuses(owner)
        other = _blank(owner, name="Other")
        foreign = svc.create_status(other.id, owner, {"name": "F"})
        with pytest.raises(NotFoundError):
            svc.create_transition(wf.id, owner, {"from_status_id": a.id, "to_status_id": foreign.id})

    @pytest.mark.parametrize("extra", [
        {"condition_type": "WHEN_I_SAY_SO"},
        {"allowed_team_ids": "team-a"},
    ])
    def test_invalid_rules(self, owner, extra):
        wf, a, b = self._two_statuses(owner)
        with pytest.raises(ValidationError):
            svc.create_transition(wf.id, owner, {"from_status_id": a.id, "to_status_id": b.id, **extra})

    def test_self_loop_rejected(self, owner):
        wf, a, _ = self._two_statuses(owner)
        with pytest.raises(ValidationError):
            svc.create_transition(wf.id, owner, {"from_status_id": a.id, "to_status_id": a.id})

    def test_bulk_by_key_skips_existing(self, owner):
        wf, a, b = self._two_statuses(owner)
        svc.create_transition(wf.id, owner, {"from_status_id": a.id, "to_status_id": b.id})
        created = svc.bulk_create_transitions(wf.id, owner, items=[
            {"from": "A", "to": "B"}, {"from": "B", "to": "A", "name": "Back"},
        ])
        assert [(t.from_status_id, t.to_status_id, t.name) for t in created] == [(b.id, a.id, "Back")]

    def test_bulk_unknown_key(self, owner):
        wf, _, _ = self._two_statuses(owner)
        with pytest.raises(NotFoundError):
            svc.bulk_create_transitions(wf.id, owner, items=[{"from": "A", "to": "Z"}])
        assert svc.list_transitions(wf.id) == []

    def test_bulk_allow_all(self, owner):
        wf, _, _ = self._two_statuses(owner)
        svc.create_status(wf.id, owner, {"name": "C"})
        created = svc.bulk_create_transitions(wf.id, owner, allow_all=True)
        assert len(created) == 6

    def test_delete_transition(self, owner):
        wf, a, b = self._two_statuses(owner)
        t = svc.create_transition(wf.id, owner, {"from_status_id": a.id, "to_status_id": b.id})
        svc.delete_transition(wf.id, t.id, owner)
        assert svc.list_transitions(wf.id) == []


# ═════════════════════════════════════════════════════════════════════════════
# Workflow update / delete
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateDeleteWorkflow:
    def test_every_mutation_bumps_version(self, owner):
        wf = _blank(owner)
        assert wf.version == 1
        svc.create_status(wf.id, owner, {"name": "A"})
        assert db.session.get(Workflow, wf.id).version == 2
        svc.update_workflow(wf.id, owner, {"description": "Updated"})
        assert db.session.get(Workflow, wf.id).version == 3

    def test_stale_version_rejects_the_second_writer(self, owner, competing_writer):
        wf = _blank(owner)
        competing_writer(svc)

        with pytest.raises(ConcurrentModificationError) as exc:
            svc.update_workflow(wf.id, owner, {"name": "Mine"})

        assert exc.value.value == wf.id
        reloaded = db.session.get(Workflow, wf.id)
        assert (reloaded.name, reloaded.version) == ("Flow", 1)
        assert db.session.execute(
            select(AuditLog).where(AuditLog.action == "workflow.update")
        ).first() is None

    def test_stale_version_writes_no_status(self, owner, competing_writer):
        wf = _blank(owner)
        competing_writer(svc)

        with pytest.raises(ConcurrentModificationError):
            svc.create_status(wf.id, owner, {"name": "A"})

        assert _keys(wf.id) == []

    def test_update_records_diff(self, owner):
        wf = _blank(owner)
        svc.update_workflow(wf.id, owner, {"name": "Renamed", "key": "IGNORED"})
        assert db.session.get(Workflow, wf.id).key == "FLOW"
        log = db.session.execute(
            select(AuditLog).where(AuditLog.action == "workflow.update")
        ).scalar_one()
        assert log.diff == {"name": {"old": "Flow", "new": "Renamed"}}

    def test_delete_cascades_and_detaches_projects(self, owner, project):
        wf = _blank(owner, template="software")
        project.workflow_id = wf.id
        db.session.commit()

        svc.delete_workflow(wf.id, owner)

        assert db.session.get(Workflow, wf.id) is None
        assert db.session.execute(
            select(WorkflowStatus).where(WorkflowStatus.workflow_id == wf.id)
        ).first() is None
        assert db.session.execute(
            select(WorkflowTransition).where(WorkflowTransition.workflow_id == wf.id)
        ).first() is None
        assert db.session.get(Project, project.id).workflow_id is None
