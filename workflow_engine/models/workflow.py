"""
Workflow graph models — Workflow, WorkflowStatus, WorkflowTransition.

A workflow is a directed graph: statuses are nodes, transitions are edges.

Structural invariants held at the schema level (and checked again in
workflow_service before any write so callers get a typed error):
  - status key is unique within a workflow
  - at most one transition per (workflow_id, from_status_id, to_status_id)
  - transitions cascade with either endpoint status and with the workflow
"""

import uuid
from datetime import UTC, datetime

from workflow_engine.engine.project_statuses import DEFAULT_COLOR, DEFAULT_ICON
from workflow_engine.models import db


__all__ = [
    "Workflow",
    "WorkflowStatus",
    "WorkflowTransition",
    "STATUS_CATEGORIES",
    "CONDITION_TYPES",
    "WORKFLOW_TEMPLATES",
]


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(UTC)


# ── Constants ────────────────────────────────────────────────────────────────

STATUS_CATEGORIES = ("OPEN", "IN_PROGRESS", "CLOSED")

CONDITION_TYPES = ("ALL_SUBTASKS_DONE", "APPROVAL_RECEIVED", "CUSTOM")


# ═════════════════════════════════════════════════════════════════════════════
# 1. Workflow
# ═════════════════════════════════════════════════════════════════════════════

class Workflow(db.Model):
    """
    A configurable status graph scoped to a workspace (optionally a space
    or a single project).

    ``is_system`` workflows are built-in and immutable.  ``version`` is the
    optimistic-concurrency counter: every lifecycle mutation and every sync
    touches the workflow row, so two writers racing on the same graph
    cannot both commit.
    """

    __tablename__ = "workflows"
    __table_args__ = (
        db.Index("idx_wf_workspace_space", "workspace_id", "space_id"),
        db.Index("idx_wf_workspace_project", "workspace_id", "project_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workspace_id = db.Column(db.String(36), nullable=False, index=True)
    space_id = db.Column(
        db.String(36), nullable=True,
        comment="NULL for workspace-level workflows",
    )
    project_id = db.Column(
        db.String(36), nullable=True,
        comment="Set for project-specific workflows",
    )

    name = db.Column(db.String(100), nullable=False)
    key = db.Column(db.String(50), nullable=False)
    description = db.Column(db.Text, nullable=True)

    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_system = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="System workflows cannot be modified or deleted",
    )
    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    __mapper_args__ = {"version_id_col": version}

    statuses = db.relationship(
        "WorkflowStatus",
        backref="workflow",
        lazy="dynamic",
        order_by="WorkflowStatus.position",
        passive_deletes=True,
    )
    transitions = db.relationship(
        "WorkflowTransition",
        backref="workflow",
        lazy="dynamic",
        passive_deletes=True,
    )

    def to_dict(self, include_graph: bool = False) -> dict:
        d = {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "space_id": self.space_id,
            "project_id": self.project_id,
            "name": self.name,
            "key": self.key,
            "description": self.description,
            "is_default": self.is_default,
            "is_system": self.is_system,
            "is_archived": self.is_archived,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_graph:
            statuses = self.statuses.all()
            d["statuses"] = [s.to_dict() for s in statuses]
            d["transitions"] = [t.to_dict() for t in self.transitions.all()]
            d["status_count"] = len(statuses)
        return d

    def __repr__(self):
        return f"<Workflow {self.key}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. WorkflowStatus (graph node)
# ═════════════════════════════════════════════════════════════════════════════

class WorkflowStatus(db.Model):
    """
    A named state in a workflow's graph.

    ``position_x`` / ``position_y`` are canvas coordinates.  Both zero (or
    NULL) means the status is off-canvas, which reconciliation reads as
    "hidden on the project board".
    """

    __tablename__ = "workflow_statuses"
    __table_args__ = (
        db.UniqueConstraint("workflow_id", "key", name="uq_wfs_workflow_key"),
        db.Index("idx_wfs_workflow_position", "workflow_id", "position"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workflow_id = db.Column(
        db.String(36), db.ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(50), nullable=False)
    key = db.Column(
        db.String(30), nullable=False,
        comment="Unique within workflow, e.g. TODO, IN_PROGRESS",
    )
    category = db.Column(
        db.String(20), nullable=False, default="OPEN",
        comment="OPEN | IN_PROGRESS | CLOSED",
    )
    color = db.Column(db.String(7), nullable=False, default=DEFAULT_COLOR)
    icon = db.Column(db.String(50), nullable=False, default=DEFAULT_ICON)
    description = db.Column(db.String(200), nullable=True)

    position = db.Column(db.Integer, nullable=False, default=0)
    position_x = db.Column(db.Float, nullable=True, default=0)
    position_y = db.Column(db.Float, nullable=True, default=0)

    is_initial = db.Column(db.Boolean, nullable=False, default=False)
    is_final = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def is_on_canvas(self) -> bool:
        return bool(self.position_x) or bool(self.position_y)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "name": self.name,
            "key": self.key,
            "category": self.category,
            "color": self.color,
            "icon": self.icon,
            "description": self.description,
            "position": self.position,
            "position_x": self.position_x or 0,
            "position_y": self.position_y or 0,
            "is_initial": self.is_initial,
            "is_final": self.is_final,
            "is_on_canvas": self.is_on_canvas,
        }

    def __repr__(self):
        return f"<WorkflowStatus {self.key} @{self.position}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. WorkflowTransition (graph edge)
# ═════════════════════════════════════════════════════════════════════════════

class WorkflowTransition(db.Model):
    """
    A permitted move between two statuses.

    Access rules: ``allowed_member_roles`` / ``allowed_team_ids`` (empty or
    NULL = unrestricted).  Approval rules: ``requires_approval`` +
    ``approver_team_ids``.  Automation: ``auto_transition`` + a declarative
    ``condition_type`` tag evaluated by the caller.
    """

    __tablename__ = "workflow_transitions"
    __table_args__ = (
        db.UniqueConstraint(
            "workflow_id", "from_status_id", "to_status_id",
            name="uq_wft_workflow_edge",
        ),
        db.Index("idx_wft_workflow_from", "workflow_id", "from_status_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workflow_id = db.Column(
        db.String(36), db.ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    from_status_id = db.Column(
        db.String(36), db.ForeignKey("workflow_statuses.id", ondelete="CASCADE"),
        nullable=False,
    )
    to_status_id = db.Column(
        db.String(36), db.ForeignKey("workflow_statuses.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(50), nullable=True, comment="e.g. 'Start Progress'")
    description = db.Column(db.String(200), nullable=True)

    allowed_team_ids = db.Column(db.JSON, nullable=True)
    allowed_member_roles = db.Column(db.JSON, nullable=True)

    requires_approval = db.Column(db.Boolean, nullable=False, default=False)
    approver_team_ids = db.Column(db.JSON, nullable=True)

    auto_transition = db.Column(db.Boolean, nullable=False, default=False)
    condition_type = db.Column(
        db.String(30), nullable=True,
        comment="ALL_SUBTASKS_DONE | APPROVAL_RECEIVED | CUSTOM",
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "from_status_id": self.from_status_id,
            "to_status_id": self.to_status_id,
            "name": self.name,
            "description": self.description,
            "allowed_team_ids": self.allowed_team_ids or [],
            "allowed_member_roles": self.allowed_member_roles or [],
            "requires_approval": bool(self.requires_approval),
            "approver_team_ids": self.approver_team_ids or [],
            "auto_transition": bool(self.auto_transition),
            "condition_type": self.condition_type,
        }

    def __repr__(self):
        return f"<WorkflowTransition {self.from_status_id} -> {self.to_status_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# Starter templates
# ═════════════════════════════════════════════════════════════════════════════

# transitions == "ALL" connects every ordered pair of distinct statuses.
WORKFLOW_TEMPLATES = {
    "software": {
        "name": "Software Development",
        "statuses": [
            {"name": "To Do", "key": "TODO", "category": "OPEN", "color": "#6B7280", "icon": "Circle", "is_initial": True},
            {"name": "In Progress", "key": "IN_PROGRESS", "category": "IN_PROGRESS", "color": "#3B82F6", "icon": "Clock"},
            {"name": "In Review", "key": "IN_REVIEW", "category": "IN_PROGRESS", "color": "#8B5CF6", "icon": "Eye"},
            {"name": "Done", "key": "DONE", "category": "CLOSED", "color": "#10B981", "icon": "CheckCircle", "is_final": True},
        ],
        "transitions": [
            {"from": "TODO", "to": "IN_PROGRESS", "name": "Start Progress"},
            {"from": "IN_PROGRESS", "to": "IN_REVIEW", "name": "Submit for Review"},
            {"from": "IN_PROGRESS", "to": "TODO"},
            {"from": "IN_REVIEW", "to": "DONE", "name": "Approve"},
            {"from": "IN_REVIEW", "to": "IN_PROGRESS"},
            {"from": "DONE", "to": "TODO", "name": "Reopen"},
        ],
    },
    "kanban": {
        "name": "Simple Kanban",
        "statuses": [
            {"name": "Backlog", "key": "BACKLOG", "category": "OPEN", "color": "#6B7280", "icon": "Inbox", "is_initial": True},
            {"name": "To Do", "key": "TODO", "category": "OPEN", "color": "#F59E0B", "icon": "Circle"},
            {"name": "In Progress", "key": "IN_PROGRESS", "category": "IN_PROGRESS", "color": "#3B82F6", "icon": "Clock"},
            {"name": "Done", "key": "DONE", "category": "CLOSED", "color": "#10B981", "icon": "CheckCircle", "is_final": True},
        ],
        "transitions": "ALL",
    },
    "bug_tracking": {
        "name": "Bug Tracking",
        "statuses": [
            {"name": "Open", "key": "OPEN", "category": "OPEN", "color": "#EF4444", "icon": "Bug", "is_initial": True},
            {"name": "Confirmed", "key": "CONFIRMED", "category": "OPEN", "color": "#F59E0B", "icon": "AlertCircle"},
            {"name": "In Progress", "key": "IN_PROGRESS", "category": "IN_PROGRESS", "color": "#3B82F6", "icon": "Clock"},
            {"name": "Fixed", "key": "FIXED", "category": "IN_PROGRESS", "color": "#8B5CF6", "icon": "Wrench"},
            {"name": "Verified", "key": "VERIFIED", "category": "CLOSED", "color": "#10B981", "icon": "CheckCircle", "is_final": True},
            {"name": "Closed", "key": "CLOSED", "category": "CLOSED", "color": "#6B7280", "icon": "XCircle", "is_final": True},
            {"name": "Won't Fix", "key": "WONT_FIX", "category": "CLOSED", "color": "#9CA3AF", "icon": "Ban", "is_final": True},
        ],
        "transitions": [
            {"from": "OPEN", "to": "CONFIRMED"},
            {"from": "OPEN", "to": "WONT_FIX"},
            {"from": "CONFIRMED", "to": "IN_PROGRESS"},
            {"from": "CONFIRMED", "to": "WONT_FIX"},
            {"from": "IN_PROGRESS", "to": "FIXED"},
            {"from": "IN_PROGRESS", "to": "OPEN"},
            {"from": "FIXED", "to": "VERIFIED"},
            {"from": "FIXED", "to": "OPEN"},
            {"from": "VERIFIED", "to": "CLOSED"},
            {"from": "VERIFIED", "to": "OPEN"},
        ],
    },
}

