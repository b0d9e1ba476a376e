"""
Project-side models consumed by the workflow engine.

Models:
    - Project: board owner; carries the workflow pointer and the legacy
      inline ``custom_work_item_types`` list.
    - CustomColumn: dedicated board column record.
    - DefaultColumnSetting: per-project visibility of a built-in column.
    - Task: work item; only its status key and parent link matter here.
"""

from workflow_engine.models import db
from workflow_engine.models.workflow import _utcnow, _uuid


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workspace_id = db.Column(db.String(36), nullable=False, index=True)
    space_id = db.Column(db.String(36), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    workflow_id = db.Column(
        db.String(36), db.ForeignKey("workflows.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    custom_work_item_types = db.Column(
        db.JSON, nullable=True,
        comment="Legacy inline list of {key, label, icon, color, visible}",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    custom_columns = db.relationship(
        "CustomColumn",
        backref="project",
        lazy="dynamic",
        order_by="CustomColumn.position",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "space_id": self.space_id,
            "name": self.name,
            "workflow_id": self.workflow_id,
            "custom_work_item_types": self.custom_work_item_types or [],
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class CustomColumn(db.Model):
    """A board column the project owner added on top of the defaults."""

    __tablename__ = "custom_columns"
    __table_args__ = (
        db.Index("idx_cc_project_position", "project_id", "position"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    icon = db.Column(db.String(50), nullable=True)
    color = db.Column(db.String(7), nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "position": self.position,
        }

    def __repr__(self):
        return f"<CustomColumn {self.name} @{self.position}>"


class DefaultColumnSetting(db.Model):
    """Visibility toggle for one built-in column (``column_id`` = status key)."""

    __tablename__ = "default_column_settings"
    __table_args__ = (
        db.UniqueConstraint("project_id", "column_id", name="uq_dcs_project_column"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    column_id = db.Column(db.String(30), nullable=False)
    is_enabled = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "column_id": self.column_id,
            "is_enabled": self.is_enabled,
        }


class Task(db.Model):
    __tablename__ = "tasks"
    __table_args__ = (
        db.Index("idx_task_project_status", "project_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    parent_id = db.Column(
        db.String(36), db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=True, index=True,
    )
    title = db.Column(db.String(300), nullable=False, default="")
    status = db.Column(db.String(30), nullable=False, default="TODO")
    approved = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="Set once a designated approver signs off",
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    subtasks = db.relationship(
        "Task",
        backref=db.backref("parent", remote_side=[id]),
        lazy="dynamic",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "parent_id": self.parent_id,
            "title": self.title,
            "status": self.status,
            "approved": self.approved,
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.status}>"
