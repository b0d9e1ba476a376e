"""
Audit trail for workflow graphs.

Every lifecycle mutation and every project sync appends one ``AuditLog``
row inside the caller's transaction, so a rolled-back change leaves no
audit behind.  Rows are never updated.
"""

from datetime import UTC, datetime

from sqlalchemy import select

from workflow_engine.models import db

AUDIT_ACTIONS = frozenset({
    "workflow.create",
    "workflow.clone",
    "workflow.update",
    "workflow.delete",
    "status.create",
    "status.bulk_create",
    "status.update",
    "status.delete",
    "transition.create",
    "transition.bulk_create",
    "transition.update",
    "transition.delete",
    "project.connect_workflow",
    "project.disconnect_workflow",
    "project.sync_workflow",
})


class AuditLog(db.Model):
    __tablename__ = "workflow_audit_log"
    __table_args__ = (
        db.Index("idx_wf_audit_workflow_ts", "workflow_id", "timestamp"),
        db.Index("idx_wf_audit_entity", "entity_type", "entity_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.String(36), nullable=True,
        comment="Kept after the workflow is deleted; no FK",
    )
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="workflow | workflow_status | workflow_transition | project",
    )
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(40), nullable=False)
    actor = db.Column(db.String(64), nullable=False, default="system")
    diff = db.Column(db.JSON, nullable=False, default=dict)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "diff": self.diff or {},
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity_type}/{self.entity_id}>"


def write_audit(
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    actor: str | None = "system",
    workflow_id: str | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """Add one audit row and flush; the caller commits or rolls back."""
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action {action!r}")
    log = AuditLog(
        workflow_id=workflow_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        diff=diff or {},
    )
    db.session.add(log)
    db.session.flush()
    return log


def audit_trail(workflow_id: str, limit: int = 100) -> list[AuditLog]:
    """Newest-first audit rows recorded against *workflow_id*."""
    return db.session.execute(
        select(AuditLog)
        .where(AuditLog.workflow_id == workflow_id)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(limit)
    ).scalars().all()
