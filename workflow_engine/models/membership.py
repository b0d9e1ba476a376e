"""
Membership tables used to resolve an Actor for a request.

The engine itself never reads these: the actor service turns a user id into
an ``Actor`` once, and every engine call receives that value.
"""

from workflow_engine.models import db
from workflow_engine.models.workflow import _utcnow, _uuid

WORKSPACE_ROLES = ("OWNER", "ADMIN", "MEMBER")
SPACE_ROLES = ("ADMIN", "MEMBER")


class Member(db.Model):
    """Workspace membership with a workspace-wide role."""

    __tablename__ = "workspace_members"
    __table_args__ = (
        db.UniqueConstraint("workspace_id", "user_id", name="uq_member_workspace_user"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workspace_id = db.Column(db.String(36), nullable=False, index=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="MEMBER")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self):
        return f"<Member {self.user_id} {self.role}@{self.workspace_id}>"


class SpaceMember(db.Model):
    __tablename__ = "space_members"
    __table_args__ = (
        db.UniqueConstraint("space_id", "user_id", name="uq_space_member"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workspace_id = db.Column(db.String(36), nullable=False, index=True)
    space_id = db.Column(db.String(36), nullable=False, index=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="MEMBER")

    def __repr__(self):
        return f"<SpaceMember {self.user_id} {self.role}@{self.space_id}>"


class TeamMember(db.Model):
    __tablename__ = "team_members"
    __table_args__ = (
        db.UniqueConstraint("team_id", "user_id", name="uq_team_member"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    workspace_id = db.Column(db.String(36), nullable=False, index=True)
    team_id = db.Column(db.String(36), nullable=False, index=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)

    def __repr__(self):
        return f"<TeamMember {self.user_id}@{self.team_id}>"
