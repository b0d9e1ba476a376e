"""
Actor resolver — turns (user, workspace) into the ``Actor`` the engine consumes.
"""

import logging

from sqlalchemy import select

from workflow_engine.core.exceptions import PermissionDenied
from workflow_engine.engine.validator import Actor
from workflow_engine.models import db
from workflow_engine.models.membership import Member, SpaceMember, TeamMember

logger = logging.getLogger(__name__)


def resolve_actor(user_id: str, workspace_id: str) -> Actor:
    """Build an Actor from workspace, space and team membership rows.

    Args:
        user_id: The caller.
        workspace_id: Workspace the request is scoped to.

    Returns:
        Actor with the workspace role, team ids and admin space ids.

    Raises:
        PermissionDenied: the user is not a member of the workspace.
    """
    member = db.session.execute(
        select(Member).where(Member.workspace_id == workspace_id, Member.user_id == user_id)
    ).scalar_one_or_none()
    if member is None:
        logger.warning(
            "Non-member access attempt user=%s", user_id,
            extra={"user_id": user_id, "workspace_id": workspace_id},
        )
        raise PermissionDenied(user_id, "access_workspace", "User is not a member of this workspace")

    team_ids = db.session.execute(
        select(TeamMember.team_id).where(
            TeamMember.workspace_id == workspace_id,
            TeamMember.user_id == user_id,
        )
    ).scalars().all()
    space_admin_ids = db.session.execute(
        select(SpaceMember.space_id).where(
            SpaceMember.workspace_id == workspace_id,
            SpaceMember.user_id == user_id,
            SpaceMember.role == "ADMIN",
        )
    ).scalars().all()

    return Actor(
        user_id=user_id,
        role=member.role,
        team_ids=tuple(sorted(team_ids)),
        space_admin_ids=tuple(sorted(space_admin_ids)),
    )
