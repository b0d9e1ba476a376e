"""
Transition Validator — can this actor move an item from status A to B?

Decision procedure, evaluated in this exact order and short-circuiting on
the first failure:

    1. existence   an edge (from → to) exists        else TRANSITION_NOT_ALLOWED
    2. role gate   allowed_member_roles ∋ actor.role  else ROLE_NOT_ALLOWED
    3. team gate   allowed_team_ids ∩ actor.team_ids  else TEAM_NOT_ALLOWED
    4. approval    actor in one of approver_team_ids  else REQUIRES_APPROVAL

Empty / NULL role or team lists mean "unrestricted".  A denial is a
``TransitionDecision`` value, never an exception.

Usage:
    from workflow_engine.engine.validator import Actor, validate_transition

    decision = validate_transition(transitions, from_id, to_id, actor)
    if not decision.allowed:
        return {"reason": decision.reason.value, "message": decision.message}
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ═════════════════════════════════════════════════════════════════════════════
# Enums & Data Classes
# ═════════════════════════════════════════════════════════════════════════════

class ReasonCode(str, Enum):
    TRANSITION_NOT_ALLOWED = "TRANSITION_NOT_ALLOWED"
    ROLE_NOT_ALLOWED = "ROLE_NOT_ALLOWED"
    TEAM_NOT_ALLOWED = "TEAM_NOT_ALLOWED"
    REQUIRES_APPROVAL = "REQUIRES_APPROVAL"


REASON_MESSAGES: dict[ReasonCode, str] = {
    ReasonCode.TRANSITION_NOT_ALLOWED: "This status transition is not allowed in this workflow",
    ReasonCode.ROLE_NOT_ALLOWED: "Your role does not have permission for this transition",
    ReasonCode.TEAM_NOT_ALLOWED: "Your team does not have permission for this transition",
    ReasonCode.REQUIRES_APPROVAL: "This transition requires approval from designated teams",
}


@dataclass(frozen=True)
class Actor:
    """Who is asking.  Resolved once per request by the caller."""
    user_id: str
    role: str
    team_ids: tuple[str, ...] = ()
    space_admin_ids: tuple[str, ...] = ()

    def in_any_team(self, team_ids: Iterable[str] | None) -> bool:
        return bool(set(self.team_ids) & set(team_ids or ()))


@dataclass
class TransitionDecision:
    """Outcome of validating a single status change."""
    allowed: bool
    reason: ReasonCode | None = None
    message: str | None = None
    transition: Any = None
    approver_team_ids: list[str] = field(default_factory=list)

    @classmethod
    def allow(cls, transition) -> TransitionDecision:
        return cls(allowed=True, transition=transition)

    @classmethod
    def deny(cls, reason: ReasonCode, transition=None, approver_team_ids=None) -> TransitionDecision:
        return cls(
            allowed=False,
            reason=reason,
            message=REASON_MESSAGES[reason],
            transition=transition,
            approver_team_ids=list(approver_team_ids or []),
        )

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"allowed": self.allowed}
        if self.allowed:
            d["transition"] = _serialize(self.transition)
            return d
        d["reason"] = self.reason.value if self.reason else None
        d["message"] = self.message
        if self.reason == ReasonCode.REQUIRES_APPROVAL:
            d["approver_team_ids"] = self.approver_team_ids
        return d


@dataclass
class AllowedTransition:
    """An outgoing edge the actor passes the role and team gates for."""
    transition: Any
    to_status: Any
    requires_approval: bool

    def to_dict(self) -> dict:
        d = _serialize(self.transition)
        d["to_status"] = _serialize(self.to_status)
        d["requires_approval"] = self.requires_approval
        return d


def _serialize(obj) -> dict | None:
    if obj is None:
        return None
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(vars(obj))


# ═════════════════════════════════════════════════════════════════════════════
# Gates
# ═════════════════════════════════════════════════════════════════════════════

def _passes_role_gate(transition, actor: Actor) -> bool:
    roles = transition.allowed_member_roles or []
    return not roles or actor.role in roles


def _passes_team_gate(transition, actor: Actor) -> bool:
    teams = transition.allowed_team_ids or []
    return not teams or actor.in_any_team(teams)


def _passes_approval_gate(transition, actor: Actor) -> bool:
    if not transition.requires_approval:
        return True
    return actor.in_any_team(transition.approver_team_ids)


def decide(transition, actor: Actor) -> TransitionDecision:
    """Run the gates for one edge (``None`` = no such edge)."""
    if transition is None:
        return TransitionDecision.deny(ReasonCode.TRANSITION_NOT_ALLOWED)
    if not _passes_role_gate(transition, actor):
        return TransitionDecision.deny(ReasonCode.ROLE_NOT_ALLOWED, transition)
    if not _passes_team_gate(transition, actor):
        return TransitionDecision.deny(ReasonCode.TEAM_NOT_ALLOWED, transition)
    if not _passes_approval_gate(transition, actor):
        return TransitionDecision.deny(
            ReasonCode.REQUIRES_APPROVAL,
            transition,
            approver_team_ids=transition.approver_team_ids,
        )
    return TransitionDecision.allow(transition)


# ═════════════════════════════════════════════════════════════════════════════
# Public API
# ═════════════════════════════════════════════════════════════════════════════

def find_edge(transitions: Iterable, from_status_id: str, to_status_id: str):
    for t in transitions:
        if t.from_status_id == from_status_id and t.to_status_id == to_status_id:
            return t
    return None


def validate_transition(
    transitions: Iterable,
    from_status_id: str,
    to_status_id: str,
    actor: Actor,
) -> TransitionDecision:
    """
    Decide whether *actor* may move an item along ``from → to``.

    Args:
        transitions: The workflow's edges (any iterable of transition objects).
        from_status_id: Current status id.
        to_status_id: Requested status id.
        actor: The caller's identity, role and team memberships.

    Returns:
        TransitionDecision — ``allowed`` plus the first blocking reason.
    """
    return decide(find_edge(transitions, from_status_id, to_status_id), actor)


def allowed_transitions(
    transitions: Iterable,
    statuses_by_id: dict[str, Any],
    from_status_id: str,
    actor: Actor,
) -> list[AllowedTransition]:
    """
    Every outgoing edge of *from_status_id* passing the role and team gates,
    joined with its destination status.

    Approval is reported on each entry, not filtered.  Edges whose target
    is missing from *statuses_by_id* are skipped.
    """
    result = []
    for t in transitions:
        if t.from_status_id != from_status_id:
            continue
        if not (_passes_role_gate(t, actor) and _passes_team_gate(t, actor)):
            continue
        to_status = statuses_by_id.get(t.to_status_id)
        if to_status is None:
            continue
        result.append(AllowedTransition(
            transition=t,
            to_status=to_status,
            requires_approval=bool(t.requires_approval),
        ))
    return result
