"""
Automated-transition conditions.

A transition flagged ``auto_transition`` carries a declarative
``condition_type`` tag.  The engine never evaluates the tag itself: callers
supply a ``ConditionEvaluator`` that knows about tasks, approvals, etc.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any, Protocol


class ConditionType(str, Enum):
    ALL_SUBTASKS_DONE = "ALL_SUBTASKS_DONE"
    APPROVAL_RECEIVED = "APPROVAL_RECEIVED"
    CUSTOM = "CUSTOM"


class ConditionEvaluator(Protocol):
    def evaluate(self, condition: ConditionType, item: Any, transition: Any) -> bool: ...


def parse_condition(value: str | None) -> ConditionType | None:
    if not value:
        return None
    try:
        return ConditionType(value)
    except ValueError:
        return None


def find_auto_transition(
    transitions: Iterable,
    from_status_id: str,
    item: Any,
    evaluator: ConditionEvaluator,
):
    """
    First outgoing ``auto_transition`` edge whose condition holds for *item*.

    Edges without a recognised condition tag never fire automatically.
    Returns the transition, or None.
    """
    for t in transitions:
        if t.from_status_id != from_status_id or not t.auto_transition:
            continue
        condition = parse_condition(t.condition_type)
        if condition is None:
            continue
        if evaluator.evaluate(condition, item, t):
            return t
    return None
