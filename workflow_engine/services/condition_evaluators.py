"""
Task-backed evaluator for automated-transition conditions.

    ALL_SUBTASKS_DONE   the task has subtasks and every one sits in a
                        CLOSED-category status of the workflow
    APPROVAL_RECEIVED   the task carries an approval
    CUSTOM              delegated to a caller-registered predicate
"""

from collections.abc import Callable, Iterable

from workflow_engine.engine.conditions import ConditionType


class TaskConditionEvaluator:
    def __init__(
        self,
        closed_status_keys: Iterable[str] = ("DONE",),
        custom: Callable | None = None,
    ):
        self.closed_status_keys = set(closed_status_keys)
        self.custom = custom

    def evaluate(self, condition: ConditionType, item, transition) -> bool:
        if condition == ConditionType.ALL_SUBTASKS_DONE:
            subtasks = list(item.subtasks)
            return bool(subtasks) and all(s.status in self.closed_status_keys for s in subtasks)
        if condition == ConditionType.APPROVAL_RECEIVED:
            return bool(getattr(item, "approved", False))
        if condition == ConditionType.CUSTOM and self.custom is not None:
            return bool(self.custom(item, transition))
        return False
