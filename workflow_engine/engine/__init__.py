"""
Pure decision layer of the workflow engine.

Nothing in this package touches the database or the Flask app: every
function takes plain objects (ORM rows or anything exposing the same
attributes) and returns values.  The service layer fetches, calls in here,
and applies the resulting writes.
"""

from workflow_engine.engine.conditions import ConditionEvaluator, ConditionType, find_auto_transition
from workflow_engine.engine.health import HealthReport, analyze_health
from workflow_engine.engine.matching import (
    KeyOnlyStatusMatcher,
    NormalizedStatusMatcher,
    StatusMatcher,
    get_matcher,
    normalize_key,
    normalize_name,
)
from workflow_engine.engine.validator import (
    Actor,
    AllowedTransition,
    ReasonCode,
    TransitionDecision,
    allowed_transitions,
    validate_transition,
)

__all__ = [
    "Actor",
    "AllowedTransition",
    "ConditionEvaluator",
    "ConditionType",
    "HealthReport",
    "KeyOnlyStatusMatcher",
    "NormalizedStatusMatcher",
    "ReasonCode",
    "StatusMatcher",
    "TransitionDecision",
    "allowed_transitions",
    "analyze_health",
    "find_auto_transition",
    "get_matcher",
    "normalize_key",
    "normalize_name",
    "validate_transition",
]
