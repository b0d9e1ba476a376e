"""
Status matching — when are a workflow status and a project status the same?

normalize_key:  lower-case, runs of whitespace / "_" / "-" collapse to "_"
normalize_name: lower-case, trimmed

``NormalizedStatusMatcher`` (default) matches on key first, then name.  Two
differently-keyed statuses sharing a display name are treated as one.
``KeyOnlyStatusMatcher`` drops the name fallback for callers that need a
strict identity.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Protocol

_SEPARATORS = re.compile(r"[\s_-]+")


def normalize_key(key: str | None) -> str:
    return _SEPARATORS.sub("_", (key or "").lower())


def normalize_name(name: str | None) -> str:
    return (name or "").lower().strip()


class StatusMatcher(Protocol):
    def matches(self, a, b) -> bool: ...


class NormalizedStatusMatcher:
    """Key match or name match (key checked first)."""

    def matches(self, a, b) -> bool:
        if normalize_key(a.key) and normalize_key(a.key) == normalize_key(b.key):
            return True
        return bool(normalize_name(a.name)) and normalize_name(a.name) == normalize_name(b.name)


class KeyOnlyStatusMatcher:
    def matches(self, a, b) -> bool:
        return bool(normalize_key(a.key)) and normalize_key(a.key) == normalize_key(b.key)


MATCHERS = {
    "normalized": NormalizedStatusMatcher,
    "key_only": KeyOnlyStatusMatcher,
}


def get_matcher(mode: str = "normalized") -> StatusMatcher:
    """Matcher instance for a ``WORKFLOW_STATUS_MATCHING`` config value."""
    try:
        return MATCHERS[mode]()
    except KeyError:
        raise ValueError(f"Unknown status matching mode: {mode!r}") from None


def find_match(candidate, pool: Iterable, matcher: StatusMatcher):
    """First element of *pool* the matcher considers the same status, or None."""
    for other in pool:
        if matcher.matches(candidate, other):
            return other
    return None
