"""
Graph Health Analyzer — orphaned / unreachable / dead-end statuses.

Classification per status (mutually exclusive, first match wins):
    orphaned     not initial, no incoming, no outgoing
    unreachable  not initial, no incoming, has outgoing
    dead_end     not final,   has incoming, no outgoing

Advisory only: never consulted by the transition validator.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field


@dataclass
class HealthReport:
    total_statuses: int = 0
    total_transitions: int = 0
    initial_count: int = 0
    final_count: int = 0
    orphaned: list[str] = field(default_factory=list)
    unreachable: list[str] = field(default_factory=list)
    dead_end: list[str] = field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return not (self.orphaned or self.unreachable or self.dead_end)

    @property
    def issues(self) -> list[str]:
        msgs = []
        if self.orphaned:
            msgs.append(f"{len(self.orphaned)} orphaned status(es) with no transitions")
        if self.unreachable:
            msgs.append(f"{len(self.unreachable)} status(es) cannot be reached")
        if self.dead_end:
            msgs.append(f"{len(self.dead_end)} status(es) have no way out")
        if self.total_statuses and not self.initial_count:
            msgs.append("No initial status defined")
        if self.total_statuses and not self.final_count:
            msgs.append("No final status defined")
        return msgs

    def to_dict(self) -> dict:
        return {
            "total_statuses": self.total_statuses,
            "total_transitions": self.total_transitions,
            "initial_count": self.initial_count,
            "final_count": self.final_count,
            "orphaned_count": len(self.orphaned),
            "unreachable_count": len(self.unreachable),
            "dead_end_count": len(self.dead_end),
            "orphaned": self.orphaned,
            "unreachable": self.unreachable,
            "dead_end": self.dead_end,
            "is_healthy": self.is_healthy,
            "issues": self.issues,
        }


def analyze_health(statuses: Iterable, transitions: Iterable) -> HealthReport:
    """
    Classify every status of a workflow graph.

    Args:
        statuses: Status objects (``id``, ``is_initial``, ``is_final``).
        transitions: Edge objects (``from_status_id``, ``to_status_id``).

    Returns:
        HealthReport with per-class status ids and aggregate counts.
    """
    statuses = list(statuses)
    transitions = list(transitions)

    sources = {t.from_status_id for t in transitions}
    targets = {t.to_status_id for t in transitions}

    report = HealthReport(
        total_statuses=len(statuses),
        total_transitions=len(transitions),
        initial_count=sum(1 for s in statuses if s.is_initial),
        final_count=sum(1 for s in statuses if s.is_final),
    )
    for s in statuses:
        has_incoming = s.id in targets
        has_outgoing = s.id in sources
        if not s.is_initial and not has_incoming and not has_outgoing:
            report.orphaned.append(s.id)
        elif not s.is_initial and not has_incoming and has_outgoing:
            report.unreachable.append(s.id)
        elif not s.is_final and has_incoming and not has_outgoing:
            report.dead_end.append(s.id)
    return report
