"""
Status Reconciler — planning half.

Given a workflow's statuses and a project's status set, work out what a
sync would change.  Nothing here writes: plans are plain dataclasses that
``services.reconciliation_service`` applies inside one transaction.

Strategies:
    workflow  the workflow is authoritative.  Project columns are upserted
              from workflow statuses (visible iff on canvas); leftover
              columns are deleted.  Destructive.
    project   the project is authoritative.  Matched workflow statuses
              only get their canvas visibility reconciled; unmatched
              project statuses become new workflow statuses.  Never deletes.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from workflow_engine.engine.matching import (
    NormalizedStatusMatcher,
    StatusMatcher,
    find_match,
    normalize_key,
    normalize_name,
)

COLUMN_POSITION_STEP = 1000


class SyncStrategy(str, Enum):
    WORKFLOW = "workflow"
    PROJECT = "project"


# ═════════════════════════════════════════════════════════════════════════════
# Canvas
# ═════════════════════════════════════════════════════════════════════════════

def is_on_canvas(status) -> bool:
    """Both coordinates zero (or missing) means the status is off-canvas."""
    return bool(getattr(status, "position_x", 0) or 0) or bool(getattr(status, "position_y", 0) or 0)


@dataclass
class CanvasLayout:
    """
    Places statuses brought onto the canvas during a sync: one column to
    the right of the right-most status, stacked downwards from ``origin``.
    """
    origin: float = 100
    step_x: float = 250
    step_y: float = 150
    max_x: float = 100
    offset_y: float = 0

    @classmethod
    def for_statuses(cls, statuses: Iterable, origin=100, step_x=250, step_y=150) -> CanvasLayout:
        max_x = origin
        for s in statuses:
            if s.position_x and s.position_x > max_x:
                max_x = s.position_x
        return cls(origin=origin, step_x=step_x, step_y=step_y, max_x=max_x)

    def place(self) -> tuple[float, float]:
        pos = (self.max_x + self.step_x, self.origin + self.offset_y)
        self.offset_y += self.step_y
        return pos


# ═════════════════════════════════════════════════════════════════════════════
# Conflict detection
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class ConflictReport:
    workflow_only: list[Any] = field(default_factory=list)
    project_only: list[Any] = field(default_factory=list)
    matching: list[tuple[Any, Any]] = field(default_factory=list)
    affected_task_count: int = 0

    @property
    def has_conflict(self) -> bool:
        return bool(self.workflow_only or self.project_only)

    @property
    def project_only_keys(self) -> list[str]:
        return [p.key for p in self.project_only]

    def to_dict(self) -> dict:
        return {
            "has_conflict": self.has_conflict,
            "workflow_only": [_status_brief(s) for s in self.workflow_only],
            "project_only": [_status_brief(p) for p in self.project_only],
            "matching": [
                {"workflow_status": _status_brief(w), "project_status": _status_brief(p)}
                for w, p in self.matching
            ],
            "affected_task_count": self.affected_task_count,
        }


def _status_brief(s) -> dict:
    return {
        "id": getattr(s, "id", None),
        "key": s.key,
        "name": s.name,
        "color": getattr(s, "color", None),
        "icon": getattr(s, "icon", None),
    }


def detect_conflict(
    workflow_statuses: Iterable,
    project_statuses: Iterable,
    matcher: StatusMatcher | None = None,
) -> ConflictReport:
    """Partition both sides into workflow-only, project-only and matching."""
    matcher = matcher or NormalizedStatusMatcher()
    workflow_statuses = list(workflow_statuses)
    project_statuses = list(project_statuses)

    report = ConflictReport()
    for ws in workflow_statuses:
        ps = find_match(ws, project_statuses, matcher)
        if ps is None:
            report.workflow_only.append(ws)
        else:
            report.matching.append((ws, ps))
    for ps in project_statuses:
        if find_match(ps, workflow_statuses, matcher) is None:
            report.project_only.append(ps)
    return report


# ═════════════════════════════════════════════════════════════════════════════
# Workflow priority
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class ColumnUpsert:
    name: str
    icon: str
    color: str
    position: int
    column: Any = None  # existing column row, None = create


@dataclass
class WorkflowPriorityPlan:
    upserts: list[ColumnUpsert] = field(default_factory=list)
    deletes: list[Any] = field(default_factory=list)
    work_item_types: list[dict] = field(default_factory=list)
    dropped_types: list[dict] = field(default_factory=list)

    @property
    def removed_statuses(self) -> list[tuple[str, str]]:
        """``(key, name)`` of every project status the plan takes off the board."""
        removed = [(normalize_key(c.name).upper(), c.name) for c in self.deletes]
        for t in self.dropped_types:
            label = t["label"].strip()
            removed.append((t.get("key") or normalize_key(label).upper(), label))
        return removed

    @property
    def added(self) -> int:
        return sum(1 for u in self.upserts if u.column is None)

    @property
    def updated(self) -> int:
        return sum(1 for u in self.upserts if u.column is not None)

    @property
    def removed(self) -> int:
        return len(self.deletes)


def plan_workflow_priority(
    workflow_statuses: Iterable,
    columns: Iterable,
    legacy_types: Iterable[Mapping] = (),
) -> WorkflowPriorityPlan:
    """
    Project columns mirror the workflow's statuses, matched by
    case-insensitive name.  Columns positioned 1000, 2000, ...

    The legacy inline list is replaced by the workflow's statuses; entries
    whose label names no workflow status end up in ``dropped_types``.
    """
    workflow_statuses = list(workflow_statuses)
    existing = {}
    for col in columns:
        existing.setdefault(normalize_name(col.name), col)

    plan = WorkflowPriorityPlan()
    names = {normalize_name(s.name) for s in workflow_statuses}
    for item in legacy_types:
        label = item.get("label") if isinstance(item, Mapping) else None
        if isinstance(label, str) and label.strip() and normalize_name(label) not in names:
            plan.dropped_types.append(dict(item))

    for i, status in enumerate(workflow_statuses):
        col = existing.pop(normalize_name(status.name), None)
        plan.upserts.append(ColumnUpsert(
            name=status.name,
            icon=status.icon,
            color=status.color,
            position=(i + 1) * COLUMN_POSITION_STEP,
            column=col,
        ))
        plan.work_item_types.append({
            "key": status.key,
            "label": status.name,
            "icon": status.icon,
            "color": status.color,
            "visible": is_on_canvas(status),
        })
    plan.deletes = list(existing.values())
    return plan


# ═════════════════════════════════════════════════════════════════════════════
# Project priority
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class StatusMove:
    status: Any
    position_x: float
    position_y: float
    icon: str | None = None
    color: str | None = None


@dataclass
class NewStatus:
    key: str
    name: str
    icon: str
    color: str
    position: int
    position_x: float
    position_y: float
    category: str = "OPEN"


@dataclass
class ProjectPriorityPlan:
    moves: list[StatusMove] = field(default_factory=list)
    creates: list[NewStatus] = field(default_factory=list)

    @property
    def added(self) -> int:
        return len(self.creates)

    @property
    def updated(self) -> int:
        return len(self.moves)

    @property
    def removed(self) -> int:
        return 0


def _unique_key(key: str, taken: set[str]) -> str:
    key = key[:26]
    candidate, n = key, 2
    while candidate in taken:
        candidate = f"{key}_{n}"
        n += 1
    taken.add(candidate)
    return candidate


def plan_project_priority(
    workflow_statuses: Iterable,
    project_statuses: Iterable,
    matcher: StatusMatcher | None = None,
    layout: CanvasLayout | None = None,
) -> ProjectPriorityPlan:
    """
    Bring the workflow in line with the project without deleting anything.

    Matched statuses move on canvas (project visible, currently off) or off
    canvas to (0, 0) (project hidden, currently on).  Unmatched project
    statuses are appended at ``position = len(workflow_statuses) + added``.
    """
    matcher = matcher or NormalizedStatusMatcher()
    workflow_statuses = list(workflow_statuses)
    layout = layout or CanvasLayout.for_statuses(workflow_statuses)
    taken_keys = {s.key for s in workflow_statuses}

    plan = ProjectPriorityPlan()
    for ps in project_statuses:
        ws = find_match(ps, workflow_statuses, matcher)
        if ws is not None:
            on_canvas = is_on_canvas(ws)
            if ps.visible and not on_canvas:
                x, y = layout.place()
                plan.moves.append(StatusMove(ws, x, y, icon=ps.icon, color=ps.color))
            elif not ps.visible and on_canvas:
                plan.moves.append(StatusMove(ws, 0, 0))
            continue

        x, y = layout.place() if ps.visible else (0, 0)
        plan.creates.append(NewStatus(
            key=_unique_key(ps.key, taken_keys),
            name=ps.name,
            icon=ps.icon,
            color=ps.color,
            position=len(workflow_statuses) + len(plan.creates),
            position_x=x,
            position_y=y,
        ))
    return plan


# ═════════════════════════════════════════════════════════════════════════════
# Summary
# ═════════════════════════════════════════════════════════════════════════════

SYNC_MESSAGES = {
    SyncStrategy.WORKFLOW: "Project synced to workflow statuses",
    SyncStrategy.PROJECT: "Workflow synced from project statuses",
}


@dataclass
class SyncSummary:
    strategy: SyncStrategy
    added: int = 0
    updated: int = 0
    removed: int = 0
    status_count: int = 0

    @property
    def message(self) -> str:
        return SYNC_MESSAGES[self.strategy]

    @classmethod
    def from_plan(cls, strategy: SyncStrategy, plan, status_count: int) -> SyncSummary:
        return cls(
            strategy=strategy,
            added=plan.added,
            updated=plan.updated,
            removed=plan.removed,
            status_count=status_count,
        )

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy.value,
            "added": self.added,
            "updated": self.updated,
            "removed": self.removed,
            "status_count": self.status_count,
            "message": self.message,
        }
