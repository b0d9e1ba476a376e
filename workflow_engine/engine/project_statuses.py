"""
Project Status Set — the statuses a project's board currently exposes.

Three layers folded left to right into a dict keyed by normalized name:

    1. built-in defaults      (visibility from DefaultColumnSetting)
    2. dedicated columns      (override icon/color, keep visibility)
    3. legacy inline types    (override icon/color and visibility)

Later layers override earlier ones on a name match; unmatched entries are
appended in the order they are seen.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace

from workflow_engine.engine.matching import normalize_key, normalize_name

DEFAULT_ICON = "Circle"
DEFAULT_COLOR = "#6B7280"


@dataclass(frozen=True)
class ProjectStatus:
    key: str
    name: str
    color: str = DEFAULT_COLOR
    icon: str = DEFAULT_ICON
    category: str = "OPEN"
    visible: bool = True
    source: str = "default"

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
            "category": self.category,
            "visible": self.visible,
            "source": self.source,
        }


DEFAULT_PROJECT_STATUSES: tuple[ProjectStatus, ...] = (
    ProjectStatus("TODO", "To Do", "#9CA3AF", "Circle", "OPEN"),
    ProjectStatus("ASSIGNED", "Assigned", "#EF4444", "UserCheck", "OPEN"),
    ProjectStatus("IN_PROGRESS", "In Progress", "#F59E0B", "Clock", "IN_PROGRESS"),
    ProjectStatus("IN_REVIEW", "In Review", "#3B82F6", "Eye", "IN_PROGRESS"),
    ProjectStatus("DONE", "Done", "#10B981", "CheckCircle", "CLOSED"),
)


def _fold_defaults(acc: dict, settings: Mapping[str, bool]) -> None:
    for status in DEFAULT_PROJECT_STATUSES:
        visible = settings.get(status.key, True)
        acc[normalize_name(status.name)] = replace(status, visible=bool(visible))


def _fold_columns(acc: dict, columns: Iterable) -> None:
    for col in columns:
        if not col.name:
            continue
        n = normalize_name(col.name)
        existing = acc.get(n)
        if existing is not None:
            acc[n] = replace(
                existing,
                icon=col.icon or existing.icon,
                color=col.color or existing.color,
            )
        else:
            acc[n] = ProjectStatus(
                key=normalize_key(col.name).upper(),
                name=col.name,
                color=col.color or DEFAULT_COLOR,
                icon=col.icon or DEFAULT_ICON,
                source="column",
            )


def _fold_legacy_types(acc: dict, types: Iterable[Mapping]) -> None:
    for item in types:
        if not isinstance(item, Mapping):
            continue
        label = item.get("label")
        if not isinstance(label, str) or not label.strip():
            continue
        n = normalize_name(label)
        visible = item.get("visible") is not False
        existing = acc.get(n)
        if existing is not None:
            acc[n] = replace(
                existing,
                icon=item.get("icon") or existing.icon,
                color=item.get("color") or existing.color,
                visible=visible,
            )
        else:
            acc[n] = ProjectStatus(
                key=item.get("key") or normalize_key(label).upper(),
                name=label.strip(),
                color=item.get("color") or DEFAULT_COLOR,
                icon=item.get("icon") or DEFAULT_ICON,
                visible=visible,
                source="legacy",
            )


def build_project_status_set(
    default_settings: Mapping[str, bool] | None = None,
    custom_columns: Iterable = (),
    legacy_types: Iterable[Mapping] | None = None,
) -> list[ProjectStatus]:
    """
    Fold a project's three status layers into one ordered list.

    Args:
        default_settings: ``column_id -> is_enabled`` for the built-in columns.
        custom_columns: Objects with ``name``, ``icon``, ``color``.
        legacy_types: The project's inline ``{key, label, icon, color, visible}`` list.

    Returns:
        The union, one entry per normalized name, each with a visibility flag.
    """
    acc: dict[str, ProjectStatus] = {}
    _fold_defaults(acc, default_settings or {})
    _fold_columns(acc, custom_columns)
    _fold_legacy_types(acc, legacy_types or [])
    return list(acc.values())
