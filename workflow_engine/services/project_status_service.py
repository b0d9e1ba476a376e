"""
Project Status Set provider.

Reads a project's built-in column settings, dedicated column records and
legacy inline types, and folds them with
``engine.project_statuses.build_project_status_set``.
"""

import json
import logging

from sqlalchemy import select

from workflow_engine.core.exceptions import NotFoundError
from workflow_engine.engine.project_statuses import ProjectStatus, build_project_status_set
from workflow_engine.models import db
from workflow_engine.models.project import CustomColumn, DefaultColumnSetting, Project

logger = logging.getLogger(__name__)


def get_project(project_id: str) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def legacy_work_item_types(project: Project) -> list[dict]:
    """The project's inline type list; older rows store it as a JSON string."""
    raw = project.custom_work_item_types
    if not raw:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(
                "Unparseable custom_work_item_types on project %s", project.id,
                extra={"project_id": project.id},
            )
            return []
    return raw if isinstance(raw, list) else []


def list_custom_columns(project_id: str) -> list[CustomColumn]:
    return db.session.execute(
        select(CustomColumn)
        .where(CustomColumn.project_id == project_id)
        .order_by(CustomColumn.position)
    ).scalars().all()


def default_column_settings(project_id: str) -> dict[str, bool]:
    rows = db.session.execute(
        select(DefaultColumnSetting).where(DefaultColumnSetting.project_id == project_id)
    ).scalars()
    return {r.column_id: bool(r.is_enabled) for r in rows}


def load_project_status_set(project: Project) -> list[ProjectStatus]:
    return build_project_status_set(
        default_settings=default_column_settings(project.id),
        custom_columns=list_custom_columns(project.id),
        legacy_types=legacy_work_item_types(project),
    )
