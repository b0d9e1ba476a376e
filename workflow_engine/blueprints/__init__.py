"""
Shared blueprint plumbing: error handlers and caller resolution.

Every API blueprint calls ``register_error_handlers`` once so service
exceptions map to the same HTTP codes everywhere.
"""

import logging

from flask import request
from werkzeug.exceptions import HTTPException

from workflow_engine.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ReconciliationFailure,
    SyncConfirmationRequired,
    SystemWorkflowError,
    ValidationError,
)
from workflow_engine.services.actor_service import resolve_actor
from workflow_engine.utils.errors import E, api_error

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


def current_actor(workspace_id: str):
    """Resolve the caller for *workspace_id*.  Returns (actor, err_response)."""
    user_id = (request.headers.get(USER_HEADER) or "").strip()
    if not user_id:
        return None, api_error(E.UNAUTHORIZED, f"{USER_HEADER} header is required")
    return resolve_actor(user_id, workspace_id), None


def register_error_handlers(bp) -> None:
    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @bp.errorhandler(SyncConfirmationRequired)
    def _handle_sync_confirmation(error: SyncConfirmationRequired):
        return api_error(E.SYNC_CONFIRMATION, str(error), details=error.details)

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(SystemWorkflowError)
    def _handle_system_workflow(error: SystemWorkflowError):
        return api_error(E.WORKFLOW_SYSTEM_IMMUTABLE, "Cannot modify system workflows")

    @bp.errorhandler(PermissionDenied)
    def _handle_permission(error: PermissionDenied):
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(ReconciliationFailure)
    def _handle_reconciliation(error: ReconciliationFailure):
        return api_error(E.SYNC_FAILED, str(error), details={"retry": True})

    @bp.errorhandler(HTTPException)
    def _handle_http(error: HTTPException):
        return {"error": error.name, "detail": error.description}, error.code

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
