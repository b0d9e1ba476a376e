"""
JSON error envelope shared by every blueprint.

    {"error": "<human message>", "code": "<machine code>", "details": {...}}

``details`` is omitted when empty.  Codes live on ``E``; each code has a
default HTTP status in ``HTTP_STATUS`` that a caller may override.

    return api_error(E.NOT_FOUND, "Workflow id=... not found")
    return api_error(E.SYNC_CONFIRMATION, str(exc), details=exc.details)
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes.  ``ERR_*`` are generic; ``WORKFLOW_*`` / ``SYNC_*`` are engine-specific."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    INTERNAL = "ERR_INTERNAL"

    WORKFLOW_SYSTEM_IMMUTABLE = "WORKFLOW_SYSTEM_IMMUTABLE"
    SYNC_CONFIRMATION = "SYNC_CONFIRMATION_REQUIRED"
    SYNC_FAILED = "SYNC_FAILED"


HTTP_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.INTERNAL: 500,
    # system workflows answer 400, matching the existing client contract
    E.WORKFLOW_SYSTEM_IMMUTABLE: 400,
    E.SYNC_CONFIRMATION: 409,
    E.SYNC_FAILED: 409,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a Flask view or error handler."""
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or HTTP_STATUS.get(code, 400)
