"""
Engine-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

    StructuralError            rejected before any write
      ├── NotFoundError        unknown workflow / status / transition / project id
      ├── ConflictError        duplicate status key or duplicate transition
      │     └── ConcurrentModificationError
      └── ValidationError      well-formed request that breaks a business rule
            └── SyncConfirmationRequired
    PermissionDenied           caller may not manage this workflow
      └── SystemWorkflowError  system workflows are immutable
    ReconciliationFailure      a sync could not be applied as a whole

Transition-access outcomes are NOT exceptions — see
``workflow_engine.engine.validator.TransitionDecision``.

Usage:
    from workflow_engine.core.exceptions import NotFoundError, ConflictError

    raise NotFoundError(resource="WorkflowStatus", resource_id=status_id)
    raise ConflictError("WorkflowStatus", "key", "TODO")
"""


class StructuralError(Exception):
    """Base for errors caused by the shape of the graph or the request."""


class NotFoundError(StructuralError):
    """Raised when a requested resource does not exist within the given scope.

    Args:
        resource: Human-readable model/entity name (e.g. "Workflow").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ConflictError(StructuralError):
    """Raised when an operation would duplicate a unique graph element.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field tuple) that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class ConcurrentModificationError(ConflictError):
    """Raised when another writer changed the workflow between read and flush."""

    def __init__(self, workflow_id: str) -> None:
        StructuralError.__init__(
            self, f"Workflow {workflow_id} was modified concurrently; reload and retry"
        )
        self.resource = "Workflow"
        self.field = "version"
        self.value = workflow_id


class ValidationError(StructuralError):
    """Raised when input fails business-rule validation in the service layer.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class SyncConfirmationRequired(ValidationError):
    """Raised when a destructive sync is requested without explicit confirmation.

    ``details`` names the project statuses that would be removed and the
    number of tasks currently sitting in them.
    """

    def __init__(self, at_risk: list[str], affected_task_count: int) -> None:
        super().__init__(
            f"Sync would remove {len(at_risk)} project status(es): {', '.join(at_risk)}",
            details={
                "at_risk_statuses": at_risk,
                "affected_task_count": affected_task_count,
            },
        )
        self.at_risk = at_risk
        self.affected_task_count = affected_task_count


class PermissionDenied(Exception):
    """Raised when the caller lacks permission to mutate a workflow."""

    def __init__(self, user_id: str | None, action: str, message: str | None = None) -> None:
        super().__init__(
            message or f"User {user_id} does not have permission for '{action}'"
        )
        self.user_id = user_id
        self.action = action


class SystemWorkflowError(PermissionDenied):
    """Raised on any attempt to modify or delete a system workflow."""

    def __init__(self, workflow_id: str, action: str) -> None:
        super().__init__(
            None, action, f"Cannot {action.replace('_', ' ')} on system workflow {workflow_id}"
        )
        self.workflow_id = workflow_id


class ReconciliationFailure(Exception):
    """Raised when a sync fails mid-way; nothing was applied and it must be retried."""

    def __init__(self, workflow_id: str, project_id: str, reason: str) -> None:
        super().__init__(
            f"Sync of workflow {workflow_id} with project {project_id} failed: {reason}"
        )
        self.workflow_id = workflow_id
        self.project_id = project_id
        self.reason = reason
