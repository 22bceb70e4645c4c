"""Typed failures of the application workflow.

Every failure leaves persisted state exactly as it was before the call.
``retryable`` marks the errors a caller may retry as a whole operation.
"""


class WorkflowError(Exception):
    """Base exception for workflow engine errors."""

    code = "workflow_error"
    http_status = 500
    retryable = False

    def __init__(self, message: str, *, application_id: int | None = None):
        super().__init__(message)
        self.message = message
        self.application_id = application_id


class NotFoundError(WorkflowError):
    """No application with the requested id."""

    code = "not_found"
    http_status = 404


class InvalidCategoryError(WorkflowError):
    """Classification code at creation is not one of the defined codes."""

    code = "invalid_category"
    http_status = 422


class InvalidInvestigationTypeError(InvalidCategoryError):
    """Investigation type code at creation is not one of the defined codes."""

    code = "invalid_investigation_type"


class InvalidTransitionError(WorkflowError):
    """Event not legal from the current status, or caller not allowed to fire it."""

    code = "invalid_transition"
    http_status = 409


class CollisionDetectedError(WorkflowError):
    """A freshly generated identifier already exists."""

    code = "collision_detected"
    http_status = 409
    retryable = True


class ContentionError(WorkflowError):
    """A lock could not be obtained within the configured timeout."""

    code = "contention"
    http_status = 503
    retryable = True


class PersistenceFailureError(WorkflowError):
    """The underlying store failed; needs investigation before retrying."""

    code = "persistence_failure"
    http_status = 500
