"""Domain error taxonomy.

Services raise these and never ``HTTPException``; ``main.py`` renders them
with a single exception handler.
"""

from typing import Optional


class DomainError(Exception):
    """Base class for every business-rule failure."""

    status_code = 400
    code = "domain_error"
    retryable = False

    def __init__(self, message: str, *, entity: Optional[str] = None):
        self.message = message
        self.entity = entity
        super().__init__(message)


class NotFoundError(DomainError):
    """Entity missing or outside the caller's organization."""

    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id=None, message: Optional[str] = None):
        self.entity_id = entity_id
        if message is None:
            message = f"{entity} no longer exists, please refresh"
        super().__init__(message, entity=entity)


class InvalidStateError(DomainError):
    """Transition not permitted from the current state."""

    status_code = 409
    code = "invalid_state"

    def __init__(self, message: str, *, entity: Optional[str] = None,
                 current: Optional[str] = None, requested: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(message, entity=entity)


class DomainValidationError(DomainError):
    """Input violates a business rule (empty name, bad amount, sum mismatch)."""

    status_code = 400
    code = "validation_error"


class ConflictError(DomainError):
    """Uniqueness violation or duplicate settlement."""

    status_code = 409
    code = "conflict"


class TransactionFailure(DomainError):
    """Storage failure inside an atomic unit; nothing was written."""

    status_code = 503
    code = "transaction_failed"
    retryable = True

    def __init__(self, message: str = "The operation could not be completed, please retry"):
        super().__init__(message)
