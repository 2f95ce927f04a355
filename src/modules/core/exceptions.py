"""Domain error taxonomy shared by every module.

Services raise these; the API layer translates them into HTTP responses
(see ``modules.core.exception_handler``).  Each class carries the HTTP
status and the machine-readable ``code`` used in error payloads.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base class for business-rule failures surfaced to callers."""

    status_code = 400
    code = "domain_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details


class ValidationError(DomainError):
    """Malformed or missing input (recoverable client-side)."""

    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None, **details: Any):
        super().__init__(message, **details)
        self.field = field


class NotFound(DomainError):
    """The requested resource does not exist."""

    status_code = 404
    code = "not_found"


class InvalidTransition(DomainError):
    """The requested edge is not part of the order transition graph."""

    status_code = 422
    code = "invalid_transition"


class GuardFailed(DomainError):
    """A business precondition beyond graph membership rejected the change."""

    status_code = 422
    code = "guard_failed"


class StateConflict(DomainError):
    """Optimistic-concurrency loss; safe to retry after re-reading state."""

    status_code = 409
    code = "state_conflict"


class InsufficientStock(DomainError):
    """Applying a movement would drive stock below zero."""

    status_code = 409
    code = "insufficient_stock"
