"""DRF exception handler.

Translates domain errors and Pydantic validation errors into DRF API
exceptions, then delegates to drf-standardized-errors so every error
response shares the ``{"type", "errors": [{"code", "detail", "attr"}]}``
shape.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import pydantic
import structlog
from drf_standardized_errors.handler import (
    exception_handler as standardized_exception_handler,
)
from rest_framework import exceptions as drf_exceptions
from rest_framework.response import Response

from modules.core.exceptions import DomainError, ValidationError

logger = structlog.get_logger(__name__)


class DomainAPIException(drf_exceptions.APIException):
    """API exception carrying the status code of the domain error."""

    def __init__(self, exc: DomainError) -> None:
        super().__init__(detail=exc.message, code=exc.code)
        self.status_code = exc.status_code


def to_api_exception(exc: Exception) -> Exception:
    if isinstance(exc, ValidationError) and exc.field:
        return drf_exceptions.ValidationError(
            {exc.field: [exc.message]}, code=exc.code
        )
    if isinstance(exc, DomainError):
        return DomainAPIException(exc)
    if isinstance(exc, pydantic.ValidationError):
        errors: Dict[str, list] = {}
        for error in exc.errors():
            attr = ".".join(str(part) for part in error["loc"]) or "non_field_errors"
            errors.setdefault(attr, []).append(error["msg"])
        return drf_exceptions.ValidationError(errors, code="invalid")
    return exc


def exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    if isinstance(exc, (DomainError, pydantic.ValidationError)):
        view = context.get("view")
        logger.info(
            "api.domain_error",
            error=type(exc).__name__,
            detail=str(exc),
            view=type(view).__name__ if view else None,
        )
    return standardized_exception_handler(to_api_exception(exc), context)
