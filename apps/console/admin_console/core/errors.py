"""Error handling and exception management.

Every failure the console can observe is raised as a ``ConsoleError``
subclass from the API client and converted into a user-facing message at
the call site that owns the state (wizard, poller, CLI).
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from admin_console.core.metrics import emit_error

logger = logging.getLogger(__name__)

# Shown when a wizard call fails without a usable backend message
GENERIC_ERROR_MESSAGE = "通信エラーが発生しました"


class ConsoleError(Exception):
    """Base exception for console errors.

    Attributes:
        status_code: HTTP status code, when the error came with a response
        error_code: Application-specific error code
        message: Human-readable error message
        details: Optional additional error details
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ApiError(ConsoleError):
    """Backend answered with ``success: false`` or a non-2xx status.

    ``backend_message`` is the envelope's ``error.message`` and is None when
    the backend sent none.
    """

    def __init__(
        self,
        message: str | None,
        status_code: int | None = None,
        code: str | None = None,
        path: str | None = None,
    ):
        super().__init__(
            error_code=code or "api_error",
            message=message or f"HTTP {status_code}",
            status_code=status_code,
            details={"path": path, "code": code},
        )
        self.code = code
        self.backend_message = message or None


class TransportError(ConsoleError):
    """Request never produced a response (connect, read, protocol errors)."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(
            error_code="transport_error",
            message=message,
            details={"path": path},
        )


class ResponseFormatError(ConsoleError):
    """2xx response whose body does not match the expected envelope."""

    def __init__(
        self,
        message: str = "Unexpected response format",
        status_code: int | None = None,
        errors: list[dict[str, Any]] | None = None,
    ):
        super().__init__(
            error_code="response_format_error",
            message=message,
            status_code=status_code,
            details={"errors": errors or []},
        )


class PreconditionError(ConsoleError):
    """Client-side check failed before any request was sent."""

    def __init__(self, field: str, message: str):
        super().__init__(
            error_code="precondition_failed",
            message=message,
            details={"field": field},
        )
        self.field = field


class InvalidTransitionError(ConsoleError):
    """Wizard operation not allowed from the current step."""

    def __init__(self, operation: str, step: int, message: str | None = None):
        super().__init__(
            error_code="invalid_transition",
            message=message or f"Cannot {operation} from step {step}",
            details={"operation": operation, "step": step},
        )


def format_error(error: Exception, include_details: bool = False) -> dict[str, Any]:
    """Format an exception as a structured error document.

    Args:
        error: The exception that occurred
        include_details: Whether to include detailed error information

    Returns:
        Dictionary with error response structure
    """
    if isinstance(error, ConsoleError):
        response_data: dict[str, Any] = {
            "error": {
                "code": error.error_code,
                "message": error.message,
                "status_code": error.status_code,
            }
        }
        if error.details or include_details:
            response_data["error"]["details"] = error.details
        return response_data

    if isinstance(error, ValidationError):
        return {
            "error": {
                "code": "validation_error",
                "message": "Validation failed",
                "details": {
                    "errors": [
                        {
                            "field": ".".join(str(loc) for loc in err.get("loc", [])),
                            "message": err.get("msg", "Invalid value"),
                            "type": err.get("type", "validation_error"),
                        }
                        for err in error.errors()
                    ]
                },
            }
        }

    response_data = {
        "error": {
            "code": "internal_error",
            "message": "An internal error occurred",
        }
    }
    if include_details:
        response_data["error"]["details"] = {
            "type": type(error).__name__,
            "message": str(error),
        }
    return response_data


def user_message(error: Exception, fallback: str = GENERIC_ERROR_MESSAGE) -> str:
    """Message a user sees for a failed wizard call.

    Backend and precondition messages are shown verbatim; transport and
    format failures collapse to ``fallback``.
    """
    if isinstance(error, ApiError):
        return error.backend_message or fallback
    if isinstance(error, PreconditionError):
        return error.message
    return fallback


def record_error(error: Exception, context: str) -> None:
    """Log an error and count it in the error metric."""
    if isinstance(error, ConsoleError):
        logger.warning(
            f"{context}: {error.error_code} - {error.message}",
            extra={"error_code": error.error_code, "status_code": error.status_code},
        )
        emit_error(
            error_code=error.error_code,
            status_code=error.status_code,
            path=error.details.get("path"),
            context=context,
        )
        return

    logger.error(
        f"{context}: {type(error).__name__}: {error}",
        exc_info=error,
    )
    emit_error(error_code="internal_error", context=context)
