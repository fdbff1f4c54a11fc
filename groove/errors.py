from __future__ import annotations

from typing import Any, Optional


class GrooveError(Exception):
    """Base class for every error the board core raises on purpose."""

    status_code = 500
    default_code = "internal_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}


class ValidationError(GrooveError):
    """Malformed or missing input, raised before authorization or persistence."""

    status_code = 400
    default_code = "invalid_input"


class AuthorizationError(GrooveError):
    """The caller is known but the role does not grant the capability."""

    status_code = 403
    default_code = "forbidden"


class NotFoundError(GrooveError):
    """The entity is absent, or the caller may not know that it exists."""

    status_code = 404
    default_code = "not_found"


class DomainError(GrooveError):
    """A business rule refused the change."""

    status_code = 409
    default_code = "rule_violation"
