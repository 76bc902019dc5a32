from __future__ import annotations

from typing import Any, Dict, List, Optional


class DomainError(Exception):
    """
    Base class for errors raised by services.

    Each subclass carries the HTTP status it maps to; the API layer turns any
    DomainError into the JSON error envelope in one place (see main.py).
    """

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, details: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(DomainError):
    status_code = 404
    code = "not_found"


class ForbiddenError(DomainError):
    status_code = 403
    code = "forbidden"


class UnauthorizedError(DomainError):
    status_code = 401
    code = "unauthorized"


class ValidationError(DomainError):
    status_code = 400
    code = "validation_error"


class InvalidSplitType(ValidationError):
    code = "invalid_split_type"


class ConflictError(DomainError):
    """Storage rejected the transaction (write conflict, constraint, lock). Not retried."""

    status_code = 409
    code = "conflict"
