"""
API error types.

Every error raised by a handler or service is an HTTPException subclass, so
FastAPI routes it through the single envelope handler registered in main.py.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException


class ApiError(HTTPException):
    status_code = 500

    def __init__(self, message: str, **extra: Any):
        super().__init__(status_code=self.status_code, detail=message)
        self.extra: Dict[str, Any] = extra


class ValidationError(ApiError):
    status_code = 400


class StateConflictError(ApiError):
    """Request is well formed but the current state forbids it (stock, empty cart)."""
    status_code = 400


class AuthError(ApiError):
    status_code = 401


class ForbiddenError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


def error_body(message: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": True, "message": message}
    if extra:
        body.update(extra)
    return body
