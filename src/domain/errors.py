"""
Service-level error hierarchy.

Services raise these; the API layer maps ``status_code`` straight onto the
HTTP response so route handlers stay free of status bookkeeping.
"""

from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    status_code = 400

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error


class ValidationFailed(ServiceError):
    status_code = 400


class PermissionDenied(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class Conflict(ServiceError):
    status_code = 409


class InvalidStateTransition(Conflict):
    """Raised when a status change violates a lifecycle table."""
