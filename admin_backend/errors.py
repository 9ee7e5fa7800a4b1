"""
Domain error taxonomy shared by the persistence, replication and settings layers.
"""

from __future__ import annotations

from typing import Any, Optional


class AdminBackendError(Exception):
    """Base class for every error the service layer raises on purpose."""

    status_code = 500
    error_type = "internal_error"

    def __init__(self, message: str, *, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self) -> dict:
        payload = {
            "success": False,
            "message": self.message,
            "error": self.error_type,
        }
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AdminBackendError):
    status_code = 400
    error_type = "validation_error"


class NotFoundError(AdminBackendError):
    status_code = 404
    error_type = "not_found"


class ConflictError(AdminBackendError):
    status_code = 409
    error_type = "conflict"


class InUseError(AdminBackendError):
    """Deletion refused because other data still references the record."""

    status_code = 409
    error_type = "in_use"


class DependencyError(AdminBackendError):
    """A backing service (database, blob store, cache) could not be reached."""

    status_code = 503
    error_type = "dependency_unavailable"


class CodeGenerationError(AdminBackendError):
    status_code = 500
    error_type = "code_generation_exhausted"
