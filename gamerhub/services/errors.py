"""
gamerhub.services.errors — Service-layer exceptions
=====================================================

REST-facing services raise these; :mod:`gamerhub.api.main` maps them to
``{"error": {"code": ..., "message": ...}}`` JSON responses.  Hub paths never
raise them: failures there are silent early returns.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base for every expected, client-attributable failure."""

    status_code = 400
    code = "SERVICE_ERROR"

    def __init__(self, message: str, details=None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(ServiceError):
    status_code = 403
    code = "FORBIDDEN"


class ValidationError(ServiceError):
    status_code = 400
    code = "VALIDATION_ERROR"


class ConflictError(ServiceError):
    status_code = 409
    code = "CONFLICT"
