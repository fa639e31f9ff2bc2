# backend/app/core/exceptions.py
"""
Error taxonomy shared by services and the HTTP layer.

Services raise these; ``app.main`` renders them as ``{"error", "code"}``
bodies with the matching status code.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for errors with a stable code and HTTP status"""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    code = "unauthenticated"


class PermissionDeniedError(AppError):
    status_code = 403
    code = "permission_denied"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"


class SignatureMismatchError(AppError):
    status_code = 401
    code = "signature_mismatch"


class ExternalGatewayError(AppError):
    """Upstream failure; callers may retry (verify-by-pull is the retry path)"""

    status_code = 502
    code = "gateway_error"

    @classmethod
    def timeout(cls, message: str) -> "ExternalGatewayError":
        return cls(message, code="gateway_timeout", status_code=504)


class PartialDeletionError(AppError):
    """One or more collections could not be purged; the tenant row was kept"""

    status_code = 207
    code = "partial_deletion"

    def __init__(self, message: str, report: Any):
        super().__init__(message)
        self.report = report

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.update({
            "deletedIdentityCount": self.report.deleted_identity_count,
            "deletedByCollection": dict(self.report.deleted_by_collection),
            "failedCollections": dict(self.report.failed_collections),
        })
        return body
