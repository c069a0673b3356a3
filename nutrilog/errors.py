"""
Error taxonomy shared by services and the HTTP boundary.

Services raise these; nutrilog.main translates them to status codes with the
same ``{"detail": ...}`` body FastAPI uses for HTTPException.
"""
from typing import Optional


class NutrilogError(Exception):
    status_code = 500
    default_detail = "Internal error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(NutrilogError):
    status_code = 404
    default_detail = "Not found"


class ValidationError(NutrilogError):
    status_code = 400
    default_detail = "Invalid input"


class AuthError(NutrilogError):
    status_code = 401
    default_detail = "Unauthorized"


class ConflictError(NutrilogError):
    status_code = 409
    default_detail = "Conflict"


class StorageError(NutrilogError):
    status_code = 500
    default_detail = "Storage error"


class TransientError(NutrilogError):
    """Follower failure; logged and swallowed, never returned to a caller."""
    status_code = 500
    default_detail = "Transient failure"
