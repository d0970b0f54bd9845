from fastapi import status


class AppError(Exception):
    """Base class for errors surfaced to API callers"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "APP_ERROR"

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(AppError):
    """Missing field, blank title/content, unknown category, bad parameters"""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class AuthError(AppError):
    """Missing or invalid bearer credential"""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message)


class NotFoundError(AppError):
    """Operation targets an id that does not resolve"""
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"

    def __init__(self, message: str = "Post not found"):
        super().__init__(message)


class InvalidTransitionError(AppError):
    """Lifecycle transition not allowed from the post's current status"""
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_TRANSITION"


class SchemaCompatibilityError(AppError):
    """Store lacks the is_deleted / deleted_at lifecycle columns"""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "SCHEMA_INCOMPATIBLE"


class TransientStoreError(AppError):
    """Network or store-layer failure; the caller decides whether to retry"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STORE_UNAVAILABLE"
