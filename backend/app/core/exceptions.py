from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Base for errors the service layer hands back to the route layer."""

    code: str = "INTERNAL_ERROR"
    status_code_default: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: Any = None, headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(self.status_code_default, detail, headers)


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code_default = status.HTTP_400_BAD_REQUEST


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code_default = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = "Resource", headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(f"{resource} not found", headers)


class PreconditionFailedError(AppError):
    code = "PRECONDITION_FAILED"
    status_code_default = status.HTTP_400_BAD_REQUEST


class CapacityError(AppError):
    code = "FORBIDDEN"
    status_code_default = status.HTTP_403_FORBIDDEN


class AuthError(AppError):
    code = "UNAUTHORIZED"
    status_code_default = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: Any = "Invalid token", headers: Optional[Dict[str, str]] = None) -> None:
        super().__init__(detail, headers or {"WWW-Authenticate": "Bearer"})


class PermissionDeniedError(AppError):
    code = "FORBIDDEN"
    status_code_default = status.HTTP_403_FORBIDDEN
