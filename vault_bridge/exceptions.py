"""
HTTP layer exceptions
"""

from typing import Any

from fastapi import HTTPException, status


class ApiError(HTTPException):
    """HTTP error rendered as ``{"error": detail, **extra}``"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.extra = extra or {}
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.detail, **self.extra}


class ValidationError(ApiError):
    """Validation error exception"""

    def __init__(self, detail: str = "Validation error", **extra: Any):
        super().__init__(status.HTTP_400_BAD_REQUEST, detail, extra)


class ForbiddenError(ApiError):
    """Forbidden error exception"""

    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status.HTTP_403_FORBIDDEN, detail)
