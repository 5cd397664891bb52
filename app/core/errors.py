"""Client-facing API errors rendered as ``{"code", "message"}`` bodies."""

from __future__ import annotations

from fastapi import status


class ApiError(Exception):
    """An error that maps directly onto an HTTP response."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        *,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.headers = headers

    @classmethod
    def bad_request(cls, message: str) -> "ApiError":
        return cls(status.HTTP_400_BAD_REQUEST, "BAD_REQUEST", message)

    @classmethod
    def unauthorized(cls, message: str) -> "ApiError":
        return cls(
            status.HTTP_401_UNAUTHORIZED,
            "UNAUTHORIZED",
            message,
            headers={"WWW-Authenticate": "Bearer"},
        )
