from __future__ import annotations

from collections.abc import Mapping


class CareerClientError(Exception):
    """Base class for errors raised by the career API client."""


class ApiError(CareerClientError):
    """A non-success response carrying the backend's error envelope."""

    def __init__(
        self,
        status: int,
        *,
        code: str = "UNKNOWN_ERROR",
        message: str = "Request failed",
        details: list[str] | None = None,
        trace_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.details = details
        self.trace_id = trace_id

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401

    def __str__(self) -> str:
        return f"{self.message} (status={self.status}, code={self.code})"


class ResponseParseError(CareerClientError):
    """A success response whose body is not a valid envelope."""

    def __init__(self, status: int, reason: str) -> None:
        super().__init__(reason)
        self.status = status
        self.reason = reason


def to_user_error_message(
    error: BaseException,
    fallback: str,
    *,
    by_code: Mapping[str, str] | None = None,
    by_status: Mapping[int, str] | None = None,
) -> str:
    if isinstance(error, ApiError):
        if by_code and error.code in by_code:
            return by_code[error.code]
        if by_status and error.status in by_status:
            return by_status[error.status]
        return error.message or fallback

    message = str(error).strip()
    return message or fallback
