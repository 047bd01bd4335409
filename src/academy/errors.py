"""Error types for the academy core.

HTTP-facing errors carry a status code and render to a Result/Message body,
so a host application can mount ``app_error_handler`` directly. Cache
failures are internal and never reach the caller: the cache layer catches
``CacheUnavailableError`` and falls through to the primary store.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class MessageType(str, Enum):
    """Type of message in error response."""

    ERROR = "Error"
    WARNING = "Warning"
    INFO = "Info"
    EXCEPTION = "Exception"


class Message(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    code: str
    message_type: MessageType = Field(alias="messageType")
    text: str
    timestamp: str | None = None


class Result(BaseModel):
    model_config = {"extra": "forbid"}

    messages: list[Message]


class AppError(HTTPException):
    """Base exception for errors reported to the caller."""

    def __init__(
        self,
        status_code: int,
        code: str,
        text: str,
        message_type: MessageType = MessageType.ERROR,
    ):
        self.code = code
        self.text = text
        self.message_type = message_type
        super().__init__(status_code=status_code, detail=text)

    def to_result(self) -> Result:
        """Convert to a Result body."""
        return Result(
            messages=[
                Message(
                    code=self.code,
                    messageType=self.message_type,
                    text=self.text,
                    timestamp=datetime.now(UTC).isoformat(),
                )
            ]
        )


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(self, resource_type: str, identifier: str):
        self.resource_type = resource_type
        self.identifier = identifier
        super().__init__(
            status_code=404,
            code="NotFound",
            text=f"{resource_type} with identifier '{identifier}' not found",
        )


class BadRequestError(AppError):
    """Invalid request (400)."""

    def __init__(self, text: str):
        super().__init__(
            status_code=400,
            code="BadRequest",
            text=text,
        )


class IndexOutOfRangeError(BadRequestError):
    """Requested position is outside 1..total."""

    def __init__(self, index: int, total: int):
        self.index = index
        self.total = total
        super().__init__(f"Index must be between 1 and {total}")


class CacheUnavailableError(Exception):
    """The cache store could not be reached or rejected the command."""

    def __init__(self, operation: str, cause: BaseException | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Cache operation '{operation}' failed{detail}")


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Exception handler for AppError subclasses."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_result().model_dump(by_alias=True),
    )
