"""Tests for error types and their response bodies."""

import orjson
import pytest
from fastapi import HTTPException

from academy.errors import (
    AppError,
    BadRequestError,
    CacheUnavailableError,
    IndexOutOfRangeError,
    Message,
    MessageType,
    NotFoundError,
    Result,
    app_error_handler,
)


class TestMessage:
    """Test Message model."""

    def test_message_alias(self) -> None:
        """messageType is accepted by alias and by name."""
        by_alias = Message(code="E", messageType=MessageType.ERROR, text="x")
        by_name = Message(code="E", message_type=MessageType.WARNING, text="x")
        assert by_alias.message_type == MessageType.ERROR
        assert by_name.model_dump(by_alias=True)["messageType"] == MessageType.WARNING

    def test_result_with_messages(self) -> None:
        """Result contains list of messages."""
        result = Result(
            messages=[
                Message(code="E1", message_type=MessageType.ERROR, text="First"),
                Message(code="E2", message_type=MessageType.INFO, text="Second"),
            ]
        )
        assert len(result.messages) == 2


class TestAppErrors:
    """Test HTTP-facing error classes."""

    def test_not_found(self) -> None:
        """NotFoundError is a 404 naming the resource."""
        error = NotFoundError("User", "u1")
        assert isinstance(error, HTTPException)
        assert error.status_code == 404
        assert error.code == "NotFound"
        assert error.text == "User with identifier 'u1' not found"
        assert error.resource_type == "User"

    def test_bad_request(self) -> None:
        """BadRequestError is a 400."""
        error = BadRequestError("'page' must be an integer")
        assert error.status_code == 400
        assert error.detail == "'page' must be an integer"

    def test_index_out_of_range(self) -> None:
        """Range errors report the valid bounds."""
        error = IndexOutOfRangeError(5, 3)
        assert isinstance(error, BadRequestError)
        assert error.text == "Index must be between 1 and 3"
        assert (error.index, error.total) == (5, 3)

    def test_to_result(self) -> None:
        """to_result renders one timestamped message."""
        result = NotFoundError("Quiz", "q9").to_result()
        assert result.messages[0].code == "NotFound"
        assert result.messages[0].timestamp is not None

    @pytest.mark.asyncio
    async def test_handler_response(self) -> None:
        """The handler returns the status code and a Result body."""
        response = await app_error_handler(None, AppError(409, "Conflict", "taken"))  # type: ignore[arg-type]
        body = orjson.loads(response.body)
        assert response.status_code == 409
        assert body["messages"][0]["messageType"] == "Error"
        assert body["messages"][0]["text"] == "taken"


class TestCacheUnavailableError:
    """Test the internal cache failure."""

    def test_message_includes_cause(self) -> None:
        """The operation and cause are in the message."""
        error = CacheUnavailableError("scan", ConnectionError("refused"))
        assert error.operation == "scan"
        assert str(error) == "Cache operation 'scan' failed: refused"

    def test_without_cause(self) -> None:
        """The cause is optional."""
        assert str(CacheUnavailableError("get")) == "Cache operation 'get' failed"
        assert not isinstance(CacheUnavailableError("get"), HTTPException)
