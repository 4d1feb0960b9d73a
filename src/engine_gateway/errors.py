from __future__ import annotations

DECODE_ERROR_MESSAGE = "Request body cannot be properly deserialized"


class GatewayError(Exception):
    """Base class for failures reported to the client as plain text.

    Example:
        ```python
        raise GatewayError("engine went away")
        ```
    """

    status = 503


class DecodeError(GatewayError):
    """Request body does not bind to the expected request shape."""

    status = 400

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(DECODE_ERROR_MESSAGE)
        self.detail = detail


class EngineUnavailable(GatewayError):
    """No engine session could be reached at acquire time."""


class EngineExecutionError(GatewayError):
    """The engine received the operation and raised an error."""
