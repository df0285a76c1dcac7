"""Exceptions raised by the server and its request handlers."""

from __future__ import annotations

from typing import Any

from .protocol import JSONRPCError, create_error_response


class MCPError(Exception):
    """Base class for all errors raised by the server."""

    default_message = "mcp error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.default_message)


class RequestError(MCPError):
    """An error tied to a request id that converts to a JSON-RPC error."""

    def __init__(self, request_id: Any, code: int, error: BaseException) -> None:
        super().__init__(f"request error: {error}")
        self.request_id = request_id
        self.code = code
        self.error = error
        self.__cause__ = error

    def to_jsonrpc_error(self) -> JSONRPCError:
        """Build the JSON-RPC error message for this failure."""
        return create_error_response(self.request_id, self.code, str(self.error))


class UnparsableMessageError(MCPError):
    """Raised when a request's parameters cannot be decoded."""

    def __init__(self, message: bytes | str, method: str, error: BaseException) -> None:
        super().__init__(f"unparsable {method} request: {error}")
        self.message = message
        self.method = method
        self.error = error
        self.__cause__ = error


class UnsupportedError(MCPError):
    default_message = "not supported"


class ToolNotFoundError(MCPError):
    default_message = "tool not found"


class PromptNotFoundError(MCPError):
    default_message = "prompt not found"


class ResourceNotFoundError(MCPError):
    default_message = "resource not found"


class SessionExistsError(MCPError):
    default_message = "session already exists"


class SessionNotFoundError(MCPError):
    default_message = "session not found"


class SessionNotInitializedError(MCPError):
    default_message = "session not properly initialized"


class SessionDoesNotSupportToolsError(MCPError):
    default_message = "session does not support per-session tools"


class SessionDoesNotSupportLoggingError(MCPError):
    default_message = "session does not support setting logging level"


class NotificationNotInitializedError(MCPError):
    default_message = "notification channel not initialized"


class NotificationChannelBlockedError(MCPError):
    default_message = "notification channel blocked"