"""Client sessions, the current-session context and session lifecycle hooks."""

from __future__ import annotations

import queue
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from .protocol import Implementation, JSONRPCNotification, LoggingLevel, ServerTool


class ClientSession(ABC):
    """An active connection the server can push notifications to."""

    @property
    @abstractmethod
    def session_id(self) -> str:
        """Unique identifier of the session."""

    @abstractmethod
    def initialize(self) -> None:
        """Mark the session as ready to receive notifications."""

    @abstractmethod
    def is_initialized(self) -> bool:
        """Return whether the session accepts notifications."""

    @abstractmethod
    def send(self, notification: JSONRPCNotification) -> bool:
        """Deliver a notification without waiting; return False if the channel is full."""


class SessionWithLogging(ClientSession):
    """A session that keeps a minimum log level chosen by the client."""

    @property
    @abstractmethod
    def log_level(self) -> LoggingLevel:
        """The minimum level of log messages sent to the client."""

    @log_level.setter
    @abstractmethod
    def log_level(self, level: LoggingLevel) -> None: ...


class SessionWithTools(ClientSession):
    """A session that carries tools of its own, overriding the server's."""

    @property
    @abstractmethod
    def session_tools(self) -> Optional[dict[str, ServerTool]]:
        """A copy of the session's tools by name, or None if it has none."""

    @session_tools.setter
    @abstractmethod
    def session_tools(self, tools: Optional[dict[str, ServerTool]]) -> None: ...


class SessionWithClientInfo(ClientSession):
    """A session that remembers which client implementation it talks to."""

    @property
    @abstractmethod
    def client_info(self) -> Implementation:
        """Name and version the client reported at initialization."""

    @client_info.setter
    @abstractmethod
    def client_info(self, info: Implementation) -> None: ...


class SessionWithStreamableHTTPConfig(ClientSession):
    """A session whose transport switches to an event stream once notified."""

    @abstractmethod
    def upgrade_to_sse(self) -> None:
        """Switch the response to an event stream because notifications follow."""


class BasicSession(ClientSession):
    """A session that buffers notifications in a bounded queue.

    A capacity of zero behaves like an unbuffered channel with no reader:
    every delivery is reported as blocked.
    """

    def __init__(self, session_id: str, capacity: int = 100, initialized: bool = False) -> None:
        if capacity < 0:
            raise ValueError(f"capacity must not be negative, got {capacity}")
        self._session_id = session_id
        self._capacity = capacity
        self._initialized = threading.Event()
        if initialized:
            self._initialized.set()
        self.notifications: queue.Queue[JSONRPCNotification] = queue.Queue(
            maxsize=max(capacity, 1)
        )

    @property
    def session_id(self) -> str:
        return self._session_id

    def initialize(self) -> None:
        self._initialized.set()

    def is_initialized(self) -> bool:
        return self._initialized.is_set()

    def send(self, notification: JSONRPCNotification) -> bool:
        if self._capacity == 0:
            return False
        try:
            self.notifications.put_nowait(notification)
        except queue.Full:
            return False
        return True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(session_id={self._session_id!r})"


SessionCallback = Callable[[ClientSession], None]
ErrorCallback = Callable[[str, Any, BaseException], None]


@dataclass
class SessionHooks:
    """Callbacks run when sessions come and go or a delivery fails."""

    on_register_session: list[SessionCallback] = field(default_factory=list)
    on_unregister_session: list[SessionCallback] = field(default_factory=list)
    on_error: list[ErrorCallback] = field(default_factory=list)

    def register_session(self, session: ClientSession) -> None:
        for callback in self.on_register_session:
            callback(session)

    def unregister_session(self, session: ClientSession) -> None:
        for callback in self.on_unregister_session:
            callback(session)

    def report_error(self, method: str, message: Any, error: BaseException) -> None:
        for callback in self.on_error:
            callback(method, message, error)


_current_session: ContextVar[Optional[ClientSession]] = ContextVar(
    "mcpserve_current_session", default=None
)


def current_session() -> Optional[ClientSession]:
    """Return the session bound to the running context, if any."""
    return _current_session.get()


@contextmanager
def use_session(session: Optional[ClientSession]) -> Iterator[Optional[ClientSession]]:
    """Bind a session to the running context for the duration of the block."""
    token = _current_session.set(session)
    try:
        yield session
    finally:
        _current_session.reset(token)