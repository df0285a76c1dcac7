import threading
from typing import Optional

import pytest

from mcpserve.protocol import (
    Implementation,
    JSONRPCNotification,
    LoggingLevel,
    ServerTool,
    Tool,
)
from mcpserve.session import (
    BasicSession,
    ClientSession,
    SessionHooks,
    SessionWithClientInfo,
    SessionWithLogging,
    SessionWithStreamableHTTPConfig,
    SessionWithTools,
    current_session,
    use_session,
)


class ToolsSession(BasicSession, SessionWithTools):
    def __init__(self, session_id, tools=None, **kwargs):
        super().__init__(session_id, **kwargs)
        self._tools = dict(tools) if tools is not None else None

    @property
    def session_tools(self) -> Optional[dict]:
        return dict(self._tools) if self._tools is not None else None

    @session_tools.setter
    def session_tools(self, tools) -> None:
        self._tools = dict(tools) if tools is not None else None


class LoggingSession(BasicSession, SessionWithLogging):
    def initialize(self) -> None:
        self._level = LoggingLevel.ERROR
        super().initialize()

    @property
    def log_level(self) -> LoggingLevel:
        return self._level

    @log_level.setter
    def log_level(self, level: LoggingLevel) -> None:
        self._level = level


class InfoSession(BasicSession, SessionWithClientInfo):
    _info = Implementation()

    @property
    def client_info(self) -> Implementation:
        return self._info

    @client_info.setter
    def client_info(self, info: Implementation) -> None:
        self._info = info


def test_basic_session_id_and_initialization():
    session = BasicSession("session-1", capacity=10)
    assert session.session_id == "session-1"
    assert session.is_initialized() is False
    session.initialize()
    assert session.is_initialized() is True


def test_basic_session_initialized_flag_in_constructor():
    assert BasicSession("s", initialized=True).is_initialized() is True


def test_send_delivers_in_order():
    session = BasicSession("s", capacity=10, initialized=True)
    for index in range(10):
        assert session.send(JSONRPCNotification("method", {"count": index})) is True
    received = [session.notifications.get_nowait() for _ in range(10)]
    assert [n.method for n in received] == ["method"] * 10
    assert [n.params["count"] for n in received] == list(range(10))
    assert session.notifications.empty()


def test_send_reports_blocked_channel():
    session = BasicSession("blocked-session", capacity=1, initialized=True)
    assert session.send(JSONRPCNotification("first-message")) is True
    assert session.send(JSONRPCNotification("blocked-message")) is False
    assert session.notifications.get_nowait().method == "first-message"
    assert session.notifications.empty()


def test_zero_capacity_always_blocked():
    session = BasicSession("s", capacity=0, initialized=True)
    assert session.send(JSONRPCNotification("m")) is False
    assert session.notifications.empty()


def test_negative_capacity_rejected():
    with pytest.raises(ValueError):
        BasicSession("s", capacity=-1)


def test_client_session_is_abstract():
    with pytest.raises(TypeError):
        ClientSession()


def test_extension_without_implementation_is_abstract():
    class Incomplete(BasicSession, SessionWithTools):
        pass

    with pytest.raises(TypeError):
        Incomplete("s")

    plain = BasicSession("plain")
    assert plain.session_id == "plain"
    assert not isinstance(plain, SessionWithTools)


def test_streamable_extension_requires_upgrade():
    class Incomplete(BasicSession, SessionWithStreamableHTTPConfig):
        pass

    with pytest.raises(TypeError):
        Incomplete("s")

    class Complete(BasicSession, SessionWithStreamableHTTPConfig):
        upgraded = False

        def upgrade_to_sse(self) -> None:
            self.upgraded = True

    session = Complete("streamable", capacity=1, initialized=True)
    assert session.session_id == "streamable"
    assert session.is_initialized() is True
    assert session.send(JSONRPCNotification("streamed")) is True
    assert session.send(JSONRPCNotification("overflow")) is False
    assert session.notifications.get_nowait().method == "streamed"
    assert session.notifications.empty()
    session.upgrade_to_sse()
    assert session.upgraded is True
    assert isinstance(session, ClientSession)
    assert not isinstance(BasicSession("plain"), SessionWithStreamableHTTPConfig)


def test_session_tools_extension():
    tool = ServerTool(Tool("session-tool"))
    session = ToolsSession("session-1", tools={"session-tool": tool}, initialized=True)
    assert isinstance(session, SessionWithTools)
    assert isinstance(session, ClientSession)
    tools = session.session_tools
    assert list(tools) == ["session-tool"]
    assert tools["session-tool"].tool.name == "session-tool"


def test_logging_extension_default_level():
    session = LoggingSession("session-1", capacity=1)
    assert session.session_id == "session-1"
    assert session.is_initialized() is False
    session.initialize()
    assert session.is_initialized() is True
    assert session.send(JSONRPCNotification("notifications/message")) is True
    assert session.notifications.get_nowait().method == "notifications/message"
    assert session.log_level is LoggingLevel.ERROR
    session.log_level = LoggingLevel.CRITICAL
    assert session.log_level is LoggingLevel.CRITICAL
    assert isinstance(session, SessionWithLogging)
    assert not isinstance(BasicSession("plain"), SessionWithLogging)


def test_client_info_extension():
    session = InfoSession("session-1")
    assert session.client_info == Implementation()
    session.client_info = Implementation("test-client", "1.0.0")
    assert session.client_info.name == "test-client"
    assert session.client_info.version == "1.0.0"
    assert isinstance(session, SessionWithClientInfo)


def test_current_session_defaults_to_none():
    assert current_session() is None


def test_use_session_binds_and_restores():
    outer = BasicSession("outer")
    inner = BasicSession("inner")
    with use_session(outer) as bound:
        assert bound is outer
        assert current_session() is outer
        with use_session(inner):
            assert current_session().session_id == "inner"
        assert current_session() is outer
    assert current_session() is None


def test_use_session_restores_after_exception():
    session = BasicSession("s")
    with pytest.raises(RuntimeError):
        with use_session(session):
            raise RuntimeError("boom")
    assert current_session() is None


def test_use_session_not_visible_in_other_thread():
    seen = []
    session = BasicSession("s")
    with use_session(session):
        worker = threading.Thread(target=lambda: seen.append(current_session()))
        worker.start()
        worker.join()
        assert current_session() is session
    assert len(seen) == 1
    assert seen[0] is None


def test_hooks_register_and_unregister():
    registered = []
    unregistered = []
    hooks = SessionHooks()
    hooks.on_register_session.append(registered.append)
    hooks.on_unregister_session.append(unregistered.append)
    session = BasicSession("test-session-id")
    hooks.register_session(session)
    assert [s.session_id for s in registered] == ["test-session-id"]
    assert unregistered == []
    hooks.unregister_session(session)
    assert unregistered == [session]


def test_hooks_report_error_passes_arguments():
    captured = []
    hooks = SessionHooks(on_error=[lambda method, message, error: captured.append((method, message, error))])
    error = RuntimeError("notification channel blocked")
    message = {"method": "blocked-message", "sessionID": "blocked-session"}
    hooks.report_error("notification", message, error)
    assert captured == [("notification", message, error)]


def test_hooks_call_every_callback_in_order():
    order = []
    hooks = SessionHooks(
        on_register_session=[lambda s: order.append(("a", s.session_id)), lambda s: order.append(("b", s.session_id))]
    )
    hooks.register_session(BasicSession("x"))
    assert order == [("a", "x"), ("b", "x")]