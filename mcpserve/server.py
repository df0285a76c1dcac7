"""The server: registries of tools, prompts and resources, request handlers and sessions."""

from __future__ import annotations

import threading
from typing import Any, Callable, Iterable, Optional

from .errors import (
    MCPError,
    NotificationChannelBlockedError,
    NotificationNotInitializedError,
    PromptNotFoundError,
    RequestError,
    ResourceNotFoundError,
    SessionDoesNotSupportLoggingError,
    SessionDoesNotSupportToolsError,
    SessionExistsError,
    SessionNotFoundError,
    SessionNotInitializedError,
    ToolNotFoundError,
)
from .pagination import paginate
from .protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    RESOURCE_NOT_FOUND,
    Implementation,
    InitializeResult,
    JSONRPCNotification,
    LoggingLevel,
    NOTIFICATION_PROMPTS_LIST_CHANGED,
    NOTIFICATION_RESOURCES_LIST_CHANGED,
    NOTIFICATION_TOOLS_LIST_CHANGED,
    Prompt,
    Resource,
    ResourceTemplate,
    ServerCapabilities,
    ServerPrompt,
    ServerResource,
    ServerTool,
    Tool,
    negotiate_protocol_version,
)
from .session import (
    ClientSession,
    SessionHooks,
    SessionWithClientInfo,
    SessionWithLogging,
    SessionWithStreamableHTTPConfig,
    SessionWithTools,
    current_session,
)

Params = dict[str, Any]
Handler = Callable[[Params], Any]
ToolMiddleware = Callable[[Handler], Handler]
ToolFilter = Callable[[list[Tool]], list[Tool]]
NotificationHandler = Callable[[JSONRPCNotification], None]

_RESOURCE_DEFAULTS = {"subscribe": False, "listChanged": False}
_LIST_CHANGED_DEFAULTS = {"listChanged": False}


def recovery_middleware(next_handler: Handler) -> Handler:
    """Wrap a tool handler so that any exception it raises names the tool."""

    def handler(params: Params) -> Any:
        try:
            return next_handler(params)
        except Exception as exc:
            name = (params or {}).get("name", "")
            raise MCPError(f"panic recovered in {name} tool handler: {exc}") from exc

    return handler


def _flags(flags: Optional[dict[str, bool]], defaults: dict[str, bool]) -> Optional[dict[str, bool]]:
    if flags is None:
        return None
    return {**defaults, **{key: bool(value) for key, value in flags.items()}}


def _page_result(key: str, page: list[Any], next_cursor: str) -> dict[str, Any]:
    result: dict[str, Any] = {key: page}
    if next_cursor:
        result["nextCursor"] = next_cursor
    return result


def _call(request_id: Any, handler: Handler, params: Params) -> Any:
    try:
        return handler(params)
    except RequestError:
        raise
    except Exception as exc:
        raise RequestError(request_id, INTERNAL_ERROR, exc) from exc


class MCPServer:
    """A Model Context Protocol server holding tools, prompts, resources and sessions."""

    def __init__(
        self,
        name: str,
        version: str,
        *,
        capabilities: Optional[ServerCapabilities] = None,
        instructions: str = "",
        pagination_limit: Optional[int] = None,
        middlewares: Iterable[ToolMiddleware] = (),
        tool_filters: Iterable[ToolFilter] = (),
        recovery: bool = False,
        hooks: Optional[SessionHooks] = None,
    ) -> None:
        self.name = name
        self.version = version
        self.instructions = instructions
        self.pagination_limit = pagination_limit
        given = capabilities or ServerCapabilities()
        self._capabilities = ServerCapabilities(
            resources=_flags(given.resources, _RESOURCE_DEFAULTS),
            prompts=_flags(given.prompts, _LIST_CHANGED_DEFAULTS),
            tools=_flags(given.tools, _LIST_CHANGED_DEFAULTS),
            logging=given.logging,
        )
        self._middlewares: list[ToolMiddleware] = list(middlewares)
        if recovery:
            self._middlewares.append(recovery_middleware)
        self._tool_filters: list[ToolFilter] = list(tool_filters)
        self._hooks = hooks if hooks is not None else SessionHooks()

        self._lock = threading.RLock()
        self._resources: dict[str, ServerResource] = {}
        self._templates: dict[str, tuple[ResourceTemplate, Handler]] = {}
        self._prompts: dict[str, ServerPrompt] = {}
        self._tools: dict[str, ServerTool] = {}
        self._notification_handlers: dict[str, NotificationHandler] = {}
        self._sessions_lock = threading.Lock()
        self._sessions: dict[str, ClientSession] = {}

    # -- capabilities -------------------------------------------------------

    def _ensure_capability(self, kind: str, defaults: dict[str, bool]) -> None:
        with self._lock:
            if getattr(self._capabilities, kind) is None:
                setattr(self._capabilities, kind, dict(defaults))

    def _list_changed(self, kind: str) -> bool:
        flags = getattr(self._capabilities, kind)
        return bool(flags and flags.get("listChanged"))

    # -- registries ---------------------------------------------------------

    def add_resources(self, *args: ServerResource) -> None:
        """Register several resources at once."""
        self._ensure_capability("resources", _RESOURCE_DEFAULTS)
        with self._lock:
            for entry in args:
                self._resources[entry.resource.uri] = entry
        if self._list_changed("resources"):
            self.send_notification_to_all_clients(NOTIFICATION_RESOURCES_LIST_CHANGED, None)

    def add_resource(self, resource: Resource, handler: Handler) -> None:
        self.add_resources(ServerResource(resource, handler))

    def remove_resource(self, uri: str) -> None:
        with self._lock:
            removed = self._resources.pop(uri, None) is not None
        if removed and self._list_changed("resources"):
            self.send_notification_to_all_clients(NOTIFICATION_RESOURCES_LIST_CHANGED, None)

    def add_resource_template(self, template: ResourceTemplate, handler: Handler) -> None:
        self._ensure_capability("resources", _RESOURCE_DEFAULTS)
        with self._lock:
            self._templates[template.uri_template.raw] = (template, handler)
        if self._list_changed("resources"):
            self.send_notification_to_all_clients(NOTIFICATION_RESOURCES_LIST_CHANGED, None)

    def add_prompts(self, *args: ServerPrompt) -> None:
        """Register several prompts at once."""
        self._ensure_capability("prompts", _LIST_CHANGED_DEFAULTS)
        with self._lock:
            for entry in args:
                self._prompts[entry.prompt.name] = entry
        if self._list_changed("prompts"):
            self.send_notification_to_all_clients(NOTIFICATION_PROMPTS_LIST_CHANGED, None)

    def add_prompt(self, prompt: Prompt, handler: Optional[Handler]) -> None:
        self.add_prompts(ServerPrompt(prompt, handler))

    def delete_prompts(self, *args: str) -> None:
        """Remove prompts by name; unknown names are ignored."""
        with self._lock:
            removed = [name for name in args if self._prompts.pop(name, None) is not None]
        if removed and self._list_changed("prompts"):
            self.send_notification_to_all_clients(NOTIFICATION_PROMPTS_LIST_CHANGED, None)

    def add_tool(self, tool: Tool, handler: Optional[Handler]) -> None:
        self.add_tools(ServerTool(tool, handler))

    def add_tools(self, *args: ServerTool) -> None:
        """Register several tools at once."""
        self._ensure_capability("tools", {"listChanged": True})
        with self._lock:
            for entry in args:
                self._tools[entry.tool.name] = entry
        if self._list_changed("tools"):
            self.send_notification_to_all_clients(NOTIFICATION_TOOLS_LIST_CHANGED, None)

    def set_tools(self, *args: ServerTool) -> None:
        """Replace all registered tools with the given ones."""
        with self._lock:
            self._tools = {}
        self.add_tools(*args)

    def delete_tools(self, *args: str) -> None:
        """Remove tools by name; unknown names are ignored."""
        with self._lock:
            removed = [name for name in args if self._tools.pop(name, None) is not None]
        if removed and self._list_changed("tools"):
            self.send_notification_to_all_clients(NOTIFICATION_TOOLS_LIST_CHANGED, None)

    def add_notification_handler(self, method: str, handler: NotificationHandler) -> None:
        with self._lock:
            self._notification_handlers[method] = handler

    # -- request handlers ---------------------------------------------------

    def handle_initialize(self, request_id: Any, params: Optional[Params]) -> InitializeResult:
        params = params or {}
        with self._lock:
            caps = self._capabilities
            capabilities = ServerCapabilities(
                resources=dict(caps.resources) if caps.resources is not None else None,
                prompts=dict(caps.prompts) if caps.prompts is not None else None,
                tools=dict(caps.tools) if caps.tools is not None else None,
                logging=caps.logging,
            )
        result = InitializeResult(
            protocol_version=negotiate_protocol_version(params.get("protocolVersion")),
            server_info=Implementation(self.name, self.version),
            capabilities=capabilities,
            instructions=self.instructions,
        )
        session = current_session()
        if session is not None:
            session.initialize()
            if isinstance(session, SessionWithClientInfo):
                session.client_info = Implementation.from_dict(params.get("clientInfo"))
        return result

    def handle_ping(self, request_id: Any, params: Optional[Params]) -> dict[str, Any]:
        return {}

    def handle_set_level(self, request_id: Any, params: Optional[Params]) -> dict[str, Any]:
        session = current_session()
        if session is None or not session.is_initialized():
            raise RequestError(request_id, INTERNAL_ERROR, SessionNotInitializedError())
        if not isinstance(session, SessionWithLogging):
            raise RequestError(request_id, INTERNAL_ERROR, SessionDoesNotSupportLoggingError())
        level = (params or {}).get("level")
        try:
            parsed = LoggingLevel(level)
        except ValueError:
            raise RequestError(
                request_id, INVALID_PARAMS, ValueError(f"invalid logging level '{level}'")
            ) from None
        session.log_level = parsed
        return {}

    def _paginate(self, request_id: Any, items: list[Any], params: Optional[Params]) -> tuple[list[Any], str]:
        try:
            return paginate(items, (params or {}).get("cursor"), self.pagination_limit)
        except ValueError as exc:
            raise RequestError(request_id, INVALID_PARAMS, exc) from exc

    def handle_list_resources(self, request_id: Any, params: Optional[Params]) -> dict[str, Any]:
        with self._lock:
            resources = sorted((e.resource for e in self._resources.values()), key=lambda r: r.name)
        page, next_cursor = self._paginate(request_id, resources, params)
        return _page_result("resources", page, next_cursor)

    def handle_list_resource_templates(self, request_id: Any, params: Optional[Params]) -> dict[str, Any]:
        with self._lock:
            templates = sorted((t for t, _ in self._templates.values()), key=lambda t: t.name)
        page, next_cursor = self._paginate(request_id, templates, params)
        return _page_result("resourceTemplates", page, next_cursor)

    def handle_read_resource(self, request_id: Any, params: Optional[Params]) -> dict[str, Any]:
        request = dict(params or {})
        uri = request.get("uri", "")
        with self._lock:
            entry = self._resources.get(uri)
            handler: Optional[Handler] = entry.handler if entry is not None else None
            if entry is None:
                for template, template_handler in self._templates.values():
                    values = template.uri_template.match(uri)
                    if values is not None:
                        handler = template_handler
                        request["arguments"] = dict(values)
                        break
        if handler is None:
            raise RequestError(
                request_id,
                RESOURCE_NOT_FOUND,
                ResourceNotFoundError(f"handler not found for resource URI '{uri}': resource not found"),
            )
        return {"contents": _call(request_id, handler, request)}

    def handle_list_prompts(self, request_id: Any, params: Optional[Params]) -> dict[str, Any]:
        with self._lock:
            prompts = sorted((e.prompt for e in self._prompts.values()), key=lambda p: p.name)
        page, next_cursor = self._paginate(request_id, prompts, params)
        return _page_result("prompts", page, next_cursor)

    def handle_get_prompt(self, request_id: Any, params: Optional[Params]) -> Any:
        request = dict(params or {})
        name = request.get("name", "")
        with self._lock:
            entry = self._prompts.get(name)
        if entry is None:
            raise RequestError(
                request_id, INVALID_PARAMS, PromptNotFoundError(f"prompt '{name}' not found: prompt not found")
            )
        if entry.handler is None:
            raise RequestError(request_id, INTERNAL_ERROR, MCPError(f"prompt '{name}' has no handler"))
        return _call(request_id, entry.handler, request)

    def handle_list_tools(self, request_id: Any, params: Optional[Params]) -> dict[str, Any]:
        with self._lock:
            tools = {name: entry.tool for name, entry in self._tools.items()}
            filters = list(self._tool_filters)
        session = current_session()
        if isinstance(session, SessionWithTools):
            session_tools = session.session_tools
            if session_tools is not None:
                tools.update({name: entry.tool for name, entry in session_tools.items()})
        listed = [tools[name] for name in sorted(tools)]
        for tool_filter in filters:
            listed = list(tool_filter(listed) or [])
        page, next_cursor = self._paginate(request_id, listed, params)
        return _page_result("tools", page, next_cursor)

    def handle_call_tool(self, request_id: Any, params: Optional[Params]) -> Any:
        request = dict(params or {})
        name = request.get("name", "")
        entry: Optional[ServerTool] = None
        session = current_session()
        if isinstance(session, SessionWithTools):
            entry = (session.session_tools or {}).get(name)
        with self._lock:
            if entry is None:
                entry = self._tools.get(name)
            middlewares = list(self._middlewares)
        if entry is None:
            raise RequestError(
                request_id, INVALID_PARAMS, ToolNotFoundError(f"tool '{name}' not found: tool not found")
            )
        if entry.handler is None:
            raise RequestError(request_id, INTERNAL_ERROR, MCPError(f"tool '{name}' has no handler"))
        handler = entry.handler
        for middleware in reversed(middlewares):
            handler = middleware(handler)
        return _call(request_id, handler, request)

    def handle_notification(self, notification: JSONRPCNotification) -> None:
        with self._lock:
            handler = self._notification_handlers.get(notification.method)
        if handler is not None:
            handler(notification)

    # -- sessions -----------------------------------------------------------

    def register_session(self, session: ClientSession) -> None:
        """Track a session so it receives list-change notifications."""
        with self._sessions_lock:
            if session.session_id in self._sessions:
                raise SessionExistsError()
            self._sessions[session.session_id] = session
        self._hooks.register_session(session)

    def unregister_session(self, session_id: str) -> None:
        with self._sessions_lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            self._hooks.unregister_session(session)

    def _lookup_session(self, session_id: str) -> ClientSession:
        with self._sessions_lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError()
        return session

    def _report_blocked(self, session_id: str, method: str) -> None:
        self._hooks.report_error(
            "notification",
            {"method": method, "sessionID": session_id},
            NotificationChannelBlockedError(f"notification channel blocked for session {session_id}"),
        )

    def _deliver(self, session: ClientSession, method: str, params: Optional[Params]) -> None:
        notification = JSONRPCNotification(method=method, params=dict(params) if params else None)
        if not session.send(notification):
            self._report_blocked(session.session_id, method)
            raise NotificationChannelBlockedError()

    def send_notification_to_all_clients(self, method: str, params: Optional[Params]) -> None:
        """Notify every initialized session; blocked deliveries go to the error hooks."""
        with self._sessions_lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            if not session.is_initialized():
                continue
            try:
                self._deliver(session, method, params)
            except NotificationChannelBlockedError:
                pass

    def send_notification_to_client(self, method: str, params: Optional[Params]) -> None:
        """Notify the session bound to the running context."""
        session = current_session()
        if session is None or not session.is_initialized():
            raise NotificationNotInitializedError()
        if isinstance(session, SessionWithStreamableHTTPConfig):
            session.upgrade_to_sse()
        self._deliver(session, method, params)

    def send_notification_to_specific_client(self, session_id: str, method: str, params: Optional[Params]) -> None:
        session = self._lookup_session(session_id)
        if not session.is_initialized():
            raise SessionNotInitializedError()
        if isinstance(session, SessionWithStreamableHTTPConfig):
            session.upgrade_to_sse()
        self._deliver(session, method, params)

    def _tools_session(self, session_id: str) -> SessionWithTools:
        session = self._lookup_session(session_id)
        if not isinstance(session, SessionWithTools):
            raise SessionDoesNotSupportToolsError()
        return session

    def _notify_session_tools_changed(self, session: SessionWithTools, action: str) -> None:
        if not (session.is_initialized() and self._list_changed("tools")):
            return
        try:
            self.send_notification_to_specific_client(
                session.session_id, NOTIFICATION_TOOLS_LIST_CHANGED, None
            )
        except MCPError as exc:
            error = MCPError(f"failed to send notification after {action} tools: {exc}")
            error.__cause__ = exc
            self._hooks.report_error(
                "notification",
                {"method": NOTIFICATION_TOOLS_LIST_CHANGED, "sessionID": session.session_id},
                error,
            )

    def add_session_tool(self, session_id: str, tool: Tool, handler: Optional[Handler]) -> None:
        self.add_session_tools(session_id, ServerTool(tool, handler))

    def add_session_tools(self, session_id: str, *args: ServerTool) -> None:
        """Give one session tools of its own, overriding global tools of the same name."""
        session = self._tools_session(session_id)
        self._ensure_capability("tools", {"listChanged": True})
        tools = dict(session.session_tools or {})
        tools.update({entry.tool.name: entry for entry in args})
        session.session_tools = tools
        self._notify_session_tools_changed(session, "adding")

    def delete_session_tools(self, session_id: str, *args: str) -> None:
        session = self._tools_session(session_id)
        existing = session.session_tools
        if existing is None:
            return
        session.session_tools = {name: entry for name, entry in existing.items() if name not in args}
        self._notify_session_tools_changed(session, "deleting")