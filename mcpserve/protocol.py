"""Protocol constants and message types exchanged with clients."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .uritemplate import URITemplate

JSONRPC_VERSION = "2.0"
LATEST_PROTOCOL_VERSION = "2025-03-26"
VALID_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26")

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
RESOURCE_NOT_FOUND = -32002

METHOD_INITIALIZE = "initialize"
METHOD_PING = "ping"
METHOD_RESOURCES_LIST = "resources/list"
METHOD_RESOURCES_TEMPLATES_LIST = "resources/templates/list"
METHOD_RESOURCES_READ = "resources/read"
METHOD_PROMPTS_LIST = "prompts/list"
METHOD_PROMPTS_GET = "prompts/get"
METHOD_TOOLS_LIST = "tools/list"
METHOD_TOOLS_CALL = "tools/call"
METHOD_SET_LOG_LEVEL = "logging/setLevel"

NOTIFICATION_RESOURCES_LIST_CHANGED = "notifications/resources/list_changed"
NOTIFICATION_PROMPTS_LIST_CHANGED = "notifications/prompts/list_changed"
NOTIFICATION_TOOLS_LIST_CHANGED = "notifications/tools/list_changed"


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    return value


class LoggingLevel(str, enum.Enum):
    """Syslog-style severity levels a client may request."""

    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    ALERT = "alert"
    EMERGENCY = "emergency"


@dataclass
class Implementation:
    """Name and version of a client or server."""

    name: str = ""
    version: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "version": self.version}

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "Implementation":
        data = data or {}
        return cls(name=str(data.get("name", "")), version=str(data.get("version", "")))


def _default_input_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


@dataclass
class Tool:
    """A tool the server offers for clients to call."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=_default_input_schema)
    annotations: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.description:
            out["description"] = self.description
        out["inputSchema"] = _to_jsonable(self.input_schema)
        if self.annotations:
            out["annotations"] = _to_jsonable(self.annotations)
        return out


@dataclass
class PromptArgument:
    """An argument accepted by a prompt."""

    name: str
    description: str = ""
    required: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.description:
            out["description"] = self.description
        if self.required:
            out["required"] = True
        return out


@dataclass
class Prompt:
    """A prompt template the server offers."""

    name: str
    description: str = ""
    arguments: list[PromptArgument] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.description:
            out["description"] = self.description
        if self.arguments:
            out["arguments"] = [argument.to_dict() for argument in self.arguments]
        return out


@dataclass
class Resource:
    """A resource identified by a fixed URI."""

    uri: str
    name: str
    description: str = ""
    mime_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"uri": self.uri, "name": self.name}
        if self.description:
            out["description"] = self.description
        if self.mime_type:
            out["mimeType"] = self.mime_type
        return out


@dataclass
class ResourceTemplate:
    """A family of resources described by a URI template."""

    uri_template: URITemplate
    name: str
    description: str = ""
    mime_type: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.uri_template, str):
            self.uri_template = URITemplate(self.uri_template)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"uriTemplate": str(self.uri_template), "name": self.name}
        if self.description:
            out["description"] = self.description
        if self.mime_type:
            out["mimeType"] = self.mime_type
        return out


@dataclass
class ServerTool:
    """A tool together with the callable that runs it."""

    tool: Tool
    handler: Optional[Callable[..., Any]] = None


@dataclass
class ServerPrompt:
    """A prompt together with the callable that renders it."""

    prompt: Prompt
    handler: Optional[Callable[..., Any]] = None


@dataclass
class ServerResource:
    """A resource together with the callable that reads it."""

    resource: Resource
    handler: Optional[Callable[..., Any]] = None


@dataclass
class ServerCapabilities:
    """Features the server declares; ``None`` means not declared."""

    resources: Optional[dict[str, bool]] = None
    prompts: Optional[dict[str, bool]] = None
    tools: Optional[dict[str, bool]] = None
    logging: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key in ("resources", "prompts", "tools"):
            flags = getattr(self, key)
            if flags is not None:
                out[key] = {name: value for name, value in flags.items() if value}
        if self.logging:
            out["logging"] = {}
        return out


@dataclass
class InitializeResult:
    """The server's answer to an initialize request."""

    protocol_version: str
    server_info: Implementation
    capabilities: ServerCapabilities
    instructions: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "protocolVersion": self.protocol_version,
            "capabilities": self.capabilities.to_dict(),
            "serverInfo": self.server_info.to_dict(),
        }
        if self.instructions:
            out["instructions"] = self.instructions
        return out


@dataclass
class JSONRPCNotification:
    """A one-way JSON-RPC message."""

    method: str
    params: Optional[dict[str, Any]] = None
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.params:
            out["params"] = _to_jsonable(self.params)
        return out


@dataclass
class JSONRPCResponse:
    """A successful JSON-RPC reply."""

    id: Any
    result: Any
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {"jsonrpc": self.jsonrpc, "id": self.id, "result": _to_jsonable(self.result)}


@dataclass
class JSONRPCError:
    """A failed JSON-RPC reply."""

    id: Any
    code: int
    message: str
    data: Any = None
    jsonrpc: str = JSONRPC_VERSION

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = _to_jsonable(self.data)
        return {"jsonrpc": self.jsonrpc, "id": self.id, "error": error}


def negotiate_protocol_version(client_version: Optional[str]) -> str:
    """Return the client's version if supported, else the latest one."""
    if client_version in VALID_PROTOCOL_VERSIONS:
        return client_version
    return LATEST_PROTOCOL_VERSION


def create_response(request_id: Any, result: Any) -> JSONRPCResponse:
    return JSONRPCResponse(id=request_id, result=result)


def create_error_response(request_id: Any, code: int, message: str) -> JSONRPCError:
    return JSONRPCError(id=request_id, code=code, message=message)