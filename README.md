# mcpserve

The core of a Model Context Protocol (MCP) server. You register tools, prompts, resources and resource templates on an `MCPServer`. You then call its request handlers with the request id and the request's `params` dictionary. The server also keeps track of client sessions. It sends them list-changed notifications when its registries change.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

The package has no runtime dependencies.

## Quick start

```python
from mcpserve.server import MCPServer
from mcpserve.protocol import ServerCapabilities, Tool
from mcpserve.errors import RequestError

server = MCPServer(
    "demo",
    "1.0.0",
    capabilities=ServerCapabilities(tools={"listChanged": True}),
    pagination_limit=50,
)

def echo(params):
    text = params.get("arguments", {}).get("text", "")
    return {"content": [{"type": "text", "text": text}]}

server.add_tool(Tool("echo", description="Echo text back"), echo)

init = server.handle_initialize(1, {"protocolVersion": "2024-11-05"})
print(init.to_dict())

print(server.handle_call_tool(2, {"name": "echo", "arguments": {"text": "hi"}}))

try:
    server.handle_call_tool(3, {"name": "missing"})
except RequestError as exc:
    print(exc.to_jsonrpc_error().to_dict())   # code -32602
```

## Modules

### `mcpserve.server`

`MCPServer(name, version, *, capabilities=None, instructions="", pagination_limit=None, middlewares=(), tool_filters=(), recovery=False, hooks=None)`

**Registries**

| Kind | Methods |
| --- | --- |
| Resources | `add_resource`, `add_resources`, `remove_resource` |
| Resource templates | `add_resource_template` |
| Prompts | `add_prompt`, `add_prompts`, `delete_prompts` |
| Tools | `add_tool`, `add_tools`, `set_tools`, `delete_tools` |
| Notifications | `add_notification_handler` |

Adding an item of a kind declares that capability if it was not declared yet:

- Adding a tool declares tools with `listChanged: true`.
- Adding a resource or a prompt declares that kind with all flags false.

When a kind's `listChanged` flag is set, adding or removing items sends the matching `notifications/.../list_changed` to every initialized session. Removing names that are not registered sends nothing.

**Request handlers**

Each request handler takes `(request_id, params)`. On failure it raises `RequestError`.

| Handler | What it does |
| --- | --- |
| `handle_initialize` | Returns an `InitializeResult` with the negotiated protocol version, the server info, the capabilities and the instructions. It initializes the current session and stores `clientInfo` on it if the session supports that. |
| `handle_ping` | Returns `{}`. |
| `handle_set_level` | Sets the log level on the current session. The session must be initialized and must implement `SessionWithLogging`. An unknown level gives `INVALID_PARAMS`. |
| `handle_list_resources`, `handle_list_resource_templates`, `handle_list_prompts` | Return the items sorted by name and paginated. |
| `handle_list_tools` | Merges the global tools with the current session's tools, sorts them by name, applies the tool filters and paginates. |
| `handle_read_resource` | Tries an exact URI first. Otherwise it tries the templates; on a match, the template variables are passed to the handler as `params["arguments"]`. An unknown URI gives `RESOURCE_NOT_FOUND`. |
| `handle_get_prompt` | An unknown prompt gives `INVALID_PARAMS`. |
| `handle_call_tool` | Looks up the session's tools first, then the global ones. It wraps the handler in the middlewares; the first one given is the outermost. |
| `handle_notification` | Calls the handler registered for the notification's method, if any. |

Paginated results contain `"nextCursor"` only when there is a next page. An exception raised by a registered handler becomes a `RequestError` with `INTERNAL_ERROR`.

`recovery_middleware` wraps a tool handler. It re-raises any exception as `panic recovered in <tool> tool handler: <error>`. Pass `recovery=True` to add it to the server's middlewares.

**Sessions and notifications**

- `register_session` and `unregister_session` add and remove sessions. Registering a duplicate id raises `SessionExistsError`.
- `send_notification_to_all_clients` sends to every initialized session. A full queue is reported to the error hooks and skipped.
- `send_notification_to_client` sends to the current session. It raises `NotificationNotInitializedError` if there is no initialized session.
- `send_notification_to_specific_client` sends by session id. It raises `SessionNotFoundError` or `SessionNotInitializedError`.
- Both targeted sends raise `NotificationChannelBlockedError` when the session's queue is full.
- `add_session_tool`, `add_session_tools` and `delete_session_tools` manage tools that belong to one session. A session tool overrides a global tool with the same name. When the session is initialized and `tools.listChanged` is set, that session is notified.

### `mcpserve.session`

- `ClientSession` is the abstract session interface. It has these members:
  - `session_id`
  - `initialize`
  - `is_initialized`
  - `send`
- The interface has four extensions:
  - `SessionWithLogging` adds `log_level`.
  - `SessionWithTools` adds `session_tools`.
  - `SessionWithClientInfo` adds `client_info`.
  - `SessionWithStreamableHTTPConfig` adds `upgrade_to_sse`.
- `BasicSession(session_id, capacity=100, initialized=False)` buffers notifications in a bounded `queue.Queue`, available as `session.notifications`. With a capacity of 0, every delivery is reported as blocked.
- `use_session(session)` is a context manager. It binds a session to the running context, and `current_session()` returns it. The handlers use this binding to find "the current session".
- `SessionHooks` holds callback lists:
  - `on_register_session` and `on_unregister_session` receive the session.
  - `on_error` receives `(method, message, error)`.

```python
from mcpserve.session import BasicSession, use_session

session = BasicSession("s1", capacity=10, initialized=True)
server.register_session(session)
with use_session(session):
    server.send_notification_to_client("notifications/message", {"text": "hello"})
print(session.notifications.get_nowait().to_dict())
```

### `mcpserve.protocol`

This module holds:

- The message and data types:
  - `Tool`
  - `Prompt` and `PromptArgument`
  - `Resource` and `ResourceTemplate`
  - `ServerTool`, `ServerPrompt` and `ServerResource`
  - `ServerCapabilities`
  - `InitializeResult`
  - `Implementation`
  - `LoggingLevel`
  - `JSONRPCNotification`, `JSONRPCResponse` and `JSONRPCError`
- The helpers `create_response` and `create_error_response`.
- The method names, notification names and error-code constants.

`negotiate_protocol_version(client_version)` returns the client's version if it is one of the supported versions (`2024-11-05`, `2025-03-26`). Otherwise it returns the latest one.

### `mcpserve.uritemplate`

`URITemplate(raw)` parses a URI template. It supports the expression operators `+ # . / ; ? &` as well as plain expressions.

- `match(uri)` returns a dict from variable names to lists of values, or `None`.
- `matches(uri)` returns a boolean.
- `str()` gives back the raw template.

For example, `test://{a}/test-resource{/b*}` matches `test://something/test-resource/a/b/c` as `{"a": ["something"], "b": ["a", "b", "c"]}`. Malformed templates raise `ValueError`.

### `mcpserve.pagination`

`paginate(items, cursor, limit)` returns one page of name-sorted items after the cursor, together with the next cursor. The next cursor is empty when there is no limit or the page is short.

Cursors are the base64-encoded name of the last item returned; see `encode_cursor` and `decode_cursor`. A malformed cursor raises `ValueError`.

### `mcpserve.errors`

`MCPError` is the base class. It has these subclasses:

- `RequestError`, which has `to_jsonrpc_error()`.
- `UnparsableMessageError`.
- The not-found, session and notification errors used above.

## What it does not do

There is no transport and no message dispatcher. The package does not:

- read or write JSON over stdio, HTTP or SSE;
- parse raw JSON-RPC messages;
- route a message to a handler by its method name.

The caller decodes each request, picks the `handle_*` method and serializes the result with `to_dict()`, or with `RequestError.to_jsonrpc_error()` on failure.

Because there is no dispatcher, some things are left to the caller:

- Rejecting methods whose capability was not declared.
- Enforcing the logging capability before `handle_set_level`.
- Any per-request hooks. `SessionHooks` only covers session registration and delivery errors.