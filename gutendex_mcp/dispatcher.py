"""
Per-session MCP request handling.

A ``Dispatcher`` answers one JSON-RPC message at a time against the shared
registry. Tool calls run the search pipeline:
normalize arguments -> fetch from Gutendex -> shape the payload.
"""

import threading
from typing import Any, Awaitable, Callable, Dict, Optional

from mcp import types
from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from pydantic import ValidationError

from gutendex_mcp import SERVER_NAME, __version__
from gutendex_mcp.errors import (
    NOT_FOUND,
    FetchCancelled,
    NotFoundError,
    QueryValidationError,
    UpstreamError,
)
from gutendex_mcp.logging_config import get_logger
from gutendex_mcp.query import normalize
from gutendex_mcp.registry import WIDGET_MIME_TYPE, Registry
from gutendex_mcp.shaping import shape, summary_text
from gutendex_mcp.upstream import GutendexClient

logger = get_logger()

Handler = Callable[[Any], Awaitable[types.Result]]


def _error(
    request_id: types.RequestId, code: int, message: str
) -> types.JSONRPCMessage:
    return types.JSONRPCMessage(
        types.JSONRPCError(
            jsonrpc="2.0",
            id=request_id,
            error=types.ErrorData(code=code, message=message),
        )
    )


def _failed_call(message: str) -> types.CallToolResult:
    """Tool result for a call that failed before producing any books."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=message)],
        isError=True,
    )


class Dispatcher:
    """Answers the requests of a single session."""

    def __init__(
        self,
        registry: Registry,
        client: GutendexClient,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self._registry = registry
        self._client = client
        self._cancel = cancel
        self._handlers: Dict[str, Handler] = {
            "initialize": self.initialize,
            "ping": self.ping,
            "tools/list": self.list_tools,
            "resources/list": self.list_resources,
            "resources/templates/list": self.list_resource_templates,
            "resources/read": self.read_resource,
            "tools/call": self.call_tool,
        }

    # ─────────────────────────────────────────────────────────────
    # Request handlers
    # ─────────────────────────────────────────────────────────────

    async def initialize(self, request: types.InitializeRequest) -> types.InitializeResult:
        requested = request.params.protocolVersion
        if requested in SUPPORTED_PROTOCOL_VERSIONS:
            version = requested
        else:
            version = types.LATEST_PROTOCOL_VERSION
        return types.InitializeResult(
            protocolVersion=version,
            capabilities=types.ServerCapabilities(tools={}, resources={}),
            serverInfo=types.Implementation(name=SERVER_NAME, version=__version__),
        )

    async def ping(self, request: types.PingRequest) -> types.EmptyResult:
        return types.EmptyResult()

    async def list_tools(self, request: types.ListToolsRequest) -> types.ListToolsResult:
        return types.ListToolsResult(tools=self._registry.list_tools())

    async def list_resources(
        self, request: types.ListResourcesRequest
    ) -> types.ListResourcesResult:
        return types.ListResourcesResult(resources=self._registry.list_resources())

    async def list_resource_templates(
        self, request: types.ListResourceTemplatesRequest
    ) -> types.ListResourceTemplatesResult:
        return types.ListResourceTemplatesResult(
            resourceTemplates=self._registry.list_resource_templates()
        )

    async def read_resource(
        self, request: types.ReadResourceRequest
    ) -> types.ReadResourceResult:
        widget = self._registry.resolve_resource(str(request.params.uri))
        return types.ReadResourceResult(
            contents=[
                types.TextResourceContents(
                    uri=widget.uri,
                    mimeType=WIDGET_MIME_TYPE,
                    text=widget.html,
                    **{"_meta": widget.meta},
                )
            ]
        )

    async def call_tool(self, request: types.CallToolRequest) -> types.CallToolResult:
        """Run a search. Validation and upstream failures become error results."""
        name = request.params.name
        self._registry.resolve_tool(name)
        widget = self._registry.widget_for_tool(name)
        log = logger.bind(tool=name)

        try:
            query = normalize(request.params.arguments)
        except QueryValidationError as exc:
            log.warning("Rejected tool arguments", field=exc.field, reason=exc.reason)
            return _failed_call(str(exc))

        try:
            payload = await self._client.fetch_async(query, self._cancel)
        except UpstreamError as exc:
            log.warning("Upstream request failed", error=str(exc))
            return _failed_call(str(exc))

        envelope = shape(payload)
        structured = {
            "query": query.to_dict(),
            "count": envelope["count"],
            "next": envelope["next"],
            "previous": envelope["previous"],
            "results": envelope["results"],
        }
        log.info("Search complete", count=envelope["count"])
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=summary_text(envelope))],
            structuredContent=structured,
            **{"_meta": widget.meta},
        )

    # ─────────────────────────────────────────────────────────────
    # JSON-RPC entry point
    # ─────────────────────────────────────────────────────────────

    async def handle(
        self, message: types.JSONRPCMessage
    ) -> Optional[types.JSONRPCMessage]:
        """
        Handle one incoming JSON-RPC message.

        Args:
            message: A request, notification or client response

        Returns:
            The response to write to the session stream, or None when the
            message needs no reply
        """
        root = message.root
        if not isinstance(root, types.JSONRPCRequest):
            logger.debug("Ignoring message without reply", kind=type(root).__name__)
            return None

        handler = self._handlers.get(root.method)
        if handler is None:
            return _error(root.id, types.METHOD_NOT_FOUND, f"Method not found: {root.method}")

        try:
            request = types.ClientRequest.model_validate(
                root.model_dump(by_alias=True, mode="json", exclude_none=True)
            )
        except ValidationError as exc:
            return _error(root.id, types.INVALID_PARAMS, f"Invalid params: {exc}")

        try:
            result = await handler(request.root)
        except NotFoundError as exc:
            return _error(root.id, NOT_FOUND, str(exc))
        except FetchCancelled:
            logger.info("Dropped request for closed session", method=root.method)
            return None
        except Exception as exc:
            logger.exception("Request failed", method=root.method)
            return _error(root.id, types.INTERNAL_ERROR, str(exc))

        return types.JSONRPCMessage(
            types.JSONRPCResponse(
                jsonrpc="2.0",
                id=root.id,
                result=result.model_dump(by_alias=True, mode="json", exclude_none=True),
            )
        )
