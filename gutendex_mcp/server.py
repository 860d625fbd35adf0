#!/usr/bin/env python3
"""
HTTP transport for the Gutendex MCP server.

    GET  /mcp                          open an SSE event stream (one session)
    POST /mcp/messages?sessionId=...   post a JSON-RPC message to a session
    OPTIONS on either path             CORS pre-flight

Responses to posted messages are delivered on the session's event stream;
the POST itself only acknowledges the message.
"""

import contextlib
from typing import AsyncIterator, Dict

import anyio
import uvicorn
from mcp import types
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from gutendex_mcp.config import MESSAGE_PATH, SSE_PATH, Settings
from gutendex_mcp.errors import RegistryError, SessionNotFound, TransportError
from gutendex_mcp.logging_config import get_logger
from gutendex_mcp.registry import build_registry
from gutendex_mcp.sessions import SessionManager
from gutendex_mcp.upstream import GutendexClient

logger = get_logger()

# Events buffered per session before dispatch waits on the client
STREAM_BUFFER_SIZE = 32

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}
PREFLIGHT_HEADERS = {
    **CORS_HEADERS,
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "content-type",
}
POST_HEADERS = {**CORS_HEADERS, "Access-Control-Allow-Headers": "content-type"}


class SessionEventStream(EventSourceResponse):
    """
    SSE response bound to one session.

    The session is closed however the response ends, including a transport
    failure before the first event was written.
    """

    def __init__(
        self,
        content: AsyncIterator[Dict[str, str]],
        manager: SessionManager,
        session_id: str,
        **kwargs,
    ) -> None:
        super().__init__(content, **kwargs)
        self.manager = manager
        self.session_id = session_id

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except Exception:
            logger.exception("Event stream failed", session_id=self.session_id)
            raise
        finally:
            self.manager.close_session(self.session_id)


def create_app(
    manager: SessionManager,
    sse_path: str = SSE_PATH,
    message_path: str = MESSAGE_PATH,
) -> Starlette:
    """Build the Starlette application serving ``manager``'s sessions."""

    async def handle_sse(request: Request) -> Response:
        send_stream, receive_stream = anyio.create_memory_object_stream[Dict[str, str]](
            STREAM_BUFFER_SIZE
        )
        session_id = manager.open_session(send_stream)
        endpoint = f"{message_path}?sessionId={session_id}"

        async def events() -> AsyncIterator[Dict[str, str]]:
            yield {"event": "endpoint", "data": endpoint}
            # Ends once the session closes its send side
            async with receive_stream:
                async for event in receive_stream:
                    yield event

        return SessionEventStream(events(), manager, session_id, headers=CORS_HEADERS)

    async def handle_post(request: Request) -> Response:
        session_id = request.query_params.get("sessionId")
        if not session_id:
            return PlainTextResponse(
                "Missing sessionId query parameter", status_code=400, headers=POST_HEADERS
            )
        if session_id not in manager:
            logger.warning("Message for unknown session", session_id=session_id)
            return PlainTextResponse("Unknown session", status_code=404, headers=POST_HEADERS)

        body = await request.body()
        try:
            message = types.JSONRPCMessage.model_validate_json(body)
        except ValidationError:
            logger.warning("Could not parse message", session_id=session_id)
            return PlainTextResponse(
                "Could not parse message", status_code=400, headers=POST_HEADERS
            )

        try:
            await manager.route_message(session_id, message)
        except SessionNotFound:
            return PlainTextResponse("Unknown session", status_code=404, headers=POST_HEADERS)
        except TransportError:
            logger.exception("Failed to process message", session_id=session_id)
            return PlainTextResponse(
                "Failed to process message", status_code=500, headers=POST_HEADERS
            )
        return PlainTextResponse("Accepted", status_code=202, headers=POST_HEADERS)

    async def handle_preflight(request: Request) -> Response:
        return Response(status_code=204, headers=PREFLIGHT_HEADERS)

    async def not_found(request: Request, exc: HTTPException) -> Response:
        return PlainTextResponse("Not Found", status_code=404)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        try:
            yield
        finally:
            manager.close_all()

    return Starlette(
        routes=[
            Route(sse_path, handle_sse, methods=["GET"]),
            Route(message_path, handle_post, methods=["POST"]),
            Route(sse_path, handle_preflight, methods=["OPTIONS"]),
            Route(message_path, handle_preflight, methods=["OPTIONS"]),
        ],
        # Unsupported methods on a known path are reported as not found
        exception_handlers={404: not_found, 405: not_found},
        lifespan=lifespan,
    )


def build_app(settings: Settings) -> Starlette:
    """Load the registry and wire up the application. Fails fast on bad assets."""
    registry = build_registry(settings.assets_dir)
    client = GutendexClient(settings.gutendex_base_url)
    return create_app(SessionManager(registry, client))


def run_server() -> None:
    """Entry point for poetry script."""
    settings = Settings.from_env()
    try:
        app = build_app(settings)
    except RegistryError:
        logger.exception("Startup failed; not accepting connections")
        raise
    base = f"http://{settings.host}:{settings.port}"
    logger.info("Gutendex MCP server listening", url=base)
    logger.info("SSE stream", url=f"GET {base}{SSE_PATH}")
    logger.info("Message post endpoint", url=f"POST {base}{MESSAGE_PATH}?sessionId=...")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run_server()
