"""
Session table for SSE-connected MCP clients.

Each open event stream gets a ``Session`` holding the stream sink and a
private ``Dispatcher``. Posted messages carry the session id and are routed
through the ``SessionManager``, which is the only owner of the table.
"""

import threading
import uuid
from enum import Enum
from typing import Dict, List, Protocol, Set

import anyio
from mcp import types

from gutendex_mcp.dispatcher import Dispatcher
from gutendex_mcp.errors import SessionNotFound, TransportError
from gutendex_mcp.logging_config import get_logger
from gutendex_mcp.registry import Registry
from gutendex_mcp.upstream import GutendexClient

logger = get_logger()


class StreamSink(Protocol):
    """Write side of a session's event stream (an anyio memory stream)."""

    async def send(self, item: Dict[str, str]) -> None: ...

    def close(self) -> None: ...


class SessionState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Session:
    """One client connection: its event stream and its dispatcher."""

    def __init__(
        self,
        session_id: str,
        sink: StreamSink,
        dispatcher: Dispatcher,
        cancel: threading.Event,
    ) -> None:
        self.id = session_id
        self.sink = sink
        self.dispatcher = dispatcher
        self.cancel = cancel
        self.state = SessionState.OPEN
        # anyio locks are FIFO, so requests run in arrival order
        self._dispatch_lock = anyio.Lock()
        self._in_flight: Set[anyio.CancelScope] = set()

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    async def send_event(self, event: str, data: str) -> None:
        try:
            await self.sink.send({"event": event, "data": data})
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as exc:
            raise TransportError(f"Event stream for session {self.id} is closed") from exc

    async def dispatch(self, message: types.JSONRPCMessage) -> None:
        """Handle a message and write any response to the event stream."""
        async with self._dispatch_lock:
            if not self.is_open:
                raise SessionNotFound(self.id)
            with anyio.CancelScope() as scope:
                self._in_flight.add(scope)
                try:
                    response = await self.dispatcher.handle(message)
                    if response is not None:
                        await self.send_event(
                            "message",
                            response.model_dump_json(by_alias=True, exclude_none=True),
                        )
                finally:
                    self._in_flight.discard(scope)
            if scope.cancelled_caught:
                logger.info("Dispatch cancelled by session close", session_id=self.id)
            # Closed mid-request: any reply was dropped
            if not self.is_open:
                raise SessionNotFound(self.id)

    def close(self) -> None:
        """Cancel in-flight work and release the sink. Safe to call twice."""
        if not self.is_open:
            return
        self.state = SessionState.CLOSING
        self.cancel.set()
        for scope in list(self._in_flight):
            scope.cancel()
        self.sink.close()
        self.state = SessionState.CLOSED


class SessionManager:
    """Creates, routes to and tears down sessions."""

    def __init__(self, registry: Registry, client: GutendexClient) -> None:
        self._registry = registry
        self._client = client
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def open_session(self, sink: StreamSink) -> str:
        """
        Register a new session writing to ``sink``.

        Args:
            sink: Write side of the client's event stream

        Returns:
            The new session id
        """
        cancel = threading.Event()
        dispatcher = Dispatcher(self._registry, self._client, cancel=cancel)
        with self._lock:
            session_id = uuid.uuid4().hex
            while session_id in self._sessions:
                session_id = uuid.uuid4().hex
            self._sessions[session_id] = Session(session_id, sink, dispatcher, cancel)
        logger.info("Session opened", session_id=session_id, sessions=len(self._sessions))
        return session_id

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def route_message(self, session_id: str, message: types.JSONRPCMessage) -> None:
        """
        Dispatch a posted message on its session.

        Raises:
            SessionNotFound: If the session is unknown, already closed, or
                closed before the reply could be written
            TransportError: If the response could not be written; the
                session has been closed
        """
        try:
            session = self.get(session_id)
        except SessionNotFound:
            logger.warning("Message for unknown session", session_id=session_id)
            raise

        try:
            await session.dispatch(message)
        except TransportError:
            logger.warning("Event stream write failed", session_id=session_id)
            self.close_session(session_id)
            raise

    def close_session(self, session_id: str) -> bool:
        """Remove and close a session. Returns False if it was already gone."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        logger.info("Session closed", session_id=session_id, sessions=len(self._sessions))
        return True

    def close_all(self) -> None:
        for session_id in self.session_ids():
            self.close_session(session_id)
