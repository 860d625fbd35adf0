"""Tests for the session table and message routing."""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

import anyio
import pytest
from mcp import types

from fakes import FakeHttpSession, FakeResponse, FakeSink
from gutendex_mcp.errors import SessionNotFound, TransportError
from gutendex_mcp.registry import SEARCH_TOOL_NAME, Registry
from gutendex_mcp.sessions import SessionManager, SessionState
from gutendex_mcp.upstream import GutendexClient

MakeRequest = Callable[..., types.JSONRPCMessage]


def test_concurrent_opens_get_distinct_ids(manager: SessionManager) -> None:
    """Opening sessions from many threads never reuses an id."""
    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(lambda _: manager.open_session(FakeSink()), range(64)))

    assert len(set(ids)) == 64
    assert len(manager) == 64


def test_close_is_idempotent(manager: SessionManager) -> None:
    sink = FakeSink()
    session_id = manager.open_session(sink)
    session = manager.get(session_id)

    assert manager.close_session(session_id) is True
    assert manager.close_session(session_id) is False
    assert sink.close_calls == 1
    assert session.state is SessionState.CLOSED
    assert session.cancel.is_set()
    assert session_id not in manager


def test_close_all(manager: SessionManager) -> None:
    sinks = [FakeSink() for _ in range(3)]
    for sink in sinks:
        manager.open_session(sink)

    manager.close_all()

    assert len(manager) == 0
    assert [s.close_calls for s in sinks] == [1, 1, 1]


@pytest.mark.asyncio
class TestRouting:
    """Messages reach the right session's stream."""

    async def test_response_written_to_sink(
        self, manager: SessionManager, make_request: MakeRequest
    ) -> None:
        sink = FakeSink()
        session_id = manager.open_session(sink)

        await manager.route_message(session_id, make_request("ping", request_id=7))

        assert sink.messages() == [{"jsonrpc": "2.0", "id": 7, "result": {}}]
        assert sink.events[0]["event"] == "message"

    async def test_unknown_session(
        self, manager: SessionManager, make_request: MakeRequest
    ) -> None:
        with pytest.raises(SessionNotFound):
            await manager.route_message("never-opened", make_request("ping"))

    async def test_closed_session(
        self, manager: SessionManager, make_request: MakeRequest
    ) -> None:
        sink = FakeSink()
        session_id = manager.open_session(sink)
        manager.close_session(session_id)

        with pytest.raises(SessionNotFound):
            await manager.route_message(session_id, make_request("ping"))
        assert sink.events == []

    async def test_closing_some_sessions_leaves_others(
        self, manager: SessionManager, make_request: MakeRequest
    ) -> None:
        sinks = [FakeSink() for _ in range(4)]
        ids = [manager.open_session(sink) for sink in sinks]
        manager.close_session(ids[0])
        manager.close_session(ids[2])

        for n in (1, 3):
            await manager.route_message(ids[n], make_request("ping", request_id=n))

        assert sinks[1].messages()[0]["id"] == 1
        assert sinks[3].messages()[0]["id"] == 3
        assert sinks[0].events == [] and sinks[2].events == []

    async def test_messages_handled_in_arrival_order(
        self, manager: SessionManager, make_request: MakeRequest
    ) -> None:
        sink = FakeSink()
        session_id = manager.open_session(sink)

        async with anyio.create_task_group() as tg:
            for n in range(1, 6):
                tg.start_soon(manager.route_message, session_id, make_request("ping", request_id=n))

        assert [m["id"] for m in sink.messages()] == [1, 2, 3, 4, 5]

    async def test_write_failure_tears_down_session(
        self, manager: SessionManager, make_request: MakeRequest
    ) -> None:
        sink = FakeSink(fail=True)
        session_id = manager.open_session(sink)

        with pytest.raises(TransportError):
            await manager.route_message(session_id, make_request("ping"))

        assert session_id not in manager
        assert sink.close_calls == 1

    async def test_protocol_errors_keep_session_open(
        self, manager: SessionManager, make_request: MakeRequest
    ) -> None:
        sink = FakeSink()
        session_id = manager.open_session(sink)
        read = make_request("resources/read", {"uri": "ui://widget/missing.html"}, request_id=1)

        await manager.route_message(session_id, read)
        await manager.route_message(session_id, make_request("ping", request_id=2))

        first, second = sink.messages()
        assert "error" in first
        assert second == {"jsonrpc": "2.0", "id": 2, "result": {}}


@pytest.mark.asyncio
class TestInFlightFetch:
    """A slow upstream fetch blocks only its own session."""

    @pytest.fixture
    def gate(self) -> threading.Event:
        return threading.Event()

    @pytest.fixture
    def slow_http(self, alice_payload: dict, gate: threading.Event) -> FakeHttpSession:
        return FakeHttpSession(FakeResponse(alice_payload), gate=gate)

    @pytest.fixture
    def slow_manager(self, registry: Registry, slow_http: FakeHttpSession) -> SessionManager:
        return SessionManager(registry, GutendexClient(session=slow_http))

    @staticmethod
    async def _wait_for_fetch(http: FakeHttpSession) -> None:
        with anyio.fail_after(5):
            while not http.entered.is_set():
                await anyio.sleep(0.01)

    async def test_other_sessions_not_delayed(
        self,
        slow_manager: SessionManager,
        slow_http: FakeHttpSession,
        gate: threading.Event,
        make_request: MakeRequest,
    ) -> None:
        sink_a, sink_b = FakeSink(), FakeSink()
        session_a = slow_manager.open_session(sink_a)
        session_b = slow_manager.open_session(sink_b)
        search = make_request(
            "tools/call", {"name": SEARCH_TOOL_NAME, "arguments": {"search": "alice"}}
        )

        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(slow_manager.route_message, session_a, search)
                await self._wait_for_fetch(slow_http)

                await slow_manager.route_message(session_b, make_request("ping", request_id=9))

                assert sink_b.messages()[0]["id"] == 9
                assert sink_a.events == []
                gate.set()
        finally:
            gate.set()

        assert sink_a.messages()[0]["result"]["content"][0]["text"] == "Found 1 books"

    async def test_close_cancels_in_flight_call(
        self,
        slow_manager: SessionManager,
        slow_http: FakeHttpSession,
        gate: threading.Event,
        make_request: MakeRequest,
    ) -> None:
        sink = FakeSink()
        session_id = slow_manager.open_session(sink)
        session = slow_manager.get(session_id)
        search = make_request(
            "tools/call", {"name": SEARCH_TOOL_NAME, "arguments": {"search": "alice"}}
        )
        outcomes = []

        async def post() -> None:
            try:
                await slow_manager.route_message(session_id, search)
            except SessionNotFound:
                outcomes.append("session gone")
            else:
                outcomes.append("accepted")

        try:
            with anyio.fail_after(5):
                async with anyio.create_task_group() as tg:
                    tg.start_soon(post)
                    await self._wait_for_fetch(slow_http)
                    slow_manager.close_session(session_id)
        finally:
            gate.set()

        # The interrupted request reports its session as gone
        assert outcomes == ["session gone"]
        assert session.cancel.is_set()
        assert sink.events == []
        with pytest.raises(SessionNotFound):
            await slow_manager.route_message(session_id, make_request("ping"))
