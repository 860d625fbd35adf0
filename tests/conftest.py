"""Pytest configuration for gutendex_mcp tests."""

import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest
from mcp import types

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fakes import FakeHttpSession, FakeResponse  # noqa: E402
from gutendex_mcp.registry import Registry, build_registry  # noqa: E402
from gutendex_mcp.sessions import SessionManager  # noqa: E402
from gutendex_mcp.upstream import GutendexClient  # noqa: E402


@pytest.fixture(scope="session")
def registry() -> Registry:
    """Registry built from the bundled widget assets."""
    return build_registry()


@pytest.fixture
def alice_payload() -> Dict[str, Any]:
    """Gutendex answer for ``search=alice`` with a sparse author record."""
    return {
        "count": 1,
        "next": None,
        "previous": None,
        "results": [
            {
                "id": 11,
                "title": "Alice's Adventures",
                "authors": [{"name": "Carroll, Lewis"}],
                "languages": ["en"],
                "download_count": 500,
                "formats": {"text/html": "http://x/11.html"},
            }
        ],
    }


@pytest.fixture
def http(alice_payload: Dict[str, Any]) -> FakeHttpSession:
    return FakeHttpSession(FakeResponse(alice_payload))


@pytest.fixture
def gutendex(http: FakeHttpSession) -> GutendexClient:
    return GutendexClient(session=http)


@pytest.fixture
def manager(registry: Registry, gutendex: GutendexClient) -> SessionManager:
    return SessionManager(registry, gutendex)


@pytest.fixture
def make_request() -> Callable[..., types.JSONRPCMessage]:
    """Factory for JSON-RPC request messages."""

    def _make(
        method: str, params: Optional[Dict[str, Any]] = None, request_id: int = 1
    ) -> types.JSONRPCMessage:
        return types.JSONRPCMessage(
            types.JSONRPCRequest(
                jsonrpc="2.0", id=request_id, method=method, params=params
            )
        )

    return _make
