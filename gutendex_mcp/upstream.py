"""HTTP access to the Gutendex books API."""

import threading
from functools import partial
from typing import Any, Optional
from urllib.parse import urlencode

import anyio.to_thread
import requests

from gutendex_mcp.config import DEFAULT_BASE_URL
from gutendex_mcp.errors import FetchCancelled, UpstreamError
from gutendex_mcp.logging_config import get_logger
from gutendex_mcp.query import SearchQuery

logger = get_logger()


def _check_cancelled(cancel: Optional[threading.Event], url: str) -> None:
    if cancel is not None and cancel.is_set():
        raise FetchCancelled(f"Fetch of {url} cancelled")


class GutendexClient:
    """Issues a single GET against Gutendex per search; no retries."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url
        self._session = session or requests.Session()

    def build_url(self, query: SearchQuery) -> str:
        """Continuation URL verbatim, else the base URL plus query parameters."""
        if query.page_url is not None:
            return query.page_url
        params = query.params()
        if not params:
            return self.base_url
        return f"{self.base_url}?{urlencode(params)}"

    def fetch(
        self, query: SearchQuery, cancel: Optional[threading.Event] = None
    ) -> Any:
        """
        Fetch a page of search results.

        Args:
            query: The validated search query
            cancel: Set when the owning session closes; checked before the
                request is sent and before the body is parsed

        Returns:
            The decoded JSON payload

        Raises:
            UpstreamError: On a transport failure, non-2xx status or bad JSON
            FetchCancelled: If ``cancel`` was set
        """
        url = self.build_url(query)
        _check_cancelled(cancel, url)
        logger.info("Fetching from Gutendex", url=url)
        try:
            response = self._session.get(url)
        except requests.RequestException as exc:
            raise UpstreamError(str(exc)) from exc

        _check_cancelled(cancel, url)
        if not 200 <= response.status_code < 300:
            raise UpstreamError(
                "unexpected status",
                status_code=response.status_code,
                status_text=response.reason,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError("response body is not valid JSON") from exc

    async def fetch_async(
        self, query: SearchQuery, cancel: Optional[threading.Event] = None
    ) -> Any:
        """Run ``fetch`` in a worker thread so other sessions keep going."""
        return await anyio.to_thread.run_sync(
            partial(self.fetch, query, cancel), abandon_on_cancel=True
        )
