"""
Validation of search tool arguments.

Turns the loosely typed argument bag of a ``tools/call`` request into a
``SearchQuery``: either a continuation URL handed back by Gutendex, or the
set of non-empty Gutendex query parameters.
"""

from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from gutendex_mcp.errors import QueryValidationError
from gutendex_mcp.logging_config import get_logger

logger = get_logger()

SORT_ORDERS = ("popular", "ascending", "descending")

PAGE_URL_FIELD = "pageUrl"

# Gutendex query parameters, in the order they are serialized
QUERY_FIELDS = (
    "search",
    "languages",
    "author_year_start",
    "author_year_end",
    "mime_type",
    "topic",
    "ids",
    "copyright",
    "sort",
    "page",
)

INTEGER_FIELDS = frozenset({"author_year_start", "author_year_end", "page"})
LIST_FIELDS = frozenset({"languages", "ids", "copyright"})


@dataclass(frozen=True)
class SearchQuery:
    """A validated search. ``page_url`` wins over every other field."""

    search: Optional[str] = None
    languages: Optional[str] = None
    author_year_start: Optional[int] = None
    author_year_end: Optional[int] = None
    mime_type: Optional[str] = None
    topic: Optional[str] = None
    ids: Optional[str] = None
    copyright: Optional[str] = None
    sort: Optional[str] = None
    page: Optional[int] = None
    page_url: Optional[str] = None

    @property
    def is_continuation(self) -> bool:
        return self.page_url is not None

    def params(self) -> Dict[str, str]:
        """Outbound query parameters; empty for a continuation query."""
        if self.is_continuation:
            return {}
        params: Dict[str, str] = {}
        for name in QUERY_FIELDS:
            value = getattr(self, name)
            if value is not None:
                params[name] = str(value)
        return params

    def to_dict(self) -> Dict[str, Any]:
        """The query as echoed back to clients, absent fields omitted."""
        echoed: Dict[str, Any] = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if value is None:
                continue
            key = PAGE_URL_FIELD if field.name == "page_url" else field.name
            echoed[key] = value
        return echoed


def _clean_string(name: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise QueryValidationError(name, "expected a string")
    value = value.strip()
    return value or None


def _clean_list(name: str, value: Any) -> Optional[str]:
    """Accept ``"en,fr"`` or ``["en", "fr"]``; both become ``"en,fr"``."""
    if isinstance(value, (list, tuple)):
        items: List[str] = []
        for item in value:
            if isinstance(item, bool) or not isinstance(item, (str, int)):
                raise QueryValidationError(name, "expected a list of strings")
            item = str(item).strip()
            if item:
                items.append(item)
        return ",".join(items) or None
    if name == "copyright" and isinstance(value, bool):
        return "true" if value else "false"
    return _clean_string(name, value)


def _clean_integer(name: str, value: Any) -> Optional[int]:
    if value is None:
        return None
    # bool is an int subclass
    if isinstance(value, bool):
        raise QueryValidationError(name, "expected an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise QueryValidationError(name, "expected an integer")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            raise QueryValidationError(name, "expected an integer") from None
    raise QueryValidationError(name, "expected an integer")


def _clean_sort(value: Any) -> Optional[str]:
    value = _clean_string("sort", value)
    if value is not None and value not in SORT_ORDERS:
        raise QueryValidationError(
            "sort", f"expected one of {', '.join(SORT_ORDERS)}, got '{value}'"
        )
    return value


def _clean_page_url(value: Any) -> Optional[str]:
    value = _clean_string(PAGE_URL_FIELD, value)
    if value is None:
        return None
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise QueryValidationError(PAGE_URL_FIELD, "expected an absolute http(s) URL")
    return value


def normalize(args: Optional[Mapping]) -> SearchQuery:
    """
    Validate tool arguments into a SearchQuery.

    A non-empty ``pageUrl`` alone determines the query; the remaining
    arguments are then neither validated nor sent.

    Args:
        args: The ``arguments`` object of a tools/call request (may be None)

    Returns:
        The validated SearchQuery

    Raises:
        QueryValidationError: If an argument has the wrong type or value
    """
    if args is None:
        args = {}
    if not isinstance(args, Mapping):
        raise QueryValidationError("arguments", "expected an object")

    page_url = _clean_page_url(args.get(PAGE_URL_FIELD))
    if page_url is not None:
        return SearchQuery(page_url=page_url)

    values: Dict[str, Any] = {}
    for name in QUERY_FIELDS:
        raw = args.get(name)
        if name in INTEGER_FIELDS:
            value = _clean_integer(name, raw)
        elif name in LIST_FIELDS:
            value = _clean_list(name, raw)
        elif name == "sort":
            value = _clean_sort(raw)
        else:
            value = _clean_string(name, raw)
        if value is not None:
            values[name] = value

    ignored = sorted(set(args) - set(QUERY_FIELDS) - {PAGE_URL_FIELD})
    if ignored:
        logger.debug("Ignoring unknown search arguments", ignored=ignored)

    return SearchQuery(**values)
