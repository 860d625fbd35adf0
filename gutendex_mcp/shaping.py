#!/usr/bin/env python3
"""
Result shaping for Gutendex payloads.

Every consumer (the tool response and the search widget) sees the same
envelope::

    {"results": [Book, ...], "count": number, "next": str|None, "previous": str|None}

where a Book is ``{id, title, authors, languages, download_count, formats}``
and an author is ``{name, birth_year, death_year}``. ``shape`` accepts any
JSON value and never raises; it is idempotent, so an envelope can be
shaped again without changing.
"""

import math
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Union


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _year(value: Any) -> Optional[int]:
    return value if _is_int(value) else None


def _url(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _count(value: Any, fallback: int) -> Union[int, float]:
    # Non-numeric counts (strings, bools) fall back to the result length
    if _is_int(value):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value) if value.is_integer() else value
    return fallback


def shape_author(author: Mapping) -> Dict[str, Any]:
    """Author with both year fields present (None when unknown)."""
    return {
        "name": author.get("name"),
        "birth_year": _year(author.get("birth_year")),
        "death_year": _year(author.get("death_year")),
    }


def shape_book(book: Mapping) -> Dict[str, Any]:
    """Book record with defaults for every missing field."""
    authors = book.get("authors")
    languages = book.get("languages")
    download_count = book.get("download_count")
    formats = book.get("formats")

    return {
        "id": book.get("id"),
        "title": book.get("title"),
        "authors": [shape_author(a) for a in authors if isinstance(a, Mapping)]
        if isinstance(authors, list)
        else [],
        "languages": [lang for lang in languages if isinstance(lang, str)]
        if isinstance(languages, list)
        else [],
        "download_count": download_count
        if _is_int(download_count) and download_count >= 0
        else 0,
        "formats": {
            mime: url
            for mime, url in formats.items()
            if isinstance(mime, str) and isinstance(url, str)
        }
        if isinstance(formats, Mapping)
        else {},
    }


def shape(payload: Any) -> Dict[str, Any]:
    """
    Map an upstream payload to the result envelope.

    Args:
        payload: Decoded JSON from Gutendex, or an envelope shaped earlier

    Returns:
        Dictionary with results, count, next and previous
    """
    data = payload if isinstance(payload, Mapping) else {}

    raw_results = data.get("results")
    results: List[Dict[str, Any]] = (
        [shape_book(b) for b in raw_results if isinstance(b, Mapping)]
        if isinstance(raw_results, list)
        else []
    )

    return {
        "results": results,
        "count": _count(data.get("count"), len(results)),
        "next": _url(data.get("next")),
        "previous": _url(data.get("previous")),
    }


def summary_text(envelope: Mapping) -> str:
    """Short human-readable summary of a shaped envelope."""
    return f"Found {envelope['count']} books"
