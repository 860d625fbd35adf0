"""Exceptions raised while serving MCP sessions."""

from typing import Optional

# JSON-RPC error code for an unknown tool or resource
NOT_FOUND = -32002


class GutendexError(Exception):
    """Base class for all gutendex_mcp errors."""


class QueryValidationError(GutendexError):
    """A tool argument was missing the expected type or value."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Invalid argument '{field}': {reason}")
        self.field = field
        self.reason = reason


class UpstreamError(GutendexError):
    """The Gutendex API answered with a non-2xx status or an unusable body."""

    def __init__(
        self,
        reason: str,
        status_code: Optional[int] = None,
        status_text: Optional[str] = None,
    ) -> None:
        if status_code is not None:
            message = f"Gutendex request failed: {status_code} {status_text or ''}"
        else:
            message = f"Gutendex request failed: {reason}"
        super().__init__(message.strip())
        self.reason = reason
        self.status_code = status_code
        self.status_text = status_text


class FetchCancelled(GutendexError):
    """The session owning an upstream fetch was closed before it finished."""


class NotFoundError(GutendexError):
    """Lookup of a tool, resource or session failed."""

    kind = "item"

    def __init__(self, key: str) -> None:
        super().__init__(f"Unknown {self.kind}: {key}")
        self.key = key


class ToolNotFound(NotFoundError):
    kind = "tool"


class ResourceNotFound(NotFoundError):
    kind = "resource"


class SessionNotFound(NotFoundError):
    kind = "session"


class TransportError(GutendexError):
    """Writing to a session's event stream failed."""


class RegistryError(GutendexError):
    """The tool and resource catalog could not be built at startup."""
