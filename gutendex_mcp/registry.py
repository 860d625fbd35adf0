"""
Tool and resource catalog.

The catalog is declared once below and turned into a read-only ``Registry``
at startup; every session's dispatcher shares the same instance.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from mcp.types import Resource, ResourceTemplate, Tool

from gutendex_mcp.assets import read_widget_html
from gutendex_mcp.errors import RegistryError, ResourceNotFound, ToolNotFound
from gutendex_mcp.logging_config import get_logger
from gutendex_mcp.query import SORT_ORDERS

logger = get_logger()

WIDGET_MIME_TYPE = "text/html+skybridge"
OUTPUT_TEMPLATE_KEY = "openai/outputTemplate"


@dataclass(frozen=True)
class WidgetSpec:
    """Declarative description of a UI template served as a resource."""

    id: str
    title: str
    template_uri: str
    invoking: str
    invoked: str
    response_text: str


@dataclass(frozen=True)
class ToolSpec:
    name: str
    title: str
    description: str
    input_schema: Dict[str, Any]
    widget_id: str


@dataclass(frozen=True)
class Widget:
    """A widget whose HTML has been loaded."""

    spec: WidgetSpec
    html: str

    @property
    def uri(self) -> str:
        return self.spec.template_uri

    @property
    def meta(self) -> Dict[str, Any]:
        return widget_meta(self.spec)


def widget_meta(spec: WidgetSpec) -> Dict[str, Any]:
    """Metadata block shared by a widget's tool, resource and results."""
    return {
        OUTPUT_TEMPLATE_KEY: spec.template_uri,
        "openai/toolInvocation/invoking": spec.invoking,
        "openai/toolInvocation/invoked": spec.invoked,
        "openai/widgetAccessible": True,
        "openai/resultCanProduceWidget": True,
    }


# ─────────────────────────────────────────────────────────────
# Catalog
# ─────────────────────────────────────────────────────────────

SEARCH_TOOL_NAME = "gutendex.books.search"

SEARCH_INPUT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "search": {
            "type": "string",
            "description": "Full-text search across titles and authors.",
        },
        "languages": {
            "type": "string",
            "description": "Comma-separated 2-letter language codes (e.g. en,fr)",
        },
        "author_year_start": {
            "type": "integer",
            "description": "Author alive on/after this year.",
        },
        "author_year_end": {
            "type": "integer",
            "description": "Author alive on/before this year.",
        },
        "mime_type": {
            "type": "string",
            "description": "MIME type prefix to match (e.g. text/html).",
        },
        "topic": {
            "type": "string",
            "description": "Substring to match bookshelf or subject.",
        },
        "ids": {
            "type": "string",
            "description": "Comma-separated Gutenberg IDs to filter.",
        },
        "copyright": {
            "type": "string",
            "description": "copyright filter: true,false,null or comma-combo",
        },
        "sort": {
            "type": "string",
            "enum": list(SORT_ORDERS),
            "description": "Sort order. Defaults to popular.",
        },
        "page": {"type": "integer", "description": "Page number (if supported)."},
        "pageUrl": {
            "type": "string",
            "description": "Direct Gutendex page URL (overrides other params).",
        },
    },
    "additionalProperties": False,
}

WIDGETS: Tuple[WidgetSpec, ...] = (
    WidgetSpec(
        id="gutendex-search",
        title="Search Project Gutenberg",
        template_uri="ui://widget/gutendex-search.html",
        invoking="Searching Project Gutenberg",
        invoked="Showing search results",
        response_text="Rendered Project Gutenberg search results.",
    ),
)

TOOLS: Tuple[ToolSpec, ...] = (
    ToolSpec(
        name=SEARCH_TOOL_NAME,
        title="Search books",
        description="Search Project Gutenberg via Gutendex API and show results.",
        input_schema=SEARCH_INPUT_SCHEMA,
        widget_id="gutendex-search",
    ),
)


# ─────────────────────────────────────────────────────────────
# Registry
# ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Registry:
    """Read-only lookup tables over the loaded catalog."""

    tools: Tuple[Tool, ...]
    resources: Tuple[Resource, ...]
    resource_templates: Tuple[ResourceTemplate, ...]
    _widgets_by_uri: Mapping[str, Widget] = field(repr=False)
    _widgets_by_tool: Mapping[str, Widget] = field(repr=False)
    _tools_by_name: Mapping[str, Tool] = field(repr=False)

    def list_tools(self) -> List[Tool]:
        return list(self.tools)

    def list_resources(self) -> List[Resource]:
        return list(self.resources)

    def list_resource_templates(self) -> List[ResourceTemplate]:
        return list(self.resource_templates)

    def resolve_tool(self, name: str) -> Tool:
        try:
            return self._tools_by_name[name]
        except KeyError:
            raise ToolNotFound(name) from None

    def resolve_resource(self, uri: str) -> Widget:
        try:
            return self._widgets_by_uri[uri]
        except KeyError:
            raise ResourceNotFound(uri) from None

    def widget_for_tool(self, name: str) -> Widget:
        try:
            return self._widgets_by_tool[name]
        except KeyError:
            raise ToolNotFound(name) from None


def build_registry(
    assets_dir: Optional[Union[str, Path]] = None,
    widgets: Tuple[WidgetSpec, ...] = WIDGETS,
    tools: Tuple[ToolSpec, ...] = TOOLS,
) -> Registry:
    """
    Load every widget's HTML and build the registry.

    Args:
        assets_dir: Directory with built widget HTML (defaults to bundled assets)
        widgets: Widget catalog
        tools: Tool catalog

    Returns:
        The ready Registry

    Raises:
        RegistryError: If widget HTML cannot be loaded, or a tool references
            a widget or template that is not registered
    """
    loaded: Dict[str, Widget] = {}
    widgets_by_uri: Dict[str, Widget] = {}
    for spec in widgets:
        if spec.template_uri in widgets_by_uri:
            raise RegistryError(f"Duplicate resource URI {spec.template_uri}")
        widget = Widget(spec=spec, html=read_widget_html(spec.id, assets_dir))
        loaded[spec.id] = widget
        widgets_by_uri[widget.uri] = widget
        logger.info("Loaded widget", widget=spec.id, uri=spec.template_uri)

    widgets_by_tool: Dict[str, Widget] = {}
    tools_by_name: Dict[str, Tool] = {}
    for spec in tools:
        if spec.name in tools_by_name:
            raise RegistryError(f"Duplicate tool name {spec.name}")
        widget = loaded.get(spec.widget_id)
        if widget is None:
            raise RegistryError(
                f"Tool {spec.name} references unknown widget {spec.widget_id}"
            )
        widgets_by_tool[spec.name] = widget
        tools_by_name[spec.name] = Tool(
            name=spec.name,
            title=spec.title,
            description=spec.description,
            inputSchema=spec.input_schema,
            **{"_meta": widget.meta},
        )

    resources = tuple(
        Resource(
            uri=w.uri,
            name=w.spec.title,
            description=f"{w.spec.title} widget markup",
            mimeType=WIDGET_MIME_TYPE,
            **{"_meta": w.meta},
        )
        for w in loaded.values()
    )
    templates = tuple(
        ResourceTemplate(
            uriTemplate=w.uri,
            name=w.spec.title,
            description=f"{w.spec.title} widget markup",
            mimeType=WIDGET_MIME_TYPE,
            **{"_meta": w.meta},
        )
        for w in loaded.values()
    )

    return Registry(
        tools=tuple(tools_by_name.values()),
        resources=resources,
        resource_templates=templates,
        _widgets_by_uri=MappingProxyType(widgets_by_uri),
        _widgets_by_tool=MappingProxyType(widgets_by_tool),
        _tools_by_name=MappingProxyType(tools_by_name),
    )
