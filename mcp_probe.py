#!/usr/bin/env python3
"""
Probe a running Gutendex MCP server: list tools and resources, run a search.

Usage:
    poetry run server &
    poetry run python mcp_probe.py [url] [search term]
"""

import asyncio
import logging
import sys

from mcp import ClientSession
from mcp.client.sse import sse_client

from gutendex_mcp.registry import SEARCH_TOOL_NAME

# Suppress INFO logs from the mcp client
logging.getLogger("mcp.client.sse").setLevel(logging.WARNING)

DEFAULT_URL = "http://localhost:8000/mcp"


async def probe_server(url: str, term: str) -> None:
    """Connect to the MCP server and exercise every request kind."""
    async with sse_client(url) as (read, write):
        async with ClientSession(read, write) as session:
            init = await session.initialize()

            print("=== Server Info ===")
            print(f"Connected to: {init.serverInfo.name} v{init.serverInfo.version}")

            print("\n=== Tools ===")
            tools = await session.list_tools()
            for tool in tools.tools:
                print(f"\n  Tool: {tool.name}")
                print(f"    Description: {tool.description}")
                print(f"    Input Schema: {tool.inputSchema}")

            print("\n=== Resources ===")
            resources = await session.list_resources()
            for resource in resources.resources:
                print(f"\n  Resource: {resource.name}")
                print(f"    URI: {resource.uri}")
                print(f"    MIME Type: {resource.mimeType}")

                result = await session.read_resource(resource.uri)
                for content in result.contents:
                    text = content.text if hasattr(content, "text") else str(content)
                    print(f"    Content ({len(text)} chars)")

            print(f"\n=== Search: {term!r} ===")
            result = await session.call_tool(SEARCH_TOOL_NAME, {"search": term})
            print(f"  {result.content[0].text}")
            for book in (result.structuredContent or {}).get("results", [])[:5]:
                authors = ", ".join(a["name"] or "?" for a in book["authors"])
                print(f"    [{book['id']}] {book['title']} ({authors or 'Unknown author'})")

            print("\n=== Probe Complete ===")


def main() -> None:
    """Entry point."""
    url = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_URL
    term = sys.argv[2] if len(sys.argv) > 2 else "alice"
    asyncio.run(probe_server(url, term))


if __name__ == "__main__":
    main()
