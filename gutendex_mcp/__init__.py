"""MCP server exposing a Project Gutenberg (Gutendex) search tool over SSE."""

__version__ = "0.1.0"

SERVER_NAME = "gutendex-mcp-server"
