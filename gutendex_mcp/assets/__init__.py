"""Widget templates bundled with gutendex_mcp."""

from gutendex_mcp.assets.loader import read_widget_html

__all__ = ["read_widget_html"]
