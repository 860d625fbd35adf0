"""Widget asset loading using importlib.resources."""

from importlib.resources import files
from pathlib import Path
from typing import Optional, Union

from gutendex_mcp.errors import RegistryError

# Reference to the bundled assets package
_ASSETS = files("gutendex_mcp.assets")


def read_widget_html(
    component_name: str, assets_dir: Optional[Union[str, Path]] = None
) -> str:
    """
    Read the built HTML for a widget component.

    Looks for ``<component_name>.html`` first, then falls back to the
    newest hashed build output ``<component_name>-<hash>.html`` (the
    lexicographically last match).

    Args:
        component_name: Widget id (e.g. "gutendex-search")
        assets_dir: Directory holding built widgets. Defaults to the
            assets bundled with this package.

    Returns:
        The widget HTML

    Raises:
        RegistryError: If the directory or a matching file does not exist
    """
    root = Path(assets_dir) if assets_dir is not None else _ASSETS
    if not root.is_dir():
        raise RegistryError(
            f"Widget assets not found. Expected directory {root}. "
            "Build the widgets or set ASSETS_DIR before starting the server."
        )

    direct = root.joinpath(f"{component_name}.html")
    if direct.is_file():
        return direct.read_text(encoding="utf-8")

    candidates = sorted(
        entry.name
        for entry in root.iterdir()
        if entry.name.startswith(f"{component_name}-") and entry.name.endswith(".html")
    )
    if candidates:
        return root.joinpath(candidates[-1]).read_text(encoding="utf-8")

    raise RegistryError(
        f'Widget HTML for "{component_name}" not found in {root}. '
        "Build the widgets or set ASSETS_DIR before starting the server."
    )
