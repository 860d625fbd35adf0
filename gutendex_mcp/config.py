"""Runtime settings, read from the environment or a .env file."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_BASE_URL = "https://gutendex.com/books"

SSE_PATH = "/mcp"
MESSAGE_PATH = "/mcp/messages"


def _port_from_env(value: Optional[str]) -> int:
    """Parse PORT, falling back to the default when it is not a number."""
    if value is None:
        return DEFAULT_PORT
    try:
        return int(value)
    except ValueError:
        return DEFAULT_PORT


@dataclass(frozen=True)
class Settings:
    """Server settings. Override with environment variables or a .env file."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    gutendex_base_url: str = DEFAULT_BASE_URL
    assets_dir: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        assets_dir = os.environ.get("ASSETS_DIR")
        return cls(
            host=os.environ.get("HOST", DEFAULT_HOST),
            port=_port_from_env(os.environ.get("PORT")),
            gutendex_base_url=os.environ.get("GUTENDEX_BASE_URL", DEFAULT_BASE_URL),
            assets_dir=Path(assets_dir) if assets_dir else None,
        )
