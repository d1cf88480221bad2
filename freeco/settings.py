"""Process-level settings read from the environment, and logging setup."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

# ---------------------------------------------------------------------------
# Environment configuration
# ---------------------------------------------------------------------------

DATA_DIR = Path(os.environ.get("FREECO_DATA_DIR", str(Path.home() / ".freeco")))
REQUEST_TIMEOUT = float(os.environ.get("FREECO_REQUEST_TIMEOUT", "10"))
LOG_LEVEL = os.environ.get("FREECO_LOG_LEVEL", "INFO")
HOST = os.environ.get("FREECO_HOST", "127.0.0.1")
PORT = int(os.environ.get("FREECO_PORT", "8000"))

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the HTTP app or the CLI."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
