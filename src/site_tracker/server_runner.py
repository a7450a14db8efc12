"""Helpers to launch the local tracking server."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional

import uvicorn

from .paths import get_db_path
from .webapp import create_app


def run_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    log_level: str = "info",
) -> None:
    """Start the FastAPI app that receives host signals and serves stats."""
    app = create_app(db_path=db_path or get_db_path(), overrides=overrides)
    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)
