"""Logging setup shared by the command-line entry points."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(verbose: bool = False, log_path: Optional[Path] = None) -> None:
    """Configure logging to stdout and, when ``log_path`` is given, a file."""

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, mode="w", encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # PIL logs every decoded chunk at DEBUG level
    logging.getLogger("PIL").setLevel(logging.INFO)
