from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from core.settings import SYNC_LOG_PATH


LOGGER_NAME = "saveplus.sync"


def get_sync_logger(name: Optional[str] = None) -> logging.Logger:
    """Return ``saveplus.sync`` (or a child of it) with the rotating file handler attached."""

    root = logging.getLogger(LOGGER_NAME)
    if not root.handlers:
        Path(SYNC_LOG_PATH).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(SYNC_LOG_PATH, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    if name:
        return root.getChild(name)
    return root


def read_sync_log(lines: int = 100, path: Path | str | None = None) -> str:
    target = Path(path or SYNC_LOG_PATH)
    try:
        with open(target, "r", encoding="utf-8") as fh:
            content = fh.readlines()
    except FileNotFoundError:
        return "No sync activity logged yet."
    content = [line.rstrip("\n") for line in content[-lines:]]
    return "\n".join(content)


__all__ = ["LOGGER_NAME", "get_sync_logger", "read_sync_log"]
