"""Stable device identifier and per-process drain-lease holder names."""
from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Optional

from core.settings import DATA_DIR


_DEVICE_ID_PATH = DATA_DIR / "device_id.txt"


def _read_existing(path: Path) -> str | None:
    try:
        if path.exists():
            value = path.read_text(encoding="utf-8").strip()
            if value:
                return value
    except OSError:
        return None
    return None


def _write_value(path: Path, value: str) -> None:
    tmp = path.with_suffix(".tmp")
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        tmp.write_text(value, encoding="utf-8")
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass


def get_device_id(path: Optional[Path] = None) -> str:
    """Return a deterministic identifier for the current installation."""

    target = path or _DEVICE_ID_PATH
    existing = _read_existing(target)
    if existing:
        return existing

    new_id = uuid.uuid4().hex.upper()
    try:
        _write_value(target, new_id)
    except OSError:
        # Not persisted; the next start generates another id.
        return new_id
    return new_id


def lease_holder_id(device_id: Optional[str] = None) -> str:
    """Identify one worker instance on this device: ``DEVICE:pid:nonce``."""

    device = device_id or get_device_id()
    return f"{device}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


__all__ = ["get_device_id", "lease_holder_id"]
