from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import SYNC_STATE_PATH
from datetime_utils import ensure_utc, parse_rfc3339, to_rfc3339_utc, utc_now


def _parse_datetime(value: Optional[str]):
    return ensure_utc(parse_rfc3339(value)) if value else None


class SyncStateStorage:
    """Timestamps of drain passes, kept outside the queue database."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path or SYNC_STATE_PATH)

    # ------------------------------------------------------------------
    # generic helpers
    def _load(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            return {}
        if isinstance(data, dict):
            return data
        return {}

    def _save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data), encoding="utf-8")
        tmp.replace(self.path)

    # ------------------------------------------------------------------
    def record_attempt(self, moment=None) -> None:
        data = self._load()
        data["lastSyncAttempt"] = to_rfc3339_utc(ensure_utc(moment) if moment else utc_now())
        self._save(data)

    def record_success(self, synced_count: int, moment=None) -> None:
        data = self._load()
        data["lastSyncSuccess"] = to_rfc3339_utc(ensure_utc(moment) if moment else utc_now())
        data["lastSyncedCount"] = int(synced_count)
        self._save(data)

    def get_last_attempt(self):
        return _parse_datetime(self._load().get("lastSyncAttempt"))

    def get_last_success(self):
        return _parse_datetime(self._load().get("lastSyncSuccess"))

    def get_last_synced_count(self) -> int:
        try:
            return int(self._load().get("lastSyncedCount") or 0)
        except (TypeError, ValueError):
            return 0

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


__all__ = ["SyncStateStorage"]
