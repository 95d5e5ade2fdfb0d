from __future__ import annotations

import threading
from typing import Callable, List

from services.sync_log import get_sync_logger


SyncCallback = Callable[[bool, int], None]


class SyncNotifier:
    """Fan-out of drain results; callbacks registered at notify time get them once."""

    def __init__(self) -> None:
        self._callbacks: List[SyncCallback] = []
        self._lock = threading.Lock()
        self.logger = get_sync_logger("notifier")

    def subscribe(self, callback: SyncCallback) -> Callable[[], None]:
        with self._lock:
            self._callbacks.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                try:
                    self._callbacks.remove(callback)
                except ValueError:
                    pass

        return _unsubscribe

    def notify(self, success: bool, synced_count: int) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        self.logger.info("SYNC_COMPLETE success=%s syncedCount=%s", success, synced_count)
        for callback in callbacks:
            try:
                callback(success, synced_count)
            except Exception:
                self.logger.exception("Sync completion subscriber failed")

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._callbacks)


__all__ = ["SyncCallback", "SyncNotifier"]
