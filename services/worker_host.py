"""Background worker context.

The host owns its own thread and talks to the page context only through
:meth:`BackgroundSyncHost.post_message` and the shared queue store. It plays
the part of the platform background-sync facility: tags registered while
offline are kept until connectivity returns, at which point one drain pass
runs for all of them.
"""
from __future__ import annotations

import queue
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set

from core.settings import OFFLINE
from services.connectivity import ConnectivityMonitor
from services.errors import BackgroundSyncError
from services.replay_client import SupabaseReplayClient
from services.sync_log import get_sync_logger
from services.sync_worker import SyncWorker
from storage.config import update_config


SET_SUPABASE_CONFIG = "SET_SUPABASE_CONFIG"
MANUAL_SYNC = "MANUAL_SYNC"
SYNC = "SYNC"
_STOP = "__STOP__"


class BackgroundSyncHost:
    supports_sync = True

    def __init__(
        self,
        worker: SyncWorker,
        replay_client: SupabaseReplayClient,
        monitor: ConnectivityMonitor,
        *,
        periodic_interval_sec: Optional[float] = OFFLINE.periodic_sync_interval_sec,
        config_path: Optional[Path] = None,
        persist_config: bool = True,
    ) -> None:
        self.worker = worker
        self.replay_client = replay_client
        self.monitor = monitor
        self.periodic_interval_sec = periodic_interval_sec
        self.config_path = config_path
        self.persist_config = persist_config
        self._inbox: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self._tags: Set[str] = set()
        self._tags_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._unsubscribe_online: Optional[Callable[[], None]] = None
        self.logger = get_sync_logger("host")

    # ------------------------------------------------------------------
    # Lifecycle
    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._unsubscribe_online = self.monitor.subscribe("online", self._on_online)
        self._thread = threading.Thread(target=self._run, name="saveplus-sync-worker", daemon=True)
        self._thread.start()
        self.logger.info("Background sync worker started")
        if self.monitor.is_online():
            # records left over from an earlier run
            self.post_message({"type": SYNC, "tag": None, "reconnect": True})

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        if self._unsubscribe_online:
            self._unsubscribe_online()
            self._unsubscribe_online = None
        thread = self._thread
        if thread is None:
            return
        self._inbox.put({"type": _STOP})
        thread.join(timeout)
        self._thread = None
        self.logger.info("Background sync worker stopped")

    # ------------------------------------------------------------------
    # Page-side API
    def post_message(self, message: Dict[str, Any]) -> None:
        if not isinstance(message, dict) or "type" not in message:
            raise ValueError(f"Malformed worker message: {message!r}")
        self._inbox.put(dict(message))

    def register(self, tag: str) -> None:
        if not self.running:
            raise BackgroundSyncError(f"Worker is not running; cannot register {tag!r}")
        with self._tags_lock:
            self._tags.add(tag)
        self.logger.info("Background sync registered: %s", tag)
        if self.monitor.is_online():
            self.post_message({"type": SYNC, "tag": tag})

    @property
    def pending_tags(self) -> Set[str]:
        with self._tags_lock:
            return set(self._tags)

    def wait_idle(self) -> None:
        """Block until every posted message has been handled."""

        self._inbox.join()

    # ------------------------------------------------------------------
    # Worker side
    def _on_online(self) -> None:
        tags = self.pending_tags
        tag = sorted(tags)[0] if tags else None
        self.post_message({"type": SYNC, "tag": tag, "reconnect": True})

    def _run(self) -> None:
        while True:
            try:
                message = self._inbox.get(timeout=self.periodic_interval_sec)
            except queue.Empty:
                self._periodic_wake()
                continue
            try:
                if message.get("type") == _STOP:
                    return
                self.handle_message(message)
            except Exception:
                self.logger.exception("Worker message %s failed", message.get("type"))
            finally:
                self._inbox.task_done()

    def _periodic_wake(self) -> None:
        try:
            if self.monitor.poll() and self.worker.has_work():
                self.logger.info("Periodic wake with pending work")
                self._drain()
        except Exception:
            self.logger.exception("Periodic sync failed")

    def handle_message(self, message: Dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == SET_SUPABASE_CONFIG:
            url = str(message.get("url") or "")
            key = str(message.get("key") or "")
            self.replay_client.configure(url, key)
            if self.persist_config:
                update_config(self.config_path, supabase_url=url or None, supabase_key=key or None)
        elif kind == MANUAL_SYNC:
            self.logger.info("Manual sync requested")
            self._drain()
        elif kind == SYNC:
            self._handle_wake(message)
        else:
            self.logger.warning("Unknown worker message: %r", kind)

    def _handle_wake(self, message: Dict[str, Any]) -> None:
        tag = message.get("tag")
        with self._tags_lock:
            registered = tag in self._tags
        if not registered:
            # a reconnect wake still drains whatever an earlier run persisted
            if not (message.get("reconnect") and self.worker.has_work()):
                return
        if not self.monitor.is_online():
            self.logger.info("Still offline; wake %s kept for reconnect", tag)
            return
        with self._tags_lock:
            self._tags.clear()
        self.logger.info("Background sync wake: %s", tag or "reconnect")
        self.worker.drain()

    def _drain(self) -> None:
        if not self.monitor.is_online():
            self.logger.info("Still offline; drain postponed")
            return
        self.worker.drain()


class BackgroundSyncRegistrar:
    """Asks the worker host to wake up once connectivity returns."""

    def __init__(self, host: Optional[BackgroundSyncHost] = None) -> None:
        self.host = host
        self.logger = get_sync_logger("registrar")

    def is_supported(self) -> bool:
        return self.host is not None and bool(getattr(self.host, "supports_sync", False))

    def register(self, tag: str) -> bool:
        if not self.is_supported():
            self.logger.debug("Background sync not supported; %s not registered", tag)
            return False
        try:
            self.host.register(tag)
        except BackgroundSyncError:
            raise
        except Exception as exc:
            raise BackgroundSyncError(f"Failed to register background sync {tag!r}: {exc}") from exc
        return True


__all__ = [
    "BackgroundSyncHost",
    "BackgroundSyncRegistrar",
    "MANUAL_SYNC",
    "SET_SUPABASE_CONFIG",
    "SYNC",
]
