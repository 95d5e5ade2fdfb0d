from __future__ import annotations

import threading
from typing import Callable, Optional

import requests

from core.settings import OFFLINE, SUPABASE
from services.sync_log import get_sync_logger


def http_probe(url: str, timeout: float = OFFLINE.probe_timeout_sec) -> Callable[[], bool]:
    """Build a probe that reports online when ``url`` answers at all."""

    def _probe() -> bool:
        try:
            requests.head(url, timeout=timeout, allow_redirects=False)
        except requests.RequestException:
            return False
        return True

    return _probe


def default_probe() -> Optional[Callable[[], bool]]:
    if not SUPABASE.url:
        return None
    return http_probe(SUPABASE.url.rstrip("/") + "/" + SUPABASE.rest_path + "/")


class ConnectivityMonitor:
    """Current online flag plus ``online`` / ``offline`` transition events."""

    EVENTS = ("online", "offline")

    def __init__(self, *, initial: bool = True, probe: Optional[Callable[[], bool]] = None) -> None:
        self._online = bool(initial)
        self._probe = probe
        self._lock = threading.Lock()
        self._online_event = threading.Event()
        if self._online:
            self._online_event.set()
        self._listeners = {event: [] for event in self.EVENTS}
        self.logger = get_sync_logger("connectivity")

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, event: str, callback: Callable[[], None]) -> Callable[[], None]:
        if event not in self._listeners:
            raise ValueError(f"Unsupported event: {event}")
        with self._lock:
            self._listeners[event].append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                try:
                    self._listeners[event].remove(callback)
                except ValueError:
                    pass

        return _unsubscribe

    def set_online(self, online: bool) -> bool:
        """Apply a platform connectivity signal; returns ``True`` on a transition."""

        online = bool(online)
        with self._lock:
            if online == self._online:
                return False
            self._online = online
            if online:
                self._online_event.set()
            else:
                self._online_event.clear()
            listeners = list(self._listeners["online" if online else "offline"])
        self.logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in listeners:
            try:
                listener()
            except Exception:
                self.logger.exception("Connectivity listener failed")
        return True

    def poll(self) -> bool:
        if self._probe is not None:
            self.set_online(self._probe())
        return self._online

    def wait_for_online(self, timeout: Optional[float] = None) -> bool:
        return self._online_event.wait(timeout)


__all__ = ["ConnectivityMonitor", "default_probe", "http_probe"]
