"""Wiring of the offline queue for one running application.

Nothing here is a module-level singleton: the application builds one
:class:`OfflineContext`, calls :meth:`OfflineContext.init` at startup and
:meth:`OfflineContext.dispose` at shutdown.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from core.settings import OFFLINE, SUPABASE
from datetime_utils import to_rfc3339_utc
from services.auth_session import AuthSession, AuthUser
from services.connectivity import ConnectivityMonitor, default_probe
from services.mutation_enqueuer import MutationEnqueuer
from services.mutation_queue_store import MutationQueueStore, QueuedMutation
from services.query_cache import QueryCache
from services.replay_client import SupabaseReplayClient
from services.sync_log import get_sync_logger
from services.sync_notifier import SyncNotifier
from services.sync_state_storage import SyncStateStorage
from services.sync_worker import DrainResult, ReplayTransport, SyncWorker
from services.worker_host import (
    MANUAL_SYNC,
    SET_SUPABASE_CONFIG,
    BackgroundSyncHost,
    BackgroundSyncRegistrar,
)
from storage.config import load_config, update_config
from storage.db import get_engine, init_db, session_factory_for

# cache prefix of the per-user queue listing
QUEUE_KEY = ("queue",)


@dataclass(frozen=True)
class QueueStatus:
    pending_count: int
    last_sync_at: Optional[datetime] = None
    last_sync_attempt: Optional[datetime] = None
    is_syncing: bool = False
    oldest_mutation: Optional[QueuedMutation] = None
    dead_letter_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pendingCount": self.pending_count,
            "lastSynced": to_rfc3339_utc(self.last_sync_at),
            "lastSyncAttempt": to_rfc3339_utc(self.last_sync_attempt),
            "isSyncing": self.is_syncing,
            "oldestMutation": self.oldest_mutation.to_record() if self.oldest_mutation else None,
            "deadLetterCount": self.dead_letter_count,
        }


class OfflineContext:
    def __init__(
        self,
        *,
        engine=None,
        auth: Optional[AuthSession] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        replay_client: Optional[SupabaseReplayClient] = None,
        transport: Optional[ReplayTransport] = None,
        state: Optional[SyncStateStorage] = None,
        background_sync: bool = True,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        config_path: Optional[Path] = None,
        periodic_interval_sec: Optional[float] = OFFLINE.periodic_sync_interval_sec,
        holder_id: Optional[str] = None,
    ) -> None:
        self.engine = engine or get_engine()
        self.config_path = config_path
        self.auth = auth or AuthSession()
        self.monitor = monitor or ConnectivityMonitor(probe=default_probe())
        self.state = state or SyncStateStorage()
        self.query_cache = QueryCache()
        self.notifier = SyncNotifier()
        self.store = MutationQueueStore(session_factory=session_factory_for(self.engine))
        self.replay_client = replay_client or SupabaseReplayClient(
            token_provider=self.auth.access_token
        )
        self.worker = SyncWorker(
            self.store,
            transport or self.replay_client,
            self.notifier,
            lambda: self.auth.user_id,
            state=self.state,
            holder_id=holder_id,
        )
        self.host: Optional[BackgroundSyncHost] = None
        if background_sync:
            self.host = BackgroundSyncHost(
                self.worker,
                self.replay_client,
                self.monitor,
                periodic_interval_sec=periodic_interval_sec,
                config_path=config_path,
            )
        self.registrar = BackgroundSyncRegistrar(self.host)
        self.enqueuer = MutationEnqueuer(self.store, self.monitor, self.registrar)
        self._supabase_url = supabase_url
        self._supabase_key = supabase_key
        self._cleanups: List[Callable[[], None]] = []
        self._initialized = False
        self.logger = get_sync_logger("context")

    # ------------------------------------------------------------------
    # Lifecycle
    @property
    def initialized(self) -> bool:
        return self._initialized

    def init(self) -> "OfflineContext":
        if self._initialized:
            return self
        init_db(self.engine)

        saved = load_config(self.config_path)
        url = self._supabase_url or saved.supabase_url or SUPABASE.url
        key = self._supabase_key or saved.supabase_key or SUPABASE.key

        if self.host is not None:
            self.host.start()
            if url and key:
                self.host.post_message({"type": SET_SUPABASE_CONFIG, "url": url, "key": key})
        elif url and key:
            self.replay_client.configure(url, key)

        self._cleanups.append(self.monitor.subscribe("online", self._on_online))
        self._cleanups.append(self.auth.on_change(self._on_auth_change))
        self._cleanups.append(self.notifier.subscribe(self._on_sync_complete))
        self._initialized = True
        self.logger.info(
            "Offline context ready (background sync %s)",
            "supported" if self.registrar.is_supported() else "unsupported",
        )
        return self

    def dispose(self) -> None:
        while self._cleanups:
            cleanup = self._cleanups.pop()
            cleanup()
        if self.host is not None:
            self.host.stop()
        self._initialized = False

    def __enter__(self) -> "OfflineContext":
        return self.init()

    def __exit__(self, *exc) -> None:
        self.dispose()

    # ------------------------------------------------------------------
    # Events
    def _on_online(self) -> None:
        if self.registrar.is_supported():
            return
        self.logger.info("Back online without background sync; draining directly")
        self.worker.drain()

    def _on_sync_complete(self, success: bool, synced_count: int) -> None:
        self.query_cache.invalidate(QUEUE_KEY)

    def _on_auth_change(self, user: Optional[AuthUser]) -> None:
        if user is not None:
            update_config(self.config_path, last_user_id=user.id)

    # ------------------------------------------------------------------
    # Public helpers
    def is_online(self) -> bool:
        return self.monitor.is_online()

    def set_backend(self, url: str, key: str) -> None:
        if self.host is not None and self.host.running:
            self.host.post_message({"type": SET_SUPABASE_CONFIG, "url": url, "key": key})
            return
        self.replay_client.configure(url, key)
        update_config(self.config_path, supabase_url=url or None, supabase_key=key or None)

    def manual_sync(self) -> Optional[DrainResult]:
        if self.host is not None and self.host.running:
            self.host.post_message({"type": MANUAL_SYNC})
            return None
        return self.worker.drain()

    def queued_mutations(self) -> List[QueuedMutation]:
        """The signed-in user's queue, oldest first, read through the query cache."""
        user_id = self.auth.user_id
        if not user_id:
            return []
        return self.query_cache.fetch(QUEUE_KEY + (user_id,), lambda: self.store.list(user_id))

    def retry_dead_letter(self, mutation_id: str) -> bool:
        retried = self.store.retry_dead_letter(mutation_id)
        self.query_cache.invalidate(QUEUE_KEY)
        if retried:
            self.manual_sync()
        return retried

    def discard_dead_letter(self, mutation_id: str) -> bool:
        discarded = self.store.discard_dead_letter(mutation_id)
        self.query_cache.invalidate(QUEUE_KEY)
        return discarded

    def queue_status(self) -> QueueStatus:
        user_id = self.auth.user_id
        if not user_id:
            return QueueStatus(
                pending_count=0,
                last_sync_at=self.state.get_last_success(),
                last_sync_attempt=self.state.get_last_attempt(),
                is_syncing=self.worker.is_draining,
            )
        mutations = self.store.list(user_id)
        return QueueStatus(
            pending_count=len(mutations),
            last_sync_at=self.state.get_last_success(),
            last_sync_attempt=self.state.get_last_attempt(),
            is_syncing=self.worker.is_draining,
            oldest_mutation=mutations[0] if mutations else None,
            dead_letter_count=sum(1 for m in mutations if m.is_dead_letter),
        )


__all__ = ["QUEUE_KEY", "OfflineContext", "QueueStatus"]
