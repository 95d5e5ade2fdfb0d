from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from core.settings import OFFLINE
from models.mutation_payloads import parse_payload
from services.errors import InvalidMutationError, QueueStorageError, ReplayAuthError, ReplayError
from services.mutation_queue_store import MutationQueueStore, QueuedMutation
from services.sync_log import get_sync_logger
from services.sync_notifier import SyncNotifier
from services.sync_state_storage import SyncStateStorage
from storage.device import lease_holder_id


IDLE = "idle"
DRAINING = "draining"


class ReplayTransport(Protocol):
    def replay(self, mutation: QueuedMutation) -> None: ...


@dataclass(frozen=True)
class DrainResult:
    success: bool
    synced_count: int
    failed_count: int = 0
    dead_lettered: int = 0
    error: Optional[str] = None


class SyncWorker:
    """Replays the current user's queued mutations one at a time, oldest first."""

    def __init__(
        self,
        store: MutationQueueStore,
        transport: ReplayTransport,
        notifier: SyncNotifier,
        current_user: Callable[[], Optional[str]],
        *,
        state: Optional[SyncStateStorage] = None,
        holder_id: Optional[str] = None,
        lease_ttl_sec: int = OFFLINE.lease_ttl_sec,
    ) -> None:
        self.store = store
        self.transport = transport
        self.notifier = notifier
        self.current_user = current_user
        self.state_storage = state or SyncStateStorage()
        self.holder_id = holder_id or lease_holder_id()
        self.lease_ttl_sec = lease_ttl_sec
        self._lock = threading.Lock()
        self._state = IDLE
        self.logger = get_sync_logger("worker")

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_draining(self) -> bool:
        return self._state == DRAINING

    def has_work(self) -> bool:
        user_id = self.current_user()
        if not user_id:
            return False
        return bool(self.store.list(user_id, include_dead=False))

    def drain(self) -> Optional[DrainResult]:
        """Run one drain pass; ``None`` when another pass already owns the queue."""

        if not self._lock.acquire(blocking=False):
            self.logger.info("Drain already in progress; trigger ignored")
            return None
        try:
            if not self.store.acquire_lease(self.holder_id, self.lease_ttl_sec):
                return None
            self._state = DRAINING
            try:
                result = self._drain_pass()
            except QueueStorageError as exc:
                self.logger.error("Drain aborted by storage failure: %s", exc)
                result = DrainResult(success=False, synced_count=0, error=str(exc))
            finally:
                self.store.release_lease(self.holder_id)
                self._state = IDLE
        finally:
            self._lock.release()

        self.notifier.notify(result.success, result.synced_count)
        return result

    # ------------------------------------------------------------------
    def _drain_pass(self) -> DrainResult:
        self.state_storage.record_attempt()
        user_id = self.current_user()
        if not user_id:
            self.logger.error("Drain aborted: no authenticated user")
            return DrainResult(success=False, synced_count=0, error="User not authenticated")

        pending = self.store.list(user_id, include_dead=False)
        self.logger.info("Drain started for user %s with %s mutation(s)", user_id, len(pending))

        synced = failed = dead = 0
        for mutation in pending:
            try:
                parse_payload(mutation.type, mutation.action, mutation.payload, endpoint=mutation.endpoint)
            except InvalidMutationError as exc:
                self.store.mark_dead_letter(mutation.id, f"invalid payload: {exc}")
                dead += 1
                continue

            try:
                self.transport.replay(mutation)
            except ReplayAuthError as exc:
                self.logger.error("Replay of %s rejected, stopping drain: %s", mutation.id, exc)
                self.store.record_failure(mutation.id, str(exc))
                return DrainResult(
                    success=False,
                    synced_count=synced,
                    failed_count=failed + 1,
                    dead_lettered=dead,
                    error=str(exc),
                )
            except ReplayError as exc:
                failed += 1
                self.logger.warning("Replay of %s %s failed: %s", mutation.type, mutation.id, exc)
                still_queued = self.store.record_failure(mutation.id, str(exc))
                if still_queued and not exc.retryable:
                    self.store.mark_dead_letter(mutation.id, str(exc))
                    still_queued = False
                if not still_queued:
                    dead += 1
                continue
            except Exception as exc:
                failed += 1
                self.logger.exception("Replay of %s crashed", mutation.id)
                if not self.store.record_failure(mutation.id, str(exc)):
                    dead += 1
                continue

            self.store.remove(mutation.id)
            synced += 1

        self.state_storage.record_success(synced)
        self.logger.info(
            "Drain finished: %s synced, %s failed, %s dead-lettered", synced, failed, dead
        )
        return DrainResult(success=True, synced_count=synced, failed_count=failed, dead_lettered=dead)


__all__ = ["DRAINING", "DrainResult", "IDLE", "ReplayTransport", "SyncWorker"]
