from __future__ import annotations

import threading
from typing import Any, Callable, Generic, Hashable, Iterable, Mapping, Optional, Sequence, TypeVar

from services.errors import OfflineQueuedError
from services.offline_context import QUEUE_KEY, OfflineContext, QueueStatus
from services.sync_log import get_sync_logger


TVariables = TypeVar("TVariables", bound=Mapping[str, Any])
TData = TypeVar("TData")

Toast = Callable[[str, str], None]


class OfflineMutation(Generic[TVariables, TData]):
    """Run a write now when online, or queue it for background sync when not.

    Offline writes resolve with ``None`` instead of failing; the user sees a
    "Saved offline" toast and later a "synced" toast once the worker has
    replayed the queue.
    """

    def __init__(
        self,
        context: OfflineContext,
        *,
        mutation_fn: Callable[[TVariables], TData],
        type: str,
        action: str,
        endpoint: str,
        invalidate_keys: Iterable[Sequence[Hashable]] = (),
        optimistic_update: Optional[Callable[[TVariables], None]] = None,
        rollback: Optional[Callable[[TVariables, Any], None]] = None,
        on_mutate: Optional[Callable[[TVariables], Any]] = None,
        on_success: Optional[Callable[[TData, TVariables, Any], None]] = None,
        on_error: Optional[Callable[[Exception, TVariables, Any], None]] = None,
        on_settled: Optional[Callable[[Optional[TData], Optional[Exception], TVariables, Any], None]] = None,
        toast: Optional[Toast] = None,
    ) -> None:
        self.context = context
        self.mutation_fn = mutation_fn
        self.type = type
        self.action = action
        self.endpoint = endpoint
        self.invalidate_keys = [tuple(key) for key in invalidate_keys]
        self.optimistic_update = optimistic_update
        self.rollback = rollback
        self.on_mutate = on_mutate
        self.on_success = on_success
        self.on_error = on_error
        self.on_settled = on_settled
        self.toast = toast
        self.logger = get_sync_logger("mutation")

        self._loading = False
        self._error: Optional[Exception] = None
        self._data: Optional[TData] = None
        self._status_lock = threading.Lock()
        self._queue_status: Optional[QueueStatus] = None
        self._unsubscribe = context.notifier.subscribe(self._on_sync_complete)
        self.refresh_status()

    # ------------------------------------------------------------------
    # State
    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def is_error(self) -> bool:
        return self._error is not None

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    @property
    def data(self) -> Optional[TData]:
        return self._data

    @property
    def is_offline(self) -> bool:
        return not self.context.is_online()

    @property
    def queue_status(self) -> Optional[QueueStatus]:
        with self._status_lock:
            return self._queue_status

    @property
    def is_pending(self) -> bool:
        status = self.queue_status
        return bool(status and status.pending_count > 0)

    def refresh_status(self) -> QueueStatus:
        status = self.context.queue_status()
        with self._status_lock:
            self._queue_status = status
        return status

    # ------------------------------------------------------------------
    # Actions
    def mutate(self, variables: TVariables) -> None:
        """Fire-and-forget variant; failures are exposed through ``error``."""

        try:
            self.mutate_async(variables)
        except Exception as exc:
            self.logger.info("%s %s failed: %s", self.type, self.action, exc)

    def mutate_async(self, variables: TVariables) -> Optional[TData]:
        self._loading = True
        self._error = None
        mutate_context: Any = None
        try:
            try:
                if self.optimistic_update:
                    self.optimistic_update(variables)
                if self.on_mutate:
                    mutate_context = self.on_mutate(variables)
                data = self._execute(variables)
            except OfflineQueuedError:
                self.context.query_cache.invalidate(QUEUE_KEY)
                self.refresh_status()
                self._settle(None, None, variables, mutate_context)
                return None
            except Exception as exc:
                self._error = exc
                if self.rollback:
                    self.rollback(variables, mutate_context)
                if self.on_error:
                    self.on_error(exc, variables, mutate_context)
                self._settle(None, exc, variables, mutate_context)
                raise

            self._data = data
            self._invalidate()
            if self.on_success:
                self.on_success(data, variables, mutate_context)
            self._settle(data, None, variables, mutate_context)
            return data
        finally:
            self._loading = False

    def manual_sync(self) -> None:
        self.context.manual_sync()

    def dispose(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    # ------------------------------------------------------------------
    def _execute(self, variables: TVariables) -> TData:
        if self.context.is_online():
            return self.mutation_fn(variables)

        self.context.enqueuer.enqueue(
            self.type,
            self.action,
            self.endpoint,
            variables,
            self.context.auth.user_id,
        )
        self._toast("Saved offline", "Your changes will sync when you're back online")
        raise OfflineQueuedError("Mutation queued for background sync")

    def _settle(self, data, error, variables, mutate_context) -> None:
        if self.on_settled:
            self.on_settled(data, error, variables, mutate_context)

    def _invalidate(self) -> None:
        for key in self.invalidate_keys:
            self.context.query_cache.invalidate(key)

    def _toast(self, title: str, description: str) -> None:
        if self.toast:
            self.toast(title, description)
        else:
            self.logger.info("%s: %s", title, description)

    def _on_sync_complete(self, success: bool, synced_count: int) -> None:
        if success and synced_count > 0:
            plural = "s" if synced_count > 1 else ""
            self._toast("Synced", f"{synced_count} change{plural} synced successfully")
            self._invalidate()
        self.refresh_status()


__all__ = ["OfflineMutation"]
