from __future__ import annotations

from typing import Any, Mapping, Optional

from core.settings import OFFLINE
from models.mutation_payloads import parse_payload
from services.connectivity import ConnectivityMonitor
from services.errors import AuthenticationError, InvalidMutationError
from services.mutation_queue_store import MutationQueueStore, QueuedMutation
from services.sync_log import get_sync_logger
from services.worker_host import BackgroundSyncRegistrar


class MutationEnqueuer:
    """Persists writes made while offline and asks for a background sync."""

    def __init__(
        self,
        store: MutationQueueStore,
        monitor: ConnectivityMonitor,
        registrar: BackgroundSyncRegistrar,
        *,
        max_attempts: int = OFFLINE.max_attempts,
        deduplicate: bool = OFFLINE.deduplicate,
    ) -> None:
        self.store = store
        self.monitor = monitor
        self.registrar = registrar
        self.max_attempts = max_attempts
        self.deduplicate = deduplicate
        self.logger = get_sync_logger("enqueuer")

    def should_queue(self) -> bool:
        return not self.monitor.is_online()

    def enqueue(
        self,
        mutation_type: str,
        action: str,
        endpoint: str,
        payload: Mapping[str, Any],
        user_id: Optional[str],
    ) -> QueuedMutation:
        if not user_id:
            raise AuthenticationError("User not authenticated")

        if not isinstance(payload, Mapping):
            raise InvalidMutationError(f"{mutation_type} payload must be a mapping")
        data = dict(payload)
        owner = data.get("user_id")
        if owner is not None and owner != user_id:
            raise InvalidMutationError("Payload user_id does not match the signed-in user")
        if action == "create":
            data["user_id"] = user_id

        typed = parse_payload(mutation_type, action, data, endpoint=endpoint)
        mutation = QueuedMutation.new(
            mutation_type,
            action,
            endpoint,
            typed.to_dict(),
            user_id,
            max_attempts=self.max_attempts,
        )

        if self.deduplicate:
            existing = self.store.find_by_signature(user_id, mutation.signature)
            if existing is not None:
                self.logger.info("Duplicate of %s ignored", existing.id)
                return existing

        self.store.enqueue(mutation)
        try:
            self.registrar.register(mutation.sync_tag)
        except Exception:
            self.store.remove(mutation.id)
            self.logger.error("Background sync registration failed; %s rolled back", mutation.id)
            raise
        return mutation


__all__ = ["MutationEnqueuer"]
