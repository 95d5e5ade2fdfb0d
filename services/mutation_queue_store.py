from __future__ import annotations

import hashlib
import json
import secrets
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlmodel import select

from core.settings import OFFLINE
from datetime_utils import ensure_utc, epoch_ms, to_rfc3339_utc, utc_now
from models.drain_lease import DRAIN_LEASE_NAME, DrainLease
from models.mutation_record import MutationRecord
from services.errors import QueueStorageError, StorageExhaustedError
from services.sync_log import get_sync_logger
from storage.db import get_session


_EXHAUSTION_MARKERS = ("full", "quota", "no space")


def generate_mutation_id(now: Optional[datetime] = None) -> str:
    return f"{epoch_ms(now)}-{secrets.token_hex(4)[:7]}"


def mutation_signature(
    user_id: str,
    mutation_type: str,
    action: str,
    endpoint: str,
    payload: Mapping[str, Any],
) -> str:
    raw = json.dumps(
        {
            "userId": user_id,
            "type": mutation_type,
            "action": action,
            "endpoint": endpoint,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class QueuedMutation:
    id: str
    type: str
    action: str
    endpoint: str
    payload: Dict[str, Any]
    user_id: str
    created_at: datetime
    attempts: int = 0
    max_attempts: int = OFFLINE.max_attempts
    signature: str = ""
    last_error: Optional[str] = None
    dead_lettered_at: Optional[datetime] = field(default=None, compare=False)

    @classmethod
    def new(
        cls,
        mutation_type: str,
        action: str,
        endpoint: str,
        payload: Mapping[str, Any],
        user_id: str,
        *,
        max_attempts: int = OFFLINE.max_attempts,
    ) -> "QueuedMutation":
        now = utc_now()
        snapshot = json.loads(json.dumps(dict(payload), ensure_ascii=False))
        return cls(
            id=generate_mutation_id(now),
            type=mutation_type,
            action=action,
            endpoint=endpoint,
            payload=snapshot,
            user_id=user_id,
            created_at=now,
            attempts=0,
            max_attempts=max_attempts,
            signature=mutation_signature(user_id, mutation_type, action, endpoint, snapshot),
        )

    @property
    def is_dead_letter(self) -> bool:
        return self.dead_lettered_at is not None

    @property
    def sync_tag(self) -> str:
        return f"{self.type}-sync"

    def with_attempts(self, attempts: int) -> "QueuedMutation":
        return replace(self, attempts=attempts)

    def to_record(self) -> Dict[str, Any]:
        """JSON shape used by the persisted queue and the worker messages."""

        return {
            "id": self.id,
            "type": self.type,
            "action": self.action,
            "endpoint": self.endpoint,
            "payload": json.loads(json.dumps(self.payload)),
            "userId": self.user_id,
            "createdAt": to_rfc3339_utc(self.created_at),
            "attempts": self.attempts,
        }


def _to_mutation(row: MutationRecord) -> QueuedMutation:
    try:
        payload = json.loads(row.payload)
    except json.JSONDecodeError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    return QueuedMutation(
        id=row.id,
        type=row.type,
        action=row.action,
        endpoint=row.endpoint,
        payload=payload,
        user_id=row.user_id,
        created_at=ensure_utc(row.created_at),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        signature=row.signature,
        last_error=row.last_error,
        dead_lettered_at=ensure_utc(row.dead_lettered_at),
    )


def _storage_error(exc: SQLAlchemyError, action: str) -> QueueStorageError:
    message = str(getattr(exc, "orig", None) or exc)
    if isinstance(exc, OperationalError) and any(m in message.lower() for m in _EXHAUSTION_MARKERS):
        return StorageExhaustedError(f"Storage exhausted while trying to {action}: {message}")
    return QueueStorageError(f"Could not {action}: {message}")


class MutationQueueStore:
    """Durable FIFO of :class:`QueuedMutation` records backed by SQLite."""

    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory
        self.logger = get_sync_logger("store")

    # ------------------------------------------------------------------
    # Writes
    def enqueue(self, mutation: QueuedMutation) -> QueuedMutation:
        record = MutationRecord(
            id=mutation.id,
            type=mutation.type,
            action=mutation.action,
            endpoint=mutation.endpoint,
            payload=json.dumps(mutation.payload, ensure_ascii=False),
            user_id=mutation.user_id,
            signature=mutation.signature,
            created_at=mutation.created_at,
            attempts=mutation.attempts,
            max_attempts=mutation.max_attempts,
        )
        try:
            with self._session_factory() as session:
                session.add(record)
                session.commit()
        except IntegrityError as exc:
            raise QueueStorageError(f"Mutation {mutation.id} is already queued") from exc
        except SQLAlchemyError as exc:
            self.logger.error("Enqueue of %s failed: %s", mutation.id, exc)
            raise _storage_error(exc, "enqueue mutation") from exc
        self.logger.info(
            "Queued %s %s (%s) for user %s", mutation.type, mutation.action, mutation.id, mutation.user_id
        )
        return mutation

    def remove(self, mutation_id: str) -> None:
        try:
            with self._session_factory() as session:
                row = session.exec(select(MutationRecord).where(MutationRecord.id == mutation_id)).first()
                if row:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as exc:
            raise _storage_error(exc, "remove mutation") from exc

    def record_failure(self, mutation_id: str, error: str) -> bool:
        """Bump ``attempts`` and flag a dead letter once the ceiling is reached.

        Returns ``True`` while the record is still eligible for replay.
        """

        now = utc_now()
        try:
            with self._session_factory() as session:
                result = session.connection().execute(
                    update(MutationRecord)
                    .where(MutationRecord.id == mutation_id)
                    .values(
                        attempts=MutationRecord.attempts + 1,
                        last_error=error[:1000],
                    )
                )
                if not result.rowcount:
                    session.rollback()
                    return False
                session.connection().execute(
                    update(MutationRecord)
                    .where(MutationRecord.id == mutation_id)
                    .where(MutationRecord.attempts >= MutationRecord.max_attempts)
                    .where(MutationRecord.dead_lettered_at.is_(None))
                    .values(dead_lettered_at=now)
                )
                session.commit()
                row = session.exec(select(MutationRecord).where(MutationRecord.id == mutation_id)).first()
                retryable = row is not None and row.dead_lettered_at is None
        except SQLAlchemyError as exc:
            raise _storage_error(exc, "record replay failure") from exc
        if not retryable:
            self.logger.warning("Mutation %s moved to dead letters: %s", mutation_id, error)
        return retryable

    def mark_dead_letter(self, mutation_id: str, error: str) -> None:
        try:
            with self._session_factory() as session:
                session.connection().execute(
                    update(MutationRecord)
                    .where(MutationRecord.id == mutation_id)
                    .values(last_error=error[:1000], dead_lettered_at=utc_now())
                )
                session.commit()
        except SQLAlchemyError as exc:
            raise _storage_error(exc, "flag dead letter") from exc
        self.logger.warning("Mutation %s moved to dead letters: %s", mutation_id, error)

    def retry_dead_letter(self, mutation_id: str) -> bool:
        with self._session_factory() as session:
            result = session.connection().execute(
                update(MutationRecord)
                .where(MutationRecord.id == mutation_id)
                .where(MutationRecord.dead_lettered_at.is_not(None))
                .values(attempts=0, dead_lettered_at=None, last_error=None)
            )
            session.commit()
            return bool(result.rowcount)

    def discard_dead_letter(self, mutation_id: str) -> bool:
        with self._session_factory() as session:
            row = session.exec(
                select(MutationRecord)
                .where(MutationRecord.id == mutation_id)
                .where(MutationRecord.dead_lettered_at.is_not(None))
            ).first()
            if row is None:
                return False
            session.delete(row)
            session.commit()
        self.logger.info("Dead letter %s discarded", mutation_id)
        return True

    def clear_user(self, user_id: str) -> int:
        with self._session_factory() as session:
            rows = list(session.exec(select(MutationRecord).where(MutationRecord.user_id == user_id)))
            for row in rows:
                session.delete(row)
            session.commit()
        if rows:
            self.logger.info("Cleared %s queued mutation(s) for user %s", len(rows), user_id)
        return len(rows)

    # ------------------------------------------------------------------
    # Reads
    def _ordered(self, stmt):
        return stmt.order_by(MutationRecord.created_at.asc(), MutationRecord.seq.asc())

    def list(self, user_id: Optional[str] = None, *, include_dead: bool = True) -> List[QueuedMutation]:
        stmt = select(MutationRecord)
        if user_id is not None:
            stmt = stmt.where(MutationRecord.user_id == user_id)
        if not include_dead:
            stmt = stmt.where(MutationRecord.dead_lettered_at.is_(None))
        with self._session_factory() as session:
            rows = list(session.exec(self._ordered(stmt)))
        return [_to_mutation(row) for row in rows]

    def list_by_type(self, mutation_type: str, user_id: Optional[str] = None) -> List[QueuedMutation]:
        return [m for m in self.list(user_id) if m.type == mutation_type]

    def dead_letters(self, user_id: Optional[str] = None) -> List[QueuedMutation]:
        return [m for m in self.list(user_id) if m.is_dead_letter]

    def get(self, mutation_id: str) -> Optional[QueuedMutation]:
        with self._session_factory() as session:
            row = session.exec(select(MutationRecord).where(MutationRecord.id == mutation_id)).first()
            return _to_mutation(row) if row else None

    def find_by_signature(self, user_id: str, signature: str) -> Optional[QueuedMutation]:
        stmt = (
            select(MutationRecord)
            .where(MutationRecord.user_id == user_id)
            .where(MutationRecord.signature == signature)
            .where(MutationRecord.dead_lettered_at.is_(None))
        )
        with self._session_factory() as session:
            row = session.exec(self._ordered(stmt)).first()
            return _to_mutation(row) if row else None

    def count(self, user_id: Optional[str] = None, *, dead_only: bool = False) -> int:
        stmt = select(func.count()).select_from(MutationRecord)
        if user_id is not None:
            stmt = stmt.where(MutationRecord.user_id == user_id)
        if dead_only:
            stmt = stmt.where(MutationRecord.dead_lettered_at.is_not(None))
        with self._session_factory() as session:
            return int(session.exec(stmt).one())

    def snapshot(self, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return [m.to_record() for m in self.list(user_id)]

    # ------------------------------------------------------------------
    # Drain lease
    def acquire_lease(self, holder: str, ttl_sec: int = OFFLINE.lease_ttl_sec) -> bool:
        """Take the drain lease unless another holder owns an unexpired one."""

        now = utc_now()
        with self._session_factory() as session:
            if session.get(DrainLease, DRAIN_LEASE_NAME) is None:
                session.add(DrainLease(name=DRAIN_LEASE_NAME))
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
            result = session.connection().execute(
                update(DrainLease)
                .where(DrainLease.name == DRAIN_LEASE_NAME)
                .where(
                    or_(
                        DrainLease.holder.is_(None),
                        DrainLease.holder == holder,
                        DrainLease.expires_at <= now,
                    )
                )
                .values(
                    holder=holder,
                    draining_since=now,
                    expires_at=now + timedelta(seconds=ttl_sec),
                )
            )
            session.commit()
            acquired = result.rowcount == 1
        if not acquired:
            self.logger.info("Drain lease busy; %s skipped", holder)
        return acquired

    def release_lease(self, holder: str) -> None:
        with self._session_factory() as session:
            session.connection().execute(
                update(DrainLease)
                .where(DrainLease.name == DRAIN_LEASE_NAME)
                .where(DrainLease.holder == holder)
                .values(holder=None, draining_since=None, expires_at=None)
            )
            session.commit()

    def lease_holder(self) -> Optional[str]:
        with self._session_factory() as session:
            lease = session.get(DrainLease, DRAIN_LEASE_NAME)
            if lease is None or lease.holder is None:
                return None
            expires = ensure_utc(lease.expires_at)
            if expires is not None and expires <= utc_now():
                return None
            return lease.holder


__all__ = [
    "MutationQueueStore",
    "QueuedMutation",
    "generate_mutation_id",
    "mutation_signature",
]
