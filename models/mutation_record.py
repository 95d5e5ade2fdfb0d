"""SQLModel table for mutations waiting to be replayed."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from core.settings import OFFLINE
from datetime_utils import utc_now


class MutationRecord(SQLModel, table=True):
    __tablename__ = OFFLINE.storage_key

    seq: Optional[int] = Field(default=None, primary_key=True)
    id: str = Field(index=True, unique=True)
    type: str = Field(index=True)
    action: str
    endpoint: str
    payload: str
    user_id: str = Field(index=True)
    signature: str = Field(default="", index=True)
    created_at: datetime = Field(default_factory=utc_now, index=True)
    attempts: int = Field(default=0)
    max_attempts: int = Field(default=OFFLINE.max_attempts)
    last_error: Optional[str] = None
    dead_lettered_at: Optional[datetime] = None


__all__ = ["MutationRecord"]
