"""Single-row lease that keeps drain passes exclusive across workers."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


DRAIN_LEASE_NAME = "drain"


class DrainLease(SQLModel, table=True):
    __tablename__ = "drain_lease"

    name: str = Field(default=DRAIN_LEASE_NAME, primary_key=True)
    holder: Optional[str] = None
    draining_since: Optional[datetime] = None
    expires_at: Optional[datetime] = None


__all__ = ["DRAIN_LEASE_NAME", "DrainLease"]
