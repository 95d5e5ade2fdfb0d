"""ORM models exposed by the offline mutation queue."""
from .drain_lease import DRAIN_LEASE_NAME, DrainLease
from .mutation_record import MutationRecord

__all__ = ["DRAIN_LEASE_NAME", "DrainLease", "MutationRecord"]
