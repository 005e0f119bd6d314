"""
Pure domain layer.

Immutable DTOs and the clock abstraction, with no dependency on the ORM
or the database.
"""

from recon_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from recon_kernel.domain.jobs import (
    ACTIVE_STATUSES,
    VALID_TRANSITIONS,
    SyncJob,
    SyncJobStatus,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "SyncJob",
    "SyncJobStatus",
    "ACTIVE_STATUSES",
    "VALID_TRANSITIONS",
]
