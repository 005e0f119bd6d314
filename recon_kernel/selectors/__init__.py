"""Read-only selectors (CQRS-lite query side)."""

from recon_kernel.selectors.base import BaseSelector
from recon_kernel.selectors.sync_job_selector import SyncJobSelector

__all__ = ["BaseSelector", "SyncJobSelector"]
