from recon_batch.services.fee_recalculation import (
    FeeRecalculationService,
    FeeTarget,
    FeeTargetRegistry,
    default_fee_targets,
)
from recon_batch.services.job_tracker import SYSTEM_ACTOR_ID, SyncJobTracker
from recon_batch.services.runner import ResumableRunner
from recon_batch.services.sync_flag_reset import SyncFlagResetService
from recon_batch.services.upsert_sink import IdempotentUpsertSink
from recon_batch.services.walker import CursorPageWalker

__all__ = [
    "CursorPageWalker",
    "FeeRecalculationService",
    "FeeTarget",
    "FeeTargetRegistry",
    "IdempotentUpsertSink",
    "ResumableRunner",
    "SYSTEM_ACTOR_ID",
    "SyncFlagResetService",
    "SyncJobTracker",
    "default_fee_targets",
]
