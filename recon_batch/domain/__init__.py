from recon_batch.domain.types import (
    FeeRunResult,
    PageOutcome,
    PageProgress,
    RunnerResult,
    SyncFlagResetResult,
    WalkResult,
)

__all__ = [
    "FeeRunResult",
    "PageOutcome",
    "PageProgress",
    "RunnerResult",
    "SyncFlagResetResult",
    "WalkResult",
]
