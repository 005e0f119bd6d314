"""
recon_batch.domain.types -- Pure frozen dataclasses for the batch system.

ZERO I/O.  Results returned by the walker, the fee jobs, the flag reset and
the resumable runner.  ``to_response()`` methods give the camelCase shape
the request handlers return.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class PageOutcome:
    """What a page processor did with one page of rows."""

    updated: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class PageProgress:
    """Reported to the walker's ``on_page`` hook after a page is written."""

    page_number: int  # 1-based within the invocation
    rows_seen: int
    outcome: PageOutcome
    cursor: UUID  # last id of the page; the next page reads below it


@dataclass(frozen=True)
class WalkResult:
    """Outcome of one walker invocation.

    ``next_cursor`` is None when the walk ran out of rows.  When the page
    ceiling stopped it, ``next_cursor`` is the id to resume below.
    """

    pages_processed: int
    records_seen: int
    updated_count: int
    skipped_count: int
    next_cursor: UUID | None
    exhausted: bool


@dataclass(frozen=True)
class FeeRunResult:
    """Result of one fee-recalculation invocation."""

    target: str
    scope_key: str | None
    updated_count: int
    remaining_count: int
    needs_more_runs: bool
    next_cursor: UUID | None
    pages_processed: int = 0
    unmatched_count: int = 0
    unmatched_labels: tuple[str, ...] = ()
    job_id: UUID | None = None

    def to_response(self) -> dict[str, Any]:
        response: dict[str, Any] = {
            "updatedCount": self.updated_count,
            "remainingCount": self.remaining_count,
            "needsMoreRuns": self.needs_more_runs,
            "nextCursor": str(self.next_cursor) if self.next_cursor else None,
        }
        if self.scope_key is None:
            response["unmatchedCount"] = self.unmatched_count
            response["unmatchedLabels"] = list(self.unmatched_labels)
        if self.job_id is not None:
            response["jobId"] = str(self.job_id)
        return response


@dataclass(frozen=True)
class SyncFlagResetResult:
    from_date_int: int
    to_date_int: int
    updated_count: int
    total_count: int
    deleted_mappings_count: int

    def to_response(self) -> dict[str, Any]:
        return {
            "updatedCount": self.updated_count,
            "totalCount": self.total_count,
            "deletedMappingsCount": self.deleted_mappings_count,
        }


@dataclass(frozen=True)
class RunnerResult:
    """Aggregate over repeated invocations by ``ResumableRunner``."""

    invocations: int
    updated_count: int
    unmatched_count: int
    completed: bool  # False when max_invocations stopped the loop
    last_cursor: UUID | None
    cursors: tuple[UUID, ...] = ()
