"""
ResumableRunner -- drives a cursor-resumable trigger to completion.

Contract:
    ``run(invoke)`` calls ``invoke(cursor)`` with the cursor returned by
    the previous call until ``needs_more_runs`` is false or
    ``max_invocations`` is reached, committing after each invocation.

Invariants enforced:
    - The cursor strictly decreases between invocations.
    - Work committed by earlier invocations survives a later failure.
    - A ``BatchPageError`` is committed before it propagates, keeping the
      pages the walker released and the failed job state.  Any other error
      rolls the session back to the last commit.
"""

from __future__ import annotations

from collections.abc import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from recon_kernel.exceptions import BatchPageError
from recon_kernel.logging_config import get_logger

from recon_batch.domain.types import FeeRunResult, RunnerResult

logger = get_logger("batch.runner")

DEFAULT_MAX_INVOCATIONS = 100


class ResumableRunner:
    """Re-invokes a batch trigger from its returned cursor."""

    def __init__(
        self,
        session: Session,
        max_invocations: int = DEFAULT_MAX_INVOCATIONS,
        commit: bool = True,
    ):
        if max_invocations < 1:
            raise ValueError(f"max_invocations must be >= 1, got {max_invocations}")
        self._session = session
        self._max_invocations = max_invocations
        self._commit = commit

    def run(
        self,
        invoke: Callable[[UUID | None], FeeRunResult],
        cursor: UUID | None = None,
    ) -> RunnerResult:
        invocations = 0
        updated = 0
        unmatched = 0
        cursors: list[UUID] = []
        completed = False

        while invocations < self._max_invocations:
            try:
                result = invoke(cursor)
            except BatchPageError as exc:
                # Released pages and the failed job state are kept
                if self._commit:
                    self._session.commit()
                logger.error(
                    "runner_invocation_aborted",
                    extra={
                        "invocation": invocations + 1,
                        "pages_completed": exc.pages_completed,
                        "resume_cursor": exc.resume_cursor,
                    },
                )
                raise
            except Exception:
                if self._commit:
                    self._session.rollback()
                raise
            if self._commit:
                self._session.commit()

            invocations += 1
            updated += result.updated_count
            unmatched += result.unmatched_count

            if not result.needs_more_runs:
                completed = True
                cursor = None
                break

            next_cursor = result.next_cursor
            if next_cursor is None or (cursor is not None and not next_cursor < cursor):
                raise RuntimeError(
                    f"Trigger asked for another run without advancing the cursor "
                    f"(previous={cursor}, returned={next_cursor})"
                )
            cursor = next_cursor
            cursors.append(next_cursor)

            logger.info(
                "runner_invocation_finished",
                extra={
                    "invocation": invocations,
                    "updated_count": result.updated_count,
                    "remaining_count": result.remaining_count,
                    "next_cursor": next_cursor,
                },
            )

        logger.info(
            "runner_finished",
            extra={
                "invocations": invocations,
                "updated_count": updated,
                "unmatched_count": unmatched,
                "completed": completed,
            },
        )
        return RunnerResult(
            invocations=invocations,
            updated_count=updated,
            unmatched_count=unmatched,
            completed=completed,
            last_cursor=cursor,
            cursors=tuple(cursors),
        )
