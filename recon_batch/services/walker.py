"""
CursorPageWalker -- keyset-paginated, SAVEPOINT-per-page batch walk.

Contract:
    ``walk()`` reads pages of a filtered select ordered by id descending,
    each page restricted to ``id < cursor`` where the cursor is the last id
    of the previous page, hands every page to a processor and stops on an
    empty page, a short page, or the page ceiling.

Architecture: recon_batch/services.  Imports from recon_batch.domain and
    recon_kernel only.

Invariants enforced:
    - Pages are read and written strictly sequentially.
    - The cursor strictly decreases between pages; a page that does not
      move it aborts the walk instead of looping.
    - Each page's writes run in their own SAVEPOINT.  A datastore error
      rolls back that page only and raises ``BatchPageError`` carrying the
      cursor of the last good page.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
    - Does NOT compute the remaining count; callers know their filter.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import Select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recon_kernel.exceptions import BatchPageError
from recon_kernel.logging_config import get_logger

from recon_batch.domain.types import PageOutcome, PageProgress, WalkResult

logger = get_logger("batch.walker")

PageProcessor = Callable[[Sequence[Any]], PageOutcome]


class CursorPageWalker:
    """Walk a filtered select page by page, newest id first.

    ``id_column`` must be the unique primary key of the rows selected by
    the statement; the rows handed to the processor must expose it as
    ``row.id``.
    """

    def __init__(self, session: Session, page_size: int, max_pages: int):
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")
        if max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {max_pages}")
        self._session = session
        self.page_size = page_size
        self.max_pages = max_pages

    def walk(
        self,
        stmt: Select,
        id_column: Any,
        process_page: PageProcessor,
        cursor: UUID | None = None,
        on_page: Callable[[PageProgress], None] | None = None,
    ) -> WalkResult:
        """Run one invocation of the walk.

        Args:
            stmt: Filtered select; ordering and limit are applied here.
            id_column: Primary key column used as the cursor.
            process_page: Writes one page and reports what it did.
            cursor: Resume point returned by a previous invocation.
            on_page: Called after each page's SAVEPOINT is released.

        Raises:
            BatchPageError: A datastore error aborted the walk.
        """
        pages = 0
        seen = 0
        updated = 0
        skipped = 0
        exhausted = False

        while pages < self.max_pages:
            page_stmt = stmt.order_by(id_column.desc()).limit(self.page_size)
            if cursor is not None:
                page_stmt = page_stmt.where(id_column < cursor)

            savepoint = self._session.begin_nested()
            try:
                rows = self._session.execute(page_stmt).all()
                if not rows:
                    savepoint.commit()
                    exhausted = True
                    break
                outcome = process_page(rows)
                savepoint.commit()
            except SQLAlchemyError as exc:
                savepoint.rollback()
                logger.error(
                    "batch_page_failed",
                    extra={
                        "pages_completed": pages,
                        "updated_count": updated,
                        "resume_cursor": cursor,
                        "error": str(exc),
                    },
                )
                raise BatchPageError(pages, updated, cursor, exc) from exc

            last_id = rows[-1].id
            if cursor is not None and not last_id < cursor:
                raise RuntimeError(
                    f"Cursor did not advance: {last_id} is not below {cursor}"
                )

            cursor = last_id
            pages += 1
            seen += len(rows)
            updated += outcome.updated
            skipped += outcome.skipped

            logger.debug(
                "batch_page_processed",
                extra={
                    "page_number": pages,
                    "rows_seen": len(rows),
                    "updated": outcome.updated,
                    "skipped": outcome.skipped,
                    "cursor": cursor,
                },
            )
            if on_page is not None:
                on_page(PageProgress(
                    page_number=pages,
                    rows_seen=len(rows),
                    outcome=outcome,
                    cursor=cursor,
                ))

            if len(rows) < self.page_size:
                exhausted = True
                break

        return WalkResult(
            pages_processed=pages,
            records_seen=seen,
            updated_count=updated,
            skipped_count=skipped,
            next_cursor=None if exhausted else cursor,
            exhausted=exhausted,
        )
