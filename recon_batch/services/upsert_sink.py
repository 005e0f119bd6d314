"""
IdempotentUpsertSink -- absolute-value bulk writes keyed by primary id.

Contract:
    ``write(rows)`` issues ONE bulk UPDATE-by-primary-key for a page of
    ``{"id": ..., <column>: <value>}`` dicts.  Values are absolute, never
    increments, so re-applying a page leaves identical stored values.

Invariants enforced:
    - Only columns declared writable at construction are touched.  The
      declared set must itself be a subset of the model's derived columns.
    - Rows without an ``id`` are rejected before anything is written.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from recon_kernel.logging_config import get_logger
from recon_kernel.models.ledger import DERIVED_COLUMNS

logger = get_logger("batch.upsert_sink")


class IdempotentUpsertSink:
    """Bulk writer for engine-owned columns of a ledger table."""

    def __init__(
        self,
        session: Session,
        model: type,
        writable_columns: Iterable[str],
        allowed_columns: frozenset[str] = DERIVED_COLUMNS,
    ):
        writable = frozenset(writable_columns)
        if not writable:
            raise ValueError("At least one writable column is required")
        foreign = writable - allowed_columns
        if foreign:
            raise ValueError(
                f"Columns {sorted(foreign)} of {model.__name__} are not "
                f"engine-owned; allowed: {sorted(allowed_columns)}"
            )
        self._session = session
        self._model = model
        self.writable_columns = writable

    def write(self, rows: Sequence[dict[str, Any]]) -> int:
        """Write one page.  Returns the number of rows written.

        Raises:
            ValueError: A row lacks ``id`` or names a non-writable column.
        """
        if not rows:
            return 0

        for row in rows:
            if "id" not in row:
                raise ValueError(f"Row without primary key: {row!r}")
            extra = set(row) - {"id"} - self.writable_columns
            if extra:
                raise ValueError(
                    f"Refusing to write non-derived column(s) {sorted(extra)} "
                    f"to {self._model.__tablename__}"
                )

        self._session.execute(update(self._model), list(rows))

        logger.debug(
            "upsert_page_written",
            extra={"table": self._model.__tablename__, "row_count": len(rows)},
        )
        return len(rows)
