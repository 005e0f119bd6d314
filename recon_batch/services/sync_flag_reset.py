"""
SyncFlagResetService -- make a date range eligible for ERP re-sync.

Contract:
    ``reset_sync_flags(from_date_int, to_date_int)`` clears ``erp_synced``
    on transactions in the inclusive ``yyyymmdd`` range whose flag is set,
    deletes the ERP order mappings aggregated on those dates, and reports
    the counts.

Invariants enforced:
    - Set-based and idempotent: a second call on the same range updates
      and deletes nothing.
    - Bounds are validated before anything is read or written.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
    - Does NOT contact the ERP; the next order sync re-creates mappings.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from recon_kernel.exceptions import InvalidDateRangeError
from recon_kernel.logging_config import get_logger
from recon_kernel.models.erp import ErpOrderMappingModel
from recon_kernel.models.ledger import TransactionModel

from recon_batch.domain.types import SyncFlagResetResult

logger = get_logger("batch.sync_flag_reset")


def parse_date_int(value: Any) -> date:
    """``20250131`` -> ``date(2025, 1, 31)``.  Raises ValueError."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"expected an integer yyyymmdd, got {value!r}")
    return datetime.strptime(f"{value:08d}", "%Y%m%d").date()


def validate_date_range(from_date_int: Any, to_date_int: Any) -> tuple[date, date]:
    """
    Raises:
        InvalidDateRangeError: Missing, malformed, or reversed bounds.
    """
    if from_date_int is None or to_date_int is None:
        raise InvalidDateRangeError(
            from_date_int, to_date_int, "both fromDateInt and toDateInt are required",
        )
    try:
        start = parse_date_int(from_date_int)
        end = parse_date_int(to_date_int)
    except ValueError as exc:
        raise InvalidDateRangeError(from_date_int, to_date_int, str(exc)) from None
    if start > end:
        raise InvalidDateRangeError(
            from_date_int, to_date_int, "fromDateInt is after toDateInt",
        )
    return start, end


class SyncFlagResetService:
    """Clears ERP sync state for a business-date range."""

    def __init__(self, session: Session):
        self._session = session

    def reset_sync_flags(self, from_date_int: Any, to_date_int: Any) -> SyncFlagResetResult:
        start, end = validate_date_range(from_date_int, to_date_int)

        in_range = (
            TransactionModel.created_at_date_int >= from_date_int,
            TransactionModel.created_at_date_int <= to_date_int,
            TransactionModel.erp_synced.is_(True),
        )

        total = self._session.execute(
            select(func.count()).select_from(TransactionModel).where(*in_range)
        ).scalar_one()

        deleted = self._session.execute(
            delete(ErpOrderMappingModel).where(
                ErpOrderMappingModel.aggregation_date >= start,
                ErpOrderMappingModel.aggregation_date <= end,
            )
        ).rowcount

        updated = self._session.execute(
            update(TransactionModel)
            .where(*in_range)
            .values(erp_synced=False)
        ).rowcount

        logger.info(
            "erp_sync_flags_reset",
            extra={
                "from_date_int": from_date_int,
                "to_date_int": to_date_int,
                "updated_count": updated,
                "total_count": total,
                "deleted_mappings_count": deleted,
            },
        )
        return SyncFlagResetResult(
            from_date_int=from_date_int,
            to_date_int=to_date_int,
            updated_count=updated,
            total_count=total,
            deleted_mappings_count=deleted,
        )
