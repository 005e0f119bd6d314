"""
TreasuryReconciliationService -- keeps ``current_balance`` equal to what the
posted entries say it should be.

Contract:
    ``post_entry()`` is the normal incremental path: it marks one draft
    entry posted and applies its signed effect to the treasury balance.
    ``recalculate()`` is the from-scratch audit: for one treasury or all of
    them it recomputes the balance from posted entries, compares with the
    stored value and overwrites it when the drift exceeds the epsilon.

Invariants enforced:
    - Drift is never an exception; it is logged at WARNING and corrected.
    - Only POSTED entries count; drafts have no effect on the balance.
    - Treasury rows are locked (SELECT ... FOR UPDATE) before writing.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from recon_config.schema import TreasurySettings
from recon_engines.treasury import PostedEntry, compute_balance, exceeds_epsilon, signed_effect
from recon_kernel.exceptions import TreasuryEntryStateError, TreasuryNotFoundError
from recon_kernel.logging_config import get_logger
from recon_kernel.models.treasury import (
    TreasuryEntryModel,
    TreasuryEntryStatus,
    TreasuryModel,
)

logger = get_logger("services.treasury")


@dataclass(frozen=True)
class TreasuryRecalculation:
    treasury_id: UUID
    treasury_name: str
    opening_balance: Decimal
    old_balance: Decimal
    new_balance: Decimal
    difference: Decimal
    receipts_sum: Decimal
    payments_sum: Decimal
    transfers_sum: Decimal
    corrected: bool

    def to_response(self) -> dict[str, Any]:
        return {
            "treasuryId": str(self.treasury_id),
            "name": self.treasury_name,
            "openingBalance": float(self.opening_balance),
            "oldBalance": float(self.old_balance),
            "newBalance": float(self.new_balance),
            "difference": float(self.difference),
            "receiptsSum": float(self.receipts_sum),
            "paymentsSum": float(self.payments_sum),
            "transfersSum": float(self.transfers_sum),
            "corrected": self.corrected,
        }


class TreasuryReconciliationService:

    def __init__(self, session: Session, settings: TreasurySettings | None = None):
        self._session = session
        self._epsilon = (settings or TreasurySettings()).drift_epsilon

    # -------------------------------------------------------------------------
    # Incremental path
    # -------------------------------------------------------------------------

    def post_entry(self, entry_id: UUID) -> Decimal:
        """Post a draft entry and return the treasury's new balance.

        Raises:
            TreasuryEntryStateError: Entry missing or not a draft.
        """
        entry = self._session.get(TreasuryEntryModel, entry_id)
        if entry is None:
            raise TreasuryEntryStateError(str(entry_id), "missing")
        if entry.status != TreasuryEntryStatus.DRAFT.value:
            raise TreasuryEntryStateError(str(entry_id), entry.status)

        treasury = self._lock_treasury(entry.treasury_id)
        effect = signed_effect(_to_posted(entry))
        treasury.current_balance = treasury.current_balance + effect
        entry.status = TreasuryEntryStatus.POSTED.value
        self._session.flush()

        logger.info(
            "treasury_entry_posted",
            extra={
                "treasury_id": str(treasury.id),
                "entry_id": str(entry_id),
                "entry_type": entry.entry_type,
                "effect": effect,
                "current_balance": treasury.current_balance,
            },
        )
        return treasury.current_balance

    # -------------------------------------------------------------------------
    # From-scratch audit
    # -------------------------------------------------------------------------

    def recalculate(self, treasury_id: UUID | None = None) -> tuple[TreasuryRecalculation, ...]:
        """Recompute one treasury (or all) from posted entries.

        Raises:
            TreasuryNotFoundError: ``treasury_id`` given but missing,
                or no treasuries exist at all.
        """
        if treasury_id is not None:
            treasuries = [self._lock_treasury(treasury_id)]
        else:
            treasuries = list(self._session.execute(
                select(TreasuryModel).order_by(TreasuryModel.name).with_for_update()
            ).scalars().all())
            if not treasuries:
                raise TreasuryNotFoundError()

        results = tuple(self._recalculate_one(t) for t in treasuries)
        logger.info(
            "treasury_recalculation_finished",
            extra={
                "treasury_count": len(results),
                "corrected_count": sum(1 for r in results if r.corrected),
            },
        )
        return results

    def _recalculate_one(self, treasury: TreasuryModel) -> TreasuryRecalculation:
        entries = self._session.execute(
            select(TreasuryEntryModel).where(
                TreasuryEntryModel.treasury_id == treasury.id,
                TreasuryEntryModel.status == TreasuryEntryStatus.POSTED.value,
            )
        ).scalars().all()

        computation = compute_balance(
            opening_balance=treasury.opening_balance,
            entries=[_to_posted(e) for e in entries],
        )
        old_balance = treasury.current_balance
        new_balance = computation.balance
        difference = new_balance - old_balance
        corrected = exceeds_epsilon(difference, self._epsilon)

        if corrected:
            treasury.current_balance = new_balance
            self._session.flush()
            logger.warning(
                "treasury_balance_drift_corrected",
                extra={
                    "treasury_id": str(treasury.id),
                    "treasury_name": treasury.name,
                    "old_balance": old_balance,
                    "new_balance": new_balance,
                    "difference": difference,
                },
            )

        return TreasuryRecalculation(
            treasury_id=treasury.id,
            treasury_name=treasury.name,
            opening_balance=computation.opening_balance,
            old_balance=old_balance,
            new_balance=new_balance,
            difference=difference,
            receipts_sum=computation.receipts_sum,
            payments_sum=computation.payments_sum,
            transfers_sum=computation.transfers_sum,
            corrected=corrected,
        )

    def _lock_treasury(self, treasury_id: UUID) -> TreasuryModel:
        treasury = self._session.execute(
            select(TreasuryModel)
            .where(TreasuryModel.id == treasury_id)
            .with_for_update()
        ).scalar_one_or_none()
        if treasury is None:
            raise TreasuryNotFoundError(str(treasury_id))
        return treasury


def _to_posted(entry: TreasuryEntryModel) -> PostedEntry:
    return PostedEntry(
        entry_type=entry.entry_type,
        converted_amount=entry.converted_amount,
        bank_charges=entry.bank_charges,
        other_charges=entry.other_charges,
    )
