"""
Treasury balance math - from-scratch recomputation of a treasury balance.

Pure calculation, zero I/O.  Entries are passed in as frozen
``PostedEntry`` values; the service decides which entries are posted.

    balance = opening + receipts - (payments + charges) - (transfers + charges)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from recon_engines.tracer import traced_engine
from recon_kernel.logging_config import get_logger

logger = get_logger("engines.treasury")

DEFAULT_DRIFT_EPSILON = Decimal("0.001")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class PostedEntry:
    entry_type: str  # receipt | payment | transfer
    converted_amount: Decimal
    bank_charges: Decimal = _ZERO
    other_charges: Decimal = _ZERO

    @property
    def charges(self) -> Decimal:
        return (self.bank_charges or _ZERO) + (self.other_charges or _ZERO)


@dataclass(frozen=True)
class BalanceComputation:
    opening_balance: Decimal
    receipts_sum: Decimal
    payments_sum: Decimal
    transfers_sum: Decimal

    @property
    def balance(self) -> Decimal:
        return (
            self.opening_balance
            + self.receipts_sum
            - self.payments_sum
            - self.transfers_sum
        )


@traced_engine("treasury", "1.0")
def compute_balance(
    *,
    opening_balance: Decimal,
    entries: Iterable[PostedEntry],
) -> BalanceComputation:
    """Sum posted entries by type; charges go with the outgoing side."""
    receipts = _ZERO
    payments = _ZERO
    transfers = _ZERO

    for entry in entries:
        amount = entry.converted_amount or _ZERO
        if entry.entry_type == "receipt":
            receipts += amount
        elif entry.entry_type == "payment":
            payments += amount + entry.charges
        elif entry.entry_type == "transfer":
            transfers += amount + entry.charges
        else:
            logger.warning(
                "treasury_entry_type_ignored",
                extra={"entry_type": entry.entry_type},
            )

    return BalanceComputation(
        opening_balance=opening_balance or _ZERO,
        receipts_sum=receipts,
        payments_sum=payments,
        transfers_sum=transfers,
    )


def signed_effect(entry: PostedEntry) -> Decimal:
    """Incremental change a single posted entry makes to the balance."""
    if entry.entry_type == "receipt":
        return entry.converted_amount
    if entry.entry_type in ("payment", "transfer"):
        return -(entry.converted_amount + entry.charges)
    raise ValueError(f"Unknown treasury entry type: {entry.entry_type}")


def exceeds_epsilon(
    difference: Decimal,
    epsilon: Decimal = DEFAULT_DRIFT_EPSILON,
) -> bool:
    return abs(difference) > epsilon
