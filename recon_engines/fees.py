"""
Fee Engine - gateway/bank fee calculation and fee-pair resolution.

Pure functions with no I/O.  Fee configurations are passed in as frozen
``FeeConfig`` values loaded by the service layer.

Usage:
    from decimal import Decimal
    from recon_engines.fees import FeeConfig, calculate_fee, resolve_pair

    configs = [
        FeeConfig(
            transaction_type="hyperpay",
            counterparty="VISA",
            percentage_rate=Decimal("2.5"),
            fixed_amount=Decimal("1.0"),
            tax_multiplier=Decimal("1.15"),
        ),
    ]
    config = resolve_pair(" HyperPay ", "visa", configs)
    calculate_fee(amount=Decimal("1000"), config=config)  # Decimal("29.9")
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from recon_engines.tracer import traced_engine
from recon_kernel.exceptions import InvalidScopeKeyError

_HUNDRED = Decimal("100")

SCOPE_SEPARATOR = ":"


@dataclass(frozen=True)
class FeeConfig:
    """
    Active fee rule for one (transaction type, counterparty) pair.

    ``percentage_rate`` is a percentage: 2.5 means 2.5% of the amount.
    """

    transaction_type: str
    counterparty: str
    percentage_rate: Decimal
    fixed_amount: Decimal
    tax_multiplier: Decimal
    config_id: UUID | None = None

    @property
    def pair_key(self) -> tuple[str, str]:
        return pair_key(self.transaction_type, self.counterparty)


def normalize_label(label: str | None) -> str:
    """Case-insensitive, whitespace-trimmed form of a pair label."""
    if label is None:
        return ""
    return label.strip().lower()


def pair_key(transaction_type: str | None, counterparty: str | None) -> tuple[str, str]:
    return normalize_label(transaction_type), normalize_label(counterparty)


def parse_scope_key(scope_key: str | None) -> tuple[str, str]:
    """Split ``"<transaction_type>:<counterparty>"`` into its trimmed parts.

    Splits on the first separator only, so counterparties may contain ':'.

    Raises:
        InvalidScopeKeyError: If either side is missing or blank.
    """
    if not isinstance(scope_key, str) or SCOPE_SEPARATOR not in scope_key:
        raise InvalidScopeKeyError(scope_key)
    transaction_type, counterparty = scope_key.split(SCOPE_SEPARATOR, 1)
    transaction_type, counterparty = transaction_type.strip(), counterparty.strip()
    if not transaction_type or not counterparty:
        raise InvalidScopeKeyError(scope_key)
    return transaction_type, counterparty


@traced_engine("fees", "1.0", fingerprint_fields=("amount",))
def calculate_fee(*, amount: Decimal, config: FeeConfig) -> Decimal:
    """
    fee = (amount * percentage_rate / 100 + fixed_amount) * tax_multiplier

    Zero and negative amounts (refunds) pass through unchanged; the
    calculator never rejects or clamps.  Callers skip or reject
    unconfigured pairs before reaching here.
    """
    gateway_fee = amount * config.percentage_rate / _HUNDRED
    return (gateway_fee + config.fixed_amount) * config.tax_multiplier


def resolve_pair(
    transaction_type: str | None,
    counterparty: str | None,
    configs: Iterable[FeeConfig],
) -> FeeConfig | None:
    """
    Return the first active configuration matching the pair, or None.

    Matching is case-insensitive and whitespace-trimmed on both labels.
    Ambiguity (several active configs for one pair) is not adjudicated
    here; see ``find_duplicate_pairs``.
    """
    wanted = pair_key(transaction_type, counterparty)
    if not all(wanted):
        return None
    for config in configs:
        if config.pair_key == wanted:
            return config
    return None


def index_by_pair(configs: Sequence[FeeConfig]) -> dict[tuple[str, str], FeeConfig]:
    """Lookup table keeping the first config per pair (same rule as resolve_pair)."""
    index: dict[tuple[str, str], FeeConfig] = {}
    for config in configs:
        index.setdefault(config.pair_key, config)
    return index


def find_duplicate_pairs(
    configs: Iterable[FeeConfig],
) -> dict[tuple[str, str], tuple[FeeConfig, ...]]:
    """Pairs with more than one active configuration (a data-integrity error)."""
    grouped: dict[tuple[str, str], list[FeeConfig]] = defaultdict(list)
    for config in configs:
        grouped[config.pair_key].append(config)
    return {key: tuple(group) for key, group in grouped.items() if len(group) > 1}
