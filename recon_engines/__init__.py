"""
Reconciliation engines - pure calculation, zero I/O, zero DB access.

All inputs are frozen dataclasses populated by the batch and service layers.
"""

from recon_engines.fees import (
    FeeConfig,
    calculate_fee,
    find_duplicate_pairs,
    index_by_pair,
    normalize_label,
    pair_key,
    parse_scope_key,
    resolve_pair,
)
from recon_engines.treasury import (
    DEFAULT_DRIFT_EPSILON,
    BalanceComputation,
    PostedEntry,
    compute_balance,
    exceeds_epsilon,
    signed_effect,
)

__all__ = [
    "FeeConfig",
    "calculate_fee",
    "find_duplicate_pairs",
    "index_by_pair",
    "normalize_label",
    "pair_key",
    "parse_scope_key",
    "resolve_pair",
    "DEFAULT_DRIFT_EPSILON",
    "BalanceComputation",
    "PostedEntry",
    "compute_balance",
    "exceeds_epsilon",
    "signed_effect",
]
