"""
Module: recon_kernel.models.ledger
Responsibility: ORM mapping for the two ledger tables whose derived fee
    field the batch engine recomputes: payment transactions and order totals.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - The ledger owns these rows.  The reconciliation engine writes ONLY the
      columns listed in ``DERIVED_COLUMNS`` (bank_fee, erp_synced); the
      upsert sink rejects any other column.
    - ``id`` is the walker's stable ordering key (descending).

Failure modes:
    - None at the ORM level; rows are inserted by the ingestion side.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from recon_kernel.db.base import Base

# Loyalty-point redemptions carry no gateway fee
POINT_TRANSACTION_TYPE = "point"

DERIVED_COLUMNS: frozenset[str] = frozenset({"bank_fee", "erp_synced"})


class LedgerRecordMixin:
    """Columns shared by every fee-bearing ledger table.

    ``transaction_type`` is the payment channel (e.g. the gateway) and
    ``counterparty`` the brand behind it (e.g. the card scheme); together
    they select a fee configuration.
    """

    order_number: Mapped[str] = mapped_column(String(100), nullable=False)

    transaction_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    counterparty: Mapped[str | None] = mapped_column(String(100), nullable=True)

    amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    # yyyymmdd of the business date, used by date-range operations
    created_at_date_int: Mapped[int] = mapped_column(nullable=False)

    # Derived: gateway fee incl. tax.  NULL means "not computed yet".
    bank_fee: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Derived: set once the record has been pushed to the ERP
    erp_synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.order_number} "
            f"{self.transaction_type}:{self.counterparty} {self.amount}>"
        )


class TransactionModel(LedgerRecordMixin, Base):
    """One payment transaction line of an order."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transactions_pair", "transaction_type", "counterparty"),
        Index("idx_transactions_date_int", "created_at_date_int"),
        Index("idx_transactions_erp_synced", "erp_synced"),
    )


class OrderTotalModel(LedgerRecordMixin, Base):
    """Per-order aggregate used by the order-level fee reports."""

    __tablename__ = "order_totals"

    __table_args__ = (
        Index("idx_order_totals_pair", "transaction_type", "counterparty"),
        Index("idx_order_totals_date_int", "created_at_date_int"),
    )
