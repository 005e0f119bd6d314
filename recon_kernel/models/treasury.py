"""
Module: recon_kernel.models.treasury
Responsibility: ORM persistence for treasuries (cash boxes / bank accounts)
    and their append-only entries.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``current_balance`` is derived, never the source of truth.  It must
      always equal opening_balance + receipts - (payments + charges)
      - (transfers + charges) over POSTED entries; the reconciliation pass
      in ``recon_services.treasury_service`` restores that equality.
    - ``converted_amount`` is already expressed in the treasury's currency.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recon_kernel.db.base import Base, UUIDString


class TreasuryEntryType(str, Enum):
    RECEIPT = "receipt"
    PAYMENT = "payment"
    TRANSFER = "transfer"


class TreasuryEntryStatus(str, Enum):
    DRAFT = "draft"
    POSTED = "posted"


class TreasuryModel(Base):
    """A cash or bank treasury with an incrementally maintained balance."""

    __tablename__ = "treasuries"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="SAR")

    opening_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    current_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    entries: Mapped[list["TreasuryEntryModel"]] = relationship(
        "TreasuryEntryModel",
        back_populates="treasury",
    )


class TreasuryEntryModel(Base):
    """One receipt, payment, or outgoing transfer against a treasury."""

    __tablename__ = "treasury_entries"

    __table_args__ = (
        Index("idx_treasury_entries_treasury_status", "treasury_id", "status"),
    )

    treasury_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("treasuries.id", ondelete="CASCADE"),
        nullable=False,
    )

    entry_type: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TreasuryEntryStatus.DRAFT.value,
    )

    converted_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    bank_charges: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    other_charges: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    treasury: Mapped["TreasuryModel"] = relationship(
        "TreasuryModel",
        back_populates="entries",
        foreign_keys=[treasury_id],
    )
