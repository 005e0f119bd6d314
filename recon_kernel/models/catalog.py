"""
Module: recon_kernel.models.catalog
Responsibility: ORM persistence for the canonical records mirrored into the
    external ERP: payment methods (which double as fee configurations),
    brands, products, and customers.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one ACTIVE payment method per (transaction_type, counterparty)
      pair.  The database cannot express case-insensitive partial uniqueness
      portably, so duplicates are detected by
      ``recon_engines.fees.find_duplicate_pairs`` and reported.
    - ``erp_*_id`` columns are only ever written by the ERP upsert protocol
      after a successful round trip; they are never guessed or pre-assigned.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from recon_kernel.db.base import Base

DEFAULT_TAX_MULTIPLIER = Decimal("1.15")


class PaymentMethodModel(Base):
    """
    Fee configuration for one (transaction type, counterparty) pair.

    ``percentage_rate`` is a percentage (2.5 means 2.5%); ``fixed_amount``
    is added per transaction before ``tax_multiplier`` is applied.
    """

    __tablename__ = "payment_methods"

    __table_args__ = (
        Index("idx_payment_methods_pair", "transaction_type", "counterparty"),
        Index("idx_payment_methods_active", "is_active"),
    )

    transaction_type: Mapped[str] = mapped_column(String(100), nullable=False)

    counterparty: Mapped[str] = mapped_column(String(100), nullable=False)

    percentage_rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    fixed_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    tax_multiplier: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=DEFAULT_TAX_MULTIPLIER,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    erp_external_id: Mapped[str | None] = mapped_column(String(100), nullable=True)


class BrandModel(Base):
    """Product brand; mirrored as a product category in the ERP."""

    __tablename__ = "brands"

    __table_args__ = (UniqueConstraint("brand_code", name="uq_brand_code"),)

    brand_code: Mapped[str] = mapped_column(String(50), nullable=False)

    brand_name: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    erp_category_id: Mapped[str | None] = mapped_column(String(100), nullable=True)


class ProductModel(Base):
    """Sellable product addressed in the ERP by its SKU."""

    __tablename__ = "products"

    __table_args__ = (UniqueConstraint("sku", name="uq_product_sku"),)

    sku: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    uom: Mapped[str | None] = mapped_column(String(50), nullable=True)

    brand_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reorder_point: Mapped[Decimal | None] = mapped_column(nullable=True)

    minimum_order: Mapped[Decimal | None] = mapped_column(nullable=True)

    maximum_order: Mapped[Decimal | None] = mapped_column(nullable=True)

    cost_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    sales_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    weight: Mapped[Decimal | None] = mapped_column(nullable=True)

    erp_product_id: Mapped[str | None] = mapped_column(String(100), nullable=True)


class CustomerModel(Base):
    """Customer addressed in the ERP by phone number."""

    __tablename__ = "customers"

    __table_args__ = (UniqueConstraint("phone", name="uq_customer_phone"),)

    phone: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    customer_group: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    block_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    erp_partner_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
