"""
Module: recon_kernel.models.erp
Responsibility: ERP integration state: the API configuration (endpoints and
    keys for the production and test environments) and the mapping of
    aggregated orders already pushed to the ERP.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one row with is_active=True is consulted; ``is_production_mode``
      selects the production or test column set as a whole (URL and key
      never mix environments).
"""

from datetime import date

from sqlalchemy import Boolean, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from recon_kernel.db.base import TrackedBase, Base

ENTITY_TYPES = ("brand", "product", "payment_method", "customer")


class ErpApiConfigModel(TrackedBase):
    """Endpoint and credential configuration for the external ERP."""

    __tablename__ = "erp_api_config"

    __table_args__ = (Index("idx_erp_api_config_active", "is_active"),)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    is_production_mode: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )

    api_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    api_key_test: Mapped[str | None] = mapped_column(String(255), nullable=True)

    brand_api_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    brand_api_url_test: Mapped[str | None] = mapped_column(String(500), nullable=True)

    product_api_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    product_api_url_test: Mapped[str | None] = mapped_column(String(500), nullable=True)

    payment_method_api_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    payment_method_api_url_test: Mapped[str | None] = mapped_column(
        String(500), nullable=True,
    )

    customer_api_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    customer_api_url_test: Mapped[str | None] = mapped_column(String(500), nullable=True)

    @property
    def environment(self) -> str:
        return "production" if self.is_production_mode else "test"

    def endpoint_for(self, entity_type: str) -> str | None:
        """Base URL for ``entity_type`` in the selected environment."""
        if entity_type not in ENTITY_TYPES:
            raise ValueError(f"Unknown ERP entity type: {entity_type}")
        suffix = "" if self.is_production_mode else "_test"
        return getattr(self, f"{entity_type}_api_url{suffix}")

    def key_for_environment(self) -> str | None:
        return self.api_key if self.is_production_mode else self.api_key_test


class ErpOrderMappingModel(Base):
    """An aggregated daily order already created in the ERP."""

    __tablename__ = "erp_order_mappings"

    __table_args__ = (
        Index("idx_erp_order_mappings_date", "aggregation_date"),
    )

    aggregation_date: Mapped[date] = mapped_column(Date, nullable=False)

    order_number: Mapped[str] = mapped_column(String(100), nullable=False)

    erp_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
