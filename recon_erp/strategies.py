"""
Per-entity ERP strategies and their registry.

A strategy supplies everything entity-specific the upsert protocol needs:
the natural key, the update payload, create-only fields, where the remote
id sits in a response, and which local column stores it.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from recon_kernel.models.catalog import (
    BrandModel,
    CustomerModel,
    PaymentMethodModel,
    ProductModel,
)

_WHITESPACE = re.compile(r"\s+")
_HUNDRED = Decimal("100")


def _number(value: Decimal | None) -> float | None:
    # JSON bodies carry plain numbers
    return float(value) if value is not None else None


def _find_id(payload: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    """First non-empty value of ``keys`` in the payload or its ``data``."""
    candidates = [payload]
    data = payload.get("data")
    if isinstance(data, dict):
        candidates.append(data)
    for candidate in candidates:
        for key in keys:
            value = candidate.get(key)
            if value not in (None, ""):
                return str(value)
    return None


class ErpEntityStrategy:
    """Base strategy; subclasses set the class attributes and payloads."""

    entity_type: str = ""
    model: type = object
    natural_key_attr: str = ""
    external_id_attr: str = ""
    external_id_keys: tuple[str, ...] = ("id",)
    adopt_id_keys: tuple[str, ...] = ()

    def natural_key(self, record: Any) -> str:
        return str(getattr(record, self.natural_key_attr))

    def update_payload(self, record: Any) -> dict[str, Any]:
        raise NotImplementedError

    def create_payload(self, record: Any) -> dict[str, Any]:
        """Fields sent only when creating; merged over the update payload."""
        return {}

    def extract_external_id(self, payload: dict[str, Any]) -> str | None:
        return _find_id(payload, self.external_id_keys)

    def extract_adopted_id(self, payload: dict[str, Any]) -> str | None:
        """Remote id named by an "already exists" create rejection."""
        if not self.adopt_id_keys:
            return None
        return _find_id(payload, self.adopt_id_keys)

    def persist_external_id(self, record: Any, external_id: str) -> None:
        setattr(record, self.external_id_attr, external_id)

    def current_external_id(self, record: Any) -> str | None:
        return getattr(record, self.external_id_attr)

    def lookup(self, session: Session, natural_key: str) -> Any | None:
        column = getattr(self.model, self.natural_key_attr)
        return session.execute(
            select(self.model).where(column == natural_key)
        ).scalar_one_or_none()

    def pending_records(self, session: Session) -> list[Any]:
        """Records never confirmed by the ERP."""
        column = getattr(self.model, self.external_id_attr)
        return list(session.execute(
            select(self.model)
            .where(column.is_(None))
            .order_by(getattr(self.model, self.natural_key_attr))
        ).scalars().all())


class BrandStrategy(ErpEntityStrategy):
    """Brands are product categories in the ERP, keyed by brand code."""

    entity_type = "brand"
    model = BrandModel
    natural_key_attr = "brand_code"
    external_id_attr = "erp_category_id"
    external_id_keys = ("category_id",)
    adopt_id_keys = ("existing_category_id",)

    def update_payload(self, record: BrandModel) -> dict[str, Any]:
        return {"name": record.brand_name}

    def create_payload(self, record: BrandModel) -> dict[str, Any]:
        return {
            "cat_code": record.brand_code,
            "status": "active" if record.status == "active" else "suspended",
        }


class ProductStrategy(ErpEntityStrategy):
    entity_type = "product"
    model = ProductModel
    natural_key_attr = "sku"
    external_id_attr = "erp_product_id"
    external_id_keys = ("product_id", "id")
    adopt_id_keys = ("existing_product_id",)

    def update_payload(self, record: ProductModel) -> dict[str, Any]:
        body: dict[str, Any] = {"sku": record.sku, "name": record.name}
        optional = {
            "uom": record.uom,
            "cat_code": record.brand_code,
            "reorder_point": _number(record.reorder_point),
            "minimum_order": _number(record.minimum_order),
            "maximum_order": _number(record.maximum_order),
            "cost_price": _number(record.cost_price),
            "sales_price": _number(record.sales_price),
            "product_weight": _number(record.weight),
        }
        body.update({k: v for k, v in optional.items() if v is not None})
        return body


class PaymentMethodStrategy(ErpEntityStrategy):
    """Keyed by ``"<type>-<counterparty>"`` lower-cased, whitespace -> ``_``."""

    entity_type = "payment_method"
    model = PaymentMethodModel
    natural_key_attr = "transaction_type"
    external_id_attr = "erp_external_id"
    external_id_keys = ("payment_method_id", "id")

    def natural_key(self, record: PaymentMethodModel) -> str:
        return payment_method_code(record.transaction_type, record.counterparty)

    def update_payload(self, record: PaymentMethodModel) -> dict[str, Any]:
        return {
            "payment_type": record.transaction_type,
            "payment_brand": record.counterparty,
            "gateway_fee": _number(record.percentage_rate),
            "fixed_value": _number(record.fixed_amount),
            # tax multiplier 1.15 is a 15% VAT
            "vat_fee": _number((record.tax_multiplier - 1) * _HUNDRED),
            "is_active": record.is_active,
        }

    def create_payload(self, record: PaymentMethodModel) -> dict[str, Any]:
        return {"code": self.natural_key(record)}

    def lookup(self, session: Session, natural_key: str) -> PaymentMethodModel | None:
        wanted = natural_key.strip().lower()
        for record in session.execute(select(PaymentMethodModel)).scalars():
            if self.natural_key(record) == wanted:
                return record
        return None

    def pending_records(self, session: Session) -> list[PaymentMethodModel]:
        return list(session.execute(
            select(PaymentMethodModel)
            .where(PaymentMethodModel.erp_external_id.is_(None))
            .order_by(PaymentMethodModel.transaction_type, PaymentMethodModel.counterparty)
        ).scalars().all())


class CustomerStrategy(ErpEntityStrategy):
    entity_type = "customer"
    model = CustomerModel
    natural_key_attr = "phone"
    external_id_attr = "erp_partner_id"
    external_id_keys = ("partner_id", "id")
    adopt_id_keys = ("existing_partner_id",)

    def update_payload(self, record: CustomerModel) -> dict[str, Any]:
        return {
            "partner_type": "customer",
            "phone": record.phone,
            "name": record.name,
            "email": record.email,
            "customer_group": record.customer_group,
            "status": record.status,
            "is_blocked": record.is_blocked,
            "block_reason": record.block_reason,
        }


def payment_method_code(transaction_type: str, counterparty: str) -> str:
    return _WHITESPACE.sub("_", f"{transaction_type}-{counterparty}".lower())


# =============================================================================
# Registry
# =============================================================================


class ErpStrategyRegistry:
    """One strategy per entity type."""

    def __init__(self) -> None:
        self._strategies: dict[str, ErpEntityStrategy] = {}

    def register(self, strategy: ErpEntityStrategy) -> None:
        if strategy.entity_type in self._strategies:
            raise ValueError(
                f"Strategy for '{strategy.entity_type}' is already registered"
            )
        self._strategies[strategy.entity_type] = strategy

    def get(self, entity_type: str) -> ErpEntityStrategy:
        try:
            return self._strategies[entity_type]
        except KeyError:
            raise KeyError(
                f"No ERP strategy for '{entity_type}'. "
                f"Available: {sorted(self._strategies)}"
            ) from None

    def list_entity_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._strategies))

    def __contains__(self, entity_type: str) -> bool:
        return entity_type in self._strategies


def default_erp_strategies() -> ErpStrategyRegistry:
    registry = ErpStrategyRegistry()
    registry.register(BrandStrategy())
    registry.register(ProductStrategy())
    registry.register(PaymentMethodStrategy())
    registry.register(CustomerStrategy())
    return registry
