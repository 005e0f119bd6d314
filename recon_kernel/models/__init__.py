"""ORM models for the reconciliation kernel."""

from recon_kernel.models.catalog import (
    DEFAULT_TAX_MULTIPLIER,
    BrandModel,
    CustomerModel,
    PaymentMethodModel,
    ProductModel,
)
from recon_kernel.models.erp import ErpApiConfigModel, ErpOrderMappingModel
from recon_kernel.models.ledger import (
    DERIVED_COLUMNS,
    POINT_TRANSACTION_TYPE,
    OrderTotalModel,
    TransactionModel,
)
from recon_kernel.models.sync_job import SyncJobModel
from recon_kernel.models.treasury import (
    TreasuryEntryModel,
    TreasuryEntryStatus,
    TreasuryEntryType,
    TreasuryModel,
)


def import_all_models() -> None:
    """Ensure every model module is imported so Base.metadata is complete.

    Importing this package already does that; the function gives
    ``create_tables()`` an explicit call site.
    """


__all__ = [
    "BrandModel",
    "CustomerModel",
    "DEFAULT_TAX_MULTIPLIER",
    "DERIVED_COLUMNS",
    "ErpApiConfigModel",
    "ErpOrderMappingModel",
    "OrderTotalModel",
    "PaymentMethodModel",
    "POINT_TRANSACTION_TYPE",
    "ProductModel",
    "SyncJobModel",
    "TransactionModel",
    "TreasuryEntryModel",
    "TreasuryEntryStatus",
    "TreasuryEntryType",
    "TreasuryModel",
    "import_all_models",
]
