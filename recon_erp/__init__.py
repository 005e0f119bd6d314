"""
recon_erp -- idempotent upsert of catalog records into the external ERP.

The update-first / create-on-not-found state machine lives in
``protocol``; everything entity-specific lives in ``strategies``.
"""

from recon_erp.client import ErpClient, ErpResponse
from recon_erp.endpoints import ErpEndpoint, resolve_endpoint
from recon_erp.protocol import (
    ErpSyncAction,
    ErpSyncResult,
    ErpUpsertProtocol,
    NotFoundClassifier,
)
from recon_erp.service import ErpBatchSyncResult, ErpSyncService
from recon_erp.strategies import (
    BrandStrategy,
    CustomerStrategy,
    ErpEntityStrategy,
    ErpStrategyRegistry,
    PaymentMethodStrategy,
    ProductStrategy,
    default_erp_strategies,
    payment_method_code,
)

__all__ = [
    "BrandStrategy",
    "CustomerStrategy",
    "ErpBatchSyncResult",
    "ErpClient",
    "ErpEndpoint",
    "ErpEntityStrategy",
    "ErpResponse",
    "ErpStrategyRegistry",
    "ErpSyncAction",
    "ErpSyncResult",
    "ErpSyncService",
    "ErpUpsertProtocol",
    "NotFoundClassifier",
    "PaymentMethodStrategy",
    "ProductStrategy",
    "default_erp_strategies",
    "payment_method_code",
]
