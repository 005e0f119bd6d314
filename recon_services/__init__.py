"""Service layer: treasury reconciliation and the request handlers."""

from recon_services.handlers import HandlerResponse, ReconHandlers
from recon_services.treasury_service import (
    TreasuryReconciliationService,
    TreasuryRecalculation,
)

__all__ = [
    "HandlerResponse",
    "ReconHandlers",
    "TreasuryReconciliationService",
    "TreasuryRecalculation",
]
