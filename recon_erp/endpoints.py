"""
Resolution of ERP endpoint URL and API key from the active configuration.

``is_production_mode`` on the active ``erp_api_config`` row selects the
production or the test column set as a whole.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from recon_kernel.exceptions import ErpConfigurationError
from recon_kernel.models.erp import ENTITY_TYPES, ErpApiConfigModel


@dataclass(frozen=True)
class ErpEndpoint:
    entity_type: str
    url: str
    api_key: str
    environment: str


def load_active_config(session: Session) -> ErpApiConfigModel:
    """
    Raises:
        ErpConfigurationError: If no active configuration exists.
    """
    config = session.execute(
        select(ErpApiConfigModel)
        .where(ErpApiConfigModel.is_active.is_(True))
        .order_by(ErpApiConfigModel.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if config is None:
        raise ErpConfigurationError("no active ERP API configuration")
    return config


def resolve_endpoint(session: Session, entity_type: str) -> ErpEndpoint:
    """
    Raises:
        ErpConfigurationError: No active config, or the selected
            environment lacks the entity URL or the API key.
    """
    if entity_type not in ENTITY_TYPES:
        raise ErpConfigurationError(f"unknown entity type '{entity_type}'")

    config = load_active_config(session)
    environment = config.environment
    url = config.endpoint_for(entity_type)
    if not url:
        raise ErpConfigurationError(
            f"{entity_type} API URL not configured", environment=environment,
        )
    api_key = config.key_for_environment()
    if not api_key:
        raise ErpConfigurationError("API key not configured", environment=environment)

    return ErpEndpoint(
        entity_type=entity_type,
        url=url.rstrip("/"),
        api_key=api_key,
        environment=environment,
    )
