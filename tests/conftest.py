"""
Pytest fixtures for the reconciliation engine test suite.

Provides:
- Structured-logging setup and a ``captured_logs`` fixture
- In-memory SQLite engines and sessions (no PostgreSQL required)
- A deterministic clock
- Factories for ledger rows, fee configurations, treasuries and ERP config
- A scripted stand-in for the ERP HTTP session
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from recon_config.schema import BatchSettings, ReconConfig
from recon_kernel.db.base import Base
from recon_kernel.domain.clock import DeterministicClock
from recon_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from recon_kernel.models import (
    ErpApiConfigModel,
    PaymentMethodModel,
    TransactionModel,
    TreasuryEntryModel,
    TreasuryModel,
    import_all_models,
)

TEST_ACTOR_ID = UUID("00000000-0000-0000-0000-0000000000a1")


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture recon_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, fee_service):
            fee_service.recalculate_for_pair("transactions", "hyperpay:visa")
            logs = captured_logs()
            assert any(r["message"] == "fee_run_finished" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("recon_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database shared by every session of one test."""
    import_all_models()
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=datetime(2026, 2, 1, 12, 0, 0))


@pytest.fixture
def small_pages():
    """Batch settings with tiny pages so walks span several pages."""
    return BatchSettings(page_size=2, max_pages=2)


@pytest.fixture
def test_config(small_pages):
    return ReconConfig(batch=small_pages)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def make_transaction(db_session):
    def _make(
        transaction_type="hyperpay",
        counterparty="VISA",
        amount=Decimal("100"),
        bank_fee=None,
        date_int=20250115,
        erp_synced=False,
        model=TransactionModel,
        order_number=None,
    ):
        row = model(
            id=uuid4(),
            order_number=order_number or f"ORD-{uuid4().hex[:8]}",
            transaction_type=transaction_type,
            counterparty=counterparty,
            amount=amount,
            bank_fee=bank_fee,
            created_at_date_int=date_int,
            erp_synced=erp_synced,
        )
        db_session.add(row)
        db_session.flush()
        return row

    return _make


@pytest.fixture
def make_fee_config(db_session):
    def _make(
        transaction_type="hyperpay",
        counterparty="visa",
        percentage_rate=Decimal("2.5"),
        fixed_amount=Decimal("1.0"),
        tax_multiplier=Decimal("1.15"),
        is_active=True,
    ):
        config = PaymentMethodModel(
            transaction_type=transaction_type,
            counterparty=counterparty,
            percentage_rate=percentage_rate,
            fixed_amount=fixed_amount,
            tax_multiplier=tax_multiplier,
            is_active=is_active,
        )
        db_session.add(config)
        db_session.flush()
        return config

    return _make


@pytest.fixture
def make_treasury(db_session):
    def _make(
        name="Main Cash",
        opening_balance=Decimal("1000"),
        current_balance=Decimal("1000"),
        entries=(),
    ):
        treasury = TreasuryModel(
            name=name,
            opening_balance=opening_balance,
            current_balance=current_balance,
        )
        db_session.add(treasury)
        db_session.flush()
        for entry_type, amount, status in entries:
            db_session.add(TreasuryEntryModel(
                treasury_id=treasury.id,
                entry_type=entry_type,
                converted_amount=amount,
                status=status,
            ))
        db_session.flush()
        return treasury

    return _make


@pytest.fixture
def test_actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def make_erp_config(db_session, test_actor_id):
    def _make(is_production_mode=True, **overrides):
        values = {
            "is_active": True,
            "is_production_mode": is_production_mode,
            "api_key": "prod-key",
            "api_key_test": "test-key",
            "brand_api_url": "https://erp.example.com/api/brands/",
            "brand_api_url_test": "https://erp-test.example.com/api/brands",
            "product_api_url": "https://erp.example.com/api/products",
            "payment_method_api_url": "https://erp.example.com/api/payment-methods",
            "customer_api_url": "https://erp.example.com/api/partners",
            "created_by_id": test_actor_id,
        }
        values.update(overrides)
        config = ErpApiConfigModel(**values)
        db_session.add(config)
        db_session.flush()
        return config

    return _make


# =============================================================================
# ERP HTTP double
# =============================================================================


class FakeResponse:
    def __init__(self, status_code, payload=None, text=None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(payload if payload is not None else {})
        self.text = text

    def json(self):
        return json.loads(self.text)


class FakeHttp:
    """Stands in for ``requests.Session``: answers from a queue of scripted
    responses (or raises queued exceptions) and records every request."""

    def __init__(self, *responses):
        self._responses = list(responses)
        self.requests: list[dict] = []

    def queue(self, *responses):
        self._responses.extend(responses)

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.requests.append({
            "method": method,
            "url": url,
            "json": json,
            "headers": headers,
            "timeout": timeout,
        })
        if not self._responses:
            raise AssertionError(f"unexpected {method} {url}")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_http():
    return FakeHttp()


@pytest.fixture
def respond():
    """Build a scripted response: ``respond(404, {"error": "not found"})``."""
    return FakeResponse
