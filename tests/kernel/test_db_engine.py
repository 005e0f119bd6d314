"""Tests for recon_kernel.db.engine -- module-level engine and session scope."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from recon_kernel.db import engine as db_engine
from recon_kernel.models import TreasuryModel


@pytest.fixture
def memory_engine():
    db_engine.init_engine_from_url("sqlite://")
    db_engine.create_tables()
    yield db_engine.get_engine()
    db_engine.reset_engine()


def _treasury_count():
    with db_engine.session_scope() as session:
        return session.execute(select(func.count()).select_from(TreasuryModel)).scalar_one()


class TestEngineLifecycle:
    def test_uninitialized_access_raises(self):
        db_engine.reset_engine()
        with pytest.raises(RuntimeError):
            db_engine.get_session()
        with pytest.raises(RuntimeError):
            db_engine.get_session_factory()

    def test_session_scope_commits(self, memory_engine):
        with db_engine.session_scope() as session:
            session.add(TreasuryModel(name="Main Cash", opening_balance=Decimal("10")))
        assert _treasury_count() == 1

    def test_session_scope_rolls_back_on_error(self, memory_engine):
        with pytest.raises(KeyError):
            with db_engine.session_scope() as session:
                session.add(TreasuryModel(name="Main Cash"))
                session.flush()
                raise KeyError("boom")
        assert _treasury_count() == 0

    def test_drop_tables(self, memory_engine):
        db_engine.drop_tables()
        db_engine.create_tables()
        assert _treasury_count() == 0
