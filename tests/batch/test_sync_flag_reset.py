"""Tests for recon_batch.services.sync_flag_reset."""

from datetime import date

import pytest
from sqlalchemy import func, select

from recon_batch.services.sync_flag_reset import (
    SyncFlagResetService,
    parse_date_int,
    validate_date_range,
)
from recon_kernel.exceptions import InvalidDateRangeError
from recon_kernel.models import ErpOrderMappingModel, TransactionModel


@pytest.fixture
def make_mapping(db_session):
    def _make(aggregation_date, order_number="AGG-1"):
        mapping = ErpOrderMappingModel(
            aggregation_date=aggregation_date, order_number=order_number,
        )
        db_session.add(mapping)
        db_session.flush()
        return mapping

    return _make


def _synced_count(db_session):
    db_session.expire_all()
    return db_session.execute(
        select(func.count()).select_from(TransactionModel)
        .where(TransactionModel.erp_synced.is_(True))
    ).scalar_one()


class TestDateParsing:
    def test_parses_yyyymmdd(self):
        assert parse_date_int(20250131) == date(2025, 1, 31)

    @pytest.mark.parametrize("bad", ["20250131", 20251345, True, 2025.0])
    def test_rejects_non_dates(self, bad):
        with pytest.raises(ValueError):
            parse_date_int(bad)

    def test_reversed_range(self):
        with pytest.raises(InvalidDateRangeError) as exc_info:
            validate_date_range(20250201, 20250101)
        assert exc_info.value.code == "INVALID_DATE_RANGE"

    @pytest.mark.parametrize("bounds", [(None, 20250101), (20250101, None)])
    def test_missing_bound(self, bounds):
        with pytest.raises(InvalidDateRangeError):
            validate_date_range(*bounds)

    def test_single_day_range(self):
        assert validate_date_range(20250101, 20250101) == (date(2025, 1, 1), date(2025, 1, 1))


class TestResetSyncFlags:
    def test_resets_range_and_deletes_mappings(
        self, db_session, make_transaction, make_mapping,
    ):
        make_transaction(date_int=20250101, erp_synced=True)
        make_transaction(date_int=20250115, erp_synced=True)
        make_transaction(date_int=20250131, erp_synced=True)
        make_transaction(date_int=20250115, erp_synced=False)
        make_transaction(date_int=20250201, erp_synced=True)
        make_mapping(date(2025, 1, 15))
        make_mapping(date(2025, 1, 31), "AGG-2")
        make_mapping(date(2025, 2, 1), "AGG-3")

        result = SyncFlagResetService(db_session).reset_sync_flags(20250101, 20250131)

        assert result.updated_count == 3
        assert result.total_count == 3
        assert result.deleted_mappings_count == 2
        assert _synced_count(db_session) == 1
        remaining = db_session.execute(select(ErpOrderMappingModel)).scalars().all()
        assert [m.order_number for m in remaining] == ["AGG-3"]

    def test_second_call_is_a_noop(self, db_session, make_transaction, make_mapping):
        make_transaction(date_int=20250110, erp_synced=True)
        make_mapping(date(2025, 1, 10))
        service = SyncFlagResetService(db_session)

        service.reset_sync_flags(20250101, 20250131)
        again = service.reset_sync_flags(20250101, 20250131)

        assert again.updated_count == 0
        assert again.total_count == 0
        assert again.deleted_mappings_count == 0

    def test_invalid_range_changes_nothing(self, db_session, make_transaction):
        make_transaction(date_int=20250110, erp_synced=True)

        with pytest.raises(InvalidDateRangeError):
            SyncFlagResetService(db_session).reset_sync_flags(20250131, 20250101)

        assert _synced_count(db_session) == 1

    def test_response_shape_and_log(self, db_session, make_transaction, captured_logs):
        make_transaction(date_int=20250110, erp_synced=True)

        body = SyncFlagResetService(db_session).reset_sync_flags(
            20250101, 20250131,
        ).to_response()

        assert body == {"updatedCount": 1, "totalCount": 1, "deletedMappingsCount": 0}
        logged = [r for r in captured_logs() if r["message"] == "erp_sync_flags_reset"]
        assert logged[-1]["updated_count"] == 1
