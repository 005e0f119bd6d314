"""
Tests for recon_erp.endpoints and recon_erp.service.

Uses in-memory SQLite for configuration and catalog rows and a scripted
HTTP double for the ERP.
"""

import pytest
from sqlalchemy.exc import OperationalError

from recon_batch.services.job_tracker import SyncJobTracker
from recon_erp.endpoints import resolve_endpoint
from recon_erp.protocol import ErpSyncAction
from recon_erp.service import ErpSyncService
from recon_erp.strategies import BrandStrategy
from recon_kernel.domain.jobs import SyncJobStatus
from recon_kernel.exceptions import (
    ErpBatchAbortedError,
    ErpConfigurationError,
    ErpEntityNotFoundError,
)
from recon_kernel.models import BrandModel


@pytest.fixture
def make_brand(db_session):
    def _make(code, name="Acme", erp_category_id=None):
        brand = BrandModel(brand_code=code, brand_name=name, erp_category_id=erp_category_id)
        db_session.add(brand)
        db_session.flush()
        return brand

    return _make


@pytest.fixture
def service(db_session, fake_http):
    return ErpSyncService(db_session, http=fake_http)


class TestResolveEndpoint:
    def test_production_mode(self, db_session, make_erp_config):
        make_erp_config()
        endpoint = resolve_endpoint(db_session, "brand")
        assert endpoint.url == "https://erp.example.com/api/brands"
        assert endpoint.api_key == "prod-key"
        assert endpoint.environment == "production"

    def test_test_mode_uses_test_columns(self, db_session, make_erp_config):
        make_erp_config(is_production_mode=False)
        endpoint = resolve_endpoint(db_session, "brand")
        assert endpoint.url == "https://erp-test.example.com/api/brands"
        assert endpoint.api_key == "test-key"

    def test_test_mode_never_falls_back_to_production_url(
        self, db_session, make_erp_config,
    ):
        make_erp_config(is_production_mode=False)
        with pytest.raises(ErpConfigurationError) as exc_info:
            resolve_endpoint(db_session, "product")
        assert exc_info.value.environment == "test"

    def test_missing_key(self, db_session, make_erp_config):
        make_erp_config(api_key=None)
        with pytest.raises(ErpConfigurationError):
            resolve_endpoint(db_session, "brand")

    def test_no_active_config(self, db_session, make_erp_config):
        make_erp_config(is_active=False)
        with pytest.raises(ErpConfigurationError) as exc_info:
            resolve_endpoint(db_session, "brand")
        assert exc_info.value.code == "ERP_CONFIGURATION_ERROR"

    def test_unknown_entity_type(self, db_session, make_erp_config):
        make_erp_config()
        with pytest.raises(ErpConfigurationError):
            resolve_endpoint(db_session, "invoice")


class TestSyncEntity:
    def test_by_natural_key(self, service, fake_http, respond, make_erp_config, make_brand):
        make_erp_config()
        brand = make_brand("BR-1")
        fake_http.queue(respond(200, {"category_id": "C-1"}))

        result = service.sync_entity("brand", natural_key="BR-1")

        assert result.action == ErpSyncAction.UPDATED
        assert brand.erp_category_id == "C-1"
        assert fake_http.requests[0]["headers"]["Authorization"] == "prod-key"

    def test_by_record_id(self, service, fake_http, respond, make_erp_config, make_brand):
        make_erp_config()
        brand = make_brand("BR-1")
        fake_http.queue(respond(404, {}), respond(201, {"category_id": "C-2"}))

        result = service.sync_entity("brand", record_id=brand.id)

        assert result.action == ErpSyncAction.CREATED
        assert brand.erp_category_id == "C-2"

    def test_unknown_record(self, service, make_erp_config):
        make_erp_config()
        with pytest.raises(ErpEntityNotFoundError):
            service.sync_entity("brand", natural_key="missing")

    def test_configuration_checked_before_any_call(
        self, service, fake_http, make_brand,
    ):
        make_brand("BR-1")
        with pytest.raises(ErpConfigurationError):
            service.sync_entity("brand", natural_key="BR-1")
        assert fake_http.requests == []


class TestSyncPending:
    def test_failures_do_not_stop_the_batch(
        self, db_session, fake_http, respond, make_erp_config, make_brand, clock,
    ):
        make_erp_config()
        make_brand("BR-1")
        make_brand("BR-2")
        make_brand("BR-3", erp_category_id="C-3")
        fake_http.queue(
            respond(400, {"message": "name rejected"}),
            respond(200, {"category_id": "C-2"}),
        )
        tracker = SyncJobTracker(db_session, clock=clock)
        job = tracker.open_job("erp.brand", "pending")
        service = ErpSyncService(db_session, http=fake_http, tracker=tracker)

        result = service.sync_pending("brand", job_id=job.job_id)

        assert result.total == 2
        assert result.succeeded == 1
        assert result.failed == 1
        assert result.to_response()["failures"] == [
            {"naturalKey": "BR-1", "error": "name rejected"},
        ]
        job = tracker.get(job.job_id)
        assert job.status == SyncJobStatus.COMPLETED
        assert job.total_items == 2
        assert job.successful_items == 1
        assert job.failed_items == 1

    def test_nothing_pending(self, service, fake_http, make_erp_config, make_brand):
        make_erp_config()
        make_brand("BR-1", erp_category_id="C-1")
        result = service.sync_pending("brand")
        assert result.total == 0
        assert fake_http.requests == []

    def test_datastore_error_keeps_earlier_records_and_fails_job(
        self, db_session, fake_http, respond, make_erp_config, make_brand, clock,
        monkeypatch,
    ):
        make_erp_config()
        first = make_brand("BR-1")
        second = make_brand("BR-2")
        fake_http.queue(
            respond(200, {"category_id": "C-1"}),
            respond(200, {"category_id": "C-2"}),
        )
        original_persist = BrandStrategy.persist_external_id

        def failing_persist(self, record, external_id):
            if record.brand_code == "BR-2":
                raise OperationalError("UPDATE brands", {}, Exception("database is locked"))
            original_persist(self, record, external_id)

        monkeypatch.setattr(BrandStrategy, "persist_external_id", failing_persist)
        tracker = SyncJobTracker(db_session, clock=clock)
        job = tracker.open_job("erp.brand", "pending")
        service = ErpSyncService(db_session, http=fake_http, tracker=tracker)

        with pytest.raises(ErpBatchAbortedError) as exc_info:
            service.sync_pending("brand", job_id=job.job_id)

        err = exc_info.value
        assert err.code == "ERP_BATCH_ABORTED"
        assert err.succeeded == 1
        assert err.failed == 0
        assert err.job_id == job.job_id
        assert first.erp_category_id == "C-1"
        assert second.erp_category_id is None

        job = tracker.get(job.job_id)
        assert job.status == SyncJobStatus.FAILED
        assert "database is locked" in job.error_summary
        assert job.successful_items == 1
