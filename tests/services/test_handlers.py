"""
Tests for recon_services.handlers -- statuses, bodies and commit behavior.

Every handler opens its own session, so seed data is committed through
``db_session`` before a handler runs.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from recon_batch.services.upsert_sink import IdempotentUpsertSink
from recon_erp.strategies import BrandStrategy
from recon_kernel.exceptions import (
    BatchPageError,
    FeeConfigurationNotFoundError,
    InvalidDateRangeError,
    SyncJobProgressError,
    TreasuryNotFoundError,
)
from recon_kernel.models import BrandModel, TransactionModel
from recon_services.handlers import ReconHandlers, status_for
from recon_services.treasury_service import TreasuryReconciliationService


@pytest.fixture
def handlers(session_factory, test_config, clock, fake_http, test_actor_id):
    return ReconHandlers(
        session_factory,
        config=test_config,
        clock=clock,
        http=fake_http,
        actor_id=test_actor_id,
    )


def _fees(db_session):
    db_session.expire_all()
    return db_session.execute(select(TransactionModel.bank_fee)).scalars().all()


# =============================================================================
# Error mapping
# =============================================================================


class TestStatusFor:
    def test_not_found(self):
        assert status_for(FeeConfigurationNotFoundError("a", "b")) == 404
        assert status_for(TreasuryNotFoundError("x")) == 404

    def test_validation(self):
        assert status_for(InvalidDateRangeError(1, 2, "bad")) == 400

    def test_conflict(self):
        assert status_for(SyncJobProgressError("job", "too many")) == 409

    def test_page_failure(self):
        assert status_for(BatchPageError(1, 2, None, RuntimeError("x"))) == 500


# =============================================================================
# Fee triggers
# =============================================================================


class TestFeeHandlers:
    def test_pair_trigger_commits_and_reports(
        self, handlers, db_session, make_transaction, make_fee_config,
    ):
        make_fee_config()
        for _ in range(3):
            make_transaction()
        db_session.commit()

        response = handlers.trigger_fee_recalculation({"scopeKey": "hyperpay:visa"})

        assert response.status == 200
        assert response.body["success"] is True
        assert response.body["updatedCount"] == 3
        assert response.body["remainingCount"] == 0
        assert response.body["needsMoreRuns"] is False
        assert response.body["nextCursor"] is None
        assert _fees(db_session) == [Decimal("4.025")] * 3

    def test_pair_trigger_resumes_from_cursor(
        self, handlers, db_session, make_transaction, make_fee_config,
    ):
        make_fee_config()
        for _ in range(5):
            make_transaction()
        db_session.commit()

        first = handlers.trigger_fee_recalculation({"scopeKey": "hyperpay:visa"})
        second = handlers.trigger_fee_recalculation({
            "scopeKey": "hyperpay:visa", "cursor": first.body["nextCursor"],
        })

        assert first.body["needsMoreRuns"] is True
        assert first.body["remainingCount"] == 1
        assert second.body["updatedCount"] == 1
        assert second.body["needsMoreRuns"] is False

    def test_unconfigured_pair_is_404(self, handlers, db_session, make_transaction):
        make_transaction(bank_fee=Decimal("3"))
        db_session.commit()

        response = handlers.trigger_fee_recalculation({"scopeKey": "hyperpay:visa"})

        assert response.status == 404
        assert response.body["code"] == "FEE_CONFIGURATION_NOT_FOUND"
        assert _fees(db_session) == [Decimal("3")]

    @pytest.mark.parametrize("request_body", [{}, {"scopeKey": "hyperpay"}])
    def test_bad_scope_key_is_400(self, handlers, request_body):
        response = handlers.trigger_fee_recalculation(request_body)
        assert response.status == 400
        assert response.body["code"] == "INVALID_SCOPE_KEY"

    def test_bad_cursor_is_400(self, handlers, db_session, make_fee_config):
        make_fee_config()
        db_session.commit()
        response = handlers.trigger_fee_recalculation(
            {"scopeKey": "hyperpay:visa", "cursor": "page-2"},
        )
        assert response.status == 400
        assert response.body["code"] == "INVALID_CURSOR"

    def test_missing_fee_trigger_reports_unmatched(
        self, handlers, db_session, make_transaction, make_fee_config,
    ):
        make_fee_config()
        make_transaction()
        make_transaction(transaction_type="tabby", counterparty="later")
        db_session.commit()

        response = handlers.trigger_missing_fees({})

        assert response.status == 200
        assert response.body["updatedCount"] == 1
        assert response.body["unmatchedCount"] == 1
        assert response.body["unmatchedLabels"] == ["tabby:later"]

    def test_tracked_trigger_returns_job_and_progress(
        self, handlers, db_session, make_transaction, make_fee_config,
    ):
        make_fee_config()
        for _ in range(5):
            make_transaction()
        db_session.commit()

        first = handlers.trigger_fee_recalculation({"scopeKey": "hyperpay:visa", "track": True})
        job_id = first.body["jobId"]

        progress = handlers.get_job({"jobId": job_id})
        assert progress.status == 200
        assert progress.body["status"] == "running"
        assert progress.body["processed"] == 4
        assert progress.body["total"] == 5

        handlers.trigger_fee_recalculation({
            "scopeKey": "hyperpay:visa",
            "cursor": first.body["nextCursor"],
            "jobId": job_id,
        })
        done = handlers.get_job({"jobId": job_id})
        assert done.body["status"] == "completed"
        assert done.body["processed"] == 5

        listed = handlers.list_active_jobs({"jobType": "fees.transactions.pair"})
        assert [j["id"] for j in listed.body["jobs"]] == [job_id]

    def test_page_failure_keeps_written_pages(
        self, handlers, db_session, make_transaction, make_fee_config, monkeypatch,
    ):
        make_fee_config()
        for _ in range(5):
            make_transaction()
        db_session.commit()

        original_write = IdempotentUpsertSink.write
        calls = {"n": 0}

        def flaky_write(self, rows):
            calls["n"] += 1
            if calls["n"] == 2:
                raise OperationalError("UPDATE transactions", {}, Exception("lock timeout"))
            return original_write(self, rows)

        monkeypatch.setattr(IdempotentUpsertSink, "write", flaky_write)

        response = handlers.trigger_fee_recalculation(
            {"scopeKey": "hyperpay:visa", "track": True},
        )

        assert response.status == 500
        assert response.body["code"] == "BATCH_PAGE_FAILED"
        assert response.body["updatedCount"] == 2
        assert response.body["pagesCompleted"] == 1
        assert response.body["needsMoreRuns"] is True
        assert response.body["nextCursor"] is not None
        assert _fees(db_session).count(Decimal("4.025")) == 2

        jobs = handlers.list_active_jobs({}).body["jobs"]
        assert [j["status"] for j in jobs] == ["failed"]


# =============================================================================
# ERP
# =============================================================================


class TestErpHandlers:
    def test_reset_sync_flags(self, handlers, db_session, make_transaction):
        make_transaction(date_int=20250110, erp_synced=True)
        db_session.commit()

        response = handlers.reset_sync_flags({"fromDateInt": 20250101, "toDateInt": 20250131})

        assert response.status == 200
        assert response.body == {
            "success": True,
            "updatedCount": 1,
            "totalCount": 1,
            "deletedMappingsCount": 0,
        }

    def test_reset_sync_flags_rejects_reversed_range(self, handlers):
        response = handlers.reset_sync_flags({"fromDateInt": 20250201, "toDateInt": 20250101})
        assert response.status == 400
        assert response.body["code"] == "INVALID_DATE_RANGE"

    def test_sync_entity_creates_when_missing(
        self, handlers, db_session, make_erp_config, fake_http, respond,
    ):
        make_erp_config()
        db_session.add(BrandModel(brand_code="BR-1", brand_name="Acme"))
        db_session.commit()
        fake_http.queue(respond(404, {}), respond(201, {"category_id": "C-1"}))

        response = handlers.sync_erp_entity({"entityType": "brand", "naturalKey": "BR-1"})

        assert response.status == 200
        assert response.body == {"success": True, "action": "created", "externalId": "C-1"}
        db_session.expire_all()
        brand = db_session.execute(select(BrandModel)).scalar_one()
        assert brand.erp_category_id == "C-1"

    def test_remote_rejection_is_400_with_erp_text(
        self, handlers, db_session, make_erp_config, fake_http, respond,
    ):
        make_erp_config()
        db_session.add(BrandModel(brand_code="BR-1", brand_name="Acme"))
        db_session.commit()
        fake_http.queue(respond(422, {"success": False, "message": "name already used"}))

        response = handlers.sync_erp_entity({"entityType": "brand", "naturalKey": "BR-1"})

        assert response.status == 400
        assert response.body["error"] == "name already used"

    def test_missing_configuration_is_400(self, handlers, db_session):
        db_session.add(BrandModel(brand_code="BR-1", brand_name="Acme"))
        db_session.commit()
        response = handlers.sync_erp_entity({"entityType": "brand", "naturalKey": "BR-1"})
        assert response.status == 400
        assert response.body["code"] == "ERP_CONFIGURATION_ERROR"

    def test_unknown_record_is_404(self, handlers, db_session, make_erp_config):
        make_erp_config()
        db_session.commit()
        response = handlers.sync_erp_entity({"entityType": "brand", "naturalKey": "nope"})
        assert response.status == 404

    def test_entity_type_is_validated(self, handlers):
        response = handlers.sync_erp_entity({"entityType": "invoice", "naturalKey": "x"})
        assert response.status == 400
        assert response.body["code"] == "REQUEST_VALIDATION_ERROR"

    def test_key_or_id_required(self, handlers):
        response = handlers.sync_erp_entity({"entityType": "brand"})
        assert response.status == 400

    def test_sync_pending_tracked(
        self, handlers, db_session, make_erp_config, fake_http, respond,
    ):
        make_erp_config()
        db_session.add(BrandModel(brand_code="BR-1", brand_name="Acme"))
        db_session.commit()
        fake_http.queue(respond(200, {"category_id": "C-1"}))

        response = handlers.sync_pending_erp({"entityType": "brand", "track": True})

        assert response.status == 200
        assert response.body["succeeded"] == 1
        job = handlers.get_job({"jobId": response.body["jobId"]})
        assert job.body["status"] == "completed"

    def test_sync_pending_aborted_keeps_synced_records(
        self, handlers, db_session, make_erp_config, fake_http, respond, monkeypatch,
    ):
        make_erp_config()
        db_session.add(BrandModel(brand_code="BR-1", brand_name="Acme"))
        db_session.add(BrandModel(brand_code="BR-2", brand_name="Beta"))
        db_session.commit()
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

        response = handlers.sync_pending_erp({"entityType": "brand", "track": True})

        assert response.status == 500
        assert response.body["code"] == "ERP_BATCH_ABORTED"
        assert response.body["succeeded"] == 1
        db_session.expire_all()
        ids = dict(db_session.execute(
            select(BrandModel.brand_code, BrandModel.erp_category_id)
        ).all())
        assert ids == {"BR-1": "C-1", "BR-2": None}
        job = handlers.get_job({"jobId": response.body["jobId"]})
        assert job.body["status"] == "failed"


# =============================================================================
# Treasury and jobs
# =============================================================================


class TestTreasuryHandlers:
    def test_recalculate_one(self, handlers, db_session, make_treasury):
        treasury = make_treasury(current_balance=Decimal("1250"), entries=[
            ("receipt", Decimal("500"), "posted"),
            ("payment", Decimal("200"), "posted"),
        ])
        db_session.commit()

        response = handlers.recalculate_treasury({"accountId": str(treasury.id)})

        assert response.status == 200
        (result,) = response.body["results"]
        assert result["newBalance"] == 1300.0
        assert result["difference"] == 50.0

    def test_unknown_treasury_is_404(self, handlers):
        response = handlers.recalculate_treasury({"accountId": str(uuid4())})
        assert response.status == 404

    def test_no_treasuries_is_404(self, handlers):
        response = handlers.recalculate_treasury({})
        assert response.status == 404
        assert response.body["error"] == "No treasuries found"

    def test_malformed_account_id_is_400(self, handlers):
        response = handlers.recalculate_treasury({"accountId": "main-cash"})
        assert response.status == 400

    def test_unexpected_error_is_500(self, handlers, monkeypatch, captured_logs):
        def broken(self, treasury_id=None):
            raise RuntimeError("boom")

        monkeypatch.setattr(TreasuryReconciliationService, "recalculate", broken)

        response = handlers.recalculate_treasury({})

        assert response.status == 500
        assert response.body["code"] == "INTERNAL_ERROR"
        assert any(r["message"] == "handler_failed" for r in captured_logs())

    def test_post_entry_requires_id(self, handlers):
        assert handlers.post_treasury_entry({}).status == 400


class TestJobHandlers:
    def test_unknown_job_is_404(self, handlers):
        response = handlers.get_job({"jobId": str(uuid4())})
        assert response.status == 404
        assert response.body["code"] == "SYNC_JOB_NOT_FOUND"

    def test_job_id_required(self, handlers):
        assert handlers.get_job({}).status == 400

    def test_no_active_jobs(self, handlers):
        assert handlers.list_active_jobs({}).body == {"jobs": []}

    def test_correlation_id_is_bound(self, handlers, captured_logs):
        handlers.get_job({"jobId": str(uuid4()), "correlationId": "req-42"})
        rejected = [r for r in captured_logs() if r["message"] == "handler_rejected"]
        assert rejected[-1]["correlation_id"] == "req-42"
