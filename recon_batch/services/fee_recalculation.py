"""
Fee recalculation jobs -- bulk re-derivation of ``bank_fee`` on ledger rows.

Contract:
    ``FeeTargetRegistry`` maps a target name ("transactions",
    "order_totals") to the ledger model whose fee column is rewritten.
    ``FeeRecalculationService.recalculate_for_pair()`` rewrites every
    record of one (transaction type, counterparty) pair.
    ``FeeRecalculationService.fill_missing_fees()`` fills records whose fee
    is NULL or zero, resolving each record's pair among all active
    configurations.

Architecture: recon_batch/services.  Uses recon_engines.fees for the
    formula and resolution, ``CursorPageWalker`` for pagination and
    ``IdempotentUpsertSink`` for writes.

Invariants enforced:
    - An unconfigured pair is never written as a zero fee; the record is
      skipped and reported as unmatched.
    - Loyalty-point transactions (and any other configured excluded types)
      are never walked.
    - Progress on a tracked job is recorded once per written page.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from recon_config.schema import BatchSettings
from recon_engines.fees import (
    FeeConfig,
    calculate_fee,
    find_duplicate_pairs,
    index_by_pair,
    pair_key,
    parse_scope_key,
)
from recon_kernel.exceptions import (
    BatchPageError,
    FeeConfigurationNotFoundError,
    InvalidCursorError,
    UnknownFeeTargetError,
)
from recon_kernel.logging_config import LogContext, get_logger
from recon_kernel.models.catalog import PaymentMethodModel
from recon_kernel.models.ledger import OrderTotalModel, TransactionModel

from recon_batch.domain.types import FeeRunResult, PageOutcome, PageProgress
from recon_batch.services.job_tracker import SyncJobTracker
from recon_batch.services.upsert_sink import IdempotentUpsertSink
from recon_batch.services.walker import CursorPageWalker

logger = get_logger("batch.fee_recalculation")

_ZERO = Decimal("0")


# =============================================================================
# Targets
# =============================================================================


@dataclass(frozen=True)
class FeeTarget:
    """A ledger table whose ``bank_fee`` the engine maintains."""

    name: str
    model: type
    description: str = ""


class FeeTargetRegistry:
    """Registry mapping target names to ledger models.

    Contract:
        - ``register()`` adds a target; raises ValueError on duplicate.
        - ``get()`` raises UnknownFeeTargetError if missing.
    """

    def __init__(self) -> None:
        self._targets: dict[str, FeeTarget] = {}

    def register(self, target: FeeTarget) -> None:
        if target.name in self._targets:
            raise ValueError(f"Fee target '{target.name}' is already registered")
        self._targets[target.name] = target

    def get(self, name: str) -> FeeTarget:
        try:
            return self._targets[name]
        except KeyError:
            raise UnknownFeeTargetError(name, self.list_targets()) from None

    def list_targets(self) -> tuple[str, ...]:
        return tuple(sorted(self._targets))

    def __contains__(self, name: str) -> bool:
        return name in self._targets

    def __len__(self) -> int:
        return len(self._targets)


def default_fee_targets() -> FeeTargetRegistry:
    registry = FeeTargetRegistry()
    registry.register(FeeTarget(
        "transactions", TransactionModel, "Payment transaction lines",
    ))
    registry.register(FeeTarget(
        "order_totals", OrderTotalModel, "Per-order aggregates",
    ))
    return registry


def job_type_for(target: str, mode: str) -> str:
    """Job type under which fee runs are tracked, e.g. "fees.transactions.pair"."""
    return f"fees.{target}.{mode}"


def coerce_cursor(cursor: Any) -> UUID | None:
    """Accept a UUID, its string form, or None/empty.

    Raises:
        InvalidCursorError: For anything else.
    """
    if cursor is None or cursor == "":
        return None
    if isinstance(cursor, UUID):
        return cursor
    try:
        return UUID(str(cursor))
    except ValueError:
        raise InvalidCursorError(cursor) from None


# =============================================================================
# Service
# =============================================================================


class FeeRecalculationService:
    """Walks a ledger table and rewrites ``bank_fee`` from fee configurations."""

    def __init__(
        self,
        session: Session,
        settings: BatchSettings | None = None,
        targets: FeeTargetRegistry | None = None,
        tracker: SyncJobTracker | None = None,
    ):
        self._session = session
        self._settings = settings or BatchSettings()
        self._targets = targets or default_fee_targets()
        self._tracker = tracker
        self._excluded = tuple(
            t.strip().lower() for t in self._settings.excluded_transaction_types
        )

    # -------------------------------------------------------------------------
    # Tracked jobs
    # -------------------------------------------------------------------------

    def open_tracked_job(
        self,
        target: str,
        scope_key: str | None = None,
        supersede: bool = False,
    ) -> UUID:
        """Open (or attach to) the tracked job for a fee run."""
        if self._tracker is None:
            raise ValueError("FeeRecalculationService was built without a tracker")
        self._targets.get(target)
        if scope_key is None:
            job = self._tracker.open_job(
                job_type_for(target, "missing"), "all", supersede=supersede,
            )
        else:
            transaction_type, counterparty = parse_scope_key(scope_key)
            normalized = ":".join(pair_key(transaction_type, counterparty))
            job = self._tracker.open_job(
                job_type_for(target, "pair"),
                normalized,
                parameters={"scope_key": scope_key},
                supersede=supersede,
            )
        return job.job_id

    # -------------------------------------------------------------------------
    # Recalculate one pair
    # -------------------------------------------------------------------------

    def recalculate_for_pair(
        self,
        target: str,
        scope_key: str,
        cursor: UUID | str | None = None,
        job_id: UUID | None = None,
    ) -> FeeRunResult:
        """Rewrite the fee on every record of one pair.

        Raises:
            UnknownFeeTargetError: Target not registered.
            InvalidScopeKeyError: Scope key not "<type>:<counterparty>".
            InvalidCursorError: Cursor is not a record id.
            FeeConfigurationNotFoundError: No active config for the pair.
            BatchPageError: A datastore error aborted the walk.
        """
        model = self._targets.get(target).model
        transaction_type, counterparty = parse_scope_key(scope_key)
        start_cursor = coerce_cursor(cursor)

        wanted = pair_key(transaction_type, counterparty)
        configs = [c for c in self._load_active_configs() if c.pair_key == wanted]
        if not configs:
            raise FeeConfigurationNotFoundError(transaction_type, counterparty)
        self._warn_duplicates(configs)
        config = configs[0]

        criteria = [
            func.lower(func.trim(model.transaction_type)) == wanted[0],
            func.lower(func.trim(model.counterparty)) == wanted[1],
            *self._exclusion_criteria(model),
        ]
        stmt = select(model.id, model.amount).where(*criteria)
        sink = IdempotentUpsertSink(self._session, model, ["bank_fee"])

        def process_page(rows: Sequence[Any]) -> PageOutcome:
            updates = [
                {
                    "id": row.id,
                    "bank_fee": calculate_fee(
                        amount=row.amount if row.amount is not None else _ZERO,
                        config=config,
                    ),
                }
                for row in rows
            ]
            return PageOutcome(updated=sink.write(updates))

        with LogContext.bind(scope_key=scope_key, job_id=str(job_id) if job_id else None):
            return self._run(
                target=target,
                scope_key=scope_key,
                model=model,
                criteria=criteria,
                stmt=stmt,
                process_page=process_page,
                cursor=start_cursor,
                job_id=job_id,
            )

    # -------------------------------------------------------------------------
    # Fill missing fees
    # -------------------------------------------------------------------------

    def fill_missing_fees(
        self,
        target: str,
        cursor: UUID | str | None = None,
        job_id: UUID | None = None,
    ) -> FeeRunResult:
        """Compute fees for records whose fee is NULL or zero.

        Records without a matching active configuration are skipped and
        reported through ``unmatched_count`` / ``unmatched_labels``.
        """
        model = self._targets.get(target).model
        start_cursor = coerce_cursor(cursor)

        configs = self._load_active_configs()
        self._warn_duplicates(configs)
        index = index_by_pair(configs)

        criteria = [
            or_(model.bank_fee.is_(None), model.bank_fee == _ZERO),
            *self._exclusion_criteria(model),
        ]
        stmt = select(
            model.id, model.transaction_type, model.counterparty, model.amount,
        ).where(*criteria)
        sink = IdempotentUpsertSink(self._session, model, ["bank_fee"])
        unmatched_labels: set[str] = set()

        def process_page(rows: Sequence[Any]) -> PageOutcome:
            updates = []
            skipped = 0
            for row in rows:
                key = pair_key(row.transaction_type, row.counterparty)
                config = index.get(key)
                if config is None:
                    skipped += 1
                    unmatched_labels.add(":".join(key))
                    continue
                amount = row.amount if row.amount is not None else _ZERO
                updates.append({
                    "id": row.id,
                    "bank_fee": calculate_fee(amount=amount, config=config),
                })
            return PageOutcome(updated=sink.write(updates), skipped=skipped)

        with LogContext.bind(job_id=str(job_id) if job_id else None):
            result = self._run(
                target=target,
                scope_key=None,
                model=model,
                criteria=criteria,
                stmt=stmt,
                process_page=process_page,
                cursor=start_cursor,
                job_id=job_id,
                unmatched_labels=unmatched_labels,
            )

        if unmatched_labels:
            logger.warning(
                "fee_pairs_unmatched",
                extra={
                    "target": target,
                    "unmatched_count": result.unmatched_count,
                    "unmatched_labels": sorted(unmatched_labels),
                },
            )
        return result

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run(
        self,
        *,
        target: str,
        scope_key: str | None,
        model: type,
        criteria: list[Any],
        stmt: Any,
        process_page: Any,
        cursor: UUID | None,
        job_id: UUID | None,
        unmatched_labels: set[str] | None = None,
    ) -> FeeRunResult:
        walker = CursorPageWalker(
            self._session, self._settings.page_size, self._settings.max_pages,
        )
        on_page = None
        if job_id is not None:
            on_page = self._job_progress_hook(model, criteria, cursor, job_id)

        try:
            walk = walker.walk(stmt, model.id, process_page, cursor=cursor, on_page=on_page)
        except BatchPageError as exc:
            if job_id is not None and self._tracker is not None:
                self._tracker.fail(job_id, str(exc))
            raise

        remaining = 0
        next_cursor = walk.next_cursor
        if next_cursor is not None:
            remaining = self._count(model, criteria, below=next_cursor)
            if remaining == 0:
                next_cursor = None

        if next_cursor is None and job_id is not None and self._tracker is not None:
            self._tracker.complete(job_id)

        result = FeeRunResult(
            target=target,
            scope_key=scope_key,
            updated_count=walk.updated_count,
            remaining_count=remaining,
            needs_more_runs=remaining > 0,
            next_cursor=next_cursor,
            pages_processed=walk.pages_processed,
            unmatched_count=walk.skipped_count,
            unmatched_labels=tuple(sorted(unmatched_labels or ())),
            job_id=job_id,
        )
        logger.info(
            "fee_run_finished",
            extra={
                "target": target,
                "scope_key": scope_key,
                "pages_processed": walk.pages_processed,
                "records_seen": walk.records_seen,
                "updated_count": walk.updated_count,
                "unmatched_count": walk.skipped_count,
                "remaining_count": remaining,
                "next_cursor": next_cursor,
            },
        )
        return result

    def _job_progress_hook(
        self,
        model: type,
        criteria: list[Any],
        cursor: UUID | None,
        job_id: UUID,
    ):
        tracker = self._tracker
        if tracker is None:
            raise ValueError("A job_id was given but no tracker is configured")

        base = tracker.get(job_id).processed_items
        tracker.ensure_total(job_id, base + self._count(model, criteria, below=cursor))
        seen = 0

        def on_page(progress: PageProgress) -> None:
            nonlocal seen
            seen += progress.rows_seen
            # Rows inserted below the cursor mid-walk can push past the
            # initial estimate; the total only grows.
            tracker.ensure_total(job_id, base + seen)
            outcome = progress.outcome
            tracker.record_progress(
                job_id,
                succeeded=outcome.updated,
                skipped=outcome.skipped,
                failed=progress.rows_seen - outcome.updated - outcome.skipped,
                current_item=f"page {progress.page_number}",
                resume_cursor=str(progress.cursor),
            )
            logger.info(
                "fee_page_written",
                extra={
                    "page_number": progress.page_number,
                    "updated": outcome.updated,
                    "skipped": outcome.skipped,
                },
            )

        return on_page

    def _count(self, model: type, criteria: list[Any], below: UUID | None) -> int:
        stmt = select(func.count()).select_from(model).where(*criteria)
        if below is not None:
            stmt = stmt.where(model.id < below)
        return self._session.execute(stmt).scalar_one()

    def _exclusion_criteria(self, model: type) -> list[Any]:
        if not self._excluded:
            return []
        return [
            or_(
                model.transaction_type.is_(None),
                func.lower(func.trim(model.transaction_type)).not_in(self._excluded),
            )
        ]

    def _load_active_configs(self) -> list[FeeConfig]:
        rows = self._session.execute(
            select(PaymentMethodModel)
            .where(PaymentMethodModel.is_active.is_(True))
            .order_by(
                PaymentMethodModel.transaction_type,
                PaymentMethodModel.counterparty,
                PaymentMethodModel.id,
            )
        ).scalars().all()
        return [
            FeeConfig(
                transaction_type=pm.transaction_type,
                counterparty=pm.counterparty,
                percentage_rate=pm.percentage_rate,
                fixed_amount=pm.fixed_amount,
                tax_multiplier=pm.tax_multiplier,
                config_id=pm.id,
            )
            for pm in rows
        ]

    def _warn_duplicates(self, configs: Sequence[FeeConfig]) -> None:
        for key, group in find_duplicate_pairs(configs).items():
            logger.warning(
                "duplicate_fee_configuration",
                extra={
                    "pair": ":".join(key),
                    "config_count": len(group),
                    "config_ids": [str(c.config_id) for c in group],
                    "used_config_id": str(group[0].config_id),
                },
            )
