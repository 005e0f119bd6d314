"""
Typed Exception Hierarchy for the Reconciliation Engine.

Every error has a typed class (catch by type, not by message), a ``code``
class attribute (machine-readable, returned by the request handlers), and
structured attributes (logged by ``StructuredFormatter`` as ``exc_*``).

    ReconKernelError (base)
    |
    +-- ConfigurationError
    |   +-- FeeConfigurationNotFoundError
    |   +-- ErpConfigurationError
    |   +-- UnknownFeeTargetError
    |
    +-- RequestValidationError
    |   +-- InvalidScopeKeyError
    |   +-- InvalidDateRangeError
    |   +-- InvalidCursorError
    |
    +-- BatchError
    |   +-- BatchPageError
    |
    +-- SyncJobError
    |   +-- SyncJobNotFoundError
    |   +-- InvalidJobTransitionError
    |   +-- SyncJobProgressError
    |
    +-- ErpError
    |   +-- ErpEntityNotFoundError
    |   +-- ErpBatchAbortedError
    |
    +-- TreasuryError
        +-- TreasuryNotFoundError
        +-- TreasuryEntryStateError

Category        | Code                          | When Raised
----------------|-------------------------------|--------------------------------------
Configuration   | FEE_CONFIGURATION_NOT_FOUND   | No active fee pair for a scope key
                | ERP_CONFIGURATION_ERROR       | No active ERP config / URL / API key
                | UNKNOWN_FEE_TARGET            | Fee variant name not registered
Request         | INVALID_SCOPE_KEY             | Scope key not "<type>:<counterparty>"
                | INVALID_DATE_RANGE            | from/to date ints missing or reversed
                | INVALID_CURSOR                | Resume cursor is not a record id
Batch           | BATCH_PAGE_FAILED             | Datastore error during a page
Sync job        | SYNC_JOB_NOT_FOUND            | Job id does not exist
                | INVALID_JOB_TRANSITION        | Progress/completion on terminal job
                | SYNC_JOB_PROGRESS_INVALID     | Counter would exceed total / go negative
ERP             | ERP_ENTITY_NOT_FOUND          | Local entity to sync does not exist
                | ERP_BATCH_ABORTED             | Non-item error stopped a pending sync
Treasury        | TREASURY_NOT_FOUND            | Treasury id does not exist, or none exist
                | TREASURY_ENTRY_STATE          | Posting an entry that is not draft
"""

from typing import Any


class ReconKernelError(Exception):
    """
    Base exception for all reconciliation engine errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "RECON_KERNEL_ERROR"


# Configuration


class ConfigurationError(ReconKernelError):
    """Base exception for missing or invalid configuration."""

    code: str = "CONFIGURATION_ERROR"


class FeeConfigurationNotFoundError(ConfigurationError):
    """No active fee configuration exists for a (type, counterparty) pair.

    Absence means "unconfigured", never "zero fee".
    """

    code: str = "FEE_CONFIGURATION_NOT_FOUND"

    def __init__(self, transaction_type: str, counterparty: str):
        self.transaction_type = transaction_type
        self.counterparty = counterparty
        super().__init__(
            f"No active fee configuration for {transaction_type}:{counterparty}"
        )


class ErpConfigurationError(ConfigurationError):
    """The active ERP API configuration is missing or incomplete."""

    code: str = "ERP_CONFIGURATION_ERROR"

    def __init__(self, reason: str, environment: str | None = None):
        self.reason = reason
        self.environment = environment
        suffix = f" ({environment} environment)" if environment else ""
        super().__init__(f"ERP configuration error: {reason}{suffix}")


class UnknownFeeTargetError(ConfigurationError):
    """Fee recalculation target name is not registered."""

    code: str = "UNKNOWN_FEE_TARGET"

    def __init__(self, target: str, available: tuple[str, ...]):
        self.target = target
        self.available = available
        super().__init__(
            f"Unknown fee target '{target}'. Available: {list(available)}"
        )


# Request validation


class RequestValidationError(ReconKernelError):
    """Base exception for malformed trigger requests."""

    code: str = "REQUEST_VALIDATION_ERROR"


class InvalidScopeKeyError(RequestValidationError):
    """Scope key could not be parsed into a (type, counterparty) pair."""

    code: str = "INVALID_SCOPE_KEY"

    def __init__(self, scope_key: Any):
        self.scope_key = scope_key
        super().__init__(
            f"Invalid scope key {scope_key!r}: expected '<transaction_type>:<counterparty>'"
        )


class InvalidDateRangeError(RequestValidationError):
    """Date range bounds are missing, malformed, or reversed."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, from_date_int: Any, to_date_int: Any, reason: str):
        self.from_date_int = from_date_int
        self.to_date_int = to_date_int
        self.reason = reason
        super().__init__(
            f"Invalid date range {from_date_int}..{to_date_int}: {reason}"
        )


class InvalidCursorError(RequestValidationError):
    """Resume cursor is not a valid record id."""

    code: str = "INVALID_CURSOR"

    def __init__(self, cursor: Any):
        self.cursor = cursor
        super().__init__(f"Invalid resume cursor {cursor!r}")


# Batch


class BatchError(ReconKernelError):
    """Base exception for batch walker errors."""

    code: str = "BATCH_ERROR"


class BatchPageError(BatchError):
    """A datastore error aborted the walk part-way through.

    Pages written before the failure stay written (each page write is
    independently idempotent).  ``resume_cursor`` is the cursor after the
    last successfully written page; re-invoking from it is safe.
    """

    code: str = "BATCH_PAGE_FAILED"

    def __init__(
        self,
        pages_completed: int,
        updated_count: int,
        resume_cursor: Any,
        cause: Exception,
    ):
        self.pages_completed = pages_completed
        self.updated_count = updated_count
        self.resume_cursor = resume_cursor
        self.cause = str(cause)
        super().__init__(
            f"Batch aborted after {pages_completed} page(s) "
            f"({updated_count} record(s) updated): {cause}"
        )


# Sync jobs


class SyncJobError(ReconKernelError):
    """Base exception for sync job tracking errors."""

    code: str = "SYNC_JOB_ERROR"


class SyncJobNotFoundError(SyncJobError):
    """Sync job with given ID was not found."""

    code: str = "SYNC_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Sync job not found: {job_id}")


class InvalidJobTransitionError(SyncJobError):
    """Requested status change is not allowed from the current status."""

    code: str = "INVALID_JOB_TRANSITION"

    def __init__(self, job_id: str, from_status: str, to_status: str):
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Sync job {job_id} cannot move from {from_status} to {to_status}"
        )


class SyncJobProgressError(SyncJobError):
    """Progress write would break counter monotonicity or bounds."""

    code: str = "SYNC_JOB_PROGRESS_INVALID"

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(f"Invalid progress for sync job {job_id}: {reason}")


# ERP


class ErpError(ReconKernelError):
    """Base exception for ERP synchronization errors."""

    code: str = "ERP_ERROR"


class ErpEntityNotFoundError(ErpError):
    """The local entity requested for sync does not exist."""

    code: str = "ERP_ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ErpBatchAbortedError(ErpError):
    """A non-item error stopped a pending-record sync part-way through.

    Records synced before the failure keep their remote ids, and the
    tracked job (if any) is already marked failed.
    """

    code: str = "ERP_BATCH_ABORTED"

    def __init__(
        self,
        entity_type: str,
        succeeded: int,
        failed: int,
        cause: Exception,
        job_id: Any = None,
    ):
        self.entity_type = entity_type
        self.succeeded = succeeded
        self.job_id = job_id
        self.failed = failed
        self.cause = str(cause)
        super().__init__(
            f"{entity_type} sync aborted after {succeeded + failed} record(s) "
            f"({succeeded} synced): {cause}"
        )


# Treasury


class TreasuryError(ReconKernelError):
    """Base exception for treasury errors."""

    code: str = "TREASURY_ERROR"


class TreasuryNotFoundError(TreasuryError):
    """Treasury with given ID was not found."""

    code: str = "TREASURY_NOT_FOUND"

    def __init__(self, treasury_id: str | None = None):
        self.treasury_id = treasury_id
        if treasury_id is None:
            super().__init__("No treasuries found")
        else:
            super().__init__(f"Treasury not found: {treasury_id}")


class TreasuryEntryStateError(TreasuryError):
    """Treasury entry is not in the state required by the operation."""

    code: str = "TREASURY_ENTRY_STATE"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(f"Treasury entry {entry_id} is {status}, expected draft")
