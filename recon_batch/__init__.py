"""
recon_batch -- Cursor-paginated batch jobs over the ledger tables.

Provides the keyset page walker with per-page SAVEPOINT isolation, the
idempotent bulk sink for engine-owned columns, the persisted sync job
tracker, the fee recalculation jobs, the ERP sync-flag reset and the
resumable runner that drives a trigger to completion.

Architecture:
    recon_batch/ is a top-level package.  Nothing in recon_kernel or
    recon_engines imports from recon_batch.
"""
