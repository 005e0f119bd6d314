"""
Reconciliation Kernel

Persistence and shared infrastructure for the batch reconciliation engine:
- ORM models of record (ledger tables, fee configurations, catalog, treasuries)
- Sync job state and its read model
- Typed exceptions with machine-readable codes
- Structured JSON logging and an injectable clock
"""

__version__ = "0.1.0"
