#!/usr/bin/env python3
"""
Run reconciliation operations from the command line.

Settings come from the active config (``RECON_CONFIG_PATH`` or the packaged
defaults); ``--db-url`` overrides the configured database.  Every command
prints its JSON result on stdout and exits non-zero on failure.

Usage:
    python3 scripts/run_recon.py init-db
    python3 scripts/run_recon.py fees --scope-key "hyperpay:visa"
    python3 scripts/run_recon.py fees --missing --target order_totals
    python3 scripts/run_recon.py reset-sync --from 20250101 --to 20250131
    python3 scripts/run_recon.py erp-sync --entity brand --key BR-001
    python3 scripts/run_recon.py erp-sync --entity product --pending
    python3 scripts/run_recon.py treasury [--account <uuid>]
    python3 scripts/run_recon.py jobs
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Batch reconciliation engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file")
    parser.add_argument("--db-url", default=None, help="Override database.url")
    parser.add_argument("-v", "--verbose", action="store_true", help="DEBUG logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create all tables")

    fees = sub.add_parser("fees", help="Recalculate bank fees to completion")
    fees.add_argument("--target", default="transactions")
    group = fees.add_mutually_exclusive_group(required=True)
    group.add_argument("--scope-key", help='"<transaction_type>:<counterparty>"')
    group.add_argument("--missing", action="store_true", help="Fill NULL/zero fees")
    fees.add_argument("--max-invocations", type=int, default=100)
    fees.add_argument("--no-track", action="store_true", help="Do not record a sync job")

    reset = sub.add_parser("reset-sync", help="Clear ERP sync flags for a date range")
    reset.add_argument("--from", dest="from_date_int", type=int, required=True)
    reset.add_argument("--to", dest="to_date_int", type=int, required=True)

    erp = sub.add_parser("erp-sync", help="Push catalog records to the ERP")
    erp.add_argument("--entity", required=True)
    erp_group = erp.add_mutually_exclusive_group(required=True)
    erp_group.add_argument("--key", help="Natural key of one record")
    erp_group.add_argument("--pending", action="store_true", help="All unsynced records")

    treasury = sub.add_parser("treasury", help="Recalculate treasury balances")
    treasury.add_argument("--account", default=None)

    jobs = sub.add_parser("jobs", help="List active sync jobs")
    jobs.add_argument("--job-type", default=None)

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from recon_batch.orchestrator import BatchOrchestrator
    from recon_config import get_active_config
    from recon_kernel.db.engine import (
        create_tables,
        get_session,
        get_session_factory,
        init_engine_from_url,
    )
    from recon_kernel.exceptions import ReconKernelError
    from recon_kernel.logging_config import configure_logging
    from recon_services.handlers import ReconHandlers

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = get_active_config(args.config)
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    init_engine_from_url(args.db_url or config.database.url, echo=config.database.echo)

    if args.command == "init-db":
        create_tables()
        print(json.dumps({"success": True}))
        return 0

    if args.command == "fees":
        session = get_session()
        try:
            orchestrator = BatchOrchestrator.from_session(session, config=config)
            result = orchestrator.run_fee_job_to_completion(
                args.target,
                scope_key=None if args.missing else args.scope_key,
                track=not args.no_track,
                max_invocations=args.max_invocations,
            )
        except ReconKernelError as e:
            session.rollback()
            print(json.dumps({"success": False, "code": e.code, "error": str(e)}))
            return 1
        finally:
            session.close()
        print(json.dumps({
            "success": result.completed,
            "invocations": result.invocations,
            "updatedCount": result.updated_count,
            "unmatchedCount": result.unmatched_count,
        }))
        return 0 if result.completed else 2

    handlers = ReconHandlers(get_session_factory(), config=config)
    if args.command == "reset-sync":
        response = handlers.reset_sync_flags({
            "fromDateInt": args.from_date_int, "toDateInt": args.to_date_int,
        })
    elif args.command == "erp-sync" and args.pending:
        response = handlers.sync_pending_erp({"entityType": args.entity, "track": True})
    elif args.command == "erp-sync":
        response = handlers.sync_erp_entity({"entityType": args.entity, "naturalKey": args.key})
    elif args.command == "treasury":
        response = handlers.recalculate_treasury({"accountId": args.account})
    else:
        response = handlers.list_active_jobs({"jobType": args.job_type})

    print(json.dumps(response.body, indent=2, default=str))
    return 0 if response.ok else 1


if __name__ == "__main__":
    sys.exit(main())
