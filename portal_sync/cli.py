"""Command-line interface.

Usage:
    python -m portal_sync run SugarCRMAccountToPortalMember
    python -m portal_sync tasks
    python -m portal_sync sync list [success|failed|pending|inbound|outbound]
    python -m portal_sync sync stats
    python -m portal_sync sync show <module-or-integration>
    python -m portal_sync sync reset [module-or-integration]
    python -m portal_sync sync create <module> <integration> <inbound|outbound> [endpoint]
    python -m portal_sync sync delete <module-or-integration>
    python -m portal_sync logs [--module M] [--type T] [--status S] [--limit N]
    python -m portal_sync encrypt-secret <plaintext>
"""

import argparse
import asyncio
import json
import logging
from typing import List, Optional

from portal_sync.config import settings
from portal_sync.exceptions import CheckpointError, SyncError
from portal_sync.logging_config import setup_logging
from portal_sync.models.checkpoint import CheckpointStatus, SyncCheckpoint, SyncDirection
from portal_sync.pipelines import list_pipelines
from portal_sync.services.checkpoint_store import CheckpointStore, build_checkpoint_store
from portal_sync.services.outcome_ledger import OutcomeLedger
from portal_sync.services.secret_service import SecretService
from portal_sync.services.sync_service import run_task
from portal_sync.timeutils import isoformat_z

logger = logging.getLogger(__name__)

STATUS_FILTERS = {s.value for s in CheckpointStatus}
DIRECTION_FILTERS = {d.value for d in SyncDirection}


def _get_store() -> CheckpointStore:
    return build_checkpoint_store(settings)


def _get_ledger() -> OutcomeLedger:
    from portal_sync.database.database import init_db

    init_db()
    return OutcomeLedger()


def _format_checkpoint(record: SyncCheckpoint) -> str:
    last_sync = isoformat_z(record.last_sync_at) if record.last_sync_at else "never"
    return (
        f"{record.module_name:<22} {record.integration_name or '-':<32} "
        f"{record.direction.value:<9} {record.status.value:<8} {last_sync}"
    )


def _cmd_run(args) -> int:
    result = asyncio.run(run_task(args.task))
    print(
        f"{result.task_name}: {result.records_fetched} fetched, {result.records_pushed} pushed, "
        f"{result.invalid_records} invalid, {result.fallback_records} fallback"
    )
    for status, count in sorted(result.status_counts.items()):
        print(f"  {status}: {count}")
    return 0


def _cmd_tasks(args) -> int:
    for pipeline in list_pipelines():
        print(f"{pipeline.task_name:<32} {pipeline.source_module} -> {pipeline.module_name}")
    return 0


def _cmd_sync_list(args) -> int:
    status = direction = None
    if args.filter:
        if args.filter in STATUS_FILTERS:
            status = args.filter
        elif args.filter in DIRECTION_FILTERS:
            direction = args.filter
        else:
            print(f"Unknown filter '{args.filter}'. Use one of: {', '.join(sorted(STATUS_FILTERS | DIRECTION_FILTERS))}")
            return 1

    records = _get_store().list(status=status, direction=direction)
    if not records:
        print("No sync records found")
        return 0
    for record in records:
        print(_format_checkpoint(record))
    return 0


def _cmd_sync_stats(args) -> int:
    stats = _get_store().statistics()
    print(f"Total records: {stats['total']}")
    for status, count in stats["by_status"].items():
        print(f"  {status}: {count}")
    for direction, count in stats["by_direction"].items():
        print(f"  {direction}: {count}")
    print(f"Last updated: {stats['last_updated'] or 'never'}")
    return 0


def _cmd_sync_show(args) -> int:
    record = _get_store().get(args.identifier)
    if record is None:
        print(f"Sync record not found for identifier: {args.identifier}")
        return 1
    print(json.dumps(record.model_dump(mode="json"), indent=2))
    return 0


def _cmd_sync_reset(args) -> int:
    store = _get_store()
    if args.identifier:
        store.reset(args.identifier)
        print(f"Reset sync record '{args.identifier}'")
    else:
        count = store.reset_all()
        print(f"Reset {count} sync records")
    return 0


def _cmd_sync_create(args) -> int:
    record = _get_store().create(
        module_name=args.module_name,
        integration_name=args.integration_name,
        direction=args.direction,
        endpoint=args.endpoint,
    )
    print(f"Created sync record for '{record.module_name}'")
    return 0


def _cmd_sync_delete(args) -> int:
    _get_store().delete(args.identifier)
    print(f"Deleted sync record '{args.identifier}'")
    return 0


def _cmd_logs(args) -> int:
    rows = _get_ledger().get_logs(
        module_name=args.module,
        log_type=args.type,
        internal_status=args.status,
        limit=args.limit,
    )
    if not rows:
        print("No integration logs found")
        return 0
    for row in rows:
        log_date = row.log_date.isoformat(sep=" ", timespec="seconds") if row.log_date else "-"
        print(f"{log_date} {row.log_type:<7} {row.module_name:<20} {row.internal_status or '-':<15} {row.message}")
    return 0


def _cmd_encrypt_secret(args) -> int:
    print(SecretService().encrypt(args.plaintext))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="portal-sync", description="SugarCRM to portal incremental sync")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run one sync task")
    run.add_argument("task", help="Task name, see 'tasks'")
    run.set_defaults(handler=_cmd_run)

    tasks = commands.add_parser("tasks", help="List registered tasks")
    tasks.set_defaults(handler=_cmd_tasks)

    sync = commands.add_parser("sync", help="Manage sync records")
    sync_commands = sync.add_subparsers(dest="sync_command", required=True)

    sync_list = sync_commands.add_parser("list", help="List sync records")
    sync_list.add_argument("filter", nargs="?", help="Status or direction")
    sync_list.set_defaults(handler=_cmd_sync_list)

    sync_stats = sync_commands.add_parser("stats", help="Show sync statistics")
    sync_stats.set_defaults(handler=_cmd_sync_stats)

    sync_show = sync_commands.add_parser("show", help="Show one sync record")
    sync_show.add_argument("identifier")
    sync_show.set_defaults(handler=_cmd_sync_show)

    sync_reset = sync_commands.add_parser("reset", help="Reset one or all sync records")
    sync_reset.add_argument("identifier", nargs="?")
    sync_reset.set_defaults(handler=_cmd_sync_reset)

    sync_create = sync_commands.add_parser("create", help="Create a sync record")
    sync_create.add_argument("module_name")
    sync_create.add_argument("integration_name")
    sync_create.add_argument("direction", choices=sorted(DIRECTION_FILTERS))
    sync_create.add_argument("endpoint", nargs="?")
    sync_create.set_defaults(handler=_cmd_sync_create)

    sync_delete = sync_commands.add_parser("delete", help="Delete a sync record")
    sync_delete.add_argument("identifier")
    sync_delete.set_defaults(handler=_cmd_sync_delete)

    logs = commands.add_parser("logs", help="Show integration logs")
    logs.add_argument("--module", default=None)
    logs.add_argument("--type", default=None)
    logs.add_argument("--status", default=None)
    logs.add_argument("--limit", type=int, default=50)
    logs.set_defaults(handler=_cmd_logs)

    encrypt = commands.add_parser("encrypt-secret", help="Encrypt a value for a <NAME>_ENC variable")
    encrypt.add_argument("plaintext")
    encrypt.set_defaults(handler=_cmd_encrypt_secret)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run the CLI.

    Returns:
        0 on success, 1 on failure.
    """
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)

    try:
        return args.handler(args)
    except CheckpointError as e:
        print(f"Error: {e}")
        return 1
    except SyncError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except RuntimeError as e:
        logger.error(str(e))
        return 1
