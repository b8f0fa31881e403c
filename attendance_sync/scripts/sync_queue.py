"""
Inspect and drive the offline attendance queue from the command line.

Usage:
    python -m attendance_sync.scripts.sync_queue --status
    python -m attendance_sync.scripts.sync_queue --list
    python -m attendance_sync.scripts.sync_queue --sync
    python -m attendance_sync.scripts.sync_queue --retry-failed
    python -m attendance_sync.scripts.sync_queue --delete 42
    python -m attendance_sync.scripts.sync_queue --clear-all

Sync runs here share a lease in the queue database with the running agent,
so a command never replays an entry the agent is already sending.
"""

import argparse

from attendance_sync.datetime_utils import ms_to_iso
from attendance_sync.exceptions import SyncInProgressError
from attendance_sync.logging_config import get_logger
from attendance_sync.offline.pending import delete_pending_group, find_group, group_pending, pending_details

logger = get_logger(__name__)


def show_status(services):
    stats = services.queue_store.stats()
    status = services.orchestrator.get_sync_status()

    print("=" * 80)
    print("OFFLINE QUEUE STATUS")
    print("=" * 80)
    print(f"  Online: {status['isOnline']}")
    print(f"  Pending: {stats['pendingCount']}")
    print(f"  Synced (retained): {stats['syncedCount']}")
    print(f"  Failed (skipped until retry): {status['failedCount']}")
    if status["isSyncing"]:
        print(f"  Sync running: {status['syncOperation']}")
    if stats["oldestPending"]:
        print(f"  Oldest pending: {ms_to_iso(stats['oldestPending'])}")
    print("=" * 80)

    stats["failedCount"] = status["failedCount"]
    return stats


def list_pending(services):
    details = pending_details(services.queue_store, services.cache, services.failed_items)
    groups = group_pending(details)

    print("=" * 80)
    print(f"PENDING ATTENDANCE ({len(details)} entries, {len(groups)} groups)")
    print("=" * 80)
    for group in groups:
        flags = []
        if group["isDuplicate"]:
            flags.append(f"{len(group['duplicateIds'])} copies")
        if group["failed"]:
            flags.append("FAILED")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        print(
            f"  #{group['id']} {group['className']} | {group['attendanceDate']} | "
            f"{group['attendanceType']} | {len(group.get('records') or [])} records{suffix}"
        )
    if not groups:
        print("  Queue is empty")
    print("=" * 80)
    return groups


def run_sync(services, retry_failed=False):
    if retry_failed:
        cleared = services.orchestrator.clear_failed_items()
        print(f"[INFO] Cleared {cleared} failed item(s)")

    print("[STEP 1] Running sync...")
    result = services.orchestrator.force_sync_now()

    if result.get("skipped"):
        print("[WARNING] Another sync is already running")
    elif result.get("offline"):
        print("[WARNING] Offline, nothing was sent")
    else:
        print(f"[SUCCESS] {result['success']} synced, {result['failed']} failed")
        for error in result["errors"]:
            print(f"  - #{error['id']}: {error['error']}")
    return result


def delete_item(services, item_id):
    details = pending_details(services.queue_store, services.cache, services.failed_items)
    group = find_group(group_pending(details), item_id)
    if group is None:
        print(f"[ERROR] Pending item {item_id} not found")
        return 0

    deleted = delete_pending_group(services.queue_store, services.failed_items, group["duplicateIds"])
    print(f"[SUCCESS] Deleted {deleted} entr{'y' if deleted == 1 else 'ies'}: {group['duplicateIds']}")
    return deleted


def clear_all(services):
    try:
        removed = services.orchestrator.clear_offline_data()
    except SyncInProgressError as e:
        print(f"[WARNING] {e}")
        return None

    print(f"[SUCCESS] Removed {removed['queue']} queued, {removed['failed']} failed "
          f"and {removed['cache']} cached entries")
    return removed


def build_parser():
    parser = argparse.ArgumentParser(description="Inspect and sync the offline attendance queue")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--status", action="store_true", help="Show queue counts (default)")
    group.add_argument("--list", action="store_true", help="List pending submissions, grouped")
    group.add_argument("--sync", action="store_true", help="Run a sync now")
    group.add_argument("--retry-failed", action="store_true",
                       help="Clear the failed set, then run a sync")
    group.add_argument("--delete", type=int, metavar="ID",
                       help="Delete a pending submission and its duplicates")
    group.add_argument("--clear-all", action="store_true",
                       help="Delete all offline data: queue, failed set and class cache")
    return parser


def main(argv=None, app=None):
    from attendance_sync import create_app
    from attendance_sync.config import get_config
    from attendance_sync.services import get_services

    args = build_parser().parse_args(argv)

    if app is None:
        class ScriptConfig(get_config()):
            # One-shot process: no background timers or jobs
            AUTO_SYNC_ENABLED = False
            SCHEDULER_ENABLED = False

        app = create_app(ScriptConfig)

    with app.app_context():
        services = get_services()
        try:
            if args.list:
                return list_pending(services)
            if args.sync or args.retry_failed:
                return run_sync(services, retry_failed=args.retry_failed)
            if args.delete is not None:
                return delete_item(services, args.delete)
            if args.clear_all:
                return clear_all(services)
            return show_status(services)
        except Exception as e:
            logger.error("Queue command failed", error=str(e), exc_info=True)
            print(f"\n[ERROR] {e}")
            raise


if __name__ == "__main__":
    main()
