"""
Quote Conflict Reminders - daily runner

Finds every PR held in PENDING_APPROVAL by a quote conflict and sends both
approvers a reminder with the number of days the conflict has been open.
Meant to be run once a day by cron, a Container Apps job or similar.

Usage:
    prflow-reminders --store ./records.db
    python -m prflow.reminders --dry-run
"""

import argparse
import asyncio
from datetime import datetime, UTC

from .core.config import settings
from .core.logging import setup_logging
from .services.events.event_publisher import get_event_publisher
from .services.notifications.service import NotificationService
from .services.reference_data import ReferenceData
from .services.storage import create_record_store


async def run(store_path: str, dry_run: bool) -> int:
    """Send reminders; returns the number of PRs that failed"""
    store = create_record_store(store_path)
    service = NotificationService(ReferenceData(store), publisher=get_event_publisher())

    conflicted = await service.conflicted_purchase_requests()
    print("=" * 70)
    print("QUOTE CONFLICT REMINDERS")
    print("=" * 70)
    print(f"Time: {datetime.now(UTC).strftime('%Y-%m-%d %H:%M:%S')} UTC")
    print(f"Conflicted PRs: {len(conflicted)}")
    print()

    if dry_run:
        for pr in conflicted:
            workflow = pr.approval_workflow
            print(
                f"  {pr.display_number}: "
                f"{workflow.first_approver_selected_quote_id} vs {workflow.second_approver_selected_quote_id}"
            )
        print("\nDry run, nothing sent")
        return 0

    failures = 0
    results = await service.send_conflict_reminders()
    for pr_id, result in results.items():
        if not result.success:
            failures += 1
            print(f"  FAILED  {pr_id}: {result.message}")
        elif result.duplicate:
            print(f"  SKIPPED {pr_id}: already reminded today")
        else:
            print(f"  SENT    {pr_id}: {result.notification_id}")

    print("=" * 70)
    return failures


def main():
    parser = argparse.ArgumentParser(
        description='Send daily reminders for PRs blocked by a quote conflict'
    )
    parser.add_argument(
        '--store',
        default=settings.record_store_path,
        help='SQLite record store path (default: RECORD_STORE_PATH)'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='List conflicted PRs without sending anything'
    )

    args = parser.parse_args()
    if not args.store:
        # An in-memory store would always report zero conflicts
        parser.error("--store is required when RECORD_STORE_PATH is not set")
    setup_logging()

    failures = asyncio.run(run(args.store, args.dry_run))
    raise SystemExit(1 if failures else 0)


if __name__ == "__main__":
    main()
