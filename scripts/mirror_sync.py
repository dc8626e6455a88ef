#!/usr/bin/env python3
"""Repository mirror CLI.

Command-line tool for running mirror operations by hand or from cron.

Usage:
    mirror_sync.py --init-db                 # Create record tables
    mirror_sync.py --create OWNER/REPO       # Onboard a repository and run its first sync
    mirror_sync.py --full TENANT_ID          # Full sync from the repository archive
    mirror_sync.py --push EVENT.json         # Apply a push webhook payload
    mirror_sync.py --delete TENANT_ID        # Purge a tenant and its records
    mirror_sync.py --status TENANT_ID        # Show the stored summary
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from mirror.config import get_config
from mirror.exceptions import MirrorError
from mirror.github.webhooks import parse_push_event
from mirror.logging_config import configure_logging
from mirror.service import MirrorService, build_service
from mirror.summary import describe


async def show_status(service: MirrorService, tenant_id: str) -> int:
    """Display the tenant record and its stored summary."""
    installation = await service.records.get_installation(tenant_id)
    print("Mirror Status")
    print("=" * 50)
    if installation is None:
        print(f"No installation: {tenant_id}")
        return 1
    print(f"Tenant: {installation.id}")
    print(f"Repository: {installation.repo_full_name}")
    print(f"Created: {installation.created_at.isoformat()}")
    last_sync = installation.last_sync_at
    print(f"Last sync: {last_sync.isoformat() if last_sync else 'never'}")
    print()

    summary = await service.summaries.load_summary(tenant_id)
    if summary is None:
        print("No summary stored (never synced)")
        return 0
    print(describe(summary))
    print(json.dumps(summary.to_dict(), indent=2))
    return 0


def print_result(result) -> None:
    print(f"  Written: {result.files_written}")
    print(f"  Removed: {result.files_removed}")
    print(f"  Filtered: {result.files_filtered}")
    print(f"  Mirror files: {result.file_count}")
    print(f"  Errors: {result.errors}")
    for failure in result.failures:
        print(f"    {failure.operation} {failure.path}: {failure.reason}")
    print(f"  Duration: {result.duration_seconds:.1f}s")
    if result.rate_limit_remaining is not None:
        print(f"  API requests remaining: {result.rate_limit_remaining}")


async def run(args: argparse.Namespace) -> int:
    service = build_service(get_config())
    try:
        if args.init_db:
            await service.records.create_tables()
            print("Record tables created.")
            return 0

        if args.status:
            return await show_status(service, args.status)

        if args.full:
            print(f"Full sync of tenant {args.full}...")
            print_result(await service.orchestrator.resync(args.full))
            return 0

        if args.push:
            payload = json.loads(Path(args.push).read_text(encoding="utf-8"))
            event = parse_push_event(payload)
            print(f"Applying push to {event.repository} ({event.ref})...")
            results = await service.orchestrator.handle_push(event)
            if not results:
                print("  No tenant updated.")
            for result in results:
                print(f"Tenant {result.tenant_id}:")
                print_result(result)
            return 0

        if args.create:
            installation = await service.lifecycle.create(
                args.installation_id,
                args.create,
                args.create.split("/", 1)[0],
                verify_access=args.verify_access,
            )
            print(f"Created tenant {installation.id} for {installation.repo_full_name}")
            print("Waiting for initial sync...")
            await service.lifecycle.drain()
            return await show_status(service, installation.id)

        if args.delete:
            print(f"Deleting tenant {args.delete}...")
            result = await service.lifecycle.delete(args.delete)
            print(f"  Objects deleted: {result.objects_deleted}")
            print(f"  Installation removed: {result.installation_removed}")
            for step, status in result.records.items():
                print(f"  {step}: {status}")
            return 0 if result.success else 1
    except (MirrorError, OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        await service.close()
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run repository mirror operations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --init-db                 # Create record tables
  %(prog)s --create octo/docs --verify-access  # Onboard after an access check
  %(prog)s --full 6f1c...            # Re-import a tenant from its archive
  %(prog)s --push push.json          # Apply a saved push webhook payload
  %(prog)s --status 6f1c...          # Display the tenant summary

Configuration (.env or environment):
    MIRROR_ROOT=/var/lib/repo-mirror
    DATABASE_URL=sqlite+aiosqlite:///mirror.db
    GITHUB_TOKEN=ghs_your_token_here
    MIRROR_LOG_LEVEL=INFO
        """,
    )

    mode_group = parser.add_mutually_exclusive_group(required=True)
    mode_group.add_argument("--init-db", action="store_true", help="Create record tables")
    mode_group.add_argument("--create", metavar="OWNER/REPO", help="Onboard a repository")
    mode_group.add_argument("--full", metavar="TENANT_ID", help="Full sync of a tenant")
    mode_group.add_argument("--push", metavar="FILE", help="Push event JSON payload")
    mode_group.add_argument("--delete", metavar="TENANT_ID", help="Delete a tenant")
    mode_group.add_argument("--status", metavar="TENANT_ID", help="Show tenant summary")

    parser.add_argument(
        "--installation-id",
        type=int,
        default=0,
        help="GitHub App installation id recorded with --create",
    )
    parser.add_argument(
        "--verify-access",
        action="store_true",
        help="With --create, confirm the token can see the repository first",
    )

    args = parser.parse_args()
    config = get_config()
    configure_logging(level=config.mirror_log_level, fmt=config.mirror_log_format)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
