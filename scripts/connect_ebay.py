"""
DealFlow — eBay Account Connection Script

Walks a seller through the OAuth authorization-code grant and stores the
resulting tokens in the sync_state row, then optionally runs one sync.

Usage:
    python scripts/connect_ebay.py auth-url
    python scripts/connect_ebay.py exchange --code v^1.1#i^1#...
    python scripts/connect_ebay.py sync --days-back 90 --force
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys


# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dealflow.config import settings
from dealflow.errors import DealFlowError
from dealflow.main import open_database
from dealflow.pipeline.ebay import EbayAPIClient, generate_oauth_state
from dealflow.pipeline.jobs import SyncJobRunner
from dealflow.pipeline.sync import SyncService
from dealflow.storage.sql import SQLStorageGateway


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Connect an eBay seller account to DealFlow and run manual syncs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/connect_ebay.py auth-url
  python scripts/connect_ebay.py exchange --code 'v^1.1#i^1#...'
  python scripts/connect_ebay.py sync --days-back 90
""",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("auth-url", help="Print the eBay authorization URL and its state value.")

    exchange = sub.add_parser("exchange", help="Exchange an authorization code for tokens.")
    exchange.add_argument(
        "--code",
        type=str,
        required=True,
        help="The 'code' query parameter eBay appended to the redirect URL.",
    )

    sync = sub.add_parser("sync", help="Run one sync now and print the result.")
    sync.add_argument(
        "--days-back",
        type=int,
        default=settings.SYNC_DAYS_BACK,
        help=f"How many days of history to pull (default: {settings.SYNC_DAYS_BACK}).",
    )
    sync.add_argument(
        "--force",
        action="store_true",
        help="Start even if another sync looks active.",
    )
    return parser.parse_args()


async def exchange_code(code: str, storage: SQLStorageGateway) -> None:
    async with EbayAPIClient() as client:
        tokens = await client.exchange_code_for_tokens(code)
        await storage.save_tokens(tokens)
    print("eBay account connected.")
    print(f"  token_type = {tokens.token_type}")
    print(f"  expires_at = {tokens.expires_at.isoformat()}")


async def run_sync(days_back: int, force: bool, storage: SQLStorageGateway) -> None:
    async with EbayAPIClient() as client:
        service = SyncService(client, storage)
        runner = SyncJobRunner(service, client, storage)
        job = await runner.start(days_back=days_back, force=force)
        print(f"Sync job {job.job_id} started ({days_back} days back)...")
        job = await runner.wait(job.job_id)

    print(f"Sync job finished: {job.status.value}")
    if job.result is not None:
        print(f"  new       = {job.result.new_count}")
        print(f"  updated   = {job.result.updated_count}")
        print(f"  errors    = {len(job.result.errors)}")
        for message in job.result.errors:
            print(f"    - {message}")


async def main() -> None:
    args = parse_args()

    if args.command == "auth-url":
        state = generate_oauth_state()
        client = EbayAPIClient()
        print("Open this URL, approve access, then pass the returned code to 'exchange':")
        print()
        print(client.generate_auth_url(state))
        print()
        print(f"state = {state}")
        return

    engine, session_factory = open_database(settings.DATABASE_URL)
    storage = SQLStorageGateway(session_factory)

    try:
        if args.command == "exchange":
            await exchange_code(args.code, storage)
        else:
            await run_sync(args.days_back, args.force, storage)
    except DealFlowError as e:
        print(f"Failed: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
