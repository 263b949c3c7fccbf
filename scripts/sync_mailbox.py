#!/usr/bin/env python3
"""Run one mailbox sync for a user from the command line, bypassing HTTP."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config.settings import settings
from src.services.credential_service import CredentialService
from src.services.imap_service import ImapService
from src.services.lock_service import SyncLockService
from src.services.message_store import MessageStore
from src.services.supabase_service import SupabaseService
from src.services.sync_service import MailSyncService
from src.services.thread_service import ThreadService
from src.utils.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("user_id", help="CRM user id the mailbox is assigned to")
    parser.add_argument("--folder", default="INBOX", help="INBOX, Sent, Drafts, Spam, Trash or a server folder")
    parser.add_argument("--limit", type=int, default=settings.sync.default_limit, help="Newest messages to fetch")
    parser.add_argument("--no-lock", action="store_true", help="Skip the Redis single-flight lock")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    supabase = SupabaseService()
    store = MessageStore(supabase)
    lock = None if args.no_lock else SyncLockService()
    if lock:
        await lock.connect()

    service = MailSyncService(
        CredentialService(supabase),
        ImapService(),
        store,
        ThreadService(store),
        lock_service=lock,
    )

    try:
        result = await service.sync_mailbox(args.user_id, folder=args.folder, limit=args.limit)
    except Exception as e:
        logger.error("Sync failed", user_id=args.user_id, error_type=type(e).__name__, error=str(e))
        print(f"❌ Sync failed: {e}")
        return 1
    finally:
        if lock:
            await lock.disconnect()

    print(f"✅ Synced {result.count} messages from {result.connected_email} ({result.folder})")
    print(f"   deleted: {result.deleted}  drafts removed: {result.drafts_removed}  threads: {result.threads}")
    if result.failed:
        print(f"⚠️  {result.failed} messages failed to store")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run(parse_args(sys.argv[1:]))))
