"""Shared service instances and request dependencies for the API routes."""

from typing import Optional

from fastapi import Header

from src.services.credential_service import CredentialService
from src.services.imap_service import ImapService
from src.services.lock_service import SyncLockService
from src.services.message_store import MessageStore
from src.services.supabase_service import SupabaseService
from src.services.sync_service import MailSyncService
from src.services.thread_service import ThreadService


class NotAuthenticatedError(Exception):
    """Request carries no caller identity."""

    pass


# Service instances
supabase_service = SupabaseService()
credential_service = CredentialService(supabase_service)
message_store = MessageStore(supabase_service)
thread_service = ThreadService(message_store)
lock_service = SyncLockService()
sync_service = MailSyncService(
    credential_service,
    ImapService(),
    message_store,
    thread_service,
    lock_service=lock_service,
)


async def get_current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity forwarded by the gateway in ``X-User-Id``."""
    if not x_user_id or not x_user_id.strip():
        raise NotAuthenticatedError("Unauthorized")
    return x_user_id.strip()


def get_sync_service() -> MailSyncService:
    return sync_service


def get_message_store() -> MessageStore:
    return message_store


def get_thread_service() -> ThreadService:
    return thread_service


def get_credential_service() -> CredentialService:
    return credential_service


def get_supabase_service() -> SupabaseService:
    return supabase_service


def get_lock_service() -> SyncLockService:
    return lock_service
