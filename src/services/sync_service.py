"""Mailbox sync job: remote fetch mirrored into the local message store."""

import uuid
from typing import Optional

import structlog

from src.config.settings import SyncConfig, settings
from src.models.sync import MailFolder, RemoteFetchResult, SyncResult, SyncStage
from src.services.credential_service import CredentialService
from src.services.imap_service import ImapService
from src.services.lock_service import SyncLockService
from src.services.message_store import MessageStore, build_record
from src.services.thread_service import ThreadService
from src.utils.identity import resolve_owner_id
from src.utils.logging import get_logger

logger = get_logger(__name__)


def stored_folder_name(folder: str) -> str:
    """Folder value written to the store: canonical alias, or the custom name as given."""
    alias = MailFolder.from_alias(folder)
    return alias.value if alias else folder


class MailSyncService:
    """
    Runs one sync job for a user.

    Stages run in order: credential resolution, remote fetch, local upsert,
    deletion reconciliation, thread and draft reconciliation. Only the first
    two are fatal; later stages log their failures and the job still succeeds.
    """

    def __init__(
        self,
        credential_service: CredentialService,
        imap_service: ImapService,
        message_store: MessageStore,
        thread_service: ThreadService,
        lock_service: Optional[SyncLockService] = None,
        config: Optional[SyncConfig] = None,
    ) -> None:
        self.credentials = credential_service
        self.imap = imap_service
        self.store = message_store
        self.threads = thread_service
        self.lock = lock_service
        self.config = config or settings.sync

    def _stage(self, stage: SyncStage) -> SyncStage:
        logger.info("Sync stage", stage=stage.value)
        return stage

    async def sync_mailbox(
        self, user_id: str, folder: str = "INBOX", limit: Optional[int] = None
    ) -> SyncResult:
        """
        Sync one folder of the user's assigned mailbox.

        Args:
            user_id: Authenticated caller identity
            folder: Folder alias (INBOX, Sent, Drafts, Spam, Trash) or server name
            limit: Maximum number of newest messages to fetch

        Returns:
            SyncResult with the stored message count

        Raises:
            MailboxNotAssignedError: No single mailbox assigned to the user
            ServerMisconfiguredError: Credential directory unavailable
            MailboxAuthenticationError: Remote mailbox rejected the credentials
            MailboxConnectionError: Remote mailbox or folder unreachable
            SyncInProgressError: Another sync for the user is running
        """
        limit = min(limit or self.config.default_limit, self.config.max_limit)

        with structlog.contextvars.bound_contextvars(
            sync_id=uuid.uuid4().hex[:12], user_id=user_id, folder=folder
        ):
            if self.lock is not None:
                async with self.lock.hold(user_id):
                    return await self._run(user_id, folder, limit)
            return await self._run(user_id, folder, limit)

    async def _run(self, user_id: str, folder: str, limit: int) -> SyncResult:
        self._stage(SyncStage.RESOLVING_CREDENTIALS)
        credential = await self.credentials.resolve(user_id)
        owner_id = resolve_owner_id(user_id)
        store_folder = stored_folder_name(folder)

        self._stage(SyncStage.FETCHING)
        fetch = await self.imap.fetch_recent(credential, folder=folder, limit=limit)

        self._stage(SyncStage.UPSERTING)
        stored, failed = await self._upsert(fetch, store_folder, owner_id)

        self._stage(SyncStage.RECONCILING_DELETIONS)
        deleted = await self._reconcile_deletions(fetch, store_folder, owner_id)

        self._stage(SyncStage.RECONCILING_THREADS)
        drafts_removed, report = await self.threads.reconcile(owner_id)

        result = SyncResult(
            success=True,
            count=stored,
            connected_email=credential.email,
            folder=store_folder,
            fetched=len(fetch.envelopes),
            failed=failed,
            deleted=deleted,
            drafts_removed=drafts_removed,
            threads=report.threads,
            stage=self._stage(SyncStage.DONE),
        )
        logger.info(
            "Sync completed",
            email=credential.email,
            stored=stored,
            failed=failed,
            deleted=deleted,
            drafts_removed=drafts_removed,
            threads=report.threads,
        )
        return result

    async def _upsert(
        self, fetch: RemoteFetchResult, folder: str, owner_id: Optional[str]
    ) -> tuple[int, int]:
        stored = 0
        failed = 0
        for envelope in fetch.envelopes:
            record = build_record(envelope, folder, owner_id, self.config.snippet_length)
            try:
                await self.store.upsert_message(record)
                stored += 1
            except Exception as e:
                failed += 1
                logger.error("Failed to store message", message_id=envelope.message_id, error=str(e))
        return stored, failed

    async def _reconcile_deletions(
        self, fetch: RemoteFetchResult, folder: str, owner_id: Optional[str]
    ) -> int:
        """Delete local messages of the partition that are gone remotely."""
        if not fetch.is_complete:
            logger.info(
                "Skipping deletion reconciliation, fetch window does not cover the folder",
                total_messages=fetch.total_messages,
                fetched=len(fetch.envelopes),
                skipped=fetch.skipped,
            )
            return 0

        try:
            local_ids = await self.store.list_message_ids(folder, owner_id)
            stale = local_ids - fetch.message_ids
            if not stale:
                return 0
            deleted = await self.store.delete_messages(stale, folder, owner_id)
            logger.info("Deleted messages removed remotely", count=deleted)
            return deleted
        except Exception as e:
            logger.error("Deletion reconciliation failed", error=str(e))
            return 0
