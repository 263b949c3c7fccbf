"""Local message store backed by the Supabase ``emails`` table."""

import json
from typing import Any, Iterable, Iterator, Optional

from src.config.settings import settings
from src.models.email import RemoteEnvelope, StoredMessage
from src.services.supabase_service import SupabaseService, eq, in_, owner_is
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Columns needed for thread and draft reconciliation
RECONCILE_COLUMNS = (
    "id,message_id,subject,folder,date,has_attachments,thread_count,"
    "thread_has_attachments,in_reply_to,email_references,owner_id"
)


def build_record(
    envelope: RemoteEnvelope,
    folder: str,
    owner_id: Optional[str],
    snippet_length: int = 200,
) -> dict[str, Any]:
    """
    Build the row written for one fetched envelope.

    Thread fields and ``created_at`` are omitted: the former are recomputed
    after every sync, the latter is set by the store on first insert.
    """
    attachments = [a.model_dump(by_alias=True) for a in envelope.attachments]
    return {
        "from": envelope.sender,
        "to": envelope.to,
        "cc": envelope.cc,
        "bcc": envelope.bcc,
        "subject": envelope.subject,
        "body": envelope.body,
        "date": envelope.date.isoformat(),
        "message_id": envelope.message_id,
        "in_reply_to": envelope.in_reply_to,
        "email_references": " ".join(envelope.references) or None,
        "attachments": json.dumps(attachments) if attachments else None,
        "has_attachments": envelope.has_attachments,
        "snippet": envelope.body[:snippet_length],
        "folder": folder,
        "is_read": envelope.is_read,
        "owner_id": owner_id,
    }


class MessageStore:
    """Message persistence, always scoped to an owner partition."""

    def __init__(
        self,
        supabase: SupabaseService,
        table: Optional[str] = None,
        filter_batch_size: Optional[int] = None,
    ) -> None:
        self.supabase = supabase
        self.table = table or settings.supabase.messages_table
        self.filter_batch_size = filter_batch_size or settings.sync.filter_batch_size

    def _batches(self, ids: list[str]) -> Iterator[list[str]]:
        """Split ids so each ``in.(...)`` filter stays within URL limits."""
        for start in range(0, len(ids), self.filter_batch_size):
            yield ids[start:start + self.filter_batch_size]

    async def upsert_message(self, record: dict[str, Any]) -> None:
        """Insert or overwrite a message keyed by ``message_id``."""
        await self.supabase.upsert(self.table, record, on_conflict="message_id")

    async def list_message_ids(self, folder: str, owner_id: Optional[str]) -> set[str]:
        """Message ids stored for one (folder, owner) partition."""
        rows = await self.supabase.select(
            self.table,
            [eq("folder", folder), owner_is(owner_id)],
            columns="message_id",
        )
        return {row["message_id"] for row in rows if row.get("message_id")}

    async def delete_messages(
        self, message_ids: Iterable[str], folder: str, owner_id: Optional[str]
    ) -> int:
        """Delete messages by id within one (folder, owner) partition, in batches."""
        ids = sorted(message_ids)
        for batch in self._batches(ids):
            await self.supabase.delete(
                self.table,
                [in_("message_id", batch), eq("folder", folder), owner_is(owner_id)],
            )
        return len(ids)

    async def list_owner_messages(self, owner_id: Optional[str]) -> list[StoredMessage]:
        """All messages of an owner across folders, without bodies."""
        rows = await self.supabase.select(
            self.table, [owner_is(owner_id)], columns=RECONCILE_COLUMNS
        )
        return [StoredMessage(**row) for row in rows]

    async def update_thread_fields(
        self,
        message_ids: list[str],
        owner_id: Optional[str],
        thread_count: int,
        thread_has_attachments: bool,
    ) -> None:
        """Set the thread fields on a group of messages, in batches."""
        values = {"thread_count": thread_count, "thread_has_attachments": thread_has_attachments}
        for batch in self._batches(list(message_ids)):
            await self.supabase.update(
                self.table, values, [in_("message_id", batch), owner_is(owner_id)]
            )

    async def list_folder_page(
        self, folder: str, owner_id: Optional[str], limit: int = 50, offset: int = 0
    ) -> tuple[list[StoredMessage], int]:
        """One page of a folder, newest first, with the folder's total count."""
        rows, total = await self.supabase.select_with_count(
            self.table,
            [eq("folder", folder), owner_is(owner_id)],
            order="date.desc",
            limit=limit,
            offset=offset,
        )
        return [StoredMessage(**row) for row in rows], total or 0

    async def get_message(self, message_id: str, owner_id: Optional[str]) -> Optional[StoredMessage]:
        """A single message of the owner, or None."""
        rows = await self.supabase.select(
            self.table,
            [eq("message_id", message_id), owner_is(owner_id)],
            limit=1,
        )
        return StoredMessage(**rows[0]) if rows else None

    async def list_messages_by_ids(
        self, message_ids: Iterable[str], owner_id: Optional[str]
    ) -> list[StoredMessage]:
        """Full rows for a set of message ids of one owner, oldest first within each batch."""
        rows = []
        for batch in self._batches(list(message_ids)):
            rows.extend(await self.supabase.select(
                self.table, [in_("message_id", batch), owner_is(owner_id)], order="date.asc"
            ))
        return [StoredMessage(**row) for row in rows]
