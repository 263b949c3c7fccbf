"""Thread grouping and sent-draft cleanup over the local message store."""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

from src.config.settings import settings
from src.models.email import StoredMessage
from src.models.sync import MailFolder, ThreadReport
from src.services.message_store import MessageStore
from src.utils.logging import get_logger
from src.utils.subject import normalize_subject

logger = get_logger(__name__)


class MessageNotFoundError(Exception):
    """Requested message is not in the caller's partition."""

    pass


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def group_threads(messages: list[StoredMessage]) -> dict[str, list[StoredMessage]]:
    """Group messages by normalized subject."""
    groups: dict[str, list[StoredMessage]] = defaultdict(list)
    for message in messages:
        groups[normalize_subject(message.subject)].append(message)
    return dict(groups)


def _linkage(message: StoredMessage) -> set[str]:
    ids = set(message.reference_ids)
    if message.in_reply_to:
        ids.add(message.in_reply_to)
    return ids


def related_messages(target: StoredMessage, candidates: list[StoredMessage]) -> list[StoredMessage]:
    """
    Messages of the target's conversation, oldest first.

    A candidate belongs to the conversation when it is the target, an
    ancestor named in the target's References/In-Reply-To, a descendant
    naming the target, or a sibling sharing a referenced id. Without any
    identifier linkage the whole same-subject group is returned.
    """
    target_links = _linkage(target)
    related = []
    for candidate in candidates:
        links = _linkage(candidate)
        if (
            candidate.message_id == target.message_id
            or candidate.message_id in target_links
            or target.message_id in links
            or target_links & links
        ):
            related.append(candidate)

    if not any(m.message_id != target.message_id for m in related):
        related = list(candidates)
    if not any(m.message_id == target.message_id for m in related):
        related.append(target)

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(related, key=lambda m: _aware(m.date) if m.date else epoch)


class ThreadService:
    """Recomputes thread fields and removes drafts that were already sent."""

    def __init__(self, store: MessageStore, draft_window_seconds: Optional[int] = None) -> None:
        self.store = store
        self.draft_window_seconds = (
            draft_window_seconds
            if draft_window_seconds is not None
            else settings.sync.draft_match_window_seconds
        )

    def find_sent_drafts(self, messages: list[StoredMessage]) -> list[StoredMessage]:
        """
        Drafts that have a sent counterpart.

        A draft matches the first sent message with the same thread key whose
        date is strictly less than the match window away.
        """
        sent_by_key: dict[str, list[StoredMessage]] = defaultdict(list)
        for message in messages:
            if message.folder == MailFolder.SENT.value and message.date:
                sent_by_key[normalize_subject(message.subject)].append(message)

        matched = []
        for draft in messages:
            if draft.folder != MailFolder.DRAFTS.value or not draft.date:
                continue
            for sent in sent_by_key.get(normalize_subject(draft.subject), []):
                delta = abs((_aware(sent.date) - _aware(draft.date)).total_seconds())
                if delta < self.draft_window_seconds:
                    logger.debug(
                        "Draft matched sent message",
                        draft=draft.message_id,
                        sent=sent.message_id,
                        delta_seconds=delta,
                    )
                    matched.append(draft)
                    break
        return matched

    async def remove_sent_drafts(
        self, messages: list[StoredMessage], owner_id: Optional[str]
    ) -> list[StoredMessage]:
        """Delete sent drafts from the store; returns the drafts removed."""
        drafts = self.find_sent_drafts(messages)
        if drafts:
            await self.store.delete_messages(
                [d.message_id for d in drafts], MailFolder.DRAFTS.value, owner_id
            )
            logger.info("Removed sent drafts", count=len(drafts))
        return drafts

    async def recompute_threads(
        self, messages: list[StoredMessage], owner_id: Optional[str]
    ) -> ThreadReport:
        """
        Recompute ``thread_count`` and ``thread_has_attachments`` for every group.

        Only rows whose values change are written. A row still carrying NULL
        thread fields always counts as changed. A failed group update is
        logged and the remaining groups still run.
        """
        groups = group_threads(messages)
        updated = 0

        for key, members in groups.items():
            count = len(members)
            has_attachments = any(m.has_attachments for m in members)
            changed = [
                m.message_id
                for m in members
                if m.thread_count != count or m.thread_has_attachments != has_attachments
            ]
            if not changed:
                continue
            try:
                await self.store.update_thread_fields(changed, owner_id, count, has_attachments)
                updated += len(changed)
            except Exception as e:
                logger.error("Thread update failed", thread=key, messages=len(changed), error=str(e))

        logger.info("Threads recomputed", threads=len(groups), updated=updated)
        return ThreadReport(threads=len(groups), updated=updated)

    async def reconcile(self, owner_id: Optional[str]) -> tuple[int, ThreadReport]:
        """
        Run draft cleanup then thread recomputation over the owner's messages.

        Returns:
            (drafts removed, thread report). Failures in either step are
            logged and never raised.
        """
        try:
            messages = await self.store.list_owner_messages(owner_id)
        except Exception as e:
            logger.error("Failed to load messages for reconciliation", error=str(e))
            return 0, ThreadReport()

        removed = 0
        try:
            drafts = await self.remove_sent_drafts(messages, owner_id)
            removed = len(drafts)
            dropped = {d.message_id for d in drafts}
            messages = [
                m for m in messages
                if not (m.folder == MailFolder.DRAFTS.value and m.message_id in dropped)
            ]
        except Exception as e:
            logger.error("Draft cleanup failed", error=str(e))

        try:
            report = await self.recompute_threads(messages, owner_id)
        except Exception as e:
            logger.error("Thread recomputation failed", error=str(e))
            report = ThreadReport()

        return removed, report

    async def recalculate(self, owner_id: Optional[str]) -> ThreadReport:
        """Recompute threads alone, raising on load failure."""
        messages = await self.store.list_owner_messages(owner_id)
        return await self.recompute_threads(messages, owner_id)

    async def get_conversation(self, message_id: str, owner_id: Optional[str]) -> list[StoredMessage]:
        """
        Conversation containing a stored message.

        Raises:
            MessageNotFoundError: If the message is not in the owner's partition
        """
        target = await self.store.get_message(message_id, owner_id)
        if target is None:
            raise MessageNotFoundError(f"Message not found: {message_id}")

        key = normalize_subject(target.subject)
        summaries = await self.store.list_owner_messages(owner_id)
        same_subject = [m.message_id for m in summaries if normalize_subject(m.subject) == key]
        candidates = await self.store.list_messages_by_ids(same_subject, owner_id)
        return related_messages(target, candidates)
