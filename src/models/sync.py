"""Mailbox sync job models."""

from enum import Enum

from pydantic import BaseModel

from src.models.email import RemoteEnvelope


class MailFolder(str, Enum):
    """Well-known folder aliases understood by the sync job."""

    INBOX = "INBOX"
    SENT = "Sent"
    DRAFTS = "Drafts"
    SPAM = "Spam"
    TRASH = "Trash"

    @classmethod
    def from_alias(cls, name: str) -> "MailFolder | None":
        """Match an alias case-insensitively; None for custom folder names."""
        for folder in cls:
            if folder.value.lower() == name.lower():
                return folder
        return None


class SyncStage(str, Enum):
    """Stages of the sync job, in execution order."""

    IDLE = "idle"
    RESOLVING_CREDENTIALS = "resolving_credentials"
    FETCHING = "fetching"
    UPSERTING = "upserting"
    RECONCILING_DELETIONS = "reconciling_deletions"
    RECONCILING_THREADS = "reconciling_threads"
    DONE = "done"


class RemoteFetchResult(BaseModel):
    """Envelopes fetched from one remote folder plus the folder's size."""

    folder: str
    remote_folder: str
    total_messages: int
    envelopes: list[RemoteEnvelope] = []
    skipped: int = 0

    @property
    def is_complete(self) -> bool:
        """True when every message of the remote folder was fetched and parsed."""
        return self.skipped == 0 and len(self.envelopes) >= self.total_messages

    @property
    def message_ids(self) -> set[str]:
        return {envelope.message_id for envelope in self.envelopes}


class ThreadReport(BaseModel):
    """Outcome of one thread recomputation."""

    threads: int = 0
    updated: int = 0


class SyncResult(BaseModel):
    """Outcome of one sync job."""

    success: bool = True
    count: int = 0
    connected_email: str
    folder: str
    fetched: int = 0
    failed: int = 0
    deleted: int = 0
    drafts_removed: int = 0
    threads: int = 0
    stage: SyncStage = SyncStage.DONE
