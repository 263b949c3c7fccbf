"""Data models for the mail sync service."""

from .email import (
    AttachmentInfo,
    MailboxAssignment,
    MailboxCredential,
    RemoteEnvelope,
    StoredMessage,
)
from .mime import MimeLeaf, MimeMultipart, MimeNode
from .sync import MailFolder, RemoteFetchResult, SyncResult, SyncStage, ThreadReport

__all__ = [
    "AttachmentInfo",
    "MailboxAssignment",
    "MailboxCredential",
    "RemoteEnvelope",
    "StoredMessage",
    "MimeLeaf",
    "MimeMultipart",
    "MimeNode",
    "MailFolder",
    "RemoteFetchResult",
    "SyncResult",
    "SyncStage",
    "ThreadReport",
]
