"""Pytest configuration and fixtures for all tests."""

import os
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from email.utils import format_datetime
from typing import Any, Iterable, Optional
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ["APP_ENV"] = "testing"
os.environ["LOG_FORMAT"] = "console"
os.environ["SUPABASE_URL"] = "https://test-project.supabase.co"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-service-role-key"
os.environ["SUPABASE_RETRY_BACKOFF"] = "0"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["ADMIN_API_KEY"] = "test-admin-key"

from imapclient.exceptions import IMAPClientError, LoginError  # noqa: E402

from src.models.email import MailboxCredential, StoredMessage  # noqa: E402

USER_ID = "3f2b1c4d-5e6f-4a7b-8c9d-0e1f2a3b4c5d"
BASE_TIME = datetime(2024, 6, 3, 9, 0, tzinfo=timezone.utc)
PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n%%EOF\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


# Message builders
def build_message(
    subject: Optional[str] = "Hello",
    body: str = "Plain body text",
    message_id: Optional[str] = "<m1@example.com>",
    date: Optional[datetime] = BASE_TIME,
    sender: str = "Client <client@example.com>",
    to: str = "agent@consolegal.in",
    in_reply_to: Optional[str] = None,
    references: Optional[str] = None,
) -> EmailMessage:
    """A plain-text message with the usual headers."""
    message = EmailMessage()
    message["From"] = sender
    message["To"] = to
    if subject is not None:
        message["Subject"] = subject
    if message_id is not None:
        message["Message-ID"] = message_id
    if date is not None:
        message["Date"] = format_datetime(date)
    if in_reply_to:
        message["In-Reply-To"] = in_reply_to
    if references:
        message["References"] = references
    message.set_content(body)
    return message


def with_pdf(message: EmailMessage, filename: str = "contract.pdf") -> EmailMessage:
    message.add_attachment(PDF_BYTES, maintype="application", subtype="pdf", filename=filename)
    return message


def with_inline_signature(message: EmailMessage) -> EmailMessage:
    message.add_attachment(
        PNG_BYTES,
        maintype="image",
        subtype="png",
        filename="signature.png",
        disposition="inline",
        cid="<signature@consolegal.in>",
    )
    return message


# BODYSTRUCTURE builders (tuple form of an IMAP FETCH response)
def text_part(subtype: bytes = b"plain", disposition: Any = None) -> tuple:
    return (b"text", subtype, (b"charset", b"utf-8"), None, None, b"7bit", 120, 4, None, disposition, None, None)


def binary_part(maintype: bytes, subtype: bytes, disposition: Any = None, name: Optional[bytes] = None) -> tuple:
    params = (b"name", name) if name else None
    return (maintype, subtype, params, None, None, b"base64", 2048, None, disposition, None, None)


def multipart(*parts: tuple, subtype: bytes = b"mixed") -> tuple:
    return ([*parts], subtype, (b"boundary", b"xyz"), None, None, None)


def attachment_disposition(filename: bytes = b"file.bin") -> tuple:
    return (b"attachment", (b"filename", filename))


def inline_disposition() -> tuple:
    return (b"inline", None)


def stored(
    message_id: str,
    subject: str = "Hello",
    folder: str = "INBOX",
    date: Optional[datetime] = BASE_TIME,
    has_attachments: bool = False,
    thread_count: Optional[int] = 1,
    thread_has_attachments: Optional[bool] = False,
    owner_id: Optional[str] = USER_ID,
    in_reply_to: Optional[str] = None,
    email_references: Optional[str] = None,
) -> StoredMessage:
    """A stored message row as read back from the store."""
    return StoredMessage(
        message_id=message_id,
        subject=subject,
        folder=folder,
        date=date,
        has_attachments=has_attachments,
        thread_count=thread_count,
        thread_has_attachments=thread_has_attachments,
        owner_id=owner_id,
        in_reply_to=in_reply_to,
        email_references=email_references,
    )


class FakeIMAPClient:
    """In-memory stand-in for ``imapclient.IMAPClient`` (sequence-number mode)."""

    def __init__(
        self,
        folders: Optional[dict[str, list[dict[str, Any]]]] = None,
        folder_flags: Optional[dict[str, tuple]] = None,
        password: str = "app-password",
    ) -> None:
        self.folders = folders or {"INBOX": []}
        self.folder_flags = folder_flags or {}
        self.password = password
        self.logged_in = False
        self.logged_out = False
        self.selected: Optional[str] = None
        self.fetched: list[int] = []

    def add(
        self,
        folder: str,
        message: EmailMessage | bytes,
        structure: Optional[tuple] = None,
        flags: Iterable[bytes] = (),
    ) -> None:
        raw = message if isinstance(message, bytes) else message.as_bytes()
        self.folders.setdefault(folder, []).append(
            {"raw": raw, "structure": structure, "flags": tuple(flags)}
        )

    def remove(self, folder: str, message_id: str) -> None:
        self.folders[folder] = [
            item for item in self.folders[folder] if message_id.encode() not in item["raw"]
        ]

    def login(self, username: str, password: str) -> bytes:
        if password != self.password:
            raise LoginError("[AUTHENTICATIONFAILED] Invalid credentials (Failure)")
        self.logged_in = True
        return b"Success"

    def list_folders(self) -> list[tuple]:
        return [
            (self.folder_flags.get(name, (b"\\HasNoChildren",)), b"/", name)
            for name in self.folders
        ]

    def select_folder(self, folder: str, readonly: bool = False) -> dict:
        if folder not in self.folders:
            raise IMAPClientError(f"select failed: [NONEXISTENT] Unknown Mailbox: {folder}")
        self.selected = folder
        return {b"EXISTS": len(self.folders[folder]), b"READ-ONLY": [b""]}

    def fetch(self, messages: list[int], data: list[bytes]) -> dict[int, dict]:
        self.fetched = list(messages)
        items = self.folders[self.selected]
        response = {}
        for sequence in messages:
            item = items[sequence - 1]
            entry = {b"SEQ": sequence, b"BODY[]": item["raw"], b"FLAGS": item["flags"]}
            if item["structure"] is not None:
                entry[b"BODYSTRUCTURE"] = item["structure"]
            response[sequence] = entry
        return response

    def logout(self) -> bytes:
        self.logged_out = True
        return b"Logging out"


class FakeMessageStore:
    """In-memory ``MessageStore`` keyed by message_id."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.upserts = 0
        self.thread_updates: list[tuple[list[str], int, bool]] = []
        self.fail_upsert_for: set[str] = set()

    def _owned(self, row: dict, owner_id: Optional[str]) -> bool:
        return row.get("owner_id") == owner_id

    async def upsert_message(self, record: dict[str, Any]) -> None:
        if record["message_id"] in self.fail_upsert_for:
            raise RuntimeError("duplicate key value violates unique constraint")
        self.upserts += 1
        existing = self.rows.get(record["message_id"])
        if existing is None:
            self.rows[record["message_id"]] = {**record, "created_at": BASE_TIME.isoformat()}
        else:
            existing.update(record)

    async def list_message_ids(self, folder: str, owner_id: Optional[str]) -> set[str]:
        return {
            mid for mid, row in self.rows.items()
            if row["folder"] == folder and self._owned(row, owner_id)
        }

    async def delete_messages(self, message_ids: Iterable[str], folder: str, owner_id: Optional[str]) -> int:
        ids = set(message_ids)
        for mid in ids:
            row = self.rows.get(mid)
            if row and row["folder"] == folder and self._owned(row, owner_id):
                del self.rows[mid]
        return len(ids)

    async def list_owner_messages(self, owner_id: Optional[str]) -> list[StoredMessage]:
        return [StoredMessage(**row) for row in self.rows.values() if self._owned(row, owner_id)]

    async def update_thread_fields(
        self, message_ids: list[str], owner_id: Optional[str], thread_count: int, thread_has_attachments: bool
    ) -> None:
        self.thread_updates.append((list(message_ids), thread_count, thread_has_attachments))
        for mid in message_ids:
            self.rows[mid]["thread_count"] = thread_count
            self.rows[mid]["thread_has_attachments"] = thread_has_attachments

    async def list_folder_page(
        self, folder: str, owner_id: Optional[str], limit: int = 50, offset: int = 0
    ) -> tuple[list[StoredMessage], int]:
        rows = [
            StoredMessage(**row) for row in self.rows.values()
            if row["folder"] == folder and self._owned(row, owner_id)
        ]
        rows.sort(key=lambda m: m.date, reverse=True)
        return rows[offset:offset + limit], len(rows)

    async def get_message(self, message_id: str, owner_id: Optional[str]) -> Optional[StoredMessage]:
        row = self.rows.get(message_id)
        return StoredMessage(**row) if row and self._owned(row, owner_id) else None

    async def list_messages_by_ids(self, message_ids: Iterable[str], owner_id: Optional[str]) -> list[StoredMessage]:
        return [
            StoredMessage(**self.rows[mid]) for mid in message_ids
            if mid in self.rows and self._owned(self.rows[mid], owner_id)
        ]

    def folder_ids(self, folder: str) -> set[str]:
        return {mid for mid, row in self.rows.items() if row["folder"] == folder}


@pytest.fixture
def credential():
    """Mailbox credential resolved for the test user."""
    return MailboxCredential(user_id=USER_ID, email="agent@consolegal.in", app_password="app-password")


@pytest.fixture
def fake_imap():
    """Empty fake IMAP server with Gmail-style folders."""
    return FakeIMAPClient(
        folders={
            "INBOX": [],
            "[Gmail]/Sent Mail": [],
            "[Gmail]/Drafts": [],
            "[Gmail]/Spam": [],
            "[Gmail]/Trash": [],
        }
    )


@pytest.fixture
def fake_store():
    return FakeMessageStore()


@pytest.fixture
def mock_credential_service(credential):
    """Credential service resolving every user to the test mailbox."""
    service = AsyncMock()
    service.resolve.return_value = credential
    return service


@pytest.fixture
def minutes():
    """Offset helper from the shared base time."""
    return lambda n: BASE_TIME + timedelta(minutes=n)
