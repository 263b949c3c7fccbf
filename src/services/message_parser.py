"""Parse raw RFC 822 messages into normalized envelopes."""

import time
from datetime import datetime, timezone
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Iterable, Optional

from dateutil import parser as date_parser

from src.models.email import PLACEHOLDER_ATTACHMENT, AttachmentInfo, RemoteEnvelope
from src.models.mime import MimeNode
from src.services.mime_structure import (
    is_attachment_part,
    iter_leaf_parts,
    structure_has_attachments,
)
from src.utils.subject import DEFAULT_SUBJECT

SEEN_FLAG = b"\\Seen"


def _header(message: EmailMessage, name: str) -> str:
    value = message.get(name)
    return str(value).strip() if value is not None else ""


def _part_text(part: EmailMessage) -> str:
    """Decoded text of a body part, tolerating unknown or lying charsets."""
    try:
        return part.get_content()
    except (LookupError, UnicodeDecodeError):
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def extract_body(message: EmailMessage) -> str:
    """Plain-text body if present, otherwise the HTML body."""
    for preference in ("plain", "html"):
        part = message.get_body(preferencelist=(preference,))
        if part is not None:
            text = _part_text(part)
            if text:
                return text
    return ""


def _lenient_date(value: str) -> Optional[datetime]:
    """Parse a malformed Date header, e.g. missing weekday comma or odd zone text."""
    try:
        return date_parser.parse(value, fuzzy=True)
    except (ValueError, OverflowError):
        return None


def extract_date(message: EmailMessage) -> datetime:
    """Send date from the Date header; receive time when missing or unparseable."""
    header = message.get("Date")
    sent_at = getattr(header, "datetime", None)
    if sent_at is None and header is not None and str(header).strip():
        sent_at = _lenient_date(str(header))
    if sent_at is None:
        return datetime.now(timezone.utc)
    if sent_at.tzinfo is None:
        return sent_at.replace(tzinfo=timezone.utc)
    return sent_at


def extract_attachments(message: EmailMessage) -> list[AttachmentInfo]:
    """Attachment metadata from the parsed content."""
    attachments = []
    for part in iter_leaf_parts(message):
        if not is_attachment_part(
            part.get_content_maintype(),
            part.get_content_subtype(),
            part.get_content_disposition(),
        ):
            continue
        payload = part.get_payload(decode=True)
        attachments.append(
            AttachmentInfo(
                filename=part.get_filename() or "unnamed",
                size=len(payload) if isinstance(payload, bytes) else 0,
                content_type=part.get_content_type(),
            )
        )
    return attachments


def fallback_message_id(sequence: int) -> str:
    """Synthesized identifier for messages without a Message-ID header."""
    return f"{int(time.time() * 1000)}-{sequence}"


def parse_message(
    raw: bytes,
    sequence: int,
    structure: Optional[MimeNode] = None,
    flags: Iterable[bytes] = (),
) -> RemoteEnvelope:
    """
    Parse one fetched message.

    Args:
        raw: Full RFC 822 source
        sequence: IMAP sequence number, used for the fallback identifier
        structure: MIME tree from BODYSTRUCTURE, if the server returned one
        flags: IMAP flags of the message

    Returns:
        Normalized envelope. ``has_attachments`` is true when either the
        parsed content or the server-side structure shows an attachment; a
        structural hit without parsed metadata gets a placeholder record.
    """
    message = BytesParser(policy=policy.default).parsebytes(raw)

    attachments = extract_attachments(message)
    structural_hit = structure_has_attachments(structure)
    if structural_hit and not attachments:
        attachments = [PLACEHOLDER_ATTACHMENT.model_copy()]

    return RemoteEnvelope(
        sender=_header(message, "From"),
        to=_header(message, "To"),
        cc=_header(message, "Cc"),
        bcc=_header(message, "Bcc"),
        subject=_header(message, "Subject") or DEFAULT_SUBJECT,
        body=extract_body(message),
        date=extract_date(message),
        message_id=_header(message, "Message-ID") or fallback_message_id(sequence),
        in_reply_to=_header(message, "In-Reply-To") or None,
        references=_header(message, "References").split(),
        attachments=attachments,
        has_attachments=bool(attachments) or structural_hit,
        is_read=SEEN_FLAG in tuple(flags),
        sequence=sequence,
    )
