"""
MIME structure walking and attachment classification.

Two independent views of a message are classified with the same rules:
the BODYSTRUCTURE tree reported by the IMAP server, and the leaf parts of
the parsed message content. Signature images and other inline parts never
count as attachments.
"""

from email.message import EmailMessage
from typing import Any, Iterator, Optional

from src.models.mime import MimeLeaf, MimeMultipart, MimeNode

BODY_TEXT_SUBTYPES = frozenset({"plain", "html"})


def is_attachment_part(
    maintype: Optional[str], subtype: Optional[str], disposition: Optional[str]
) -> bool:
    """
    Decide whether one leaf part is a user-visible attachment.

    Args:
        maintype: Content type, e.g. ``application``
        subtype: Content subtype, e.g. ``pdf``
        disposition: Content-Disposition type (``attachment``, ``inline``) or None

    Returns:
        True for explicit attachments and for untyped-disposition parts that
        are neither message bodies, containers nor bare images.
    """
    disposition = (disposition or "").lower()
    if disposition == "attachment":
        return True
    if disposition == "inline":
        return False

    maintype = (maintype or "").lower()
    subtype = (subtype or "").lower()
    if not maintype or not subtype:
        return False
    if maintype == "text" and subtype in BODY_TEXT_SUBTYPES:
        return False
    if maintype == "multipart":
        return False
    # Images without an explicit attachment disposition are embedded/signature images
    if maintype == "image":
        return False
    return True


def structure_has_attachments(node: Optional[MimeNode]) -> bool:
    """Recursively check a MIME tree for any attachment leaf."""
    if node is None:
        return False
    if isinstance(node, MimeMultipart):
        if (node.disposition or "").lower() == "attachment":
            return True
        return any(structure_has_attachments(part) for part in node.parts)
    return is_attachment_part(node.type, node.subtype, node.disposition)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _param(params: Any, name: str) -> Optional[str]:
    """Look up a value in an IMAP parameter list ``(key, value, key, value, ...)``."""
    if not isinstance(params, (tuple, list)):
        return None
    for key, value in zip(params[::2], params[1::2]):
        if _text(key).lower() == name:
            return _text(value)
    return None


def _disposition(body: Any, index: int) -> tuple[Optional[str], Optional[str]]:
    if len(body) <= index:
        return None, None
    field = body[index]
    if not isinstance(field, (tuple, list)) or not field:
        return None, None
    params = field[1] if len(field) > 1 else None
    return _text(field[0]).lower() or None, _param(params, "filename")


def structure_from_bodystructure(body: Any) -> MimeNode:
    """
    Convert an IMAP BODYSTRUCTURE response into a MIME tree.

    Accepts ``imapclient.response_types.BodyData`` (multipart parts are
    nested in a list at index 0) or the equivalent plain tuples.

    The disposition field sits at a different offset depending on the part
    kind: after the line count for ``text/*``, after envelope, body and line
    count for ``message/rfc822``, and right after the MD5 for everything
    else. Multipart containers carry it after their parameter list.
    """
    if isinstance(body[0], list):
        disposition, _ = _disposition(body, 3)
        return MimeMultipart(
            subtype=_text(body[1]).lower(),
            parts=[structure_from_bodystructure(part) for part in body[0]],
            disposition=disposition,
        )

    maintype = _text(body[0]).lower()
    subtype = _text(body[1]).lower()
    if maintype == "text":
        index = 9
    elif maintype == "message" and subtype == "rfc822":
        index = 11
    else:
        index = 8
    disposition, filename = _disposition(body, index)
    size = body[6] if len(body) > 6 and isinstance(body[6], int) else 0

    return MimeLeaf(
        type=maintype,
        subtype=subtype,
        disposition=disposition,
        filename=filename or _param(body[2] if len(body) > 2 else None, "name"),
        size=size,
    )


def iter_leaf_parts(message: EmailMessage) -> Iterator[EmailMessage]:
    """
    Yield the non-container parts of a parsed message, depth first.

    Attached ``message/rfc822`` parts are yielded as a single leaf rather
    than descended into.
    """
    if message.get_content_maintype() == "multipart":
        for part in message.iter_parts():
            yield from iter_leaf_parts(part)
    else:
        yield message
