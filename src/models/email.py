"""Mailbox and message models."""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from src.utils.subject import DEFAULT_SUBJECT


class MailboxCredential(BaseModel):
    """Connection secrets for one assigned mailbox."""

    user_id: str
    email: str
    app_password: SecretStr


class MailboxAssignment(BaseModel):
    """Row of the credential directory as shown to administrators (no password)."""

    id: int | str
    email: str
    assigned_agent_id: str
    agent_name: Optional[str] = None
    created_at: Optional[datetime] = None


class AttachmentInfo(BaseModel):
    """Attachment descriptor, serialized with the camelCase key the CRM UI reads."""

    model_config = ConfigDict(populate_by_name=True)

    filename: str = "unnamed"
    size: int = 0
    content_type: str = Field(default="application/octet-stream", alias="contentType")


PLACEHOLDER_ATTACHMENT = AttachmentInfo(filename="attachment", size=0)


class RemoteEnvelope(BaseModel):
    """One message as parsed from the remote mailbox, before persistence."""

    sender: str = ""
    to: str = ""
    cc: str = ""
    bcc: str = ""
    subject: str = DEFAULT_SUBJECT
    body: str = ""
    date: datetime
    message_id: str
    in_reply_to: Optional[str] = None
    references: list[str] = []
    attachments: list[AttachmentInfo] = []
    has_attachments: bool = False
    is_read: bool = False
    sequence: int = 0


class StoredMessage(BaseModel):
    """A message row of the local store."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[int | str] = None
    sender: str = Field(default="", alias="from")
    to: Optional[str] = ""
    cc: Optional[str] = ""
    bcc: Optional[str] = ""
    subject: Optional[str] = DEFAULT_SUBJECT
    body: Optional[str] = ""
    date: Optional[datetime] = None
    message_id: str
    in_reply_to: Optional[str] = None
    email_references: Optional[str] = None
    attachments: Optional[list[AttachmentInfo]] = None
    has_attachments: bool = False
    snippet: Optional[str] = ""
    folder: str = "INBOX"
    is_read: bool = False
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    # NULL until thread reconciliation first writes the row
    thread_count: Optional[int] = None
    thread_has_attachments: Optional[bool] = None

    @field_validator("attachments", mode="before")
    @classmethod
    def parse_attachments(cls, v: Any) -> Any:
        """The store keeps attachments as a JSON-encoded string column."""
        if isinstance(v, str):
            return json.loads(v) if v else None
        return v

    @field_validator("has_attachments", "is_read", mode="before")
    @classmethod
    def default_flags(cls, v: Any) -> Any:
        """NULL flags read as False."""
        return False if v is None else v

    @property
    def reference_ids(self) -> list[str]:
        """References header split back into individual message ids."""
        return self.email_references.split() if self.email_references else []

    def to_api_dict(self) -> dict[str, Any]:
        """Row shape returned to API clients, with camelCase threading fields."""
        data = self.model_dump(by_alias=True, mode="json")
        data["messageId"] = self.message_id
        data["inReplyTo"] = self.in_reply_to
        data["references"] = self.reference_ids
        return data
