"""MIME structure tree of a message, as reported by the remote mailbox."""

from typing import Literal, Optional, Union

from pydantic import BaseModel


class MimeLeaf(BaseModel):
    """A single body part (text, image, application, message/rfc822, ...)."""

    kind: Literal["leaf"] = "leaf"
    type: str
    subtype: str
    disposition: Optional[str] = None
    filename: Optional[str] = None
    size: int = 0

    @property
    def content_type(self) -> str:
        return f"{self.type}/{self.subtype}"


class MimeMultipart(BaseModel):
    """A multipart container holding nested parts."""

    kind: Literal["multipart"] = "multipart"
    subtype: str
    parts: list["MimeNode"] = []
    disposition: Optional[str] = None


MimeNode = Union[MimeLeaf, MimeMultipart]

MimeMultipart.model_rebuild()
