"""API request/response models."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.config.settings import settings


# Mail sync models
class SyncRequest(BaseModel):
    """Body of a sync trigger."""

    folder: str = Field(default="INBOX", min_length=1, description="Folder alias or server folder name")
    limit: int = Field(
        default=settings.sync.default_limit,
        ge=1,
        le=settings.sync.max_limit,
        description="Maximum number of newest messages to fetch",
    )


class SyncResponse(BaseModel):
    """Successful sync outcome."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    count: int = Field(description="Messages stored by this sync")
    connected_email: str = Field(alias="connectedEmail")
    message: str
    deleted: int = 0
    drafts_removed: int = Field(default=0, alias="draftsRemoved")


class PaginatedResponse(BaseModel):
    """Generic offset-paginated response wrapper."""

    total: int = Field(description="Total number of items")
    limit: int = Field(description="Items per page")
    offset: int = Field(description="Items skipped")
    has_more: bool = Field(description="More items exist after this page")


class MessageListResponse(PaginatedResponse):
    """Page of stored messages."""

    folder: str
    items: list[dict[str, Any]]


class ConversationResponse(BaseModel):
    """Conversation around one stored message, oldest first."""

    message_id: str
    thread_key: str
    items: list[dict[str, Any]]


class ThreadRecalculateResponse(BaseModel):
    """Outcome of a standalone thread recomputation."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    threads_processed: int = Field(alias="threadsProcessed")
    updated: int = 0


# Admin models
class MailboxAssignmentRequest(BaseModel):
    """Assign a mailbox credential to a CRM user."""

    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    app_password: str = Field(min_length=1)
    assigned_agent_id: str = Field(min_length=1)
    agent_name: Optional[str] = None
