"""Mailbox sync and stored message API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from src.api.dependencies import (
    get_current_user,
    get_message_store,
    get_sync_service,
    get_thread_service,
)
from src.api.middleware.rate_limit import RATE_LIMITS, limiter
from src.api.models import (
    ConversationResponse,
    MessageListResponse,
    SyncRequest,
    SyncResponse,
    ThreadRecalculateResponse,
)
from src.config.settings import settings
from src.services.message_store import MessageStore
from src.services.sync_service import MailSyncService, stored_folder_name
from src.services.thread_service import ThreadService
from src.utils.identity import resolve_owner_id
from src.utils.logging import get_logger
from src.utils.subject import normalize_subject

logger = get_logger(__name__)
router = APIRouter(prefix="/mail", tags=["Mail"])


@router.post("/sync", response_model=SyncResponse)
@limiter.limit(RATE_LIMITS["mail_sync"])
async def sync_mailbox(
    request: Request,
    payload: Optional[SyncRequest] = None,
    user_id: str = Depends(get_current_user),
    sync_service: MailSyncService = Depends(get_sync_service),
) -> SyncResponse:
    """
    Sync one folder of the caller's assigned mailbox into the local store.

    **Body (optional):**
    - `folder`: INBOX, Sent, Drafts, Spam, Trash, or a server folder name
    - `limit`: Number of newest messages to fetch

    **Errors:**
    - 401 missing caller identity, or the mailbox rejected the app password
    - 403 no mailbox assigned
    - 409 a sync for this user is already running
    - 500 misconfiguration or mailbox connection failure
    """
    payload = payload or SyncRequest()
    result = await sync_service.sync_mailbox(user_id, folder=payload.folder, limit=payload.limit)

    return SyncResponse(
        success=result.success,
        count=result.count,
        connected_email=result.connected_email,
        message=f"Successfully fetched emails for {result.connected_email}",
        deleted=result.deleted,
        drafts_removed=result.drafts_removed,
    )


@router.get("/messages", response_model=MessageListResponse)
@limiter.limit(RATE_LIMITS["mail_list"])
async def list_messages(
    request: Request,
    folder: str = Query("INBOX", min_length=1, description="Folder alias or server folder name"),
    limit: int = Query(settings.sync.default_limit, ge=1, le=settings.sync.max_limit),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user),
    store: MessageStore = Depends(get_message_store),
) -> MessageListResponse:
    """List the caller's stored messages of one folder, newest first."""
    store_folder = stored_folder_name(folder)
    messages, total = await store.list_folder_page(
        store_folder, resolve_owner_id(user_id), limit=limit, offset=offset
    )

    return MessageListResponse(
        folder=store_folder,
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + len(messages) < total,
        items=[message.to_api_dict() for message in messages],
    )


@router.post("/threads/recalculate", response_model=ThreadRecalculateResponse)
@limiter.limit(RATE_LIMITS["thread_recalculate"])
async def recalculate_threads(
    request: Request,
    user_id: str = Depends(get_current_user),
    thread_service: ThreadService = Depends(get_thread_service),
) -> ThreadRecalculateResponse:
    """Recompute thread counts for all of the caller's stored messages."""
    report = await thread_service.recalculate(resolve_owner_id(user_id))
    logger.info("Threads recalculated", user_id=user_id, threads=report.threads, updated=report.updated)

    return ThreadRecalculateResponse(
        message=f"Calculated {report.threads} threads",
        threads_processed=report.threads,
        updated=report.updated,
    )


@router.get("/thread", response_model=ConversationResponse)
@limiter.limit(RATE_LIMITS["mail_thread"])
async def get_thread(
    request: Request,
    message_id: str = Query(..., min_length=1, description="Message-ID of any message in the conversation"),
    user_id: str = Depends(get_current_user),
    thread_service: ThreadService = Depends(get_thread_service),
) -> ConversationResponse:
    """Conversation containing a stored message, oldest first."""
    messages = await thread_service.get_conversation(message_id, resolve_owner_id(user_id))
    target = next(m for m in messages if m.message_id == message_id)

    return ConversationResponse(
        message_id=message_id,
        thread_key=normalize_subject(target.subject),
        items=[message.to_api_dict() for message in messages],
    )
