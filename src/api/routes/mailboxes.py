"""Mailbox provisioning API endpoints (administrators)."""

from fastapi import APIRouter, Depends, Request, status

from src.api.dependencies import get_credential_service
from src.api.middleware.rate_limit import RATE_LIMITS, limiter
from src.api.models import MailboxAssignmentRequest
from src.models.email import MailboxAssignment
from src.services.credential_service import CredentialService
from src.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/admin/mailboxes", tags=["Admin"])


@router.get("", response_model=list[MailboxAssignment])
@limiter.limit(RATE_LIMITS["admin"])
async def list_mailboxes(
    request: Request,
    credentials: CredentialService = Depends(get_credential_service),
) -> list[MailboxAssignment]:
    """List mailbox assignments, newest first. Passwords are never returned."""
    return await credentials.list_assignments()


@router.post("", response_model=MailboxAssignment, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["admin"])
async def assign_mailbox(
    request: Request,
    payload: MailboxAssignmentRequest,
    credentials: CredentialService = Depends(get_credential_service),
) -> MailboxAssignment:
    """Store a mailbox app password and assign the mailbox to a user."""
    return await credentials.assign_mailbox(
        email=payload.email,
        app_password=payload.app_password,
        assigned_agent_id=payload.assigned_agent_id,
        agent_name=payload.agent_name,
    )


@router.delete("/{assignment_id}")
@limiter.limit(RATE_LIMITS["admin"])
async def remove_mailbox(
    request: Request,
    assignment_id: str,
    credentials: CredentialService = Depends(get_credential_service),
) -> dict:
    """Remove one mailbox assignment."""
    await credentials.remove_assignment(assignment_id)
    return {"success": True}
