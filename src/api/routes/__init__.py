"""API route modules."""

from .mail import router as mail_router
from .mailboxes import router as mailboxes_router

__all__ = ["mail_router", "mailboxes_router"]
