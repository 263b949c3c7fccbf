"""Exception handlers mapping service errors to ``{"error": ...}`` responses."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.dependencies import NotAuthenticatedError
from src.services.credential_service import MailboxNotAssignedError, ServerMisconfiguredError
from src.services.imap_service import MailboxAuthenticationError, MailboxConnectionError
from src.services.lock_service import SyncInProgressError
from src.services.supabase_service import StoreError
from src.services.thread_service import MessageNotFoundError
from src.utils.logging import get_logger

logger = get_logger(__name__)

AUTH_FAILED_MESSAGE = "Authentication failed. Check the mailbox app password."


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def not_authenticated_handler(request: Request, exc: NotAuthenticatedError) -> JSONResponse:
    return _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized")


async def mailbox_not_assigned_handler(request: Request, exc: MailboxNotAssignedError) -> JSONResponse:
    return _error(status.HTTP_403_FORBIDDEN, str(exc))


async def server_misconfigured_handler(request: Request, exc: ServerMisconfiguredError) -> JSONResponse:
    logger.error("Server misconfigured", path=request.url.path, error=str(exc))
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


async def mailbox_auth_handler(request: Request, exc: MailboxAuthenticationError) -> JSONResponse:
    logger.warning("Mailbox authentication failed", path=request.url.path, error=str(exc))
    return _error(status.HTTP_401_UNAUTHORIZED, AUTH_FAILED_MESSAGE)


async def mailbox_connection_handler(request: Request, exc: MailboxConnectionError) -> JSONResponse:
    logger.error("Mailbox connection failed", path=request.url.path, error=str(exc))
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Failed to fetch emails")


async def sync_in_progress_handler(request: Request, exc: SyncInProgressError) -> JSONResponse:
    return _error(status.HTTP_409_CONFLICT, str(exc))


async def message_not_found_handler(request: Request, exc: MessageNotFoundError) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Store request failed", path=request.url.path, status=exc.status_code, error=str(exc))
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=422,
        content={"error": message, "detail": [{"loc": e.get("loc"), "msg": e.get("msg")} for e in errors]},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install every handler on the application."""
    app.add_exception_handler(NotAuthenticatedError, not_authenticated_handler)
    app.add_exception_handler(MailboxNotAssignedError, mailbox_not_assigned_handler)
    app.add_exception_handler(ServerMisconfiguredError, server_misconfigured_handler)
    app.add_exception_handler(MailboxAuthenticationError, mailbox_auth_handler)
    app.add_exception_handler(MailboxConnectionError, mailbox_connection_handler)
    app.add_exception_handler(SyncInProgressError, sync_in_progress_handler)
    app.add_exception_handler(MessageNotFoundError, message_not_found_handler)
    app.add_exception_handler(StoreError, store_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
