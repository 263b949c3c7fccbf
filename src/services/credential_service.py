"""Mailbox credential directory: resolution for sync jobs and admin provisioning."""

from typing import Optional

from src.config.settings import settings
from src.models.email import MailboxAssignment, MailboxCredential
from src.services.supabase_service import StoreError, SupabaseService, eq
from src.utils.logging import get_logger

logger = get_logger(__name__)


class MailboxNotAssignedError(Exception):
    """No single mailbox is assigned to the caller."""

    pass


class ServerMisconfiguredError(Exception):
    """The credential directory itself is unavailable."""

    pass


class CredentialService:
    """Looks up and manages mailbox assignments in the ``workspace_emails`` table."""

    def __init__(self, supabase: SupabaseService, table: Optional[str] = None) -> None:
        self.supabase = supabase
        self.table = table or settings.supabase.credentials_table

    def _ensure_configured(self) -> None:
        if not self.supabase.is_configured:
            logger.error("Credential directory not configured")
            raise ServerMisconfiguredError("Server misconfiguration: credential directory unavailable")

    async def resolve(self, user_id: str) -> MailboxCredential:
        """
        Resolve the mailbox assigned to a user.

        Args:
            user_id: Authenticated caller identity

        Returns:
            The single assigned mailbox credential

        Raises:
            MailboxNotAssignedError: If no mailbox, or more than one, is assigned
            ServerMisconfiguredError: If the directory cannot be queried
                or the assigned row has no address or password
        """
        self._ensure_configured()

        try:
            rows = await self.supabase.select(
                self.table,
                [eq("assigned_agent_id", user_id)],
                columns="email,app_password",
                limit=2,
            )
        except StoreError as e:
            logger.error("Credential lookup failed", user_id=user_id, error=str(e))
            raise ServerMisconfiguredError(f"Server misconfiguration: {e}") from e

        if len(rows) != 1:
            logger.warning("Mailbox assignment not unique", user_id=user_id, matches=len(rows))
            raise MailboxNotAssignedError(
                "No workspace email assigned to this account. Please contact Super Admin."
            )

        row = rows[0]
        if not row.get("email") or not row.get("app_password"):
            logger.error("Mailbox assignment incomplete", user_id=user_id)
            raise ServerMisconfiguredError("Server misconfiguration: mailbox credential incomplete")

        return MailboxCredential(user_id=user_id, email=row["email"], app_password=row["app_password"])

    async def list_assignments(self) -> list[MailboxAssignment]:
        """List all mailbox assignments, newest first, without passwords."""
        self._ensure_configured()
        try:
            rows = await self.supabase.select(
                self.table,
                columns="id,email,assigned_agent_id,agent_name,created_at",
                order="created_at.desc",
            )
        except StoreError as e:
            raise ServerMisconfiguredError(f"Failed to list mailboxes: {e}") from e
        return [MailboxAssignment(**row) for row in rows]

    async def assign_mailbox(
        self,
        email: str,
        app_password: str,
        assigned_agent_id: str,
        agent_name: Optional[str] = None,
    ) -> MailboxAssignment:
        """Store a mailbox credential and assign it to a user."""
        self._ensure_configured()
        try:
            row = await self.supabase.insert(
                self.table,
                {
                    "email": email,
                    "app_password": app_password,
                    "assigned_agent_id": assigned_agent_id,
                    "agent_name": agent_name,
                },
            )
        except StoreError as e:
            logger.error("Failed to assign mailbox", email=email, error=str(e))
            raise ServerMisconfiguredError(f"Failed to save mailbox: {e}") from e

        logger.info("Mailbox assigned", email=email, assigned_agent_id=assigned_agent_id)
        return MailboxAssignment(**row)

    async def remove_assignment(self, assignment_id: str) -> None:
        """Delete one mailbox assignment by row id."""
        self._ensure_configured()
        try:
            await self.supabase.delete(self.table, [eq("id", assignment_id)])
        except StoreError as e:
            logger.error("Failed to remove mailbox", assignment_id=assignment_id, error=str(e))
            raise ServerMisconfiguredError(f"Failed to delete mailbox: {e}") from e

        logger.info("Mailbox assignment removed", assignment_id=assignment_id)
