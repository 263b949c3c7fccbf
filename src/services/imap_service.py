"""IMAP integration for fetching recent messages from a remote mailbox."""

import asyncio
from typing import Any, Callable, Optional

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError, LoginError

from src.config.settings import ImapConfig, settings
from src.models.email import MailboxCredential, RemoteEnvelope
from src.models.sync import MailFolder, RemoteFetchResult
from src.services.message_parser import parse_message
from src.services.mime_structure import structure_from_bodystructure
from src.utils.logging import get_logger

logger = get_logger(__name__)

FETCH_ITEMS = [b"BODY.PEEK[]", b"BODYSTRUCTURE", b"FLAGS"]

# RFC 6154 special-use flags, used when the configured folder name is absent
SPECIAL_USE_FLAGS = {
    MailFolder.SENT: b"\\Sent",
    MailFolder.DRAFTS: b"\\Drafts",
    MailFolder.SPAM: b"\\Junk",
    MailFolder.TRASH: b"\\Trash",
}


class MailboxConnectionError(Exception):
    """Remote mailbox unreachable, or the requested folder cannot be opened."""

    pass


class MailboxAuthenticationError(MailboxConnectionError):
    """Remote mailbox rejected the credentials."""

    pass


class ImapService:
    """Fetches and parses the newest messages of one mailbox folder."""

    def __init__(
        self,
        config: Optional[ImapConfig] = None,
        client_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        """
        Initialize IMAP service.

        Args:
            config: IMAP settings (defaults to global settings)
            client_factory: Callable returning a connected IMAP client; the
                default opens a TLS ``IMAPClient`` using sequence numbers
        """
        self.config = config or settings.imap
        self._client_factory = client_factory or self._create_client
        self.folder_names = {
            MailFolder.INBOX: "INBOX",
            MailFolder.SENT: self.config.sent_folder,
            MailFolder.DRAFTS: self.config.drafts_folder,
            MailFolder.SPAM: self.config.spam_folder,
            MailFolder.TRASH: self.config.trash_folder,
        }

    def _create_client(self) -> IMAPClient:
        return IMAPClient(
            self.config.host,
            port=self.config.port,
            ssl=True,
            use_uid=False,
            timeout=self.config.timeout_seconds,
        )

    def resolve_folder(self, client: Any, folder: str) -> str:
        """
        Map a folder alias to the server's folder name.

        Aliases use the configured name table; if that name does not exist on
        the server the folder carrying the matching special-use flag is used.
        Custom folder names pass through unchanged.
        """
        alias = MailFolder.from_alias(folder)
        if alias is None:
            return folder
        configured = self.folder_names[alias]
        if alias is MailFolder.INBOX:
            return configured

        try:
            listing = client.list_folders()
        except IMAPClientError as e:
            logger.warning("Failed to list folders, using configured name", folder=configured, error=str(e))
            return configured

        if any(name == configured for _flags, _delimiter, name in listing):
            return configured

        special_use = SPECIAL_USE_FLAGS[alias].lower()
        for flags, _delimiter, name in listing:
            if special_use in {bytes(flag).lower() for flag in flags}:
                logger.info("Resolved folder by special-use flag", alias=alias.value, folder=name)
                return name

        return configured

    def _fetch_raw(
        self, credential: MailboxCredential, folder: str, limit: int
    ) -> tuple[str, int, list[tuple[int, dict]]]:
        """
        Blocking fetch of the newest ``limit`` messages (runs in a worker thread).

        Returns:
            (server folder name, folder size, [(sequence number, fetch data)])
        """
        try:
            client = self._client_factory()
        except (OSError, IMAPClientError) as e:
            raise MailboxConnectionError(f"Failed to connect to {self.config.host}: {e}") from e

        try:
            try:
                client.login(credential.email, credential.app_password.get_secret_value())
            except LoginError as e:
                raise MailboxAuthenticationError(str(e)) from e

            remote_folder = self.resolve_folder(client, folder)
            try:
                box = client.select_folder(remote_folder, readonly=True)
            except IMAPClientError as e:
                raise MailboxConnectionError(f"Failed to open folder {remote_folder}: {e}") from e

            total = int(box.get(b"EXISTS", 0))
            fetch_count = min(limit, total)
            if fetch_count == 0:
                return remote_folder, total, []

            sequence_numbers = list(range(total - fetch_count + 1, total + 1))
            response = client.fetch(sequence_numbers, FETCH_ITEMS)
            return remote_folder, total, sorted(response.items())

        except (OSError, IMAPClientError) as e:
            raise MailboxConnectionError(str(e)) from e

        finally:
            try:
                client.logout()
            except Exception as e:
                logger.debug("IMAP logout failed", error=str(e))

    @staticmethod
    def _parse_fetched(sequence: int, data: dict) -> Optional[RemoteEnvelope]:
        """Parse one fetch response item; None when the message cannot be parsed."""
        try:
            bodystructure = data.get(b"BODYSTRUCTURE")
            structure = structure_from_bodystructure(bodystructure) if bodystructure else None
            return parse_message(
                data[b"BODY[]"],
                sequence,
                structure=structure,
                flags=data.get(b"FLAGS", ()),
            )
        except Exception as e:
            logger.error("Failed to parse message", sequence=sequence, error=str(e))
            return None

    async def fetch_recent(
        self, credential: MailboxCredential, folder: str = "INBOX", limit: int = 50
    ) -> RemoteFetchResult:
        """
        Fetch and parse the newest messages of a folder.

        Every message parse is awaited before returning, so the envelope list
        is final when this coroutine completes.

        Args:
            credential: Mailbox credentials
            folder: Folder alias or server folder name
            limit: Maximum number of messages to fetch

        Returns:
            Fetch result with parsed envelopes and the remote folder size

        Raises:
            MailboxAuthenticationError: If login is rejected
            MailboxConnectionError: If the server or folder cannot be reached
        """
        logger.info("Fetching messages", email=credential.email, folder=folder, limit=limit)

        remote_folder, total, fetched = await asyncio.to_thread(
            self._fetch_raw, credential, folder, limit
        )

        parsed = await asyncio.gather(
            *(asyncio.to_thread(self._parse_fetched, sequence, data) for sequence, data in fetched)
        )
        envelopes = [envelope for envelope in parsed if envelope is not None]

        logger.info(
            "Fetch completed",
            folder=folder,
            remote_folder=remote_folder,
            total_messages=total,
            fetched=len(envelopes),
            skipped=len(fetched) - len(envelopes),
        )

        return RemoteFetchResult(
            folder=folder,
            remote_folder=remote_folder,
            total_messages=total,
            envelopes=envelopes,
            skipped=len(fetched) - len(envelopes),
        )
