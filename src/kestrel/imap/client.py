# =============================================================================
# IMAP Mail Store
# =============================================================================
# A MailStore backed by aioimaplib.
#
# Key responsibilities:
#   - Connection management (SSL or STARTTLS) and keyring authentication
#   - Fetching full messages and paged summaries (newest first)
#   - Appending messages with their flags
#   - Adding flags and expunging deleted messages
#
# Design notes:
#   - The store is bound to one source mailbox, selected on first use
#   - All message identifiers are UIDs (never sequence numbers), except
#     for paging, where sequence numbers give a stable "newest N" window
# =============================================================================

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable

import keyring
from aioimaplib import aioimaplib
from keyring.errors import KeyringError

from kestrel.core import Account, Flags, Mailbox, Message
from kestrel.session import MailStore

logger = logging.getLogger(__name__)

# Matches the start of an untagged FETCH response: "12 FETCH (UID 42 ..."
_FETCH_START = re.compile(r"^(\d+)\s+FETCH\s*\(", re.IGNORECASE)
_UID = re.compile(r"UID\s+(\d+)", re.IGNORECASE)
_FLAGS = re.compile(r"FLAGS\s*\(([^)]*)\)", re.IGNORECASE)
_EXISTS = re.compile(r"(\d+)\s+EXISTS", re.IGNORECASE)

SUMMARY_ITEMS = "(UID FLAGS BODY.PEEK[HEADER])"
FULL_ITEMS = "(UID FLAGS BODY.PEEK[])"


def _quote_folder_name(name: str) -> str:
    """
    Quote an IMAP mailbox name if it contains special characters.

    Args:
        name: The mailbox name to quote.

    Returns:
        Properly quoted mailbox name for IMAP commands.
    """
    if ' ' in name or '"' in name or '\\' in name or any(c in name for c in '(){}[]'):
        escaped = name.replace('\\', '\\\\').replace('"', '\\"')
        return f'"{escaped}"'
    return name


@dataclass
class ConnectionState:
    """
    Tracks the current state of an IMAP connection.

    Attributes:
        connected: Whether we have an active connection.
        authenticated: Whether we've successfully logged in.
        selected_folder: Currently selected mailbox, if any.
        exists: Message count of the selected mailbox (from SELECT).
        capabilities: Server capabilities.
    """
    connected: bool = False
    authenticated: bool = False
    selected_folder: str | None = None
    exists: int = 0
    capabilities: list[str] = field(default_factory=list)


@dataclass
class _FetchedItem:
    """One message out of a FETCH response."""
    uid: str = ""
    flags: Flags = field(default_factory=Flags)
    literal: bytes = b""


class IMAPStore(MailStore):
    """
    IMAP mail-store session.

    Usage:
        >>> store = IMAPStore(account, mailbox="INBOX")
        >>> await store.connect()
        >>> message = await store.fetch_message("42")
        >>> await store.release()

    Attributes:
        account: The Account configuration for this connection.
        mailbox: The source mailbox every UID refers to.
        state: Current connection state.
    """

    # Timeout for IMAP operations (seconds)
    TIMEOUT = 30

    def __init__(self, account: Account, mailbox: str | None = None) -> None:
        self.account = account
        self.mailbox = mailbox or account.inbox_mailbox
        self.state = ConnectionState()
        self._client: aioimaplib.IMAP4_SSL | aioimaplib.IMAP4 | None = None

    @property
    def is_connected(self) -> bool:
        """Check if client is connected and authenticated."""
        return self.state.connected and self.state.authenticated and self._client is not None

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> None:
        """
        Establish connection to the IMAP server.

        Raises:
            IMAPConnectionError: If unable to connect to server.
            IMAPAuthenticationError: If login fails.
        """
        host, port = self.account.imap_host, self.account.imap_port
        logger.info(f"Connecting to IMAP {host}:{port}")

        try:
            if self.account.imap_security == "ssl":
                # Direct SSL connection (usually port 993)
                self._client = aioimaplib.IMAP4_SSL(host=host, port=port, timeout=self.TIMEOUT)
            else:
                # Plain connection, upgraded with STARTTLS (usually port 143)
                self._client = aioimaplib.IMAP4(host=host, port=port, timeout=self.TIMEOUT)

            await self._client.wait_hello_from_server()
            self.state.connected = True
            self.state.capabilities = list(self._client.protocol.capabilities)
            logger.debug(f"Server capabilities: {self.state.capabilities}")

            if self.account.imap_security == "starttls":
                if not self._client.has_capability("STARTTLS"):
                    raise IMAPConnectionError("Server does not support STARTTLS")
                logger.debug("Upgrading to TLS via STARTTLS")
                await self._client.starttls()

        except asyncio.TimeoutError as e:
            self.state.connected = False
            raise IMAPConnectionError(f"Connection timed out to {host}:{port}") from e
        except (aioimaplib.Abort, OSError) as e:
            self.state.connected = False
            raise IMAPConnectionError(f"Failed to connect to {host}:{port}: {e}") from e

        await self._authenticate()
        logger.info(f"Successfully connected to {host}")

    async def _authenticate(self) -> None:
        """
        Authenticate with the IMAP server using credentials from keyring.

        Raises:
            IMAPAuthenticationError: If login fails or password not found.
        """
        login = self.account.imap_login
        try:
            password = keyring.get_password(self.account.keyring_service, login)
        except KeyringError as e:
            raise IMAPAuthenticationError(f"Cannot read the password for {login} from the keyring: {e}") from e

        if not password:
            raise IMAPAuthenticationError(
                f"No password found in keyring for {login}. "
                f"Set it with: keyring set {self.account.keyring_service} {login}"
            )

        logger.debug(f"Authenticating as {login}")
        response = await self._command("LOGIN", self._client.login(login, password))

        if response.result != "OK":
            raise IMAPAuthenticationError(f"Authentication failed for {login}: {response.lines}")

        self.state.authenticated = True
        logger.debug("Authentication successful")

    async def release(self) -> None:
        """
        Gracefully disconnect from the IMAP server.

        Sends LOGOUT and forgets the connection. Safe to call twice, and on
        a session whose login was refused.
        """
        client, connected = self._client, self.state.connected
        self._client = None
        self.state = ConnectionState()

        if client is not None and connected:
            logger.debug("Sending LOGOUT")
            await self._command("LOGOUT", client.logout())

    async def _command(self, name: str, command: Awaitable[aioimaplib.Response]) -> aioimaplib.Response:
        """
        Await an IMAP command.

        Raises:
            IMAPConnectionError: If the command times out or the connection
                                 drops while it runs.
        """
        try:
            return await command
        except (asyncio.TimeoutError, aioimaplib.CommandTimeout) as e:
            raise IMAPConnectionError(f"IMAP {name} timed out") from e
        except (aioimaplib.Abort, OSError) as e:
            raise IMAPConnectionError(f"Connection lost during IMAP {name}: {e}") from e

    def _require_connection(self) -> None:
        if not self.is_connected:
            raise IMAPConnectionError("Not connected to IMAP server")

    async def _select_source(self) -> None:
        """Select the source mailbox, once per session."""
        self._require_connection()
        if self.state.selected_folder == self.mailbox:
            return

        logger.debug(f"Selecting mailbox: {self.mailbox}")
        response = await self._command("SELECT", self._client.select(_quote_folder_name(self.mailbox)))
        if response.result != "OK":
            raise IMAPError(f"Failed to select mailbox '{self.mailbox}': {response.lines}")

        self.state.selected_folder = self.mailbox
        self.state.exists = self._parse_exists(response.lines)

    @staticmethod
    def _parse_exists(lines: list) -> int:
        for line in lines:
            if isinstance(line, (bytes, bytearray)):
                line = bytes(line).decode("utf-8", errors="replace")
            match = _EXISTS.search(str(line))
            if match:
                return int(match.group(1))
        return 0

    # =========================================================================
    # Fetching
    # =========================================================================

    async def fetch_message(self, uid: str) -> Message:
        """
        Fetch a full message by UID.

        Raises:
            MessageNotFoundError: If the source mailbox has no such UID.
            IMAPError: If the FETCH fails.
        """
        await self._select_source()
        logger.debug(f"Fetching message {uid} from {self.mailbox}")

        response = await self._command("FETCH", self._client.uid("FETCH", uid, FULL_ITEMS))
        if response.result != "OK":
            raise IMAPError(f"Failed to fetch message {uid}: {response.lines}")

        for item in self._parse_fetch_response(response.lines):
            if item.uid == uid and item.literal:
                return Message.from_bytes(item.literal, uid=item.uid, flags=item.flags)

        raise MessageNotFoundError(f"Message {uid} not found in mailbox '{self.mailbox}'")

    async def list_page(self, page_size: int, page: int) -> list[Message]:
        """
        Fetch one page of message summaries, newest first.

        Page 0 is the newest `page_size` messages. Paging uses sequence
        numbers since UIDs can be sparse.
        """
        await self._select_source()
        total = self.state.exists

        end = total - page * page_size
        if end < 1:
            return []
        start = max(1, end - page_size + 1)

        logger.debug(f"Listing {start}:{end} of {total} in {self.mailbox}")
        response = await self._command("FETCH", self._client.fetch(f"{start}:{end}", SUMMARY_ITEMS))
        if response.result != "OK":
            raise IMAPError(f"Failed to list messages: {response.lines}")

        return self._summaries(response.lines)

    async def search_page(self, query: str, page_size: int, page: int) -> list[Message]:
        """Run a UID SEARCH and fetch one page of matching summaries."""
        await self._select_source()

        logger.debug(f"Searching {self.mailbox}: {query}")
        response = await self._command("SEARCH", self._client.uid_search(query))
        if response.result != "OK":
            raise IMAPError(f"Search failed: {response.lines}")

        uids: list[int] = []
        for line in response.lines[:-1]:
            if isinstance(line, (bytes, bytearray)):
                line = bytes(line).decode("utf-8", errors="replace")
            uids.extend(int(token) for token in str(line).split() if token.isdigit())

        # Newest first
        uids.sort(reverse=True)
        window = uids[page * page_size:(page + 1) * page_size]
        if not window:
            return []

        uid_set = ",".join(str(u) for u in window)
        response = await self._command("FETCH", self._client.uid("FETCH", uid_set, SUMMARY_ITEMS))
        if response.result != "OK":
            raise IMAPError(f"Failed to fetch search results: {response.lines}")

        return self._summaries(response.lines)

    def _summaries(self, lines: list) -> list[Message]:
        messages = [
            Message.from_bytes(item.literal, uid=item.uid, flags=item.flags)
            for item in self._parse_fetch_response(lines)
            if item.uid and item.literal
        ]
        messages.sort(key=lambda m: int(m.uid), reverse=True)
        return messages

    @staticmethod
    def _parse_fetch_response(lines: list) -> list[_FetchedItem]:
        """
        Group FETCH response lines by message.

        aioimaplib returns text lines as bytes and literal data (the
        message source, announced with {N}) as a separate bytearray
        following the line that announced it. UID and FLAGS may appear
        before or after the literal.
        """
        items: list[_FetchedItem] = []
        current: _FetchedItem | None = None

        for line in lines:
            if isinstance(line, bytearray):
                if current is not None:
                    current.literal = bytes(line)
                continue

            text = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else str(line)

            if _FETCH_START.match(text):
                current = _FetchedItem()
                items.append(current)
            elif current is None:
                continue

            uid_match = _UID.search(text)
            if uid_match:
                current.uid = uid_match.group(1)
            flags_match = _FLAGS.search(text)
            if flags_match:
                current.flags = Flags.from_imap(flags_match.group(1))

        return items

    # =========================================================================
    # Mutations
    # =========================================================================

    async def append_message(self, mailbox: Mailbox, message: Message) -> None:
        """
        Append a message to a mailbox, carrying its flags.

        Raises:
            IMAPError: If the server rejects the APPEND.
        """
        self._require_connection()
        flags = message.flags.to_imap() if message.flags else None

        logger.debug(f"Appending message to {mailbox} with flags {flags}")
        response = await self._command("APPEND", self._client.append(
            message.to_bytes(),
            mailbox=_quote_folder_name(mailbox.name),
            flags=flags,
        ))
        if response.result != "OK":
            raise IMAPError(f"Failed to append message to '{mailbox}': {response.lines}")

    async def add_flags(self, uid: str, flags: Flags) -> None:
        """
        Add flags to a message in the source mailbox.

        Raises:
            IMAPError: If the STORE fails.
        """
        await self._select_source()

        command = f"+FLAGS {flags.to_imap()}"
        logger.debug(f"Setting flags on {uid}: {command}")
        response = await self._command("STORE", self._client.uid("STORE", uid, command))
        if response.result != "OK":
            raise IMAPError(f"Failed to set flags on message {uid}: {response.lines}")

    async def purge(self) -> None:
        """
        Expunge every message flagged deleted in the source mailbox.

        Raises:
            IMAPError: If the EXPUNGE fails.
        """
        await self._select_source()

        logger.debug(f"Expunging deleted messages in {self.mailbox}")
        response = await self._command("EXPUNGE", self._client.expunge())
        if response.result != "OK":
            raise IMAPError(f"Failed to expunge '{self.mailbox}': {response.lines}")


class IMAPError(Exception):
    """Base exception for IMAP operations."""
    pass


class IMAPConnectionError(IMAPError):
    """Raised when unable to connect to IMAP server."""
    pass


class IMAPAuthenticationError(IMAPError):
    """Raised when IMAP authentication fails."""
    pass


class MessageNotFoundError(IMAPError):
    """Raised when a UID doesn't exist in the source mailbox."""
    pass
