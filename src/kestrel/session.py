# =============================================================================
# Session Boundary
# =============================================================================
# The contracts between the orchestration core and the outside world:
#   - MailStore: a mailbox server session (IMAP in practice)
#   - MailTransport: a delivery session (SMTP in practice)
#
# Every command and the composition state machine are written against these
# two interfaces only. Concrete backends live in kestrel.imap and
# kestrel.smtp; tests use in-memory fakes.
#
# Each command acquires one store session (and one transport session when it
# delivers mail) through store_session()/transport_session(). These connect
# on entry and always release on exit, including when the command or the
# login itself fails.
# =============================================================================

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from email.message import EmailMessage
from typing import AsyncIterator, TypeVar

from kestrel.core import Flags, Mailbox, Message

logger = logging.getLogger(__name__)


class MailStore(ABC):
    """
    A session with a mail store, bound to one source mailbox.

    Message identifiers are mail-store UIDs within the source mailbox.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open and authenticate the session."""

    @abstractmethod
    async def fetch_message(self, uid: str) -> Message:
        """
        Fetch a full message (headers, body, attachments, flags).

        Raises:
            MessageNotFoundError (backend-specific) if no such UID exists.
        """

    @abstractmethod
    async def append_message(self, mailbox: Mailbox, message: Message) -> None:
        """Append a message, with its current flags, to a mailbox."""

    @abstractmethod
    async def add_flags(self, uid: str, flags: Flags) -> None:
        """Add flags to a message in the source mailbox."""

    @abstractmethod
    async def purge(self) -> None:
        """Permanently remove every message flagged deleted in the source mailbox."""

    @abstractmethod
    async def list_page(self, page_size: int, page: int) -> list[Message]:
        """Return one page of message summaries, newest first."""

    @abstractmethod
    async def search_page(self, query: str, page_size: int, page: int) -> list[Message]:
        """Return one page of summaries matching a search query, newest first."""

    @abstractmethod
    async def release(self) -> None:
        """Close the session (LOGOUT). Safe to call on a closed session."""


class MailTransport(ABC):
    """A session with a mail transport."""

    @abstractmethod
    async def connect(self) -> None:
        """Open and authenticate the session."""

    @abstractmethod
    async def deliver(self, sendable: EmailMessage) -> None:
        """Hand a sendable message to the transport for delivery."""

    @abstractmethod
    async def release(self) -> None:
        """Close the session. Safe to call on a closed session."""


SessionT = TypeVar("SessionT", MailStore, MailTransport)


@asynccontextmanager
async def _session(session: SessionT, kind: str) -> AsyncIterator[SessionT]:
    try:
        await session.connect()
    except Exception:
        # A half-open session (connected, then refused at login) still holds
        # a socket
        await _release(session, kind)
        raise

    logger.debug(f"{kind} session acquired")
    try:
        yield session
    finally:
        await _release(session, kind)


async def _release(session: SessionT, kind: str) -> None:
    try:
        await session.release()
        logger.debug(f"{kind} session released")
    except Exception as e:
        # Never let a failed logout hide the command's own outcome
        logger.warning(f"Error while releasing {kind} session: {e}")


def store_session(store: MailStore):
    """
    Acquire a mail-store session for the duration of a block.

    Usage:
        >>> async with store_session(IMAPStore(account)) as store:
        ...     await operations.delete_message(store, output, "42")
    """
    return _session(store, "mail store")


def transport_session(transport: MailTransport):
    """Acquire a mail-transport session for the duration of a block."""
    return _session(transport, "mail transport")
