# =============================================================================
# Mailbox Reference
# =============================================================================
# Identifies a target mailbox (IMAP "folder") such as:
#   - INBOX: Primary incoming mail, the default source of every command
#   - Sent: Where delivered messages are stored
#   - Drafts: Where remote drafts are stored
#   - Anything the user names, like "Archive" or "Work/Projects"
#
# Operations that copy, move, or save into a user-supplied mailbox must be
# given a name: an absent name is a resolution error, never a silent default.
# Only Sent and Drafts have contractual defaults, and an account may rename
# them (e.g. Gmail uses "[Gmail]/Sent Mail").
# =============================================================================

from dataclasses import dataclass
from enum import Enum, auto


class MailboxType(Enum):
    """
    Standard mailbox roles.

    These map to IMAP SPECIAL-USE attributes (RFC 6154) and are inferred
    from common naming conventions.
    """
    INBOX = auto()
    SENT = auto()
    DRAFTS = auto()
    TRASH = auto()
    JUNK = auto()
    ARCHIVE = auto()
    OTHER = auto()


@dataclass(frozen=True)
class Mailbox:
    """
    A resolved, concrete mailbox.

    Attributes:
        name: The mailbox path as known to the mail store (e.g., "INBOX",
              "Work/Projects").

    Example:
        >>> Mailbox.resolve("Archive")
        Mailbox(name='Archive')
        >>> Mailbox.resolve(None)
        Traceback (most recent call last):
        ...
        MailboxResolutionError: No target mailbox given
    """

    name: str

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise MailboxResolutionError("Mailbox name cannot be empty")

    @classmethod
    def resolve(cls, name: str | None) -> "Mailbox":
        """
        Resolve an optional user-supplied name to a mailbox.

        Raises:
            MailboxResolutionError: If no name was given.
        """
        if name is None:
            raise MailboxResolutionError("No target mailbox given")
        return cls(name.strip())

    @property
    def mailbox_type(self) -> MailboxType:
        return detect_type(self.name)

    def __str__(self) -> str:
        return self.name


def detect_type(mailbox_name: str) -> MailboxType:
    """
    Detect a mailbox's role from its name.

    Args:
        mailbox_name: The IMAP mailbox name to classify.

    Returns:
        The detected MailboxType, or OTHER if unrecognized.
    """
    name_lower = mailbox_name.lower()

    # Different providers use different conventions...
    if name_lower == "inbox":
        return MailboxType.INBOX
    elif name_lower in ("sent", "sent mail", "sent items", "[gmail]/sent mail"):
        return MailboxType.SENT
    elif name_lower in ("drafts", "draft", "[gmail]/drafts"):
        return MailboxType.DRAFTS
    elif name_lower in ("trash", "deleted", "deleted items", "[gmail]/trash"):
        return MailboxType.TRASH
    elif name_lower in ("junk", "spam", "junk mail", "[gmail]/spam"):
        return MailboxType.JUNK
    elif name_lower in ("archive", "all mail", "[gmail]/all mail"):
        return MailboxType.ARCHIVE

    return MailboxType.OTHER


# Contractual defaults
INBOX = Mailbox("INBOX")
SENT = Mailbox("Sent")
DRAFTS = Mailbox("Drafts")


class MailboxResolutionError(Exception):
    """Raised when a mailbox name can't be resolved to a concrete target."""
    pass
