# =============================================================================
# Message Flags
# =============================================================================
# The set of mailbox flags attached to a message. Every mailbox operation
# consults or mutates this set:
#   - Copying/moving/saving a message marks it SEEN in its new home
#   - Sending or saving a draft marks it SEEN before it is appended
#   - Deleting a message marks it SEEN and DELETED before the purge
#
# Flags are cumulative. The Flags type deliberately has no way to remove a
# flag: setting one marker never clears another, so a message can never
# silently lose its DELETED or SEEN state on the way to a mailbox.
# =============================================================================

from enum import Enum
from typing import Iterable, Iterator


class Flag(Enum):
    """
    Standard IMAP system flags (RFC 3501).

    The value of each member is the wire form used by IMAP STORE/APPEND.
    """
    SEEN = "\\Seen"             # Message has been read
    ANSWERED = "\\Answered"     # Message has been replied to
    FLAGGED = "\\Flagged"       # User-flagged / starred
    DELETED = "\\Deleted"       # Marked for deletion (removed on EXPUNGE)
    DRAFT = "\\Draft"           # Message is a draft (not yet sent)

    @classmethod
    def from_imap(cls, value: str) -> "Flag | None":
        """
        Look up a flag from its IMAP form, case-insensitively.

        Returns None for keywords and flags we don't track (e.g. "$Junk").
        """
        for flag in cls:
            if flag.value.lower() == value.lower():
                return flag
        return None


class Flags:
    """
    A growable set of message flags.

    Only additive operations are offered (insert, update). This is the
    contract every mailbox operation relies on: once a message is marked
    SEEN or DELETED, nothing in the program can unmark it.

    Usage:
        >>> flags = Flags()
        >>> flags.insert(Flag.SEEN)
        >>> Flag.SEEN in flags
        True
        >>> flags.to_imap()
        '(\\\\Seen)'
    """

    __slots__ = ("_flags",)

    def __init__(self, flags: Iterable[Flag] = ()) -> None:
        self._flags: set[Flag] = set()
        self.update(flags)

    @classmethod
    def from_imap(cls, flags_str: str) -> "Flags":
        """
        Parse an IMAP flag list such as "\\Seen \\Deleted $Forwarded".

        Surrounding parentheses are accepted; unknown flags are skipped.
        """
        result = cls()
        for token in flags_str.strip().strip("()").split():
            flag = Flag.from_imap(token)
            if flag is not None:
                result.insert(flag)
        return result

    # -------------------------------------------------------------------------
    # Mutation (additive only)
    # -------------------------------------------------------------------------

    def insert(self, flag: Flag) -> None:
        """Set a flag. Setting a flag never clears another one."""
        if not isinstance(flag, Flag):
            raise TypeError(f"Expected a Flag, got {type(flag).__name__}")
        self._flags.add(flag)

    def update(self, flags: Iterable[Flag]) -> None:
        """Set every flag in ``flags``."""
        for flag in flags:
            self.insert(flag)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def copy(self) -> "Flags":
        return Flags(self._flags)

    def to_imap(self) -> str:
        """
        Return the flag list in IMAP parenthesized form.

        Flags are emitted in declaration order so the output is stable:
        ``Flags([Flag.DELETED, Flag.SEEN]).to_imap() == "(\\Seen \\Deleted)"``
        """
        return "(" + " ".join(f.value for f in Flag if f in self._flags) + ")"

    def names(self) -> list[str]:
        """Lower-case flag names, e.g. ["seen", "deleted"]."""
        return [f.name.lower() for f in Flag if f in self._flags]

    def __contains__(self, flag: object) -> bool:
        return flag in self._flags

    def __iter__(self) -> Iterator[Flag]:
        return (f for f in Flag if f in self._flags)

    def __len__(self) -> int:
        return len(self._flags)

    def __bool__(self) -> bool:
        return bool(self._flags)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Flags):
            return self._flags == other._flags
        if isinstance(other, (set, frozenset)):
            return self._flags == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"Flags({{{', '.join(f.name for f in self)}}})"
