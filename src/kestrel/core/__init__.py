# =============================================================================
# Kestrel Core Module
# =============================================================================
# The core domain models. These have no knowledge of IMAP, SMTP, or the
# terminal, so they can be imported anywhere without circular imports.
#
#   - Flag / Flags: Cumulative set of mailbox flags on a message
#   - Message / Attachment: An email and its files
#   - Mailbox: A resolved target mailbox
#   - Account: Connection details and read-only account context
# =============================================================================

from kestrel.core.account import Account
from kestrel.core.flags import Flag, Flags
from kestrel.core.mailbox import (
    DRAFTS,
    INBOX,
    SENT,
    Mailbox,
    MailboxResolutionError,
    MailboxType,
)
from kestrel.core.message import (
    Attachment,
    AttachmentError,
    ConversionError,
    Message,
    address_of,
)

__all__ = [
    "Account",
    "Flag",
    "Flags",
    "Mailbox",
    "MailboxType",
    "MailboxResolutionError",
    "INBOX",
    "SENT",
    "DRAFTS",
    "Message",
    "Attachment",
    "AttachmentError",
    "ConversionError",
    "address_of",
]
