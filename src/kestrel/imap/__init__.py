# =============================================================================
# IMAP Module
# =============================================================================
# The mail-store backend: an aioimaplib session implementing MailStore.
#   - Connecting to IMAP servers with SSL/STARTTLS
#   - Fetching messages and paged summaries
#   - Appending, flagging, and expunging messages
# =============================================================================

from kestrel.imap.client import (
    IMAPStore,
    IMAPError,
    IMAPConnectionError,
    IMAPAuthenticationError,
    MessageNotFoundError,
    ConnectionState,
)

__all__ = [
    "IMAPStore",
    "IMAPError",
    "IMAPConnectionError",
    "IMAPAuthenticationError",
    "MessageNotFoundError",
    "ConnectionState",
]
