# =============================================================================
# SMTP Module
# =============================================================================
# The mail-transport backend: an aiosmtplib session implementing
# MailTransport.
#   - Connection with SSL/STARTTLS
#   - Keyring authentication
#   - Delivery of sendable messages
# =============================================================================

from kestrel.smtp.client import (
    SMTPTransport,
    SMTPError,
    SMTPConnectionError,
    SMTPAuthenticationError,
    SendError,
)

__all__ = [
    "SMTPTransport",
    "SMTPError",
    "SMTPConnectionError",
    "SMTPAuthenticationError",
    "SendError",
]
