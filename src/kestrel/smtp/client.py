# =============================================================================
# SMTP Mail Transport
# =============================================================================
# A MailTransport backed by aiosmtplib.
#
# Key responsibilities:
#   - Connection management with SSL/STARTTLS
#   - Keyring authentication
#   - Delivering sendable messages
#
# Building the message itself is not done here: the transport only ever
# receives the output of Message.to_sendable(), so anything it sees is
# already known to have a sender and recipients.
# =============================================================================

import logging
from email.message import EmailMessage

import aiosmtplib
import keyring
from keyring.errors import KeyringError

from kestrel.core import Account
from kestrel.session import MailTransport

logger = logging.getLogger(__name__)


class SMTPTransport(MailTransport):
    """
    SMTP mail-transport session.

    Usage:
        >>> transport = SMTPTransport(account)
        >>> await transport.connect()
        >>> await transport.deliver(message.to_sendable())
        >>> await transport.release()

    Attributes:
        account: Account configuration with SMTP server details.
    """

    # Timeout for SMTP operations (seconds)
    TIMEOUT = 30

    def __init__(self, account: Account) -> None:
        self.account = account
        self._client: aiosmtplib.SMTP | None = None

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._client is not None and self._client.is_connected

    async def connect(self) -> None:
        """
        Connect to the SMTP server and authenticate.

        Raises:
            SMTPConnectionError: If unable to connect.
            SMTPAuthenticationError: If authentication fails.
        """
        host, port = self.account.smtp_host, self.account.smtp_port
        logger.info(f"Connecting to SMTP {host}:{port}")

        try:
            use_tls = self.account.smtp_security == "ssl"
            start_tls = self.account.smtp_security == "starttls"

            self._client = aiosmtplib.SMTP(
                hostname=host,
                port=port,
                use_tls=use_tls,
                start_tls=start_tls,
                timeout=self.TIMEOUT,
            )

            await self._client.connect()
            logger.debug("SMTP connection established")

            await self._authenticate()

            logger.info(f"Successfully connected to SMTP {host}")

        except aiosmtplib.SMTPAuthenticationError as e:
            raise SMTPAuthenticationError(
                f"SMTP authentication failed for {self.account.smtp_login}: {e}"
            ) from e
        except (aiosmtplib.SMTPException, OSError) as e:
            raise SMTPConnectionError(f"Failed to connect to SMTP {host}:{port}: {e}") from e

    async def _authenticate(self) -> None:
        """
        Authenticate with the SMTP server using credentials from keyring.

        Raises:
            SMTPAuthenticationError: If the password is not in the keyring.
        """
        login = self.account.smtp_login
        try:
            password = keyring.get_password(self.account.keyring_service, login)
        except KeyringError as e:
            raise SMTPAuthenticationError(f"Cannot read the password for {login} from the keyring: {e}") from e

        if not password:
            raise SMTPAuthenticationError(
                f"No password found in keyring for {login}. "
                f"Set it with: keyring set {self.account.keyring_service} {login}"
            )

        logger.debug(f"Authenticating as {login}")
        await self._client.login(login, password)
        logger.debug("SMTP authentication successful")

    async def release(self) -> None:
        """Disconnect from the SMTP server. Safe to call twice, and after a refused login."""
        client, self._client = self._client, None
        if client and client.is_connected:
            logger.debug("Disconnecting from SMTP")
            await client.quit()

    async def deliver(self, sendable: EmailMessage) -> None:
        """
        Send a message.

        aiosmtplib derives the envelope recipients from To, Cc, and Bcc and
        strips the Bcc header from the transmitted copy.

        Raises:
            SendError: If the server doesn't accept the message.
        """
        if not self.is_connected:
            raise SendError("Not connected to SMTP server")

        try:
            logger.info(f"Sending email to {sendable.get('To', '')}")
            await self._client.send_message(sendable)
            logger.info(f"Email sent successfully: {sendable.get('Message-ID', '')}")
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email: {e}")
            raise SendError(f"Failed to send email: {e}") from e


class SMTPError(Exception):
    """Base exception for SMTP operations."""
    pass


class SMTPConnectionError(SMTPError):
    """Raised when unable to connect to SMTP server."""
    pass


class SMTPAuthenticationError(SMTPError):
    """Raised when SMTP authentication fails."""
    pass


class SendError(SMTPError):
    """Raised when email sending fails."""
    pass
