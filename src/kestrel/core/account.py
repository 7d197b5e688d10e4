# =============================================================================
# Account Model
# =============================================================================
# Represents an email account configuration: connection details for both
# IMAP (mail store) and SMTP (mail transport), plus the read-only context the
# mailbox operations need (signature, download directory, page size, and the
# names of the Sent and Drafts mailboxes).
#
# IMPORTANT: Passwords are NOT stored here. They are retrieved from the system
# keyring at runtime using the 'keyring' library. This keeps credentials secure
# and out of config files.
# =============================================================================

from dataclasses import dataclass
from email.utils import formataddr
from pathlib import Path

from kestrel.core.mailbox import DRAFTS, INBOX, SENT, Mailbox


@dataclass
class Account:
    """
    An email account with IMAP and SMTP configuration.

    Attributes:
        name: A unique identifier for this account (e.g., "personal", "work").
              Used as the key in config files and for keyring lookups.
        email: The email address associated with this account.
        display_name: The name shown in the "From" field when sending emails.
        signature: Text appended below the body of new messages.

        downloads_dir: Where `kestrel attachments` writes files.
        default_page_size: Page size for list/search when none is given.

        inbox_mailbox: Default source mailbox for every command.
        sent_mailbox: Where delivered messages are appended.
        drafts_mailbox: Where remote drafts are appended.

        imap_host / imap_port / imap_security / imap_login: Mail-store server.
        smtp_host / smtp_port / smtp_security / smtp_login: Mail-transport
            server. Logins default to the email address.

    Example:
        >>> account = Account(
        ...     name="personal",
        ...     email="user@example.com",
        ...     display_name="John Doe",
        ...     imap_host="imap.example.com",
        ...     smtp_host="smtp.example.com",
        ... )
        >>> account.address
        'John Doe <user@example.com>'
    """

    # Account identification
    name: str
    email: str
    display_name: str = ""
    signature: str = ""

    # Local context
    downloads_dir: Path = Path.home() / "Downloads"
    default_page_size: int = 10

    # Mailbox names
    inbox_mailbox: str = INBOX.name
    sent_mailbox: str = SENT.name
    drafts_mailbox: str = DRAFTS.name

    # IMAP configuration (mail store)
    imap_host: str = ""
    imap_port: int = 993                # Default to SSL port
    imap_security: str = "ssl"          # "ssl" or "starttls"
    imap_login: str = ""

    # SMTP configuration (mail transport)
    smtp_host: str = ""
    smtp_port: int = 587                # Default to STARTTLS port
    smtp_security: str = "starttls"     # "ssl" or "starttls"
    smtp_login: str = ""

    def __post_init__(self) -> None:
        self.downloads_dir = Path(self.downloads_dir).expanduser()
        if not self.imap_login:
            self.imap_login = self.email
        if not self.smtp_login:
            self.smtp_login = self.email

    @property
    def address(self) -> str:
        """The formatted "From" value, e.g. "John Doe <user@example.com>"."""
        if self.display_name:
            return formataddr((self.display_name, self.email))
        return self.email

    @property
    def sent(self) -> Mailbox:
        return Mailbox(self.sent_mailbox)

    @property
    def drafts(self) -> Mailbox:
        return Mailbox(self.drafts_mailbox)

    @property
    def keyring_service(self) -> str:
        """
        Returns the service name used for keyring password storage.

        Passwords can be managed with the keyring CLI:
            keyring set kestrel:personal user@example.com
        """
        return f"kestrel:{self.name}"

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"

    def __repr__(self) -> str:
        return (
            f"Account(name={self.name!r}, email={self.email!r}, "
            f"imap={self.imap_host}:{self.imap_port}, "
            f"smtp={self.smtp_host}:{self.smtp_port})"
        )
