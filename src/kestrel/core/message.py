# =============================================================================
# Message Model
# =============================================================================
# Represents an email message. A message carries:
#   - Headers (From, To, Cc, Bcc, Subject, Date, Message-ID, threading)
#   - Body in plain text and/or HTML
#   - Attachments (files, inline images)
#   - Mail-store metadata (UID, flags)
#
# A message has three derived views:
#   - to_sendable(): the transport-ready form. Only produced once every
#     required header is present; otherwise ConversionError is raised.
#   - to_bytes(): the raw RFC 5322 form appended into mailboxes. Drafts may
#     be incomplete, so this never checks for recipients.
#   - serialize(): a plain dict for human or machine presentation.
#
# Messages are created empty (new composition), by transformation (reply /
# forward, see kestrel.compose.templates), or by parsing raw text.
# =============================================================================

import email
import email.errors
import email.header
import email.utils
import logging
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from email import policy
from email.message import EmailMessage, Message as RawMessage
from email.utils import formataddr, formatdate, getaddresses, make_msgid, parseaddr
from pathlib import Path
from typing import Any

from kestrel.core.flags import Flags
from kestrel.rendering import render_html

logger = logging.getLogger(__name__)

# Headers shown (and editable) in the scratch draft, in display order
DRAFT_HEADERS = ("From", "To", "Cc", "Bcc", "Subject")


def address_of(value: str) -> str:
    """
    Return the bare, lower-cased email address from a header value.

    Example:
        >>> address_of("Alice <Alice@Example.com>")
        'alice@example.com'
    """
    return parseaddr(value)[1].lower()


def _split_addresses(values: list[str]) -> list[str]:
    """Split raw header values into individually formatted addresses."""
    return [
        formataddr((name, addr)) if name else addr
        for name, addr in getaddresses(values)
        if addr
    ]


def _decode_header(value: str) -> str:
    """Decode an RFC 2047 encoded header value."""
    if not value:
        return ""
    parts = []
    for part, charset in email.header.decode_header(value):
        if isinstance(part, bytes):
            try:
                parts.append(part.decode(charset or "utf-8", errors="replace"))
            except LookupError:
                parts.append(part.decode("utf-8", errors="replace"))
        else:
            parts.append(part)
    return "".join(parts)


@dataclass
class Attachment:
    """
    A file attached to an email message.

    Attributes:
        filename: Original filename of the attachment.
        content_type: MIME type (e.g., "application/pdf", "image/png").
        data: The attachment bytes.
        content_id: For inline images, the Content-ID referenced by HTML.
        is_inline: True if the part is embedded in the HTML body.
    """
    filename: str
    content_type: str
    data: bytes = b""
    content_id: str | None = None
    is_inline: bool = False

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def human_size(self) -> str:
        """
        Returns a human-readable file size.

        Examples:
            - 500 -> "500 B"
            - 1500 -> "1.5 KB"
        """
        size: float = self.size
        for unit in ("B", "KB", "MB", "GB"):
            if size < 1024:
                return f"{size:.1f} {unit}" if size != int(size) else f"{int(size)} {unit}"
            size /= 1024
        return f"{size:.1f} TB"

    @classmethod
    def from_path(cls, path: str | Path) -> "Attachment":
        """
        Load an attachment from a local file.

        Raises:
            AttachmentError: If the file can't be read.
        """
        path = Path(path).expanduser()
        try:
            data = path.read_bytes()
        except OSError as e:
            raise AttachmentError(f"Cannot read attachment {str(path)!r}: {e}") from e

        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            filename=path.name,
            content_type=content_type or "application/octet-stream",
            data=data,
        )


@dataclass
class Message:
    """
    An email message.

    Attributes:
        uid: Mail-store identifier (IMAP UID). Empty until the message has
             been fetched from, or appended to, a mailbox.
        message_id: RFC 5322 Message-ID header.
        in_reply_to: Message-ID of the message this replies to.
        references: Message-IDs of the thread, oldest first.

        sender: The "From" header value.
        reply_to: The "Reply-To" header value, if any.
        to: "To" recipients (formatted addresses).
        cc: "Cc" recipients.
        bcc: "Bcc" recipients.
        subject: Subject line.
        date: Date header, if known.

        body_text: Plain text body.
        body_html: HTML body.
        attachments: Attached files.
        flags: Mailbox flags.
        raw: Original source bytes, when the message was parsed or fetched.

    Example:
        >>> msg = Message(sender="alice@example.com", to=["bob@example.com"],
        ...               subject="Hello", body_text="Hi Bob!")
        >>> sendable = msg.to_sendable()
    """

    uid: str = ""

    # Threading
    message_id: str = ""
    in_reply_to: str = ""
    references: list[str] = field(default_factory=list)

    # Envelope
    sender: str = ""
    reply_to: str = ""
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    subject: str = ""
    date: datetime | None = None

    # Content
    body_text: str = ""
    body_html: str = ""
    attachments: list[Attachment] = field(default_factory=list)

    flags: Flags = field(default_factory=Flags)
    raw: bytes = b""

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    @classmethod
    def from_bytes(cls, raw: bytes, *, uid: str = "", flags: Flags | None = None) -> "Message":
        """
        Parse a raw RFC 5322 message.

        Args:
            raw: The message source.
            uid: Mail-store UID, if the message came from a mailbox.
            flags: Mailbox flags, if known.

        Raises:
            ConversionError: If the source has no headers at all.
        """
        parsed = email.message_from_bytes(raw, policy=policy.compat32)
        if not parsed.keys():
            raise ConversionError("Cannot parse message: no headers found")

        message = cls(
            uid=uid,
            message_id=(parsed.get("Message-ID") or "").strip(),
            in_reply_to=(parsed.get("In-Reply-To") or "").strip(),
            references=(parsed.get("References") or "").split(),
            sender=_decode_header(parsed.get("From", "")),
            reply_to=_decode_header(parsed.get("Reply-To", "")),
            to=_split_addresses([_decode_header(v) for v in parsed.get_all("To", [])]),
            cc=_split_addresses([_decode_header(v) for v in parsed.get_all("Cc", [])]),
            bcc=_split_addresses([_decode_header(v) for v in parsed.get_all("Bcc", [])]),
            subject=_decode_header(parsed.get("Subject", "")),
            flags=flags.copy() if flags is not None else Flags(),
            raw=raw,
        )

        date_str = parsed.get("Date")
        if date_str:
            try:
                message.date = email.utils.parsedate_to_datetime(date_str)
            except (TypeError, ValueError):
                logger.debug(f"Unparseable Date header: {date_str!r}")

        message._parse_body(parsed)
        return message

    @classmethod
    def from_text(cls, text: str) -> "Message":
        """Parse a message typed or piped by the user."""
        return cls.from_bytes(text.encode("utf-8"))

    def _parse_body(self, parsed: RawMessage) -> None:
        """Split a parsed message into text, HTML, and attachments."""
        if not parsed.is_multipart():
            content_type = parsed.get_content_type()
            if content_type == "text/html":
                self.body_html = self._decode_part(parsed)
            else:
                self.body_text = self._decode_part(parsed)
            return

        for part in parsed.walk():
            if part.is_multipart():
                continue

            content_type = part.get_content_type()
            disposition = str(part.get("Content-Disposition", ""))

            if "attachment" in disposition:
                self.attachments.append(self._extract_attachment(part))
            elif content_type == "text/plain" and not self.body_text:
                self.body_text = self._decode_part(part)
            elif content_type == "text/html" and not self.body_html:
                self.body_html = self._decode_part(part)
            elif not content_type.startswith("text/"):
                # Inline image or other embedded part
                attachment = self._extract_attachment(part)
                attachment.is_inline = True
                attachment.content_id = part.get("Content-ID", "").strip("<>") or None
                self.attachments.append(attachment)

    @staticmethod
    def _decode_part(part: RawMessage) -> str:
        payload = part.get_payload(decode=True)
        if isinstance(payload, bytes):
            charset = part.get_content_charset() or "utf-8"
            try:
                return payload.decode(charset, errors="replace")
            except LookupError:
                return payload.decode("utf-8", errors="replace")
        return str(payload) if payload else ""

    @staticmethod
    def _extract_attachment(part: RawMessage) -> Attachment:
        filename = part.get_filename()
        if not filename:
            # Name it after its content type
            subtype = part.get_content_subtype() or "bin"
            filename = f"attachment.{subtype}"

        payload = part.get_payload(decode=True)
        return Attachment(
            filename=_decode_header(filename),
            content_type=part.get_content_type(),
            data=payload if isinstance(payload, bytes) else b"",
        )

    # -------------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------------

    def to_sendable(self) -> EmailMessage:
        """
        Build the transport-ready form of this message.

        Raises:
            ConversionError: If a required header is missing or malformed.
        """
        if not self.sender.strip():
            raise ConversionError("Cannot send message: missing 'From' header")
        if not (self.to or self.cc or self.bcc):
            raise ConversionError("Cannot send message: missing 'To' header")
        return self._build()

    def to_bytes(self) -> bytes:
        """
        Return the raw RFC 5322 form used when appending to a mailbox.

        A message that was parsed or fetched and not edited since keeps its
        original source, so copies are byte-for-byte identical.

        Raises:
            ConversionError: If a header can't be encoded.
        """
        if self.raw:
            return self.raw
        return self._build().as_bytes(policy=policy.SMTP)

    def keep_sent_form(self, sendable: EmailMessage) -> None:
        """Make the delivered form the source appended to the Sent mailbox."""
        self.raw = sendable.as_bytes(policy=policy.SMTP)

    def _build(self) -> EmailMessage:
        msg = EmailMessage()
        try:
            if self.sender:
                msg["From"] = self.sender
            if self.reply_to:
                msg["Reply-To"] = self.reply_to
            if self.to:
                msg["To"] = ", ".join(self.to)
            if self.cc:
                msg["Cc"] = ", ".join(self.cc)
            if self.bcc:
                msg["Bcc"] = ", ".join(self.bcc)
            msg["Subject"] = self.subject
            msg["Date"] = (
                email.utils.format_datetime(self.date) if self.date else formatdate(localtime=True)
            )
            if not self.message_id:
                domain = address_of(self.sender).partition("@")[2] or None
                self.message_id = make_msgid(domain=domain)
            msg["Message-ID"] = self.message_id
            if self.in_reply_to:
                msg["In-Reply-To"] = self.in_reply_to
            if self.references:
                msg["References"] = " ".join(self.references)
            msg["X-Mailer"] = "Kestrel"
        except (ValueError, IndexError, email.errors.HeaderParseError) as e:
            raise ConversionError(f"Invalid message header: {e}") from e

        msg.set_content(self.body_text)
        if self.body_html:
            msg.add_alternative(self.body_html, subtype="html")

        for attachment in self.attachments:
            maintype, _, subtype = attachment.content_type.partition("/")
            msg.add_attachment(
                attachment.data,
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )

        return msg

    @property
    def text(self) -> str:
        """Readable body text, rendering the HTML part when there is no text part."""
        if self.body_text.strip() or not self.body_html:
            return self.body_text
        return render_html(self.body_html)

    def serialize(self) -> dict[str, Any]:
        """Plain-data view of the message for the output sink."""
        return {
            "uid": self.uid,
            "message_id": self.message_id,
            "from": self.sender,
            "to": list(self.to),
            "cc": list(self.cc),
            "subject": self.subject,
            "date": self.date.isoformat() if self.date else None,
            "flags": self.flags.names(),
            "text": self.text,
            "attachments": [
                {"filename": a.filename, "content_type": a.content_type, "size": a.size}
                for a in self.attachments
            ],
        }

    def summary(self) -> dict[str, Any]:
        """Short form used by list and search."""
        return {
            "uid": self.uid,
            "flags": self.flags.names(),
            "subject": self.subject,
            "from": self.sender,
            "date": self.date.isoformat() if self.date else None,
        }

    def get_raw_as_string(self) -> str:
        """The message source, decoded for display."""
        raw = self.raw or self.to_bytes()
        return raw.decode("utf-8", errors="replace")

    # -------------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------------

    def add_attachment(self, path: str | Path) -> None:
        """Attach a local file to this message."""
        self.attachments.append(Attachment.from_path(path))
        self.raw = b""

    def to_draft_text(self) -> str:
        """
        Render the editable part of the message as it appears in the
        scratch draft: a header block, a blank line, then the body.
        """
        values = {
            "From": self.sender,
            "To": ", ".join(self.to),
            "Cc": ", ".join(self.cc),
            "Bcc": ", ".join(self.bcc),
            "Subject": self.subject,
        }
        lines = [f"{name}: {values[name]}" for name in DRAFT_HEADERS]
        return "\n".join(lines) + "\n\n" + self.body_text

    def apply_draft_text(self, text: str) -> None:
        """
        Update headers and body from an edited scratch draft.

        Raises:
            ConversionError: If the draft no longer has a header block.
        """
        head, sep, body = text.replace("\r\n", "\n").partition("\n\n")
        if not sep and ":" not in head:
            raise ConversionError("Draft has no header block")

        headers: dict[str, str] = {}
        for line in head.split("\n"):
            if not line.strip():
                continue
            if line[0] in " \t" and headers:
                # Folded continuation line
                last = next(reversed(headers))
                headers[last] += " " + line.strip()
                continue
            name, colon, value = line.partition(":")
            if not colon:
                raise ConversionError(f"Malformed draft header line: {line!r}")
            headers[name.strip().lower()] = value.strip()

        self.sender = headers.get("from", "")
        self.to = _split_addresses([headers.get("to", "")])
        self.cc = _split_addresses([headers.get("cc", "")])
        self.bcc = _split_addresses([headers.get("bcc", "")])
        self.subject = headers.get("subject", "")
        self.body_text = body
        self.raw = b""

    def __str__(self) -> str:
        return f"{self.uid or '-'} {self.sender}: {self.subject}"

    def __repr__(self) -> str:
        return (
            f"Message(uid={self.uid!r}, subject={self.subject!r}, "
            f"from={self.sender!r}, flags={self.flags!r})"
        )


class ConversionError(Exception):
    """Raised when a message can't be turned into a sendable or raw form."""
    pass


class AttachmentError(Exception):
    """Raised when an attachment can't be read from or written to disk."""
    pass
