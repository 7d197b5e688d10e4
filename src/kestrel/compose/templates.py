# =============================================================================
# Message Templates
# =============================================================================
# Builds the message a composition starts from:
#   - new_message(): an empty message from the account
#   - reply_to(): a threaded reply, optionally to everyone
#   - forward(): a forward carrying the original's attachments
#   - from_mailto(): a message described by a mailto: URI (RFC 6068)
#
# Each returns a fresh Message; the original is never modified.
# =============================================================================

import logging
from copy import copy
from urllib.parse import parse_qsl, unquote, urlsplit

from kestrel.core import Account, ConversionError, Message, address_of
from kestrel.core.message import _split_addresses

logger = logging.getLogger(__name__)

SIGNATURE_DELIMITER = "-- \n"


def signature_block(account: Account) -> str:
    """The account signature with its delimiter, or "" if there is none."""
    if not account.signature:
        return ""
    return "\n\n" + SIGNATURE_DELIMITER + account.signature.rstrip("\n") + "\n"


def new_message(account: Account) -> Message:
    """An empty message from the account, ending with its signature."""
    return Message(sender=account.address, body_text=signature_block(account))


def reply_to(original: Message, account: Account, reply_all: bool = False) -> Message:
    """
    Create a reply to a message.

    Recipients:
        - To: the original Reply-To, or its From
        - with reply_all, also every original To recipient, and every
          original Cc recipient in Cc, minus ourselves and duplicates

    Args:
        original: The message being replied to.
        account: The replying account.
        reply_all: Include all recipients of the original.

    Returns:
        A new Message pre-populated for the reply.
    """
    first = original.reply_to or original.sender
    to = [first] if first else []
    cc: list[str] = []

    if reply_all:
        seen = {address_of(account.email)}
        if first:
            seen.add(address_of(first))
        for recipient in original.to:
            if address_of(recipient) not in seen:
                to.append(recipient)
                seen.add(address_of(recipient))
        for recipient in original.cc:
            if address_of(recipient) not in seen:
                cc.append(recipient)
                seen.add(address_of(recipient))

    subject = original.subject
    if not subject.lower().startswith("re:"):
        subject = f"Re: {subject}"

    # Thread history, oldest first
    references = list(original.references)
    if original.in_reply_to and original.in_reply_to not in references:
        references.append(original.in_reply_to)
    if original.message_id:
        references.append(original.message_id)

    date_str = original.date.strftime("%Y-%m-%d %H:%M") if original.date else "an unknown date"
    quoted = "".join(f">{' ' if line else ''}{line}\n" for line in original.text.splitlines())
    body = (signature_block(account) or "\n") + f"\nOn {date_str}, {original.sender} wrote:\n" + quoted

    return Message(
        sender=account.address,
        to=to,
        cc=cc,
        subject=subject,
        in_reply_to=original.message_id,
        references=references,
        body_text=body,
    )


def forward(original: Message, account: Account) -> Message:
    """
    Create a forward of a message.

    The recipient is left empty for the user to fill in. Attachments of the
    original are carried over.
    """
    subject = original.subject
    if not subject.lower().startswith("fwd:"):
        subject = f"Fwd: {subject}"

    date_str = original.date.strftime("%Y-%m-%d %H:%M") if original.date else "unknown date"
    header = (
        "\n\n---------- Forwarded message ----------\n"
        f"From: {original.sender}\n"
        f"Date: {date_str}\n"
        f"Subject: {original.subject}\n"
        f"To: {', '.join(original.to)}\n"
    )
    if original.cc:
        header += f"Cc: {', '.join(original.cc)}\n"
    header += "\n"

    return Message(
        sender=account.address,
        subject=subject,
        body_text=signature_block(account) + header + original.text,
        attachments=[copy(a) for a in original.attachments],
    )


def from_mailto(uri: str, account: Account) -> Message:
    """
    Create a message from a mailto: URI.

    Example:
        >>> from_mailto("mailto:bob@example.com?subject=Hi&cc=carol@example.com", account)

    Raises:
        ConversionError: If the URI isn't a mailto: URI.
    """
    parts = urlsplit(uri)
    if parts.scheme.lower() != "mailto":
        raise ConversionError(f"Not a mailto: URI: {uri!r}")

    to = _split_addresses([unquote(parts.path)]) if parts.path else []
    cc: list[str] = []
    bcc: list[str] = []
    subject = ""
    body = ""

    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        key = key.lower()
        if key == "to":
            to.extend(_split_addresses([value]))
        elif key == "cc":
            cc.extend(_split_addresses([value]))
        elif key == "bcc":
            bcc.extend(_split_addresses([value]))
        elif key == "subject":
            subject = value
        elif key == "body":
            body = value
        else:
            logger.debug(f"Ignoring mailto header {key!r}")

    return Message(
        sender=account.address,
        to=to,
        cc=cc,
        bcc=bcc,
        subject=subject,
        body_text=body + signature_block(account),
    )
