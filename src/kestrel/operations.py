# =============================================================================
# Mailbox Operations
# =============================================================================
# One coroutine per command. Each runs a single pass over sessions that the
# caller has already acquired (see kestrel.session) and reports its result
# through the output sink.
#
# Ordering rules that protect user data:
#   - move: the message is appended to the target before it is flagged
#     deleted and purged from the source
#   - send: the transport accepts the message before it is appended to Sent
#   - delete: flags are set before the purge
# =============================================================================

import logging
import sys
from pathlib import Path
from typing import Iterable, TextIO

from kestrel.compose import CompositionStateMachine, Interaction, Outcome
from kestrel.compose import templates
from kestrel.core import (
    Account,
    AttachmentError,
    ConversionError,
    Flag,
    Flags,
    Mailbox,
    MailboxType,
    Message,
)
from kestrel.output import OutputService
from kestrel.session import MailStore, MailTransport

logger = logging.getLogger(__name__)


# =============================================================================
# Listing and Reading
# =============================================================================

async def list_messages(
    store: MailStore,
    account: Account,
    output: OutputService,
    page_size: int | None = None,
    page: int = 0,
) -> None:
    """Present one page of message summaries, newest first."""
    page_size = page_size or account.default_page_size
    messages = await store.list_page(page_size, page)
    logger.debug(f"Listed {len(messages)} message(s) (page {page}, size {page_size})")
    output.present(messages)


async def search_messages(
    store: MailStore,
    account: Account,
    output: OutputService,
    query: str,
    page_size: int | None = None,
    page: int = 0,
) -> None:
    """Present one page of summaries matching an IMAP search query."""
    page_size = page_size or account.default_page_size
    messages = await store.search_page(query, page_size, page)
    logger.debug(f"Search {query!r} matched {len(messages)} message(s) on page {page}")
    output.present(messages)


async def read_message(store: MailStore, output: OutputService, uid: str, raw: bool = False) -> None:
    """Present a message, or its raw source when `raw` is set."""
    message = await store.fetch_message(uid)
    if raw:
        output.present(message.get_raw_as_string())
    else:
        output.present(message)


async def download_attachments(
    store: MailStore,
    account: Account,
    output: OutputService,
    uid: str,
) -> list[Path]:
    """
    Write every attachment of a message into the account's downloads dir.

    Returns:
        The paths written.

    Raises:
        AttachmentError: If a file can't be written; names the failing path.
    """
    message = await store.fetch_message(uid)
    logger.debug(f"{len(message.attachments)} attachment(s) found for message {uid}")

    try:
        account.downloads_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise AttachmentError(f"Cannot create {str(account.downloads_dir)!r}: {e}") from e

    written = []
    for attachment in message.attachments:
        # Never let a filename escape the downloads directory
        name = _unique_name(Path(attachment.filename).name or "attachment", {p.name for p in written})
        path = account.downloads_dir / name
        logger.debug(f"Downloading {name}…")
        try:
            path.write_bytes(attachment.data)
        except OSError as e:
            raise AttachmentError(f"Cannot save attachment {str(path)!r}: {e}") from e
        written.append(path)

    output.present(f"{len(written)} attachment(s) successfully downloaded")
    return written


def _unique_name(name: str, taken: set[str]) -> str:
    """Suffix `name` as "report (1).pdf", "report (2).pdf"... until it is not taken."""
    if name not in taken:
        return name
    stem, suffix = Path(name).stem, Path(name).suffix
    n = 1
    while f"{stem} ({n}){suffix}" in taken:
        n += 1
    return f"{stem} ({n}){suffix}"


# =============================================================================
# Copy / Move / Delete
# =============================================================================

async def copy_message(store: MailStore, output: OutputService, uid: str, target: str | None) -> None:
    """
    Copy a message into another mailbox. The source copy is kept and marked seen.

    Raises:
        MailboxResolutionError: If no target mailbox is given.
    """
    mailbox = Mailbox.resolve(target)
    message = await store.fetch_message(uid)

    await store.add_flags(uid, Flags([Flag.SEEN]))
    message.flags.insert(Flag.SEEN)
    await store.append_message(mailbox, message)

    logger.debug(f"Message {uid} copied to {mailbox}")
    output.present(f"Message {uid} successfully copied to folder `{mailbox}`")


async def move_message(store: MailStore, output: OutputService, uid: str, target: str | None) -> None:
    """
    Move a message into another mailbox.

    The message is appended to the target first. Only then is the source
    flagged deleted and purged, so a failed append never loses the message.
    If the second half fails, the message exists in both mailboxes and the
    error propagates; the append is not rolled back.

    Raises:
        MailboxResolutionError: If no target mailbox is given.
    """
    mailbox = Mailbox.resolve(target)
    message = await store.fetch_message(uid)

    message.flags.insert(Flag.SEEN)
    await store.append_message(mailbox, message)
    logger.debug(f"Message {uid} appended to {mailbox}")

    try:
        await store.add_flags(uid, Flags([Flag.SEEN, Flag.DELETED]))
        await store.purge()
    except Exception:
        logger.error(
            f"Message {uid} was copied to `{mailbox}` but could not be removed from the source"
        )
        raise

    output.present(f"Message {uid} successfully moved to folder `{mailbox}`")


async def delete_message(store: MailStore, output: OutputService, uid: str) -> None:
    """Flag a message seen and deleted, then purge the source mailbox."""
    await store.add_flags(uid, Flags([Flag.SEEN, Flag.DELETED]))
    await store.purge()
    logger.debug(f"Message {uid} deleted")
    output.present(f"Message {uid} successfully deleted")


# =============================================================================
# Save / Send (non-interactive)
# =============================================================================

def prepare_raw_message(literal: str | None, output: OutputService, stdin: TextIO | None = None) -> str:
    """
    Resolve the raw message text for `save` and `send`.

    A literal argument is taken as-is, with line endings normalised to CRLF.
    Without one, piped stdin is read line by line and joined with CRLF.
    JSON mode never reads stdin.

    Raises:
        ConversionError: If there is no literal and stdin is a terminal, or
                         the output mode is JSON.
    """
    stdin = stdin or sys.stdin

    if literal is not None:
        return literal.replace("\r", "").replace("\n", "\r\n")

    if stdin.isatty() or output.is_json:
        raise ConversionError("No message given: pass it as an argument or pipe it on stdin")

    return "\r\n".join(line.rstrip("\r\n") for line in stdin)


async def save_message(store: MailStore, output: OutputService, raw_text: str, target: str | None) -> None:
    """
    Parse a raw message and append it to a mailbox, marked seen.

    Raises:
        MailboxResolutionError: If no target mailbox is given.
        ConversionError: If the text isn't a message.
    """
    mailbox = Mailbox.resolve(target)
    message = Message.from_text(raw_text)

    message.flags.insert(Flag.SEEN)
    if mailbox.mailbox_type is MailboxType.DRAFTS:
        message.flags.insert(Flag.DRAFT)
    await store.append_message(mailbox, message)

    output.present(f"Message successfully saved to folder `{mailbox}`")


async def send_message(
    store: MailStore,
    transport: MailTransport,
    account: Account,
    output: OutputService,
    raw_text: str,
) -> None:
    """
    Parse a raw message, deliver it, then append it to Sent.

    Raises:
        ConversionError: If the text isn't a sendable message. Nothing is sent.
    """
    message = Message.from_text(raw_text)
    sendable = message.to_sendable()

    await transport.deliver(sendable)
    logger.debug("Message sent")

    message.keep_sent_form(sendable)
    message.flags.insert(Flag.SEEN)
    await store.append_message(account.sent, message)

    output.present("Message successfully sent")


# =============================================================================
# Interactive Composition
# =============================================================================

async def compose(
    message: Message,
    store: MailStore,
    transport: MailTransport,
    account: Account,
    output: OutputService,
    interaction: Interaction,
    attachments: Iterable[str | Path] = (),
) -> Outcome:
    """Attach files, then run the composition state machine on a message."""
    paths = list(attachments)
    for path in paths:
        message.add_attachment(path)
    if paths:
        logger.debug(f"Attached {len(paths)} file(s)")

    machine = CompositionStateMachine(
        message, store, transport,
        account=account, output=output, interaction=interaction,
    )
    return await machine.run()


async def write_message(
    store: MailStore,
    transport: MailTransport,
    account: Account,
    output: OutputService,
    interaction: Interaction,
    attachments: Iterable[str | Path] = (),
) -> Outcome:
    """Compose a new message."""
    message = templates.new_message(account)
    return await compose(message, store, transport, account, output, interaction, attachments)


async def reply_message(
    store: MailStore,
    transport: MailTransport,
    account: Account,
    output: OutputService,
    interaction: Interaction,
    uid: str,
    reply_all: bool = False,
    attachments: Iterable[str | Path] = (),
) -> Outcome:
    """Compose a reply to a message, optionally to all its recipients."""
    original = await store.fetch_message(uid)
    message = templates.reply_to(original, account, reply_all=reply_all)
    return await compose(message, store, transport, account, output, interaction, attachments)


async def forward_message(
    store: MailStore,
    transport: MailTransport,
    account: Account,
    output: OutputService,
    interaction: Interaction,
    uid: str,
    attachments: Iterable[str | Path] = (),
) -> Outcome:
    """Compose a forward of a message."""
    original = await store.fetch_message(uid)
    message = templates.forward(original, account)
    return await compose(message, store, transport, account, output, interaction, attachments)


async def mailto(
    store: MailStore,
    transport: MailTransport,
    account: Account,
    output: OutputService,
    interaction: Interaction,
    uri: str,
) -> Outcome:
    """Compose a message described by a mailto: URI."""
    message = templates.from_mailto(uri, account)
    return await compose(message, store, transport, account, output, interaction)
