# =============================================================================
# Kestrel Command Line
# =============================================================================
# Parses arguments, configures logging, loads the account, and runs one
# command inside its sessions:
#
#   kestrel list | search | read | attachments      (mail store)
#   kestrel copy | move | delete | save             (mail store)
#   kestrel send | write | reply | forward | mailto (mail store + transport)
#   kestrel configure                               (no session)
#
# Sessions are acquired with store_session()/transport_session(), so they are
# released on every exit path. Known errors end the command with a one-line
# "Error: ..." on stderr and exit status 1.
# =============================================================================

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from keyring.errors import KeyringError
from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

from kestrel import __app_name__, __version__, operations
from kestrel.compose import DraftError, EditError, Interaction
from kestrel.config import Config, ConfigError, print_paths
from kestrel.core import Account, AttachmentError, ConversionError, MailboxResolutionError
from kestrel.imap import IMAPError, IMAPStore
from kestrel.output import OUTPUT_MODES, OutputService
from kestrel.session import store_session, transport_session
from kestrel.smtp import SMTPError, SMTPTransport

logger = logging.getLogger(__name__)

# Errors that end a command with a message rather than a traceback
KNOWN_ERRORS = (
    ConfigError,
    MailboxResolutionError,
    ConversionError,
    AttachmentError,
    DraftError,
    EditError,
    IMAPError,
    SMTPError,
    KeyringError,
)

# Commands that need a mail-transport session as well as a mail store
DELIVERY_COMMANDS = {"send", "write", "reply", "forward", "mailto"}

stderr = Console(stderr=True, highlight=False)


# =============================================================================
# Argument Parsing
# =============================================================================

def _int_at_least(minimum: int):
    """An argparse type for integers no smaller than `minimum`."""

    def parse(value: str) -> int:
        try:
            number = int(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
        if number < minimum:
            raise argparse.ArgumentTypeError(f"must be at least {minimum}, got {number}")
        return number

    return parse


def _add_paging(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-s", "--page-size", type=_int_at_least(1), default=None,
        help="Messages per page (default: the account's default_page_size)",
    )
    parser.add_argument("-p", "--page", type=_int_at_least(0), default=0, help="Page number, starting at 0")


def _add_attachments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-A", "--attachment", dest="attachments", action="append", default=[],
        metavar="PATH", help="Attach a file (repeatable)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="Kestrel: a command-line email client",
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--paths", action="store_true", help="Print configuration paths and exit")
    parser.add_argument(
        "--config", type=Path, help="Path to config file (default: XDG config location)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("-a", "--account", help="Account to use (default: the default account)")
    parser.add_argument("-m", "--mailbox", help="Source mailbox (default: the account's inbox)")
    parser.add_argument(
        "-o", "--output", choices=OUTPUT_MODES, default="plain", help="Output format",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    # `kestrel` with no command lists the inbox
    parser.set_defaults(command="list", page_size=None, page=0)

    p = sub.add_parser("list", help="List messages, newest first")
    _add_paging(p)

    p = sub.add_parser("search", help="Search messages with an IMAP query")
    p.add_argument("query", nargs="+", help="IMAP search criteria, e.g. FROM alice UNSEEN")
    _add_paging(p)

    p = sub.add_parser("read", help="Read a message")
    p.add_argument("uid")
    p.add_argument("--raw", action="store_true", help="Show the raw message source")

    p = sub.add_parser("attachments", help="Download a message's attachments")
    p.add_argument("uid")

    p = sub.add_parser("copy", help="Copy a message to another mailbox")
    p.add_argument("uid")
    p.add_argument("target", nargs="?", help="Target mailbox")

    p = sub.add_parser("move", help="Move a message to another mailbox")
    p.add_argument("uid")
    p.add_argument("target", nargs="?", help="Target mailbox")

    p = sub.add_parser("delete", help="Delete a message")
    p.add_argument("uid")

    p = sub.add_parser("save", help="Save a raw message into a mailbox")
    p.add_argument("-t", "--target", help="Target mailbox")
    p.add_argument("message", nargs="?", help="Raw message (read from stdin if omitted)")

    p = sub.add_parser("send", help="Send a raw message")
    p.add_argument("message", nargs="?", help="Raw message (read from stdin if omitted)")

    p = sub.add_parser("write", help="Write a new message")
    _add_attachments(p)

    p = sub.add_parser("reply", help="Reply to a message")
    p.add_argument("uid")
    p.add_argument("--all", dest="reply_all", action="store_true", help="Reply to all recipients")
    _add_attachments(p)

    p = sub.add_parser("forward", help="Forward a message")
    p.add_argument("uid")
    _add_attachments(p)

    p = sub.add_parser("mailto", help="Write a message from a mailto: URI")
    p.add_argument("uri")

    sub.add_parser("configure", help="Run the configuration wizard")

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    A bare mailto: URI (as passed by browsers) is treated as
    `kestrel mailto <uri>`.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv and argv[0].lower().startswith("mailto:"):
        argv.insert(0, "mailto")
    return build_parser().parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Send log records to stderr through Rich."""
    handler = RichHandler(
        console=stderr,
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
    )
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )


# =============================================================================
# Command Dispatch
# =============================================================================

async def run_command(args: argparse.Namespace, account: Account, output: OutputService) -> None:
    """Run one command inside the sessions it needs."""
    # Raw input is read before connecting, so a bad pipe never opens a session
    raw_text = None
    if args.command in ("save", "send"):
        raw_text = operations.prepare_raw_message(args.message, output)

    store = IMAPStore(account, mailbox=args.mailbox)

    if args.command in DELIVERY_COMMANDS:
        async with store_session(store), transport_session(SMTPTransport(account)) as transport:
            await _run_delivery_command(args, account, output, store, transport, raw_text)
        return

    async with store_session(store):
        if args.command == "list":
            await operations.list_messages(store, account, output, args.page_size, args.page)
        elif args.command == "search":
            query = " ".join(args.query)
            await operations.search_messages(store, account, output, query, args.page_size, args.page)
        elif args.command == "read":
            await operations.read_message(store, output, args.uid, raw=args.raw)
        elif args.command == "attachments":
            await operations.download_attachments(store, account, output, args.uid)
        elif args.command == "copy":
            await operations.copy_message(store, output, args.uid, args.target)
        elif args.command == "move":
            await operations.move_message(store, output, args.uid, args.target)
        elif args.command == "delete":
            await operations.delete_message(store, output, args.uid)
        elif args.command == "save":
            await operations.save_message(store, output, raw_text, args.target)
        else:
            raise ValueError(f"Unknown command {args.command!r}")


async def _run_delivery_command(args, account, output, store, transport, raw_text) -> None:
    if args.command == "send":
        await operations.send_message(store, transport, account, output, raw_text)
        return

    interaction = Interaction.default()
    if args.command == "write":
        await operations.write_message(
            store, transport, account, output, interaction, args.attachments,
        )
    elif args.command == "reply":
        await operations.reply_message(
            store, transport, account, output, interaction,
            args.uid, reply_all=args.reply_all, attachments=args.attachments,
        )
    elif args.command == "forward":
        await operations.forward_message(
            store, transport, account, output, interaction, args.uid, args.attachments,
        )
    elif args.command == "mailto":
        await operations.mailto(store, transport, account, output, interaction, args.uri)


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for Kestrel.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = parse_args(argv)
    setup_logging(args.debug)

    if args.paths:
        print_paths()
        return 0

    try:
        if args.command == "configure":
            from kestrel.wizard import configure
            configure(args.config)
            return 0

        config = Config.load(args.config)
        account = config.account(args.account)
        logger.debug(f"Using account {account!r}")
        output = OutputService(args.output)

        asyncio.run(run_command(args, account, output))
    except KNOWN_ERRORS as e:
        logger.debug("Command failed", exc_info=True)
        stderr.print(Text.assemble(("Error: ", "bold red"), str(e)))
        return 1
    except (EOFError, KeyboardInterrupt):
        stderr.print("\nAborted")
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
