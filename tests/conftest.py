# =============================================================================
# Pytest Configuration and Fixtures
# =============================================================================
# Shared fixtures for the Kestrel test suite, including in-memory stand-ins
# for the mail store and the mail transport. Both fakes record every call in
# a shared journal so tests can assert on ordering across sessions.
# =============================================================================

import copy
import io
import json
import tempfile
from datetime import datetime, timezone
from email.message import EmailMessage
from pathlib import Path

import pytest
from rich.console import Console

from kestrel.compose import Interaction, ScratchDraft
from kestrel.core import Account, Flag, Flags, Mailbox, Message
from kestrel.imap import IMAPError, MessageNotFoundError
from kestrel.output import OutputService
from kestrel.session import MailStore, MailTransport
from kestrel.smtp import SendError


# =============================================================================
# Fakes
# =============================================================================

class FakeMailStore(MailStore):
    """
    An in-memory mail store.

    Attributes:
        mailboxes: Mailbox name -> {uid: Message}.
        calls: Journal of (operation, *details) tuples.
        fail_append / fail_add_flags / fail_purge / fail_release:
            Make the matching operation raise IMAPError.
    """

    def __init__(self, source: str = "INBOX", journal: list | None = None) -> None:
        self.source = source
        self.mailboxes: dict[str, dict[str, Message]] = {source: {}}
        self.calls = journal if journal is not None else []
        self.connected = False
        self.released = False
        self.fail_append = False
        self.fail_add_flags = False
        self.fail_purge = False
        self.fail_release = False
        self._next_uid = 1

    def add(self, message: Message, mailbox: str | None = None) -> str:
        """Put a message straight into a mailbox, returning its UID."""
        stored = copy.deepcopy(message)
        stored.uid = str(self._next_uid)
        self._next_uid += 1
        self.mailboxes.setdefault(mailbox or self.source, {})[stored.uid] = stored
        return stored.uid

    def messages(self, mailbox: str) -> list[Message]:
        return list(self.mailboxes.get(mailbox, {}).values())

    def flags_of(self, uid: str) -> Flags:
        return self.mailboxes[self.source][uid].flags

    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def connect(self) -> None:
        self.calls.append(("store.connect",))
        self.connected = True

    async def fetch_message(self, uid: str) -> Message:
        self.calls.append(("fetch", uid))
        try:
            return copy.deepcopy(self.mailboxes[self.source][uid])
        except KeyError:
            raise MessageNotFoundError(f"Message {uid} not found in mailbox '{self.source}'") from None

    async def append_message(self, mailbox: Mailbox, message: Message) -> None:
        self.calls.append(("append", mailbox.name, message.flags.copy()))
        if self.fail_append:
            raise IMAPError(f"Cannot append to {mailbox}")
        self.add(message, mailbox.name)

    async def add_flags(self, uid: str, flags: Flags) -> None:
        self.calls.append(("add_flags", uid, flags.copy()))
        if self.fail_add_flags:
            raise IMAPError(f"Cannot store flags on {uid}")
        self.flags_of(uid).update(flags)

    async def purge(self) -> None:
        # Record what was flagged at the time of the purge
        flagged = {uid: m.flags.copy() for uid, m in self.mailboxes[self.source].items()}
        self.calls.append(("purge", flagged))
        if self.fail_purge:
            raise IMAPError("Cannot expunge")
        self.mailboxes[self.source] = {
            uid: m for uid, m in self.mailboxes[self.source].items()
            if Flag.DELETED not in m.flags
        }

    async def list_page(self, page_size: int, page: int) -> list[Message]:
        self.calls.append(("list", page_size, page))
        ordered = sorted(self.mailboxes[self.source].values(), key=lambda m: int(m.uid), reverse=True)
        return ordered[page * page_size:(page + 1) * page_size]

    async def search_page(self, query: str, page_size: int, page: int) -> list[Message]:
        self.calls.append(("search", query, page_size, page))
        ordered = sorted(self.mailboxes[self.source].values(), key=lambda m: int(m.uid), reverse=True)
        matched = [m for m in ordered if query.lower() in m.subject.lower()]
        return matched[page * page_size:(page + 1) * page_size]

    async def release(self) -> None:
        self.calls.append(("store.release",))
        self.released = True
        if self.fail_release:
            raise IMAPError("LOGOUT failed")


class FakeMailTransport(MailTransport):
    """An in-memory mail transport. Delivered messages are kept in `delivered`."""

    def __init__(self, journal: list | None = None) -> None:
        self.calls = journal if journal is not None else []
        self.delivered: list[EmailMessage] = []
        self.fail_deliver = False
        self.released = False

    async def connect(self) -> None:
        self.calls.append(("transport.connect",))

    async def deliver(self, sendable: EmailMessage) -> None:
        self.calls.append(("deliver", sendable["To"]))
        if self.fail_deliver:
            raise SendError("Connection reset by peer")
        self.delivered.append(sendable)

    async def release(self) -> None:
        self.calls.append(("transport.release",))
        self.released = True


class ScriptedEditor:
    """
    Stands in for $EDITOR.

    Each call takes the next scripted step: a callable applied to the
    message, an exception to raise, or None for "saved without changes".
    The draft is written after every successful step, like the real editor.
    """

    def __init__(self, *steps) -> None:
        self.steps = list(steps)
        self.calls = 0

    def __call__(self, message: Message, draft: ScratchDraft) -> None:
        self.calls += 1
        step = self.steps.pop(0) if self.steps else None
        if isinstance(step, Exception):
            raise step
        if step is not None:
            step(message)
        draft.write(message.to_draft_text())


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_account(temp_dir):
    """Create a sample Account for testing."""
    return Account(
        name="test",
        email="test@example.com",
        display_name="Test User",
        signature="Test User\nexample.com",
        downloads_dir=temp_dir / "downloads",
        default_page_size=3,
        imap_host="imap.example.com",
        imap_port=993,
        imap_security="ssl",
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_security="starttls",
    )


@pytest.fixture
def sample_message():
    """Create a sample incoming Message for testing."""
    return Message(
        message_id="<test123@example.com>",
        subject="Test Subject",
        sender="Test Sender <sender@example.com>",
        to=["Test User <test@example.com>", "carol@example.com"],
        cc=["dave@example.com"],
        date=datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc),
        body_text="This is a test email body.\nSecond line.",
    )


@pytest.fixture
def sample_html_email():
    """Sample HTML email content for rendering tests."""
    return """
    <html>
    <head><style>body { font-family: Arial, sans-serif; }</style></head>
    <body>
        <h1>Welcome to Our Newsletter!</h1>
        <p>Hello <strong>User</strong>,</p>
        <ul>
            <li>Links: <a href="https://example.com">Click here</a></li>
        </ul>
    </body>
    </html>
    """


@pytest.fixture
def journal():
    """Shared call journal for the store and transport fakes."""
    return []


@pytest.fixture
def store(journal):
    return FakeMailStore(journal=journal)


@pytest.fixture
def transport(journal):
    return FakeMailTransport(journal=journal)


@pytest.fixture
def output():
    """A JSON output sink writing into a buffer."""
    return OutputService("json", file=io.StringIO())


@pytest.fixture
def presented(output):
    """Returns everything presented to the JSON output sink so far, in order."""

    def read() -> list:
        return [json.loads(line)["response"] for line in output._file.getvalue().splitlines()]

    return read


@pytest.fixture
def draft(temp_dir):
    return ScratchDraft(temp_dir / "state" / "draft.eml")


@pytest.fixture
def make_interaction(draft):
    """Build an Interaction from scripted edits and menu choices."""

    def factory(choices, editor=None) -> Interaction:
        answers = iter(choices)
        return Interaction(
            draft=draft,
            edit=editor or ScriptedEditor(),
            choose=lambda: next(answers),
            console=Console(file=io.StringIO(), soft_wrap=True),
        )

    return factory
