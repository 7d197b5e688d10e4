"""
Tests for the IMAP mail store

The aioimaplib client is replaced by a recording fake so the commands and
response parsing can be checked without a server.
"""
import asyncio
from collections import namedtuple
from types import SimpleNamespace

import pytest
from aioimaplib import aioimaplib
from keyring.errors import KeyringLocked

from kestrel.core import Flag, Flags, Mailbox, Message
from kestrel.imap import (
    IMAPAuthenticationError,
    IMAPConnectionError,
    IMAPError,
    IMAPStore,
    MessageNotFoundError,
)
from kestrel.imap import client as imap_module
from kestrel.imap.client import _quote_folder_name
from kestrel.session import store_session

Response = namedtuple("Response", "result lines")

RAW = b"From: alice@example.com\r\nSubject: Hello\r\n\r\nHi\r\n"


class FakeIMAPClient:
    """Answers IMAP commands from a script and records them."""

    def __init__(self, exists=3):
        self.commands = []
        self.exists = exists
        self.fetch_lines = []
        self.search_lines = [b"", b"SEARCH completed"]
        self.result = "OK"
        self.failure = None

    async def select(self, mailbox):
        self.commands.append(("SELECT", mailbox))
        return Response(self.result, [b"FLAGS (\\Seen)", f"{self.exists} EXISTS".encode(), b"OK"])

    async def fetch(self, message_set, items):
        self.commands.append(("FETCH", message_set, items))
        return Response(self.result, self.fetch_lines)

    async def uid(self, command, *args):
        self.commands.append(("UID " + command, *args))
        if self.failure is not None:
            raise self.failure
        if command == "FETCH":
            return Response(self.result, self.fetch_lines)
        return Response(self.result, [b"STORE completed"])

    async def uid_search(self, query):
        self.commands.append(("UID SEARCH", query))
        return Response(self.result, self.search_lines)

    async def append(self, data, mailbox, flags=None):
        self.commands.append(("APPEND", mailbox, flags, data))
        return Response(self.result, [b"APPEND completed"])

    async def expunge(self):
        self.commands.append(("EXPUNGE",))
        return Response(self.result, [b"EXPUNGE completed"])

    async def logout(self):
        self.commands.append(("LOGOUT",))
        return Response("OK", [])


def fetch_item(seq, uid, flags, raw=RAW):
    return [
        f"{seq} FETCH (UID {uid} FLAGS ({flags}) BODY[] {{{len(raw)}}}".encode(),
        bytearray(raw),
        b")",
    ]


@pytest.fixture
def client():
    return FakeIMAPClient()


@pytest.fixture
def imap(sample_account, client):
    store = IMAPStore(sample_account)
    store._client = client
    store.state.connected = True
    store.state.authenticated = True
    return store


class TestParsing:

    def test_parse_fetch_response(self):
        lines = fetch_item(1, 41, "\\Seen") + fetch_item(2, 42, "") + [b"FETCH completed"]

        items = IMAPStore._parse_fetch_response(lines)

        assert [i.uid for i in items] == ["41", "42"]
        assert items[0].flags == {Flag.SEEN}
        assert items[1].flags == set()
        assert items[0].literal == RAW

    def test_uid_after_literal(self):
        lines = [b"5 FETCH (FLAGS (\\Draft) BODY[] {%d}" % len(RAW), bytearray(RAW), b" UID 99)"]

        [item] = IMAPStore._parse_fetch_response(lines)

        assert item.uid == "99"
        assert item.flags == {Flag.DRAFT}

    @pytest.mark.parametrize("name, expected", [
        ("INBOX", "INBOX"),
        ("Sent Items", '"Sent Items"'),
        ("[Gmail]/Sent Mail", '"[Gmail]/Sent Mail"'),
    ])
    def test_quote_folder_name(self, name, expected):
        assert _quote_folder_name(name) == expected


class TestFetching:

    @pytest.mark.asyncio
    async def test_fetch_message(self, imap, client):
        client.fetch_lines = fetch_item(1, 42, "\\Seen") + [b"FETCH completed"]

        message = await imap.fetch_message("42")

        assert message.uid == "42"
        assert message.subject == "Hello"
        assert message.flags == {Flag.SEEN}
        assert client.commands[0] == ("SELECT", "INBOX")
        assert client.commands[1] == ("UID FETCH", "42", "(UID FLAGS BODY.PEEK[])")

    @pytest.mark.asyncio
    async def test_fetch_missing(self, imap, client):
        client.fetch_lines = [b"FETCH completed"]

        with pytest.raises(MessageNotFoundError):
            await imap.fetch_message("404")

    @pytest.mark.asyncio
    async def test_select_once(self, imap, client):
        client.fetch_lines = fetch_item(1, 42, "") + [b"FETCH completed"]

        await imap.fetch_message("42")
        await imap.fetch_message("42")

        assert [c[0] for c in client.commands].count("SELECT") == 1

    @pytest.mark.asyncio
    async def test_list_page_newest_first(self, imap, client):
        client.exists = 25
        client.fetch_lines = fetch_item(24, 124, "") + fetch_item(25, 125, "\\Seen") + [b"FETCH completed"]

        messages = await imap.list_page(10, 0)

        assert client.commands[1] == ("FETCH", "16:25", "(UID FLAGS BODY.PEEK[HEADER])")
        assert [m.uid for m in messages] == ["125", "124"]

    @pytest.mark.asyncio
    async def test_list_last_partial_page(self, imap, client):
        client.exists = 25

        await imap.list_page(10, 2)

        assert client.commands[1][1] == "1:5"

    @pytest.mark.asyncio
    async def test_list_past_the_end(self, imap, client):
        client.exists = 5

        assert await imap.list_page(10, 1) == []
        assert len(client.commands) == 1

    @pytest.mark.asyncio
    async def test_search_page(self, imap, client):
        client.search_lines = [b"3 9 12 40", b"SEARCH completed"]
        client.fetch_lines = fetch_item(1, 12, "") + fetch_item(2, 9, "") + [b"FETCH completed"]

        messages = await imap.search_page("FROM alice", 2, 0)

        assert client.commands[1] == ("UID SEARCH", "FROM alice")
        assert client.commands[2][:2] == ("UID FETCH", "40,12")
        assert [m.uid for m in messages] == ["12", "9"]

    @pytest.mark.asyncio
    async def test_search_no_results(self, imap, client):
        assert await imap.search_page("FROM nobody", 10, 0) == []


class TestMutations:

    @pytest.mark.asyncio
    async def test_append_with_flags(self, imap, client):
        message = Message.from_bytes(RAW)
        message.flags.insert(Flag.SEEN)

        await imap.append_message(Mailbox("Sent Items"), message)

        assert client.commands == [("APPEND", '"Sent Items"', "(\\Seen)", RAW)]

    @pytest.mark.asyncio
    async def test_append_without_flags(self, imap, client):
        await imap.append_message(Mailbox("Archive"), Message.from_bytes(RAW))

        assert client.commands[0][2] is None

    @pytest.mark.asyncio
    async def test_append_rejected(self, imap, client):
        client.result = "NO"

        with pytest.raises(IMAPError, match="Archive"):
            await imap.append_message(Mailbox("Archive"), Message.from_bytes(RAW))

    @pytest.mark.asyncio
    async def test_add_flags_and_purge(self, imap, client):
        await imap.add_flags("42", Flags([Flag.DELETED, Flag.SEEN]))
        await imap.purge()

        assert client.commands[1:] == [
            ("UID STORE", "42", "+FLAGS (\\Seen \\Deleted)"),
            ("EXPUNGE",),
        ]

    @pytest.mark.asyncio
    async def test_requires_connection(self, sample_account):
        with pytest.raises(IMAPConnectionError):
            await IMAPStore(sample_account).purge()

    @pytest.mark.asyncio
    async def test_release(self, imap, client):
        await imap.release()
        await imap.release()

        assert client.commands == [("LOGOUT",)]
        assert not imap.is_connected


class TestCommandFailures:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [
        asyncio.TimeoutError(),
        aioimaplib.CommandTimeout("UID FETCH"),
    ])
    async def test_timeout(self, imap, client, failure):
        client.failure = failure

        with pytest.raises(IMAPConnectionError, match="FETCH timed out"):
            await imap.fetch_message("42")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [
        aioimaplib.Abort("connection lost"),
        ConnectionResetError("Connection reset by peer"),
    ])
    async def test_connection_lost(self, imap, client, failure):
        client.failure = failure

        with pytest.raises(IMAPConnectionError, match="Connection lost during IMAP STORE"):
            await imap.add_flags("42", Flags([Flag.SEEN]))


class FakeServer(FakeIMAPClient):
    """A FakeIMAPClient that also answers the connection handshake."""

    instances = []
    login_result = "OK"

    def __init__(self, **options):
        super().__init__()
        self.options = options
        self.protocol = SimpleNamespace(capabilities={"IMAP4REV1", "STARTTLS"})
        FakeServer.instances.append(self)

    async def wait_hello_from_server(self):
        self.commands.append(("HELLO",))

    def has_capability(self, capability):
        return capability in self.protocol.capabilities

    async def login(self, user, password):
        self.commands.append(("LOGIN", user))
        return Response(self.login_result, [b"LOGIN completed"])


@pytest.fixture
def server(monkeypatch):
    FakeServer.instances = []
    monkeypatch.setattr(imap_module.aioimaplib, "IMAP4_SSL", FakeServer)
    return FakeServer


def use_password(monkeypatch, get_password):
    monkeypatch.setattr(imap_module.keyring, "get_password", get_password)


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_and_release(self, monkeypatch, sample_account, server):
        use_password(monkeypatch, lambda service, login: "hunter2")

        async with store_session(IMAPStore(sample_account)) as store:
            assert store.is_connected

        [client] = server.instances
        assert client.options["host"] == "imap.example.com"
        assert client.commands == [("HELLO",), ("LOGIN", "test@example.com"), ("LOGOUT",)]

    @pytest.mark.asyncio
    async def test_missing_password_logs_out(self, monkeypatch, sample_account, server):
        use_password(monkeypatch, lambda service, login: None)
        store = IMAPStore(sample_account)

        with pytest.raises(IMAPAuthenticationError, match="keyring set kestrel:test"):
            async with store_session(store):
                pass

        [client] = server.instances
        assert client.commands == [("HELLO",), ("LOGOUT",)]
        assert not store.is_connected

    @pytest.mark.asyncio
    async def test_rejected_login_logs_out(self, monkeypatch, sample_account, server):
        use_password(monkeypatch, lambda service, login: "wrong")
        monkeypatch.setattr(FakeServer, "login_result", "NO")
        store = IMAPStore(sample_account)

        with pytest.raises(IMAPAuthenticationError, match="Authentication failed"):
            async with store_session(store):
                pass

        assert server.instances[0].commands[-1] == ("LOGOUT",)

    @pytest.mark.asyncio
    async def test_keyring_failure_is_an_authentication_error(self, monkeypatch, sample_account, server):
        def locked(service, login):
            raise KeyringLocked("Failed to unlock the keyring")

        use_password(monkeypatch, locked)

        with pytest.raises(IMAPAuthenticationError, match="Failed to unlock the keyring"):
            async with store_session(IMAPStore(sample_account)):
                pass

        assert server.instances[0].commands[-1] == ("LOGOUT",)
