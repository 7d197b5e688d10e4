"""
Tests for the scratch draft, the editor step, and the composition prompts
"""
import subprocess

import pytest
from rich.prompt import Confirm, Prompt

from kestrel.compose import editor as editor_module
from kestrel.compose.drafts import DraftError, ScratchDraft
from kestrel.compose.editor import Editor, EditError, get_editor_command
from kestrel.compose.prompts import Choice, ask_post_edit_choice, ask_recover_draft
from kestrel.core import Message


@pytest.fixture
def message():
    return Message(sender="me@example.com", to=["bob@example.com"], subject="Hi", body_text="Hello\n")


class FakeRun:
    """Stands in for subprocess.run; rewrites the file it is given."""

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.commands = []
        self.seen = []

    def __call__(self, command, check=False):
        self.commands.append(command)
        path = command[-1]
        with open(path, encoding="utf-8") as f:
            self.seen.append(f.read())
        if self.error is not None:
            raise self.error
        if self.text is not None:
            with open(path, "w", encoding="utf-8") as f:
                f.write(self.text)


@pytest.fixture
def fake_run(monkeypatch):
    run = FakeRun()
    monkeypatch.setattr(editor_module.subprocess, "run", run)
    return run


class TestScratchDraft:

    def test_write_read_remove(self, draft):
        draft.write("Subject: x\n\nbody")

        assert draft.exists
        assert draft.read() == "Subject: x\n\nbody"

        draft.remove()
        draft.remove()

        assert not draft.exists

    def test_read_missing(self, draft):
        with pytest.raises(DraftError, match="Cannot read draft"):
            draft.read()

    def test_write_into_file_path(self, temp_dir):
        (temp_dir / "blocker").write_text("")

        with pytest.raises(DraftError, match="Cannot write draft"):
            ScratchDraft(temp_dir / "blocker" / "draft.eml").write("x")


class TestEditorCommand:

    def test_visual_wins(self, monkeypatch):
        monkeypatch.setenv("VISUAL", "code --wait")
        monkeypatch.setenv("EDITOR", "nano")

        assert get_editor_command() == ["code", "--wait"]

    def test_editor(self, monkeypatch):
        monkeypatch.delenv("VISUAL", raising=False)
        monkeypatch.setenv("EDITOR", "nano")

        assert get_editor_command() == ["nano"]

    def test_fallback(self, monkeypatch):
        monkeypatch.delenv("VISUAL", raising=False)
        monkeypatch.delenv("EDITOR", raising=False)

        assert get_editor_command() == ["vi"]


class TestEditor:

    def test_edit_applies_draft(self, message, draft, fake_run):
        fake_run.text = "From: me@example.com\nTo: carol@example.com\nSubject: Changed\n\nNew body\n"

        Editor(["myeditor"])(message, draft)

        assert fake_run.commands == [["myeditor", str(draft.path)]]
        assert "Subject: Hi" in fake_run.seen[0]
        assert message.to == ["carol@example.com"]
        assert message.subject == "Changed"
        assert message.body_text == "New body\n"

    def test_second_edit_reopens_draft(self, message, draft, fake_run):
        editor = Editor(["myeditor"])
        fake_run.text = "From: me@example.com\nSubject: First\n\nbody\n"
        editor(message, draft)

        fake_run.text = None
        editor(message, draft)

        assert fake_run.seen[1] == "From: me@example.com\nSubject: First\n\nbody\n"

    def test_recovered_draft(self, message, draft, fake_run):
        draft.write("From: me@example.com\nSubject: Leftover\n\nold text\n")
        asked = []

        def recover(d):
            asked.append(d)
            return True

        Editor(["myeditor"], recover=recover)(message, draft)

        assert asked == [draft]
        assert message.subject == "Leftover"

    def test_declined_recovery_overwrites(self, message, draft, fake_run):
        draft.write("From: me@example.com\nSubject: Leftover\n\nold text\n")

        Editor(["myeditor"], recover=lambda d: False)(message, draft)

        assert "Subject: Hi" in fake_run.seen[0]
        assert message.subject == "Hi"

    def test_editor_not_found(self, message, draft, fake_run):
        fake_run.error = FileNotFoundError()

        with pytest.raises(EditError, match="Editor not found: myeditor"):
            Editor(["myeditor"])(message, draft)

    def test_editor_fails(self, message, draft, fake_run):
        fake_run.error = subprocess.CalledProcessError(2, "myeditor")

        with pytest.raises(EditError, match="status 2"):
            Editor(["myeditor"])(message, draft)

    def test_malformed_draft_keeps_message(self, message, draft, fake_run):
        fake_run.text = "From me@example.com\nno colon here\n\nbody"

        with pytest.raises(EditError, match="Cannot parse draft"):
            Editor(["myeditor"])(message, draft)

        assert message.subject == "Hi"
        assert draft.read() == "From me@example.com\nno colon here\n\nbody"


class TestPrompts:

    @pytest.mark.parametrize("key, choice", [
        ("s", Choice.SEND),
        ("e", Choice.EDIT),
        ("l", Choice.LOCAL_DRAFT),
        ("r", Choice.REMOTE_DRAFT),
        ("d", Choice.DISCARD),
    ])
    def test_post_edit_choice(self, monkeypatch, key, choice):
        monkeypatch.setattr(Prompt, "ask", classmethod(lambda cls, *args, **kwargs: key))

        assert ask_post_edit_choice() is choice

    def test_post_edit_choice_offers_every_key(self, monkeypatch):
        seen = {}

        def ask(cls, prompt, **kwargs):
            seen.update(kwargs)
            return "s"

        monkeypatch.setattr(Prompt, "ask", classmethod(ask))
        ask_post_edit_choice()

        assert seen["choices"] == ["s", "e", "l", "r", "d"]
        assert seen["default"] == "s"

    def test_post_edit_choice_eof_propagates(self, monkeypatch):
        def ask(cls, *args, **kwargs):
            raise EOFError

        monkeypatch.setattr(Prompt, "ask", classmethod(ask))

        with pytest.raises(EOFError):
            ask_post_edit_choice()

    def test_recover_draft(self, monkeypatch, draft):
        prompts = []

        def ask(cls, prompt, **kwargs):
            prompts.append(prompt)
            return False

        monkeypatch.setattr(Confirm, "ask", classmethod(ask))

        assert ask_recover_draft(draft) is False
        assert str(draft.path) in prompts[0]
