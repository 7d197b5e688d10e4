# =============================================================================
# Editor Step
# =============================================================================
# Lets the user edit a message in their own editor ($VISUAL, then $EDITOR,
# then vi). The message is rendered into the scratch draft as a header
# block plus body, the editor is run on that file, and the result is parsed
# back into the message.
#
# The draft file is the source of truth between edits: after the first
# edit, later edits reopen the file as the user left it, so a draft that
# failed to parse is never overwritten.
# =============================================================================

import logging
import os
import shlex
import subprocess
from typing import Callable

from kestrel.compose.drafts import DraftError, ScratchDraft
from kestrel.core import ConversionError, Message

logger = logging.getLogger(__name__)


def get_editor_command() -> list[str]:
    """Return the user's editor command, split into arguments."""
    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR") or "vi"
    return shlex.split(editor)


class Editor:
    """
    The editor step of the composition loop.

    Usage:
        >>> editor = Editor()
        >>> editor(message, ScratchDraft("/tmp/draft.eml"))

    Attributes:
        command: Editor command line (the draft path is appended).
        recover: Called with the draft when a draft from an earlier session
                 is found on the first edit. Returning True reopens it
                 instead of starting from the message.
    """

    def __init__(
        self,
        command: list[str] | None = None,
        recover: Callable[[ScratchDraft], bool] | None = None,
    ) -> None:
        self.command = command or get_editor_command()
        self.recover = recover
        self._started = False

    def __call__(self, message: Message, draft: ScratchDraft) -> None:
        """
        Run one edit of the message.

        Raises:
            EditError: If the editor fails or its result can't be parsed.
                       The message is left unchanged.
        """
        try:
            if not self._started:
                self._start(message, draft)
            self._run_editor(draft)
            text = draft.read()
        except DraftError as e:
            raise EditError(str(e)) from e

        try:
            message.apply_draft_text(text)
        except ConversionError as e:
            raise EditError(f"Cannot parse draft: {e}") from e

    def _start(self, message: Message, draft: ScratchDraft) -> None:
        if draft.exists and self.recover is not None and self.recover(draft):
            logger.debug(f"Recovering draft {draft.path}")
        else:
            draft.write(message.to_draft_text())
        self._started = True

    def _run_editor(self, draft: ScratchDraft) -> None:
        command = [*self.command, str(draft.path)]
        logger.debug(f"Running editor: {command}")
        try:
            subprocess.run(command, check=True)
        except FileNotFoundError as e:
            raise EditError(f"Editor not found: {self.command[0]}") from e
        except subprocess.CalledProcessError as e:
            raise EditError(f"Editor exited with status {e.returncode}") from e


class EditError(Exception):
    """Raised when editing a message fails. Recoverable: the user can retry."""
    pass
