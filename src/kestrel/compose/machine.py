# =============================================================================
# Composition State Machine
# =============================================================================
# Drives one composition from first edit to a terminal outcome:
#
#   EDITING -> AWAITING_CHOICE -> SENDING            -> DELIVERED
#                              -> SAVING_REMOTE_DRAFT -> SAVED_REMOTE_DRAFT
#                              -> KEEP_LOCAL_DRAFT    -> SAVED_LOCAL_DRAFT
#                              -> DISCARDING          -> DISCARDED
#                              -> EDITING (Edit choice) -> AWAITING_CHOICE
#
# Recoverable failures (an edit that fails, a message that can't be turned
# into a sendable form) are reported and the menu is shown again. Collaborator
# failures propagate and leave the scratch draft on disk.
#
# The machine borrows the sessions; the caller acquires and releases them.
# All terminal I/O goes through the injected Interaction.
# =============================================================================

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable

from rich.console import Console
from rich.text import Text

from kestrel.compose.drafts import DraftError, ScratchDraft
from kestrel.compose.editor import Editor, EditError
from kestrel.compose.prompts import Choice, ask_post_edit_choice, ask_recover_draft
from kestrel.config import Config
from kestrel.core import Account, ConversionError, Flag, Message
from kestrel.output import OutputService
from kestrel.session import MailStore, MailTransport

logger = logging.getLogger(__name__)


class State(Enum):
    EDITING = "editing"
    AWAITING_CHOICE = "awaiting-choice"
    SENDING = "sending"
    SAVING_REMOTE_DRAFT = "saving-remote-draft"
    KEEP_LOCAL_DRAFT = "keep-local-draft"
    DISCARDING = "discarding"


class Outcome(Enum):
    """How a composition ended."""
    DELIVERED = "delivered"
    SAVED_REMOTE_DRAFT = "saved-remote-draft"
    SAVED_LOCAL_DRAFT = "saved-local-draft"
    DISCARDED = "discarded"


@dataclass
class Interaction:
    """
    The user-facing collaborators of a composition.

    Attributes:
        draft: The scratch draft file.
        edit: Runs one edit of the message; raises EditError on failure.
        choose: Blocks until the user picks what to do next.
        console: Where progress and recoverable errors are reported
                 (stderr, so JSON output on stdout stays clean).
    """
    draft: ScratchDraft
    edit: Callable[[Message, ScratchDraft], None]
    choose: Callable[[], Choice]
    console: Console = field(default_factory=lambda: Console(stderr=True))

    @classmethod
    def default(cls, draft_path: Path | None = None) -> "Interaction":
        """The interactive setup: $EDITOR plus Rich prompts on stderr."""
        console = Console(stderr=True)
        return cls(
            draft=ScratchDraft(draft_path or Config.draft_path()),
            edit=Editor(recover=lambda draft: ask_recover_draft(draft, console)),
            choose=lambda: ask_post_edit_choice(console),
            console=console,
        )


class CompositionStateMachine:
    """
    Runs the edit / choose loop for one message.

    Usage:
        >>> machine = CompositionStateMachine(
        ...     message, store, transport,
        ...     account=account, output=output, interaction=Interaction.default(),
        ... )
        >>> outcome = await machine.run()

    Attributes:
        message: The message being composed (mutated by edits).
        state: The current state, for inspection.
    """

    def __init__(
        self,
        message: Message,
        store: MailStore,
        transport: MailTransport,
        *,
        account: Account,
        output: OutputService,
        interaction: Interaction,
    ) -> None:
        self.message = message
        self.store = store
        self.transport = transport
        self.account = account
        self.output = output
        self.interaction = interaction
        self.state = State.EDITING
        # Set while the draft file holds edits the message does not
        self._unread_edits = False

        self._handlers: dict[Choice, Callable[[], Awaitable[Outcome | None]]] = {
            Choice.SEND: self._on_send,
            Choice.EDIT: self._on_edit,
            Choice.LOCAL_DRAFT: self._on_local_draft,
            Choice.REMOTE_DRAFT: self._on_remote_draft,
            Choice.DISCARD: self._on_discard,
        }

    @property
    def draft(self) -> ScratchDraft:
        return self.interaction.draft

    async def run(self) -> Outcome:
        """
        Run until a terminal outcome is reached.

        Raises:
            EditError: If the first edit fails.
            Store/transport errors: On a failed send or remote-draft save.
            EOFError / KeyboardInterrupt: If the prompt is closed.
        """
        logger.debug(f"Composing message, draft at {self.draft.path}")
        self.interaction.edit(self.message, self.draft)

        while True:
            self.state = State.AWAITING_CHOICE
            choice = self.interaction.choose()
            logger.debug(f"Choice: {choice.value}")

            outcome = await self._handlers[choice]()
            if outcome is not None:
                logger.debug(f"Composition ended: {outcome.value}")
                return outcome

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _on_edit(self) -> None:
        self.state = State.EDITING
        try:
            self.interaction.edit(self.message, self.draft)
        except EditError as e:
            self._unread_edits = True
            self._report_error(str(e))
        else:
            self._unread_edits = False

    async def _on_send(self) -> Outcome | None:
        self.state = State.SENDING
        try:
            sendable = self.message.to_sendable()
        except ConversionError as e:
            self._report_error(f"{e}. Choose (e)dit to fix the headers.")
            return None

        self.interaction.console.print("Sending message…")
        await self.transport.deliver(sendable)

        self.message.keep_sent_form(sendable)
        self.message.flags.insert(Flag.SEEN)
        await self.store.append_message(self.account.sent, self.message)

        self._remove_draft()
        self.output.present("Message successfully sent")
        return Outcome.DELIVERED

    async def _on_remote_draft(self) -> Outcome:
        self.state = State.SAVING_REMOTE_DRAFT
        self.message.flags.update([Flag.SEEN, Flag.DRAFT])

        self.interaction.console.print("Saving to Drafts…")
        try:
            await self.store.append_message(self.account.drafts, self.message)
        except Exception:
            self._report_error(f"Cannot save draft to the server, it is kept at {self.draft.path}")
            raise

        self._remove_draft()
        self.output.present("Message successfully saved to Drafts")
        return Outcome.SAVED_REMOTE_DRAFT

    async def _on_local_draft(self) -> Outcome:
        self.state = State.KEEP_LOCAL_DRAFT
        self.output.present(f"Draft kept at {self.draft.path}")
        return Outcome.SAVED_LOCAL_DRAFT

    async def _on_discard(self) -> Outcome:
        self.state = State.DISCARDING
        self.draft.remove()
        self.output.present("Message discarded")
        return Outcome.DISCARDED

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _remove_draft(self) -> None:
        # The message is already stored; a leftover draft is only offered for
        # recovery next time.
        if self._unread_edits:
            self.interaction.console.print(
                Text(f"The draft at {self.draft.path} has edits that could not be read, it is kept")
            )
            return
        try:
            self.draft.remove()
        except DraftError as e:
            logger.warning(str(e))

    def _report_error(self, text: str) -> None:
        logger.debug(text)
        self.interaction.console.print(Text.assemble(("Error: ", "red"), text))
