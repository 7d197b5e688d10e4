# =============================================================================
# Composition Prompts
# =============================================================================
# The blocking questions asked while composing. Each returns a plain value
# so the state machine never touches the terminal itself.
# =============================================================================

from enum import Enum

from rich.console import Console
from rich.prompt import Confirm, Prompt

from kestrel.compose.drafts import ScratchDraft


class Choice(Enum):
    """What to do with the message after an edit."""
    SEND = "send"
    EDIT = "edit"
    LOCAL_DRAFT = "local-draft"
    REMOTE_DRAFT = "remote-draft"
    DISCARD = "discard"


# Single-key answers
CHOICE_KEYS = {
    "s": Choice.SEND,
    "e": Choice.EDIT,
    "l": Choice.LOCAL_DRAFT,
    "r": Choice.REMOTE_DRAFT,
    "d": Choice.DISCARD,
}


def ask_post_edit_choice(console: Console | None = None) -> Choice:
    """
    Ask what to do with the message. Blocks until a valid answer.

    Raises:
        EOFError / KeyboardInterrupt: If input is closed or interrupted.
    """
    answer = Prompt.ask(
        "What would you like to do? "
        "[bold](s)[/]end, [bold](e)[/]dit, [bold](l)[/]ocal draft, "
        "[bold](r)[/]emote draft, [bold](d)[/]iscard",
        choices=list(CHOICE_KEYS),
        default="s",
        show_choices=False,
        console=console,
    )
    return CHOICE_KEYS[answer]


def ask_recover_draft(draft: ScratchDraft, console: Console | None = None) -> bool:
    """Ask whether to reopen a draft left over from an earlier session."""
    return Confirm.ask(
        f"A draft from an earlier session was found at {draft.path}. Recover it?",
        default=True,
        console=console,
    )
