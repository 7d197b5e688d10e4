# =============================================================================
# Kestrel Compose Module
# =============================================================================
# Everything involved in writing a message interactively:
#
#   - templates: new / reply / forward / mailto starting points
#   - drafts: the scratch draft file on local disk
#   - editor: the $EDITOR step
#   - prompts: the post-edit choice menu
#   - machine: the composition state machine tying these together
# =============================================================================

from kestrel.compose.drafts import DraftError, ScratchDraft
from kestrel.compose.editor import Editor, EditError
from kestrel.compose.machine import (
    CompositionStateMachine,
    Interaction,
    Outcome,
    State,
)
from kestrel.compose.prompts import Choice

__all__ = [
    "ScratchDraft",
    "DraftError",
    "Editor",
    "EditError",
    "Choice",
    "CompositionStateMachine",
    "Interaction",
    "Outcome",
    "State",
]
