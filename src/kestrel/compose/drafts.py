# =============================================================================
# Scratch Draft
# =============================================================================
# The local file holding the message being composed. It is written every
# time the editor runs, so a crash or a lost terminal never costs the user
# their text.
#
# Lifecycle:
#   - created by the editor step (first edit)
#   - removed only after a successful send, a successful save to the
#     remote Drafts mailbox, or an explicit discard
#   - otherwise left in place, and offered for recovery next time
# =============================================================================

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class ScratchDraft:
    """
    A scratch draft file on local disk.

    Attributes:
        path: Location of the draft file.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def write(self, text: str) -> None:
        """
        Persist the draft, creating parent directories as needed.

        Raises:
            DraftError: If the file can't be written.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise DraftError(f"Cannot write draft {str(self.path)!r}: {e}") from e
        logger.debug(f"Draft written to {self.path}")

    def read(self) -> str:
        """
        Read the draft back.

        Raises:
            DraftError: If the file can't be read.
        """
        try:
            return self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise DraftError(f"Cannot read draft {str(self.path)!r}: {e}") from e

    def remove(self) -> None:
        """
        Delete the draft. Removing an absent draft is not an error.

        Raises:
            DraftError: If the file exists but can't be deleted.
        """
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise DraftError(f"Cannot remove draft {str(self.path)!r}: {e}") from e
        logger.debug(f"Draft {self.path} removed")

    def __repr__(self) -> str:
        return f"ScratchDraft({str(self.path)!r})"


class DraftError(Exception):
    """Raised when the scratch draft can't be read, written, or removed."""
    pass
