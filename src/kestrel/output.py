# =============================================================================
# Output Sink
# =============================================================================
# Everything a command wants to tell the user goes through OutputService:
#   - "plain" mode renders for humans with Rich (tables, header blocks)
#   - "json" mode prints {"response": ...} for scripts and other programs
#
# The mode also decides how `kestrel send` treats its input (see
# operations.send_message).
# =============================================================================

import json
import sys
from typing import Any, TextIO

from rich.console import Console
from rich.table import Table
from rich.text import Text

from kestrel.core import Flag, Message

OUTPUT_MODES = ("plain", "json")


class OutputService:
    """
    Presents command results.

    Usage:
        >>> output = OutputService("json")
        >>> output.present("Message 42 successfully deleted")
        {"response": "Message 42 successfully deleted"}

    Attributes:
        mode: "plain" or "json".
    """

    def __init__(self, mode: str = "plain", file: TextIO | None = None) -> None:
        if mode not in OUTPUT_MODES:
            raise ValueError(f"Unknown output mode {mode!r} (expected one of {OUTPUT_MODES})")
        self.mode = mode
        self._file = file or sys.stdout
        self.console = Console(file=self._file, highlight=False, soft_wrap=True)

    @property
    def is_json(self) -> bool:
        return self.mode == "json"

    def present(self, value: Any) -> None:
        """
        Show a value to the user.

        Accepts strings, a Message, a list of Messages (summaries), or any
        JSON-serializable value.
        """
        if self.is_json:
            self._file.write(json.dumps({"response": self._to_data(value)}, default=str) + "\n")
            self._file.flush()
            return

        if isinstance(value, Message):
            self._print_message(value)
        elif isinstance(value, list) and all(isinstance(v, Message) for v in value):
            self._print_summaries(value)
        elif isinstance(value, str):
            self.console.print(value, markup=False)
        else:
            self.console.print(self._to_data(value), markup=False)

    @staticmethod
    def _to_data(value: Any) -> Any:
        if isinstance(value, Message):
            return value.serialize()
        if isinstance(value, list):
            return [v.summary() if isinstance(v, Message) else v for v in value]
        return value

    def _print_summaries(self, messages: list[Message]) -> None:
        table = Table(box=None, header_style="bold", pad_edge=False)
        table.add_column("UID", justify="right", style="red")
        table.add_column("FLAGS", style="white")
        table.add_column("SUBJECT", style="green", overflow="ellipsis")
        table.add_column("FROM", style="blue", overflow="ellipsis")
        table.add_column("DATE", style="yellow")

        for message in messages:
            flags = "" if Flag.SEEN in message.flags else "✷"
            table.add_row(
                message.uid,
                flags,
                Text(message.subject),
                Text(message.sender),
                message.date.strftime("%Y-%m-%d %H:%M") if message.date else "",
            )

        self.console.print(table)

    def _print_message(self, message: Message) -> None:
        data = message.serialize()
        self.console.print(f"From: {data['from']}", markup=False)
        self.console.print(f"To: {', '.join(data['to'])}", markup=False)
        if data["cc"]:
            self.console.print(f"Cc: {', '.join(data['cc'])}", markup=False)
        self.console.print(f"Subject: {data['subject']}", markup=False)
        if data["date"]:
            self.console.print(f"Date: {data['date']}", markup=False)
        self.console.print()
        self.console.print(data["text"], markup=False)

        if message.attachments:
            self.console.print()
            for attachment in message.attachments:
                self.console.print(
                    f"[attachment] {attachment.filename} ({attachment.human_size})",
                    markup=False,
                )
