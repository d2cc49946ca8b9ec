"""Console output abstraction.

Services and flows report progress through ``ConsoleProtocol`` so they do
not depend on Rich directly. ``RichConsole`` is the production backend;
``MockConsole`` captures output for tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

__all__ = [
    "Style",
    "ConsoleProtocol",
    "RichConsole",
    "MockConsole",
    "OutputRecord",
]


class Style(Enum):
    """Text styles for console output."""

    DEFAULT = auto()
    SUCCESS = auto()
    ERROR = auto()
    WARNING = auto()
    INFO = auto()
    DIM = auto()  # commands, hints
    HEADER = auto()  # stage headers

    def __str__(self) -> str:
        return self.name.lower()


class ConsoleProtocol(Protocol):
    """Styled console output used across the pipeline."""

    def print(self, message: str, style: Style = Style.DEFAULT) -> None: ...

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def header(self, message: str) -> None: ...


# Label and rich style of each prefixed message kind.
_PREFIXES: dict[Style, tuple[str, str]] = {
    Style.SUCCESS: ("OK", "green"),
    Style.ERROR: ("error:", "red bold"),
    Style.WARNING: ("warning:", "yellow"),
    Style.INFO: ("info:", "cyan"),
}

_RICH_STYLES: dict[Style, str] = {
    Style.DEFAULT: "",
    Style.SUCCESS: "green",
    Style.ERROR: "red bold",
    Style.WARNING: "yellow",
    Style.INFO: "cyan",
    Style.DIM: "dim",
    Style.HEADER: "blue bold",
}


class RichConsole:
    """Console implementation using Rich.

    Args:
        stderr: Write to stderr instead of stdout. Keeping diagnostics on
            stderr lets ``relflow candidate`` print only the candidate
            string on stdout.
    """

    def __init__(self, *, stderr: bool = False) -> None:
        from rich.console import Console

        self._console = Console(stderr=stderr, highlight=False)

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        # markup=False: versions, refs and command lines may contain brackets.
        self._console.print(message, style=_RICH_STYLES.get(style) or None, markup=False)

    def _prefixed(self, style: Style, message: str) -> None:
        label, rich_style = _PREFIXES[style]
        self._console.print(label, style=rich_style, end=" ", markup=False)
        self._console.print(message, markup=False)

    def success(self, message: str) -> None:
        self._prefixed(Style.SUCCESS, message)

    def error(self, message: str) -> None:
        self._prefixed(Style.ERROR, message)

    def warning(self, message: str) -> None:
        self._prefixed(Style.WARNING, message)

    def info(self, message: str) -> None:
        self._prefixed(Style.INFO, message)

    def header(self, message: str) -> None:
        self._console.print()
        self.print(message, Style.HEADER)


@dataclass
class OutputRecord:
    message: str
    style: Style


@dataclass
class MockConsole:
    """Captures output for tests, with the same prefixes as ``RichConsole``."""

    outputs: list[OutputRecord] = field(default_factory=list)

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self.outputs.append(OutputRecord(message, style))

    def _prefixed(self, style: Style, message: str) -> None:
        label, _ = _PREFIXES[style]
        self.outputs.append(OutputRecord(f"{label} {message}", style))

    def success(self, message: str) -> None:
        self._prefixed(Style.SUCCESS, message)

    def error(self, message: str) -> None:
        self._prefixed(Style.ERROR, message)

    def warning(self, message: str) -> None:
        self._prefixed(Style.WARNING, message)

    def info(self, message: str) -> None:
        self._prefixed(Style.INFO, message)

    def header(self, message: str) -> None:
        self.outputs.append(OutputRecord(message, Style.HEADER))

    # Test helpers

    @property
    def messages(self) -> list[str]:
        return [o.message for o in self.outputs]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    def has_error(self) -> bool:
        return self.count(Style.ERROR) > 0

    def has_warning(self) -> bool:
        return self.count(Style.WARNING) > 0

    def find(self, substring: str) -> list[OutputRecord]:
        return [o for o in self.outputs if substring in o.message]

    def count(self, style: Style) -> int:
        return sum(1 for o in self.outputs if o.style is style)
