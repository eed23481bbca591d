"""Console output abstraction.

A protocol for console output with a Rich backend for production and a
capturing backend for tests. Services print through the protocol so they
never depend on a specific library.

Every line can carry run tags (``dry-run``, ``security``) and structured
``key=value`` fields:

    console.trace("Pushing", remote="dev", ref="9-1-stable")
    # [dry-run] Pushing remote=dev ref=9-1-stable
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

__all__ = [
    "ConsoleProtocol",
    "MockConsole",
    "OutputRecord",
    "RichConsole",
    "Style",
    "format_fields",
]


class Style(Enum):
    """Text styles for console output."""

    DEFAULT = auto()
    SUCCESS = auto()  # Green, positive message
    ERROR = auto()  # Red, error message
    FATAL = auto()  # Red, unrecoverable for one target
    WARNING = auto()  # Yellow, warning message
    INFO = auto()  # Cyan, informational
    DIM = auto()  # Dimmed (command traces)
    BOLD = auto()
    HEADER = auto()  # Section header

    def __str__(self) -> str:
        return self.name.lower()


def format_fields(fields: Mapping[str, object]) -> str:
    """Render structured fields as ``key=value`` pairs in insertion order."""
    parts: list[str] = []
    for key, value in fields.items():
        if value is None:
            continue
        text = str(value)
        if not text or any(ch.isspace() for ch in text):
            text = repr(text)
        parts.append(f"{key}={text}")
    return " ".join(parts)


def _compose(tags: tuple[str, ...], message: str, fields: Mapping[str, object]) -> str:
    prefix = "".join(f"[{t}] " for t in tags)
    rendered = format_fields(fields)
    return f"{prefix}{message} {rendered}".rstrip() if rendered else f"{prefix}{message}"


class ConsoleProtocol(Protocol):
    """Protocol for console output.

    Implementations can use Rich, plain text, or capture output for testing.
    """

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        """Print a message with optional styling."""
        ...

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def warning(self, message: str, **fields: object) -> None: ...

    def info(self, message: str, **fields: object) -> None: ...

    def header(self, message: str) -> None:
        """Print a section header."""
        ...

    def trace(self, message: str, **fields: object) -> None:
        """Print a dimmed progress line (git commands, API calls, dry-run intents)."""
        ...

    def fatal(self, message: str, **fields: object) -> None:
        """Report a failure that aborts one target but not the whole run."""
        ...

    def newline(self) -> None: ...


class RichConsole:
    """Console implementation using Rich library."""

    def __init__(self, tags: tuple[str, ...] = (), *, stderr: bool = False) -> None:
        # Import Rich lazily to avoid import-time dependency
        from rich.console import Console
        from rich.markup import escape

        self._console = Console(stderr=stderr, highlight=False)
        self._escape = escape
        self._tags = tags
        self._style_map = {
            Style.DEFAULT: "",
            Style.SUCCESS: "green",
            Style.ERROR: "red bold",
            Style.FATAL: "red bold",
            Style.WARNING: "yellow",
            Style.INFO: "cyan",
            Style.DIM: "dim",
            Style.BOLD: "bold",
            Style.HEADER: "blue bold",
        }

    def _line(self, message: str, fields: Mapping[str, object]) -> str:
        return self._escape(_compose(self._tags, message, fields))

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        rich_style = self._style_map.get(style, "")
        if rich_style:
            self._console.print(message, style=rich_style, markup=False)
        else:
            self._console.print(message, markup=False)

    def success(self, message: str) -> None:
        self._console.print(f"[green]OK[/green] {self._line(message, {})}")

    def error(self, message: str) -> None:
        self._console.print(f"[red bold]error:[/red bold] {self._line(message, {})}")

    def warning(self, message: str, **fields: object) -> None:
        self._console.print(f"[yellow]warning:[/yellow] {self._line(message, fields)}")

    def info(self, message: str, **fields: object) -> None:
        self._console.print(f"[cyan]info:[/cyan] {self._line(message, fields)}")

    def header(self, message: str) -> None:
        self._console.print(f"\n[blue bold]{self._escape(message)}[/blue bold]")

    def trace(self, message: str, **fields: object) -> None:
        self._console.print(f"[dim]{self._line(message, fields)}[/dim]")

    def fatal(self, message: str, **fields: object) -> None:
        self._console.print(f"[red bold]fatal:[/red bold] {self._line(message, fields)}")

    def newline(self) -> None:
        self._console.print()


@dataclass
class OutputRecord:
    """A single output record for MockConsole."""

    message: str
    style: Style
    fields: dict[str, object] = field(default_factory=lambda: {})


def _empty_outputs() -> list[OutputRecord]:
    return []


@dataclass
class MockConsole:
    """Console implementation that captures output for testing."""

    tags: tuple[str, ...] = ()
    outputs: list[OutputRecord] = field(default_factory=_empty_outputs)

    def _add(self, prefix: str, message: str, style: Style, fields: Mapping[str, object]) -> None:
        line = _compose(self.tags, message, fields)
        self.outputs.append(OutputRecord(f"{prefix}{line}", style, dict(fields)))

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self.outputs.append(OutputRecord(message, style))

    def success(self, message: str) -> None:
        self._add("OK ", message, Style.SUCCESS, {})

    def error(self, message: str) -> None:
        self._add("error: ", message, Style.ERROR, {})

    def warning(self, message: str, **fields: object) -> None:
        self._add("warning: ", message, Style.WARNING, fields)

    def info(self, message: str, **fields: object) -> None:
        self._add("info: ", message, Style.INFO, fields)

    def header(self, message: str) -> None:
        self.outputs.append(OutputRecord(message, Style.HEADER))

    def trace(self, message: str, **fields: object) -> None:
        self._add("", message, Style.DIM, fields)

    def fatal(self, message: str, **fields: object) -> None:
        self._add("fatal: ", message, Style.FATAL, fields)

    def newline(self) -> None:
        self.outputs.append(OutputRecord("", Style.DEFAULT))

    # Test helper methods

    def clear(self) -> None:
        self.outputs.clear()

    @property
    def messages(self) -> list[str]:
        return [o.message for o in self.outputs]

    @property
    def text(self) -> str:
        """All output as a single newline-separated string."""
        return "\n".join(self.messages)

    def has_error(self) -> bool:
        return any(o.style in (Style.ERROR, Style.FATAL) for o in self.outputs)

    def has_fatal(self) -> bool:
        return any(o.style == Style.FATAL for o in self.outputs)

    def has_warning(self) -> bool:
        return any(o.style == Style.WARNING for o in self.outputs)

    def find(self, substring: str) -> list[OutputRecord]:
        """Find all outputs containing a substring."""
        return [o for o in self.outputs if substring in o.message]

    def count(self, style: Style) -> int:
        return sum(1 for o in self.outputs if o.style == style)
