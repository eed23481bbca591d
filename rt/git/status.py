"""Parsing of ``git status --porcelain`` and ``git ls-files -u`` output."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["StatusEntry", "parse_porcelain", "parse_unmerged"]

# XY codes git uses for unmerged paths
_CONFLICT_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """A single entry in git status.

    Attributes:
        xy: Two-character status code (e.g., "M ", " M", "??")
        path: File path
    """

    xy: str
    path: str

    @property
    def is_staged(self) -> bool:
        return self.xy != "??" and self.xy[0] != " "

    @property
    def is_unstaged(self) -> bool:
        return self.xy != "??" and self.xy[1] != " "

    @property
    def is_untracked(self) -> bool:
        return self.xy == "??"

    @property
    def is_conflicted(self) -> bool:
        return self.xy in _CONFLICT_CODES


def parse_porcelain(output: str) -> tuple[StatusEntry, ...]:
    """Parse ``git status --porcelain`` (v1) output."""
    entries: list[StatusEntry] = []
    for line in output.splitlines():
        if len(line) < 4:
            continue
        if line.startswith("?? "):
            entries.append(StatusEntry(xy="??", path=line[3:]))
            continue
        entries.append(StatusEntry(xy=line[:2], path=line[3:]))
    return tuple(entries)


def parse_unmerged(output: str) -> tuple[str, ...]:
    """Return the distinct paths listed by ``git ls-files -u``.

    Each line is ``<mode> <sha> <stage>\\t<path>``; a conflicted path appears
    once per stage.
    """
    paths: list[str] = []
    for line in output.splitlines():
        _, sep, path = line.partition("\t")
        if sep and path and path not in paths:
            paths.append(path)
    return tuple(paths)
