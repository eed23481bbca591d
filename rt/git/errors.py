"""Typed git failures.

Every failure carries the repository name, the command and the captured
output so an operator can diagnose without re-running with more verbosity.
"""

from __future__ import annotations

from dataclasses import dataclass, field

__all__ = [
    "CannotCheckoutBranch",
    "CannotClone",
    "CannotCommit",
    "CannotCreateTag",
    "CannotPull",
    "GitCommandError",
    "GitFailure",
    "OutOfSync",
]


@dataclass(frozen=True, slots=True)
class GitCommandError:
    """A git command failed for a reason other than an expected-absent ref."""

    repository: str
    command: str
    returncode: int
    output: str

    def __str__(self) -> str:
        return f"{self.command} failed in {self.repository} (exit {self.returncode})"


@dataclass(frozen=True, slots=True)
class CannotClone:
    repository: str
    url: str
    output: str

    def __str__(self) -> str:
        return f"Unable to clone {self.url} into {self.repository}"


@dataclass(frozen=True, slots=True)
class CannotCheckoutBranch:
    repository: str
    branch: str
    base: str
    output: str

    def __str__(self) -> str:
        return f"Unable to create branch {self.branch} from {self.base} in {self.repository}"


@dataclass(frozen=True, slots=True)
class CannotCommit:
    repository: str
    files: tuple[str, ...]
    output: str

    def __str__(self) -> str:
        return f"Unable to commit {', '.join(self.files) or 'changes'} in {self.repository}"


@dataclass(frozen=True, slots=True)
class CannotCreateTag:
    repository: str
    tag: str
    output: str

    def __str__(self) -> str:
        return f"Unable to create tag {self.tag} in {self.repository}"


@dataclass(frozen=True, slots=True)
class CannotPull:
    """Pull failed or left unresolved merge conflicts in the index."""

    repository: str
    remote: str
    ref: str
    output: str
    conflicts: tuple[str, ...] = ()

    def __str__(self) -> str:
        if self.conflicts:
            return (
                f"Merge conflicts pulling {self.ref} from {self.remote} in {self.repository}: "
                + ", ".join(self.conflicts)
            )
        return f"Unable to pull {self.ref} from {self.remote} in {self.repository}"


@dataclass(frozen=True, slots=True)
class OutOfSync:
    """Remotes report different SHAs for the same ref.

    Attributes:
        shas: remote name -> SHA ("" when the remote lacks the ref).
    """

    repository: str
    ref: str
    shas: dict[str, str] = field(default_factory=lambda: {})

    def __str__(self) -> str:
        report = ", ".join(f"{remote}={sha or '-'}" for remote, sha in self.shas.items())
        return f"{self.ref} is out of sync across remotes in {self.repository} ({report})"


GitFailure = (
    GitCommandError
    | CannotClone
    | CannotCheckoutBranch
    | CannotCommit
    | CannotCreateTag
    | CannotPull
    | OutOfSync
)
