"""Release precondition failures and the union every release step can return."""

from __future__ import annotations

from dataclasses import dataclass

from rt.api.models import ApiError
from rt.git.errors import GitFailure

__all__ = [
    "InvalidBranchName",
    "InvalidVersion",
    "InvalidVariablesFile",
    "ReleaseFailure",
    "VersionFileMissing",
    "VersionNotFound",
]


@dataclass(frozen=True, slots=True)
class InvalidVersion:
    value: str

    def __str__(self) -> str:
        return f"Invalid version: {self.value!r}"


@dataclass(frozen=True, slots=True)
class InvalidBranchName:
    """An auto-deploy branch name without a leading ``<major>-<minor>``."""

    value: str

    def __str__(self) -> str:
        return f"Invalid auto-deploy branch name: {self.value!r}"


@dataclass(frozen=True, slots=True)
class VersionFileMissing:
    repository: str
    path: str

    def __str__(self) -> str:
        return f"Version file {self.path} missing in {self.repository}"


@dataclass(frozen=True, slots=True)
class VersionNotFound:
    """A lock file has no entry for a required dependency."""

    name: str

    def __str__(self) -> str:
        return f"Unable to find a version for gem {self.name}"


@dataclass(frozen=True, slots=True)
class InvalidVariablesFile:
    """A CI variables file that is not a YAML mapping with a ``variables`` table."""

    project: str
    path: str
    message: str

    def __str__(self) -> str:
        return f"Invalid variables file {self.path} in {self.project}: {self.message}"


ReleaseFailure = (
    GitFailure
    | ApiError
    | InvalidVersion
    | InvalidBranchName
    | InvalidVariablesFile
    | VersionFileMissing
    | VersionNotFound
)
