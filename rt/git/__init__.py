"""Git working copies with multiple remotes."""

from .command import GitCommand
from .errors import (
    CannotCheckoutBranch,
    CannotClone,
    CannotCommit,
    CannotCreateTag,
    CannotPull,
    GitCommandError,
    GitFailure,
    OutOfSync,
)
from .remote_repository import RemoteRepository, repository_name
from .status import StatusEntry, parse_porcelain, parse_unmerged

__all__ = [
    # command
    "GitCommand",
    # errors
    "CannotCheckoutBranch",
    "CannotClone",
    "CannotCommit",
    "CannotCreateTag",
    "CannotPull",
    "GitCommandError",
    "GitFailure",
    "OutOfSync",
    # repository
    "RemoteRepository",
    "repository_name",
    # status
    "StatusEntry",
    "parse_porcelain",
    "parse_unmerged",
]
