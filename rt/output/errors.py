"""Error presentation utilities.

Centralized failure formatting and exit code mapping for consistent UX.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rt.api.models import ApiError
from rt.core.config import ConfigError
from rt.core.errors import ErrorCode
from rt.git.errors import (
    CannotCheckoutBranch,
    CannotClone,
    CannotCommit,
    CannotCreateTag,
    CannotPull,
    GitCommandError,
    OutOfSync,
)
from rt.output.console import Style
from rt.release.errors import (
    InvalidBranchName,
    InvalidVariablesFile,
    InvalidVersion,
    ReleaseFailure,
    VersionFileMissing,
    VersionNotFound,
)

if TYPE_CHECKING:
    from rt.output.console import ConsoleProtocol

__all__ = ["exit_code_for", "print_failure"]


def _print_output(output: str, console: ConsoleProtocol) -> None:
    for line in output.splitlines():
        console.print(f"  {line}", Style.DIM)


def print_failure(failure: ReleaseFailure | ConfigError, console: ConsoleProtocol) -> None:
    """Print a release failure to console with appropriate formatting."""
    match failure:
        case InvalidVersion() | InvalidBranchName() | VersionNotFound():
            console.error(str(failure))
        case VersionFileMissing(repository=repository, path=path):
            console.error(str(failure))
            console.print(f"hint: check that {path} exists on the stable branch of {repository}", Style.DIM)
        case InvalidVariablesFile():
            console.error(str(failure))
        case OutOfSync(shas=shas):
            console.error(str(failure))
            for remote, sha in shas.items():
                console.print(f"  {remote}: {sha or '(missing)'}", Style.DIM)
            console.print("hint: push the missing commits so every remote agrees, then retry", Style.DIM)
        case CannotPull(conflicts=conflicts, output=output):
            console.error(str(failure))
            for path in conflicts:
                console.print(f"  conflict: {path}", Style.DIM)
            if not conflicts:
                _print_output(output, console)
        case GitCommandError(output=output) | CannotClone(output=output) | CannotCheckoutBranch(output=output):
            console.error(str(failure))
            _print_output(output, console)
        case CannotCommit(output=output) | CannotCreateTag(output=output):
            console.error(str(failure))
            _print_output(output, console)
        case ApiError(status=status):
            console.error(str(failure))
            if status in (401, 403):
                console.print("hint: check the API token environment variable", Style.DIM)
        case ConfigError(message=message, path=path):
            console.error(f"config: {message}" + (f" ({path})" if path else ""))


def exit_code_for(failure: ReleaseFailure | ConfigError) -> int:
    """Get exit code for a release failure."""
    match failure:
        case InvalidVersion() | InvalidBranchName() | ConfigError():
            return int(ErrorCode.USER_ERROR)
        case OutOfSync() | CannotPull() | CannotCheckoutBranch():
            return int(ErrorCode.CONFLICT)
        case VersionNotFound() | InvalidVariablesFile():
            return int(ErrorCode.CONFLICT)
        case VersionFileMissing():
            return int(ErrorCode.IO_ERROR)
        case GitCommandError() | CannotClone() | CannotCommit() | CannotCreateTag():
            return int(ErrorCode.GIT_ERROR)
        case ApiError():
            return int(ErrorCode.NETWORK_ERROR)
    # Fallback for exhaustiveness
    return int(ErrorCode.GIT_ERROR)
