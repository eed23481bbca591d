"""Error codes for CLI exit status.

A simple enum of error codes that map to shell exit codes. The release
failure unions are translated into these by ``rt.output.errors.exit_code_for``.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable:
    - 0: Success (including "already tagged, nothing to do")
    - 1: User error (bad version string, bad branch name, bad config)
    - 2: Conflict (remotes out of sync, merge conflicts, missing versions)
    - 3: Git error (a git command failed)
    - 4: Network error (content API unreachable or rejected the request)
    - 5: I/O error (working copy or config file not readable)
    """

    OK = 0
    USER_ERROR = 1
    CONFLICT = 2
    GIT_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK

    @property
    def is_error(self) -> bool:
        return self != ErrorCode.OK
