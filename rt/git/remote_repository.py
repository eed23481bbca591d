"""Local working copy tracking several named remotes.

The first remote is canonical: it is cloned from and it is the reference
for consistency checks. The working copy is ephemeral. Any leftover
directory is removed on construction, the clone happens lazily on the first
git operation, and ``cleanup()`` discards it again.

Usage:
    repo = RemoteRepository.get(
        {"canonical": "git@gitlab.com:gitlab-org/gitaly.git",
         "dev": "git@dev.gitlab.org:gitlab/gitaly.git"},
        workdir=Path("/tmp"), ctx=ctx, console=console,
    )
    match repo.ensure_branch_exists("9-1-stable", base="master"):
        case Ok(_):
            ...
        case Err(error):
            print(error)
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from pathlib import Path

from rt.core.context import RunContext
from rt.core.result import Err, Ok, Result
from rt.output.console import ConsoleProtocol
from rt.platform.files import atomic_write_text, remove_tree
from rt.platform.process import ProcessError
from rt.platform.process import run as run_process

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
from .status import StatusEntry, parse_porcelain, parse_unmerged

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# stderr fragments git prints when a ref simply does not exist on the remote
_MISSING_REF_MARKERS = (
    "couldn't find remote ref",
    "could not find remote ref",
    "not our ref",
    "no such ref",
    "not found in upstream",  # "Remote branch x not found in upstream origin"
)

_NAME_RE = re.compile(r"([^/:]+?)(?:\.git)?/?$")

__all__ = ["RemoteRepository", "repository_name"]


def repository_name(url: str) -> str:
    """Derive a working-copy name from a clone URL (``.../gitaly.git`` -> ``gitaly``)."""
    match = _NAME_RE.search(url.strip())
    if match is None:
        raise ValueError(f"Cannot derive a repository name from {url!r}")
    return match.group(1)


def _is_missing_ref(error: ProcessError) -> bool:
    text = error.output.lower()
    return any(marker in text for marker in _MISSING_REF_MARKERS)


class RemoteRepository:
    """Git working copy with an ordered set of named remotes.

    Attributes:
        path: Working copy directory (``workdir/<name>``).
        remotes: Remote name -> clone URL, canonical first.
        name: Repository name used in diagnostics and the directory name.
    """

    def __init__(
        self,
        path: Path,
        remotes: Mapping[str, str],
        *,
        ctx: RunContext,
        console: ConsoleProtocol,
        depth: int | None = 1,
        branch: str | None = None,
    ) -> None:
        if not remotes:
            raise ValueError("RemoteRepository needs at least one remote")
        self.path = path
        self.name = path.name
        self.remotes: dict[str, str] = dict(remotes)
        self.depth = depth
        self.branch = branch
        self._ctx = ctx
        self._console = console
        self._cloned = False

        self.cleanup()

    @classmethod
    def get(
        cls,
        remotes: Mapping[str, str],
        name: str | None = None,
        *,
        workdir: Path,
        ctx: RunContext,
        console: ConsoleProtocol,
        depth: int | None = 1,
        branch: str | None = None,
    ) -> RemoteRepository:
        """Build a repository under ``workdir`` named after the canonical URL."""
        if not remotes:
            raise ValueError("RemoteRepository needs at least one remote")
        repo_name = name or repository_name(next(iter(remotes.values())))
        return cls(
            workdir / repo_name,
            remotes,
            ctx=ctx,
            console=console,
            depth=depth,
            branch=branch,
        )

    @property
    def canonical_remote(self) -> str:
        return next(iter(self.remotes))

    # -------------------------------------------------------------------------
    # Remote operations
    # -------------------------------------------------------------------------

    def fetch(
        self,
        ref: str,
        remote: str | None = None,
        depth: int | None = None,
    ) -> Result[bool, GitFailure]:
        """Shallow-fetch ``ref`` into a same-named local ref.

        Falls back to a plain fetch when the local ref cannot be updated in
        place (e.g. it is the checked-out branch). Glob refs such as
        ``refs/tags/*`` have no plain form: git exits non-zero without output
        when nothing matches, which counts as absent.

        Returns:
            Ok(True) when fetched, Ok(False) when the remote lacks the ref.
        """
        cloned = self._ensure_cloned()
        if isinstance(cloned, Err):
            return cloned

        remote = remote or self.canonical_remote
        depth = self.depth if depth is None else depth

        first_command = GitCommand.fetch(remote, f"{ref}:{ref}", depth=depth)
        first = self._run(first_command)
        if isinstance(first, Ok):
            return Ok(True)
        if _is_missing_ref(first.error):
            return Ok(False)
        if "*" in ref:
            if not first.error.output.strip():
                return Ok(False)
            return Err(self._command_error(first_command, first.error))

        second = self._run(GitCommand.fetch(remote, ref, depth=depth))
        match second:
            case Ok(_):
                return Ok(True)
            case Err(e) if _is_missing_ref(e):
                return Ok(False)
            case Err(e):
                return Err(self._command_error(GitCommand.fetch(remote, ref, depth=depth), e))

    def ensure_branch_exists(self, branch: str, base: str = "master") -> Result[None, GitFailure]:
        """Check out ``branch``, creating it from ``base`` when it does not exist."""
        fetched = self.fetch(branch)
        if isinstance(fetched, Err):
            return fetched

        if isinstance(self._run(GitCommand.checkout(branch)), Ok):
            return Ok(None)

        return self.checkout_new_branch(branch, base)

    def checkout_new_branch(self, branch: str, base: str = "master") -> Result[None, GitFailure]:
        """Fetch ``base`` and create ``branch`` from it.

        A failure after a successful base fetch is a real conflict and is not
        retried.
        """
        fetched = self.fetch(base)
        match fetched:
            case Err(_):
                return fetched
            case Ok(False):
                return Err(
                    CannotCheckoutBranch(
                        repository=self.name,
                        branch=branch,
                        base=base,
                        output=f"{base} does not exist on {self.canonical_remote}",
                    )
                )
            case Ok(True):
                pass

        created = self._run(GitCommand.checkout_new(branch, base))
        if isinstance(created, Err):
            return Err(
                CannotCheckoutBranch(
                    repository=self.name,
                    branch=branch,
                    base=base,
                    output=created.error.output,
                )
            )
        return Ok(None)

    def pull(
        self,
        ref: str,
        remote: str | None = None,
        depth: int | None = None,
    ) -> Result[bool, GitFailure]:
        """Pull ``ref`` from ``remote`` into the checked-out branch.

        Returns:
            Ok(True) when pulled, Ok(False) when the remote lacks the ref.
            Err(CannotPull) on failure or unresolved conflicts.
        """
        cloned = self._ensure_cloned()
        if isinstance(cloned, Err):
            return cloned

        remote = remote or self.canonical_remote
        depth = self.depth if depth is None else depth
        pulled = self._run(GitCommand.pull(remote, ref, depth=depth))

        conflicts = self.conflicts()
        if isinstance(conflicts, Err):
            return conflicts
        if conflicts.value:
            output = pulled.error.output if isinstance(pulled, Err) else ""
            return Err(
                CannotPull(
                    repository=self.name,
                    remote=remote,
                    ref=ref,
                    output=output,
                    conflicts=conflicts.value,
                )
            )

        match pulled:
            case Ok(_):
                return Ok(True)
            case Err(e) if _is_missing_ref(e):
                return Ok(False)
            case Err(e):
                return Err(CannotPull(repository=self.name, remote=remote, ref=ref, output=e.output))

    def pull_from_all_remotes(self, ref: str) -> Result[None, GitFailure]:
        """Pull ``ref`` from every remote in order, stopping at the first failure."""
        for remote in self.remotes:
            pulled = self.pull(ref, remote=remote)
            if isinstance(pulled, Err):
                return pulled
        return Ok(None)

    def verify_sync(self, branch: str) -> Result[None, GitFailure]:
        """Check that every remote reports the same SHA for ``branch``.

        Uses ``ls-remote`` so no content is fetched. With a single remote
        there is nothing to compare. A remote that cannot be listed is an
        error, not a mismatch.
        """
        if len(self.remotes) <= 1:
            return Ok(None)

        cloned = self._ensure_cloned()
        if isinstance(cloned, Err):
            return cloned

        shas: dict[str, str] = {}
        for remote in self.remotes:
            command = GitCommand.ls_remote(remote, f"refs/heads/{branch}")
            match self._run(command):
                case Ok(stdout):
                    shas[remote] = _first_sha(stdout)
                case Err(e):
                    return Err(self._command_error(command, e))

        if len(set(shas.values())) != 1:
            return Err(OutOfSync(repository=self.name, ref=branch, shas=shas))
        return Ok(None)

    def push(self, remote: str, ref: str) -> bool:
        """Push ``ref:ref`` to one remote.

        Failures are reported and returned as False so one bad remote does
        not stop the others. In dry-run mode nothing is pushed.
        """
        command = GitCommand.push(remote, ref)
        if self._ctx.dry_run:
            self._console.trace("Would push", repository=self.name, remote=remote, ref=ref)
            return True

        cloned = self._ensure_cloned()
        if isinstance(cloned, Err):
            self._console.warning(str(cloned.error), repository=self.name, remote=remote, ref=ref)
            return False

        result = self._run(command)
        if isinstance(result, Err):
            self._console.warning(
                f"Failed to push: {result.error.output}",
                repository=self.name,
                remote=remote,
                ref=ref,
            )
            return False
        return True

    def push_to_all_remotes(self, ref: str) -> dict[str, bool]:
        """Push ``ref`` to every remote; returns remote name -> pushed."""
        return {remote: self.push(remote, ref) for remote in self.remotes}

    # -------------------------------------------------------------------------
    # Local operations
    # -------------------------------------------------------------------------

    def write_file(self, file: str, content: str) -> Result[None, GitFailure]:
        cloned = self._ensure_cloned()
        if isinstance(cloned, Err):
            return cloned
        try:
            atomic_write_text(self.path / file, content)
        except OSError as e:
            return Err(
                GitCommandError(repository=self.name, command=f"write {file}", returncode=-1, output=str(e))
            )
        return Ok(None)

    def read_file(self, file: str) -> Result[str | None, GitFailure]:
        """Read a file from the working copy; Ok(None) when it does not exist."""
        cloned = self._ensure_cloned()
        if isinstance(cloned, Err):
            return cloned
        target = self.path / file
        try:
            return Ok(target.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return Ok(None)
        except OSError as e:
            return Err(
                GitCommandError(repository=self.name, command=f"read {file}", returncode=-1, output=str(e))
            )

    def commit(
        self,
        files: Iterable[str],
        message: str | None = None,
        *,
        amend: bool = False,
        no_edit: bool = False,
        author: str | None = None,
    ) -> Result[None, GitFailure]:
        """Stage ``files`` and commit them."""
        cloned = self._ensure_cloned()
        if isinstance(cloned, Err):
            return cloned

        paths = tuple(files)
        if paths:
            added = self._run(GitCommand.add(paths))
            if isinstance(added, Err):
                return Err(CannotCommit(repository=self.name, files=paths, output=added.error.output))

        committed = self._run(GitCommand.commit(message=message, amend=amend, no_edit=no_edit, author=author))
        if isinstance(committed, Err):
            return Err(CannotCommit(repository=self.name, files=paths, output=committed.error.output))
        return Ok(None)

    def create_tag(self, name: str, message: str | None = None) -> Result[None, GitFailure]:
        """Create an annotated tag on HEAD."""
        cloned = self._ensure_cloned()
        if isinstance(cloned, Err):
            return cloned

        created = self._run(GitCommand.tag_annotated(name, message or f"Version {name}"))
        if isinstance(created, Err):
            return Err(CannotCreateTag(repository=self.name, tag=name, output=created.error.output))
        return Ok(None)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def tags(self, sort: str | None = None) -> Result[list[str], GitFailure]:
        """Fetch tags from the canonical remote and list them."""
        fetched = self.fetch("refs/tags/*")
        if isinstance(fetched, Err):
            return fetched

        command = GitCommand.tag_list(sort=sort)
        match self._run(command):
            case Ok(stdout):
                return Ok([line.strip() for line in stdout.splitlines() if line.strip()])
            case Err(e):
                return Err(self._command_error(command, e))

    def status_entries(self, paths: Iterable[str] = ()) -> Result[tuple[StatusEntry, ...], GitFailure]:
        cloned = self._ensure_cloned()
        if isinstance(cloned, Err):
            return cloned

        command = GitCommand.status_porcelain(tuple(paths))
        match self._run(command):
            case Ok(stdout):
                return Ok(parse_porcelain(stdout))
            case Err(e):
                return Err(self._command_error(command, e))

    def changes(self, paths: Iterable[str] = ()) -> Result[bool, GitFailure]:
        """True when the working tree (optionally limited to ``paths``) has changes."""
        return self.status_entries(paths).map(bool)

    def conflicts(self) -> Result[tuple[str, ...], GitFailure]:
        """Paths with unresolved merge conflicts in the index."""
        command = GitCommand.unmerged_files()
        match self._run(command):
            case Ok(stdout):
                return Ok(parse_unmerged(stdout))
            case Err(e):
                return Err(self._command_error(command, e))

    def head(self) -> Result[str, GitFailure]:
        cloned = self._ensure_cloned()
        if isinstance(cloned, Err):
            return cloned

        command = GitCommand.rev_parse("HEAD")
        match self._run(command):
            case Ok(stdout):
                return Ok(stdout.strip())
            case Err(e):
                return Err(self._command_error(command, e))

    def sha_of_tag(self, tag: str) -> Result[str | None, GitFailure]:
        """Commit SHA a local tag points at; Ok(None) when the tag does not exist."""
        cloned = self._ensure_cloned()
        if isinstance(cloned, Err):
            return cloned

        match self._run(GitCommand.rev_parse(f"refs/tags/{tag}^{{commit}}")):
            case Ok(stdout):
                return Ok(stdout.strip() or None)
            case Err(_):
                return Ok(None)

    def cleanup(self) -> None:
        """Discard the working copy."""
        if remove_tree(self.path):
            self._console.trace("Removed working copy", repository=self.name, path=self.path)
        self._cloned = False

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ensure_cloned(self) -> Result[None, GitFailure]:
        if self._cloned:
            return Ok(None)

        canonical = self.canonical_remote
        url = self.remotes[canonical]
        self.path.parent.mkdir(parents=True, exist_ok=True)

        command = GitCommand.clone(url, str(self.path), origin=canonical, depth=self.depth, branch=self.branch)
        self._console.trace(str(command), repository=self.name)
        cloned = run_process(["git", *command.args], cwd=self.path.parent, timeout=_GIT_NETWORK_TIMEOUT_SECONDS)
        if isinstance(cloned, Err):
            return Err(CannotClone(repository=self.name, url=url, output=cloned.error.output))

        for remote, remote_url in self.remotes.items():
            if remote == canonical:
                continue
            added = self._run(GitCommand.remote_add(remote, remote_url))
            if isinstance(added, Err):
                return Err(CannotClone(repository=self.name, url=remote_url, output=added.error.output))

        self._cloned = True
        return Ok(None)

    def _run(self, command: GitCommand) -> Result[str, ProcessError]:
        """Run a git command in the working copy."""
        timeout = _GIT_NETWORK_TIMEOUT_SECONDS if command.network else _GIT_TIMEOUT_SECONDS
        self._console.trace(str(command), repository=self.name)
        return run_process(["git", "-C", str(self.path), *command.args], cwd=self.path, timeout=timeout)

    def _command_error(self, command: GitCommand, error: ProcessError) -> GitCommandError:
        return GitCommandError(
            repository=self.name,
            command=str(command),
            returncode=error.returncode,
            output=error.output,
        )


def _first_sha(ls_remote_output: str) -> str:
    """SHA from the first ``<sha>\\t<ref>`` line; empty when the ref is absent."""
    for line in ls_remote_output.splitlines():
        sha, _, _ = line.partition("\t")
        if sha.strip():
            return sha.strip()
    return ""
