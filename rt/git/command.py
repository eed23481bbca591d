"""Typed git command builder.

Each builder returns an immutable argument vector. Nothing is ever joined
into a shell string, so refs and messages with spaces or quotes reach git
untouched.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["GitCommand"]

_NETWORK_COMMANDS = frozenset({"clone", "fetch", "pull", "push", "ls-remote"})


@dataclass(frozen=True, slots=True)
class GitCommand:
    """A git invocation without the leading ``git``.

    Attributes:
        args: Arguments passed after ``git`` (e.g. ``("fetch", "--quiet", ...)``).
    """

    args: tuple[str, ...]

    @property
    def name(self) -> str:
        return self.args[0] if self.args else ""

    @property
    def network(self) -> bool:
        """True for commands that talk to a remote and get the longer timeout."""
        return self.name in _NETWORK_COMMANDS

    def __str__(self) -> str:
        return "git " + " ".join(self.args)

    # -- network ---------------------------------------------------------

    @classmethod
    def clone(
        cls,
        url: str,
        dest: str,
        *,
        origin: str,
        depth: int | None = None,
        branch: str | None = None,
    ) -> GitCommand:
        args = ["clone", "--quiet"]
        if depth is not None:
            args.append(f"--depth={depth}")
        if branch is not None:
            args.extend(["--branch", branch])
        args.extend(["--origin", origin, "--", url, dest])
        return cls(tuple(args))

    @classmethod
    def fetch(cls, remote: str, refspec: str, *, depth: int | None = None) -> GitCommand:
        args = ["fetch", "--quiet"]
        if depth is not None:
            args.append(f"--depth={depth}")
        args.extend([remote, refspec])
        return cls(tuple(args))

    @classmethod
    def pull(cls, remote: str, ref: str, *, depth: int | None = None) -> GitCommand:
        args = ["pull", "--quiet", "--no-rebase", "--no-edit"]
        if depth is not None:
            args.append(f"--depth={depth}")
        args.extend([remote, ref])
        return cls(tuple(args))

    @classmethod
    def push(cls, remote: str, ref: str) -> GitCommand:
        return cls(("push", remote, f"{ref}:{ref}"))

    @classmethod
    def ls_remote(cls, remote: str, ref: str) -> GitCommand:
        return cls(("ls-remote", remote, ref))

    # -- local -----------------------------------------------------------

    @classmethod
    def checkout(cls, branch: str) -> GitCommand:
        return cls(("checkout", "--quiet", branch))

    @classmethod
    def checkout_new(cls, branch: str, base: str) -> GitCommand:
        return cls(("checkout", "--quiet", "-b", branch, base))

    @classmethod
    def add(cls, paths: tuple[str, ...]) -> GitCommand:
        return cls(("add", "--", *paths))

    @classmethod
    def commit(
        cls,
        *,
        message: str | None = None,
        amend: bool = False,
        no_edit: bool = False,
        author: str | None = None,
    ) -> GitCommand:
        args = ["commit", "--quiet"]
        if message is not None:
            args.extend(["--message", message])
        if amend:
            args.append("--amend")
        if no_edit:
            args.append("--no-edit")
        if author is not None:
            args.extend(["--author", author])
        return cls(tuple(args))

    @classmethod
    def tag_annotated(cls, name: str, message: str) -> GitCommand:
        return cls(("tag", "--annotate", name, "--message", message))

    @classmethod
    def tag_list(cls, *, sort: str | None = None) -> GitCommand:
        args = ["tag", "--list"]
        if sort is not None:
            args.append(f"--sort={sort}")
        return cls(tuple(args))

    @classmethod
    def status_porcelain(cls, paths: tuple[str, ...] = ()) -> GitCommand:
        args = ["status", "--porcelain"]
        if paths:
            args.extend(["--", *paths])
        return cls(tuple(args))

    @classmethod
    def unmerged_files(cls) -> GitCommand:
        return cls(("ls-files", "-u"))

    @classmethod
    def remote_add(cls, name: str, url: str) -> GitCommand:
        return cls(("remote", "add", name, url))

    @classmethod
    def rev_parse(cls, ref: str) -> GitCommand:
        return cls(("rev-parse", "--verify", "--quiet", ref))

