"""In-memory content API for tests.

Models projects as branches of snapshot commits plus tags, with atomic
multi-file commits and failure injection.

Usage:
    api = MockContentApi()
    api.add_branch("gitlab-org/omnibus-gitlab", "12-1-auto-deploy-20190701",
                   files={"GITALY_SERVER_VERSION": "1.1.1\\n"})
    api.fail_after_actions = 1  # next create_commit aborts after one action
"""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from rt.core.result import Err, Ok, Result

from .models import ApiError, Branch, Commit, CommitRef, FileAction, Tag

__all__ = ["MockContentApi"]


@dataclass
class _StoredCommit:
    commit: Commit
    parent: str | None
    files: dict[str, str]


@dataclass
class _Project:
    commits: dict[str, _StoredCommit] = field(default_factory=lambda: {})
    branches: dict[str, str] = field(default_factory=lambda: {})
    tags: dict[str, Tag] = field(default_factory=lambda: {})


class _Clock:
    """Deterministic clock: one minute per tick."""

    def __init__(self, start: datetime) -> None:
        self._now = start

    def __call__(self) -> datetime:
        self._now += timedelta(minutes=1)
        return self._now


class MockContentApi:
    """Thread-safe in-memory implementation of ``ContentApi``.

    Attributes:
        calls: (method, project, detail) for every call, in order.
        fail_after_actions: When set, the next ``create_commit`` fails after
            staging this many actions and nothing is persisted.
    """

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._projects: dict[str, _Project] = {}
        self._failures: dict[str, list[ApiError]] = {}
        self._lock = threading.Lock()
        self._clock = clock or _Clock(datetime(2019, 7, 1, 12, 0, tzinfo=UTC))
        self._counter = 0
        self.calls: list[tuple[str, str, str]] = []
        self.fail_after_actions: int | None = None

    # -- setup helpers ---------------------------------------------------

    def add_branch(
        self,
        project: str,
        branch: str,
        files: Mapping[str, str] | None = None,
        *,
        created_at: datetime | None = None,
        message: str = "Initial commit",
    ) -> Commit:
        """Create (or advance) a branch with a commit holding ``files``."""
        with self._lock:
            state = self._projects.setdefault(project, _Project())
            parent = state.branches.get(branch)
            base = dict(state.commits[parent].files) if parent else {}
            base.update(files or {})
            stored = self._store(state, parent, base, message, created_at)
            state.branches[branch] = stored.commit.id
            return stored.commit

    def add_tag(self, project: str, name: str, ref: str, message: str = "") -> Tag:
        with self._lock:
            state = self._projects.setdefault(project, _Project())
            sha = self._resolve(state, ref)
            if sha is None:
                raise KeyError(f"{project}: unknown ref {ref}")
            tag = Tag(name=name, target=sha, message=message)
            state.tags[name] = tag
            return tag

    def fail_next(self, method: str, error: ApiError, times: int = 1) -> None:
        """Script the next ``times`` calls of ``method`` to fail with ``error``."""
        self._failures.setdefault(method, []).extend([error] * times)

    def branch_head(self, project: str, branch: str) -> Commit:
        state = self._projects[project]
        return state.commits[state.branches[branch]].commit

    def files_at(self, project: str, ref: str) -> dict[str, str]:
        state = self._projects[project]
        sha = self._resolve(state, ref)
        if sha is None:
            raise KeyError(f"{project}: unknown ref {ref}")
        return dict(state.commits[sha].files)

    def commit_count(self, project: str) -> int:
        return len(self._projects[project].commits)

    def tags(self, project: str) -> dict[str, Tag]:
        return dict(self._projects.get(project, _Project()).tags)

    # -- ContentApi ------------------------------------------------------

    def read_file(self, project: str, path: str, ref: str) -> Result[str, ApiError]:
        with self._lock:
            self.calls.append(("read_file", project, f"{ref}:{path}"))
            failure = self._scripted("read_file")
            if failure is not None:
                return Err(failure)
            state = self._projects.get(project)
            sha = self._resolve(state, ref) if state else None
            if state is None or sha is None:
                return Err(self._not_found("GET", project, f"ref {ref}"))
            content = state.commits[sha].files.get(path.lstrip("/"))
            if content is None:
                return Err(self._not_found("GET", project, f"file {path}"))
            return Ok(content)

    def create_commit(
        self,
        project: str,
        branch: str,
        message: str,
        actions: Sequence[FileAction],
    ) -> Result[Commit, ApiError]:
        with self._lock:
            self.calls.append(("create_commit", project, branch))
            failure = self._scripted("create_commit")
            if failure is not None:
                return Err(failure)
            state = self._projects.get(project)
            if state is None or branch not in state.branches:
                return Err(self._not_found("POST", project, f"branch {branch}"))

            parent = state.branches[branch]
            staged = dict(state.commits[parent].files)
            fail_after = self.fail_after_actions
            for index, action in enumerate(actions):
                if fail_after is not None and index >= fail_after:
                    self.fail_after_actions = None
                    return Err(
                        ApiError(method="POST", url=f"mock://{project}/commits", status=500, message="simulated failure")
                    )
                path = action.file_path.lstrip("/")
                exists = path in staged
                if action.action == "create" and exists:
                    return Err(self._bad_request(project, f"A file with this name already exists: {path}"))
                if action.action == "update" and not exists:
                    return Err(self._bad_request(project, f"A file with this name doesn't exist: {path}"))
                staged[path] = action.content

            stored = self._store(state, parent, staged, message, None)
            state.branches[branch] = stored.commit.id
            return Ok(stored.commit)

    def create_tag(self, project: str, name: str, target: str, message: str) -> Result[Tag, ApiError]:
        with self._lock:
            self.calls.append(("create_tag", project, name))
            failure = self._scripted("create_tag")
            if failure is not None:
                return Err(failure)
            state = self._projects.get(project)
            if state is None:
                return Err(self._not_found("POST", project, "project"))
            if name in state.tags:
                return Err(self._bad_request(project, f"Tag {name} already exists"))
            sha = self._resolve(state, target)
            if sha is None:
                return Err(self._bad_request(project, f"Target {target} is invalid"))
            tag = Tag(name=name, target=sha, message=message)
            state.tags[name] = tag
            return Ok(tag)

    def create_branch(self, project: str, branch: str, ref: str) -> Result[Branch, ApiError]:
        with self._lock:
            self.calls.append(("create_branch", project, f"{branch}:{ref}"))
            failure = self._scripted("create_branch")
            if failure is not None:
                return Err(failure)
            state = self._projects.get(project)
            if state is None:
                return Err(self._not_found("POST", project, "project"))
            if branch in state.branches:
                return Err(self._bad_request(project, f"Branch {branch} already exists"))
            sha = self._resolve(state, ref)
            if sha is None:
                return Err(self._bad_request(project, "Invalid reference name"))
            state.branches[branch] = sha
            return Ok(Branch(name=branch, commit=state.commits[sha].commit))

    def get_tag(self, project: str, name: str) -> Result[Tag | None, ApiError]:
        with self._lock:
            self.calls.append(("get_tag", project, name))
            failure = self._scripted("get_tag")
            if failure is not None:
                return Err(failure)
            state = self._projects.get(project)
            return Ok(state.tags.get(name) if state else None)

    def get_commit(self, project: str, ref: str) -> Result[Commit, ApiError]:
        with self._lock:
            self.calls.append(("get_commit", project, ref))
            failure = self._scripted("get_commit")
            if failure is not None:
                return Err(failure)
            state = self._projects.get(project)
            sha = self._resolve(state, ref) if state else None
            if state is None or sha is None:
                return Err(self._not_found("GET", project, f"commit {ref}"))
            return Ok(state.commits[sha].commit)

    def list_refs_for_commit(self, project: str, sha: str) -> Result[list[CommitRef], ApiError]:
        with self._lock:
            self.calls.append(("list_refs_for_commit", project, sha))
            failure = self._scripted("list_refs_for_commit")
            if failure is not None:
                return Err(failure)
            state = self._projects.get(project)
            if state is None or sha not in state.commits:
                return Err(self._not_found("GET", project, f"commit {sha}"))

            refs: list[CommitRef] = []
            for branch, head in state.branches.items():
                if sha in self._ancestry(state, head):
                    refs.append(CommitRef(type="branch", name=branch))
            for tag in state.tags.values():
                if sha in self._ancestry(state, tag.target):
                    refs.append(CommitRef(type="tag", name=tag.name))
            return Ok(refs)

    # -- internals -------------------------------------------------------

    def _store(
        self,
        state: _Project,
        parent: str | None,
        files: dict[str, str],
        message: str,
        created_at: datetime | None,
    ) -> _StoredCommit:
        self._counter += 1
        digest = hashlib.sha1(f"{parent}:{message}:{self._counter}".encode()).hexdigest()
        commit = Commit(id=digest, created_at=created_at or self._clock(), message=message)
        stored = _StoredCommit(commit=commit, parent=parent, files=files)
        state.commits[digest] = stored
        return stored

    def _resolve(self, state: _Project | None, ref: str) -> str | None:
        if state is None:
            return None
        if ref in state.branches:
            return state.branches[ref]
        if ref in state.tags:
            return state.tags[ref].target
        if ref in state.commits:
            return ref
        # abbreviated SHA, unique prefix only
        matches = [sha for sha in state.commits if len(ref) >= 7 and sha.startswith(ref)]
        if len(matches) == 1:
            return matches[0]
        return None

    def _ancestry(self, state: _Project, sha: str | None) -> set[str]:
        seen: set[str] = set()
        while sha is not None and sha not in seen:
            seen.add(sha)
            stored = state.commits.get(sha)
            sha = stored.parent if stored else None
        return seen

    def _scripted(self, method: str) -> ApiError | None:
        queue = self._failures.get(method)
        if queue:
            return queue.pop(0)
        return None

    def _not_found(self, method: str, project: str, what: str) -> ApiError:
        return ApiError(method=method, url=f"mock://{project}", status=404, message=f"404 {what} Not Found")

    def _bad_request(self, project: str, message: str) -> ApiError:
        return ApiError(method="POST", url=f"mock://{project}", status=400, message=message)
