"""Release state machine shared by every release kind.

States run in strict order, each a precondition for the next:

    PREPARING -> BEFORE_HOOK -> TAG_CHECK -> BUMPING_VERSIONS -> TAGGING
              -> AFTER_HOOK -> CLEANUP

and end in COMPLETED, SKIPPED_TAG_EXISTS or FAILED_FATAL. The working copy
is discarded on every path. A fatal error aborts the run for the repository;
re-running is safe because an existing tag short-circuits at TAG_CHECK.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rt.core.context import RunContext
from rt.core.result import Err, Ok, Result
from rt.git.remote_repository import RemoteRepository
from rt.output.console import ConsoleProtocol

from .errors import ReleaseFailure, VersionFileMissing
from .kinds import ChartRelease, ComponentRelease, ReleaseKind, StandardRelease, chart_app_version, rewrite_chart
from .metadata import ReleaseMetadata
from .projects import Project
from .version import Version, parse_version

__all__ = [
    "ReleaseOutcome",
    "ReleaseState",
    "ReleaseStateMachine",
    "RepositoryFactory",
]

RepositoryFactory = Callable[[Project], RemoteRepository]

RELEASE_CLONE_DEPTH = 100


class ReleaseState(Enum):
    PREPARING = "preparing"
    BEFORE_HOOK = "before_hook"
    TAG_CHECK = "tag_check"
    BUMPING_VERSIONS = "bumping_versions"
    TAGGING = "tagging"
    AFTER_HOOK = "after_hook"
    CLEANUP = "cleanup"
    COMPLETED = "completed"
    SKIPPED_TAG_EXISTS = "skipped_tag_exists"
    FAILED_FATAL = "failed_fatal"

    @property
    def terminal(self) -> bool:
        return self in (ReleaseState.COMPLETED, ReleaseState.SKIPPED_TAG_EXISTS, ReleaseState.FAILED_FATAL)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ReleaseOutcome:
    """Result of one repository's release.

    Attributes:
        tagged: False when the tag already existed or tagging was skipped for
            a pre-release application version.
        pushes: ref -> remote -> pushed.
        downstream: Outcomes of dependent releases run in the after hook;
            failed ones are reported on the console and omitted.
    """

    name: str
    version: str
    tag: str
    state: ReleaseState
    tagged: bool
    sha: str | None = None
    pushes: dict[str, dict[str, bool]] = field(default_factory=lambda: {})
    downstream: tuple[ReleaseOutcome, ...] = ()


def _default_factory(
    workdir: Path,
    ctx: RunContext,
    console: ConsoleProtocol,
) -> RepositoryFactory:
    def make(project: Project) -> RemoteRepository:
        return RemoteRepository.get(
            project.active_remotes(ctx),
            workdir=workdir,
            ctx=ctx,
            console=console,
            depth=RELEASE_CLONE_DEPTH,
        )

    return make


class ReleaseStateMachine:
    """Release one repository for one version.

    Usage:
        machine = ReleaseStateMachine(gitaly_release(), version, ctx=ctx,
                                      console=console, metadata=metadata,
                                      workdir=Path("/tmp"))
        match machine.execute():
            case Ok(outcome):
                print(outcome.state, outcome.tag)
            case Err(error):
                print_failure(error, console)
    """

    def __init__(
        self,
        kind: ReleaseKind,
        version: Version,
        *,
        ctx: RunContext,
        console: ConsoleProtocol,
        metadata: ReleaseMetadata,
        workdir: Path,
        repository_factory: RepositoryFactory | None = None,
    ) -> None:
        self.kind = kind
        self.version = version
        self.history: list[ReleaseState] = []
        self._ctx = ctx
        self._console = console
        self._metadata = metadata
        self._workdir = workdir
        self._factory = repository_factory or _default_factory(workdir, ctx, console)
        self._repository: RemoteRepository | None = None
        self._pushes: dict[str, dict[str, bool]] = {}
        self._tagged = False
        self._sha: str | None = None
        self._downstream: list[ReleaseOutcome] = []

    # -------------------------------------------------------------------------
    # Derived names
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.kind.name

    @property
    def tag(self) -> str:
        return self.version.tag

    @property
    def stable_branch(self) -> str:
        return self.version.stable_branch

    @property
    def default_branch(self) -> str:
        return self.kind.project.default_branch

    @property
    def state(self) -> ReleaseState | None:
        return self.history[-1] if self.history else None

    @property
    def repository(self) -> RemoteRepository:
        if self._repository is None:
            self._repository = self._factory(self.kind.project)
        return self._repository

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    def execute(self) -> Result[ReleaseOutcome, ReleaseFailure]:
        self._console.header(f"Releasing {self.name} {self.version}")
        try:
            result = self._run()
        finally:
            self._enter(ReleaseState.CLEANUP)
            if self._repository is not None:
                self._repository.cleanup()

        match result:
            case Err(error):
                self._enter(ReleaseState.FAILED_FATAL)
                self._console.fatal("Release failed", release=self.name, version=self.version, error=str(error))
                return Err(error)
            case Ok(terminal):
                self._enter(terminal)
                return Ok(
                    ReleaseOutcome(
                        name=self.name,
                        version=str(self.version),
                        tag=self.tag,
                        state=terminal,
                        tagged=self._tagged,
                        sha=self._sha,
                        pushes=dict(self._pushes),
                        downstream=tuple(self._downstream),
                    )
                )

    def _run(self) -> Result[ReleaseState, ReleaseFailure]:
        self._enter(ReleaseState.PREPARING)
        prepared = self._prepare()
        if isinstance(prepared, Err):
            return prepared

        self._enter(ReleaseState.BEFORE_HOOK)
        hooked = self._before_hook()
        if isinstance(hooked, Err):
            return hooked

        self._enter(ReleaseState.TAG_CHECK)
        tags = self.repository.tags()
        if isinstance(tags, Err):
            return tags
        if self.tag in tags.value:
            self._console.warning("Tag already exists, skipping", name=self.tag)
            return Ok(ReleaseState.SKIPPED_TAG_EXISTS)

        ensured = self.repository.ensure_branch_exists(self.stable_branch, base=self.default_branch)
        if isinstance(ensured, Err):
            return ensured
        synced = self.repository.verify_sync(self.stable_branch)
        if isinstance(synced, Err):
            return synced

        self._enter(ReleaseState.BUMPING_VERSIONS)
        bumped = self._bump_versions()
        if isinstance(bumped, Err):
            return bumped

        self._enter(ReleaseState.TAGGING)
        tagged = self._tag()
        if isinstance(tagged, Err):
            return tagged

        self._enter(ReleaseState.AFTER_HOOK)
        after = self._after_hook()
        if isinstance(after, Err):
            return after

        return Ok(ReleaseState.COMPLETED)

    def _enter(self, state: ReleaseState) -> None:
        self.history.append(state)
        self._console.trace("Release state", release=self.name, state=state)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _prepare(self) -> Result[None, ReleaseFailure]:
        self._console.info("Preparing repository", release=self.name)
        repo = self.repository

        pulled = repo.pull_from_all_remotes(self.default_branch)
        if isinstance(pulled, Err):
            return pulled
        ensured = repo.ensure_branch_exists(self.stable_branch, base=self.default_branch)
        if isinstance(ensured, Err):
            return ensured
        return repo.pull_from_all_remotes(self.stable_branch)

    def _before_hook(self) -> Result[None, ReleaseFailure]:
        match self.kind:
            case ChartRelease():
                return self.repository.ensure_branch_exists(self.stable_branch, base=self.default_branch)
            case StandardRelease() | ComponentRelease():
                return Ok(None)

    def _bump_versions(self) -> Result[None, ReleaseFailure]:
        match self.kind:
            case StandardRelease(version_file=version_file):
                return self._bump_file(version_file, f"{self.version}\n").map(lambda _: None)
            case ComponentRelease(version_file=version_file, extra_files=extra_files):
                bumped = self._bump_file(version_file, f"{self.version}\n")
                if isinstance(bumped, Err):
                    return bumped
                committed = bumped.value
                for extra in extra_files:
                    extra_result = self._bump_file(extra.path, extra.render(self.version), amend=committed)
                    if isinstance(extra_result, Err):
                        return extra_result
                    committed = committed or extra_result.value
                return Ok(None)
            case ChartRelease() as chart:
                return self._bump_chart(chart).map(lambda _: None)

    def _bump_file(self, path: str, content: str, *, amend: bool = False) -> Result[bool, ReleaseFailure]:
        """Write ``content`` to ``path`` and commit it unless it is already there.

        Returns Ok(True) when a commit was made. With ``amend`` the change is
        folded into the previous commit.
        """
        repo = self.repository
        current = repo.read_file(path)
        if isinstance(current, Err):
            return current
        if current.value is None:
            return Err(VersionFileMissing(repository=repo.name, path=path))
        if current.value.rstrip("\n") == content.rstrip("\n"):
            self._console.trace("Version file already up to date", file=path, version=self.version)
            return Ok(False)

        self._console.info("Bumping version", file_name=path, version=self.version)
        written = repo.write_file(path, content)
        if isinstance(written, Err):
            return written

        if amend:
            committed = repo.commit([path], amend=True, no_edit=True)
        else:
            committed = repo.commit([path], message=f"Update {path} to {self.version}")
        if isinstance(committed, Err):
            return committed
        return Ok(True)

    def _chart_app_version(self, kind: ChartRelease) -> Result[Version | None, ReleaseFailure]:
        if kind.app_version is not None:
            return Ok(kind.app_version)
        content = self.repository.read_file(kind.chart_file)
        if isinstance(content, Err):
            return content
        raw = chart_app_version(content.value or "")
        if raw is None:
            return Ok(None)
        parsed = parse_version(raw)
        return Ok(parsed.value if isinstance(parsed, Ok) else None)

    def _bump_chart(self, kind: ChartRelease) -> Result[bool, ReleaseFailure]:
        repo = self.repository
        current = repo.read_file(kind.chart_file)
        if isinstance(current, Err):
            return current
        if current.value is None:
            return Err(VersionFileMissing(repository=repo.name, path=kind.chart_file))

        updated = rewrite_chart(current.value, self.version, kind.app_version)
        if updated == current.value:
            self._console.trace("Chart already up to date", file=kind.chart_file, version=self.version)
            return Ok(False)

        message = [f"Update Chart Version to {self.version}"]
        if kind.app_version is not None:
            message.append(f"Update Gitlab Version to {kind.app_version}")
        self._console.info("Update Chart version", chart_version=self.version, app_version=kind.app_version)

        written = repo.write_file(kind.chart_file, updated)
        if isinstance(written, Err):
            return written
        committed = repo.commit([kind.chart_file], message="\n".join(message))
        if isinstance(committed, Err):
            return committed
        return Ok(True)

    def _push(self, ref: str) -> None:
        self._console.info("Pushing ref to remotes", name=ref, remotes=",".join(self.repository.remotes))
        self._pushes[ref] = self.repository.push_to_all_remotes(ref)

    def _tag(self) -> Result[None, ReleaseFailure]:
        self._push(self.stable_branch)
        self._push(self.default_branch)

        message: str | None = None
        match self.kind:
            case ChartRelease() as chart:
                app_version = self._chart_app_version(chart)
                if isinstance(app_version, Err):
                    return app_version
                if chart.skip_tag_for_prerelease and app_version.value is not None and app_version.value.is_rc:
                    self._console.warning("Not tagging a chart for a release candidate", app_version=app_version.value)
                    return Ok(None)
                if app_version.value is not None:
                    message = f"Version {self.tag} - contains GitLab EE {app_version.value}"
            case StandardRelease() | ComponentRelease():
                pass

        self._console.info("Creating tag", name=self.tag)
        created = self.repository.create_tag(self.tag, message)
        if isinstance(created, Err):
            return created
        self._push(self.tag)

        sha = self.repository.sha_of_tag(self.tag)
        if isinstance(sha, Err):
            return sha
        self._sha = sha.value
        self._tagged = True
        self._metadata.add_release(self.name, self.version.to_patch(), sha=sha.value, ref=self.tag, tag=True)
        return Ok(None)

    def _after_hook(self) -> Result[None, ReleaseFailure]:
        match self.kind:
            case ChartRelease(update_default_branch=True) as chart:
                updated = self._update_chart_default_branch(chart)
                if isinstance(updated, Err):
                    return updated
            case _:
                pass

        for downstream in self.kind.downstream:
            self._release_downstream(downstream)
        return Ok(None)

    def _update_chart_default_branch(self, kind: ChartRelease) -> Result[None, ReleaseFailure]:
        app_version = self._chart_app_version(kind)
        if isinstance(app_version, Err):
            return app_version
        if app_version.value is None or app_version.value.is_rc:
            return Ok(None)

        repo = self.repository
        ensured = repo.ensure_branch_exists(self.default_branch)
        if isinstance(ensured, Err):
            return ensured
        pulled = repo.pull_from_all_remotes(self.default_branch)
        if isinstance(pulled, Err):
            return pulled
        bumped = self._bump_chart(kind)
        if isinstance(bumped, Err):
            return bumped
        self._push(self.default_branch)
        return Ok(None)

    def _release_downstream(self, kind: ReleaseKind) -> None:
        machine = ReleaseStateMachine(
            kind,
            self.version,
            ctx=self._ctx,
            console=self._console,
            metadata=self._metadata,
            workdir=self._workdir,
            repository_factory=self._factory,
        )
        match machine.execute():
            case Ok(outcome):
                self._downstream.append(outcome)
            case Err(error):
                self._console.fatal(
                    "Downstream release failed",
                    release=kind.name,
                    upstream=self.name,
                    version=self.version,
                    error=str(error),
                )
