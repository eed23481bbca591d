"""Auto-deploy tagging.

An auto-deploy "release" is a snapshot of the component versions on an
auto-deploy branch. Its tag name is derived from the branch's major/minor,
the creation time of the commit being tagged and the short SHAs of the
source commits, so the same commit always yields the same name:

    12.1.201907011200+aaaaaaaaaaa.bbbbbbbbbbb
    ^^^^ ^^^^^^^^^^^^ ^^^^^^^^^^^ ^^^^^^^^^^^
    branch  commit     application packager
            time       commit      branch head

The primary repository is tagged first; each dependent repository then gets
the same tag name on its reference branch. A dependent failure is reported
and does not undo the primary tag.

Before any of that, the auto-deploy branch itself is cut in the application
and packaging repositories from per-project refs (see ``Ref``).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

from rt.api.client import ContentApi
from rt.api.models import ApiError, Commit
from rt.core.context import RunContext
from rt.core.result import Err, Ok, Result
from rt.output.console import ConsoleProtocol

from .components import CiVariables, ComponentVersionResolver, PointerFiles, VersionTarget, stored_versions
from .errors import InvalidBranchName, ReleaseFailure
from .metadata import ReleaseMetadata
from .parallel import run_parallel
from .projects import CNG, DEPLOYER, GITLAB, HELM_CHART, OMNIBUS, Project

__all__ = [
    "AutoDeployBranch",
    "AutoDeployBranchCreator",
    "AutoDeployBuilder",
    "AutoDeployOutcome",
    "AutoDeployTagger",
    "AutoDeployTarget",
    "BRANCH_PROJECTS",
    "BranchOutcome",
    "CNG_TARGET",
    "DependentOutcome",
    "DependentRepo",
    "OMNIBUS_TARGET",
    "Ref",
    "TagOutcome",
    "auto_deploy_tag_name",
]

_BRANCH_RE = re.compile(r"^(?P<major>\d+)-(?P<minor>\d+)(?:-(?P<rest>.*))?$")
_TIMESTAMP_FORMAT = "%Y%m%d%H%M"
_SHORT_REF = 11

# "12.1.201907011200+<application>[.<packager>]"; older tags use "-" before the SHAs
_AUTO_DEPLOY_TAG_RE = re.compile(
    r"^(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)[+-]"
    r"(?P<commit>[0-9a-f]{11,})(?:\.(?P<packager>[0-9a-f]{11,}))?$"
)
_RELEASE_TAG_RE = re.compile(r"^v?\d+\.\d+\.\d+(?:-rc\d+)?$")
_STABLE_BRANCH_RE = re.compile(r"^\d+-\d+-stable$")


@dataclass(frozen=True, slots=True)
class AutoDeployBranch:
    """``<major>-<minor>-auto-deploy-<suffix>``; only major and minor are required."""

    name: str
    major: int
    minor: int

    @classmethod
    def parse(cls, name: str) -> Result[AutoDeployBranch, InvalidBranchName]:
        m = _BRANCH_RE.match(name.strip())
        if m is None:
            return Err(InvalidBranchName(name))
        return Ok(cls(name=name.strip(), major=int(m.group("major")), minor=int(m.group("minor"))))

    def __str__(self) -> str:
        return self.name


def auto_deploy_tag_name(
    major: int,
    minor: int,
    commit_time: datetime,
    primary_ref: str,
    secondary_ref: str | None = None,
) -> str:
    """Deterministic auto-deploy tag name (minute resolution, UTC)."""
    when = commit_time if commit_time.tzinfo else commit_time.replace(tzinfo=UTC)
    timestamp = when.astimezone(UTC).strftime(_TIMESTAMP_FORMAT)
    name = f"{major}.{minor}.{timestamp}+{primary_ref[:_SHORT_REF]}"
    if secondary_ref:
        name += f".{secondary_ref[:_SHORT_REF]}"
    return name


@dataclass(frozen=True, slots=True)
class Ref:
    """A ref as given by a user: branch, release tag, SHA or auto-deploy tag.

    An auto-deploy tag name stands for the application commit it was built
    from, so ``ref`` yields that commit for those and the name otherwise.
    """

    name: str

    def _auto_deploy_match(self) -> re.Match[str] | None:
        return _AUTO_DEPLOY_TAG_RE.match(self.name)

    @property
    def is_auto_deploy_tag(self) -> bool:
        return self._auto_deploy_match() is not None

    @property
    def commit(self) -> str | None:
        """Application commit of an auto-deploy tag."""
        m = self._auto_deploy_match()
        return m.group("commit") if m else None

    @property
    def packager_commit(self) -> str | None:
        """Packager branch head of an auto-deploy tag, when the tag carries one."""
        m = self._auto_deploy_match()
        return m.group("packager") if m else None

    @property
    def ref(self) -> str:
        return self.commit or self.name

    def for_project(self, project: Project) -> str:
        """``ref`` as named in ``project``."""
        ref = self.ref
        if project.ee_refs and (_RELEASE_TAG_RE.match(ref) or _STABLE_BRANCH_RE.match(ref)):
            return f"{ref}-ee"
        return ref

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class DependentRepo:
    """A repository tagged with the primary's tag name on ``ref``.

    Attributes:
        ops: Lives on the operations instance (always its canonical path).
    """

    project: Project
    label: str
    ref: str = "master"
    ops: bool = False


@dataclass(frozen=True, slots=True)
class AutoDeployTarget:
    """A primary repository that stores a version map and gets tagged.

    Attributes:
        store: How the version map is stored in the repository.
        secondary_ref: Add the branch head SHA after the application SHA.
    """

    name: str
    label: str
    project: Project
    store: Literal["pointer_files", "ci_variables"]
    dependents: tuple[DependentRepo, ...] = ()
    secondary_ref: bool = False

    def version_target(self, ctx: RunContext) -> VersionTarget:
        path = self.project.api_path(ctx)
        if self.store == "pointer_files":
            return PointerFiles(path)
        return CiVariables(path)


OMNIBUS_TARGET = AutoDeployTarget(
    name="omnibus",
    label="Omnibus",
    project=OMNIBUS,
    store="pointer_files",
    dependents=(DependentRepo(DEPLOYER, label="Deployer", ops=True),),
    secondary_ref=True,
)

CNG_TARGET = AutoDeployTarget(
    name="cng",
    label="CNG",
    project=CNG,
    store="ci_variables",
    dependents=(DependentRepo(HELM_CHART, label="Helm chart"),),
)


@dataclass(frozen=True, slots=True)
class DependentOutcome:
    project: str
    created: bool
    error: ApiError | None = None


@dataclass(frozen=True, slots=True)
class TagOutcome:
    """What one tagger did.

    Attributes:
        tag: Derived tag name; None when nothing needed tagging.
        created: The primary tag was created by this run.
        applied: Commit that updated the version map, if any.
    """

    target: str
    tag: str | None
    created: bool
    changed: bool
    applied: Commit | None = None
    dependents: tuple[DependentOutcome, ...] = ()


class AutoDeployTagger:
    def __init__(
        self,
        target: AutoDeployTarget,
        branch: AutoDeployBranch,
        version_map: Mapping[str, str],
        *,
        api: ContentApi,
        ops_api: ContentApi | None = None,
        ctx: RunContext,
        console: ConsoleProtocol,
        metadata: ReleaseMetadata,
    ) -> None:
        self.target = target
        self.branch = branch
        self.version_map = dict(version_map)
        self._api = api
        self._ops_api = ops_api or api
        self._ctx = ctx
        self._console = console
        self._metadata = metadata
        self._resolver = ComponentVersionResolver(api, ctx=ctx, console=console)

    @property
    def project_path(self) -> str:
        return self.target.project.api_path(self._ctx)

    def tag_name(self, head: Commit) -> str:
        return auto_deploy_tag_name(
            self.branch.major,
            self.branch.minor,
            head.created_at,
            self.version_map["VERSION"],
            head.id if self.target.secondary_ref else None,
        )

    def tag_message(self, tag_name: str) -> str:
        stored = stored_versions(self.target.version_target(self._ctx), self.version_map)
        lines = [f"{component}: {version}" for component, version in stored.items()]
        return f"Auto-deploy {self.target.label} {tag_name}\n\n" + "\n".join(lines)

    def tag(self) -> Result[TagOutcome, ReleaseFailure]:
        store = self.target.version_target(self._ctx)
        changed = self._resolver.has_changes(store, self.branch.name, self.version_map)

        applied: Commit | None = None
        if changed:
            result = self._resolver.apply(store, self.branch.name, self.version_map)
            if isinstance(result, Err):
                return result
            applied = result.value

        head = self._api.get_commit(self.project_path, self.branch.name)
        if isinstance(head, Err):
            return head

        untagged = self._tip_untagged(head.value)
        if isinstance(untagged, Err):
            return untagged

        if not changed and not untagged.value:
            self._console.warning(f"No changes to {self.target.label}, nothing to tag", target=self.branch)
            return Ok(TagOutcome(target=self.target.name, tag=None, created=False, changed=False))

        name = self.tag_name(head.value)
        message = self.tag_message(name)

        existing = self._api.get_tag(self.project_path, name)
        if isinstance(existing, Err):
            return existing

        created = False
        if existing.value is not None:
            self._console.warning(f"{self.target.label} tag already exists", name=name, target=existing.value.target)
        else:
            self._console.info(f"Creating {self.target.label} tag", name=name, target=head.value.id)
            if self._ctx.dry_run:
                self._console.trace("Would create tag", project=self.project_path, name=name)
            else:
                tagged = self._api.create_tag(self.project_path, name, head.value.id, message)
                if isinstance(tagged, Err):
                    self._console.fatal(
                        f"Failed to tag {self.target.label}",
                        name=name,
                        target=head.value.id,
                        error_code=tagged.error.status,
                        error_message=tagged.error.message,
                    )
                    return tagged
                created = True
            self._metadata.add_release(self.target.name, name, sha=head.value.id, ref=name, tag=True)

        dependents = tuple(self._tag_dependent(dep, name, message) for dep in self.target.dependents)

        return Ok(
            TagOutcome(
                target=self.target.name,
                tag=name,
                created=created,
                changed=changed,
                applied=applied,
                dependents=dependents,
            )
        )

    def _tip_untagged(self, head: Commit) -> Result[bool, ApiError]:
        """True when no tag contains the branch head."""
        refs = self._api.list_refs_for_commit(self.project_path, head.id)
        if isinstance(refs, Err):
            return refs
        return Ok(not any(ref.type == "tag" for ref in refs.value))

    def _tag_dependent(self, dependent: DependentRepo, name: str, message: str) -> DependentOutcome:
        api = self._ops_api if dependent.ops else self._api
        project = dependent.project.path if dependent.ops else dependent.project.api_path(self._ctx)

        self._console.info(f"Tagging {dependent.label}", name=name)

        existing = api.get_tag(project, name)
        match existing:
            case Err(error):
                return self._dependent_failed(dependent, name, error)
            case Ok(None):
                pass
            case Ok(_):
                self._console.trace(f"{dependent.label} tag already exists", name=name)
                return DependentOutcome(project=project, created=False)

        if self._ctx.dry_run:
            self._console.trace("Would create tag", project=project, name=name, target=dependent.ref)
            return DependentOutcome(project=project, created=False)

        created = api.create_tag(project, name, dependent.ref, message)
        if isinstance(created, Err):
            return self._dependent_failed(dependent, name, created.error)
        return DependentOutcome(project=project, created=True)

    def _dependent_failed(self, dependent: DependentRepo, name: str, error: ApiError) -> DependentOutcome:
        self._console.fatal(
            f"Failed to tag {dependent.label}",
            name=name,
            target=dependent.ref,
            error_code=error.status,
            error_message=error.message,
        )
        project = dependent.project.path if dependent.ops else dependent.project.api_path(self._ctx)
        return DependentOutcome(project=project, created=False, error=error)


@dataclass(frozen=True, slots=True)
class AutoDeployOutcome:
    version_map: dict[str, str]
    tags: tuple[TagOutcome, ...] = ()
    failures: dict[str, ReleaseFailure] = field(default_factory=lambda: {})


class AutoDeployBuilder:
    """Resolve the version map once, then tag every target in parallel."""

    def __init__(
        self,
        branch: AutoDeployBranch,
        commit_id: str,
        *,
        api: ContentApi,
        ops_api: ContentApi | None = None,
        ctx: RunContext,
        console: ConsoleProtocol,
        metadata: ReleaseMetadata,
        targets: tuple[AutoDeployTarget, ...] = (OMNIBUS_TARGET, CNG_TARGET),
        source: Project = GITLAB,
        max_workers: int | None = None,
    ) -> None:
        self.branch = branch
        self.commit_id = commit_id
        self.targets = targets
        self._api = api
        self._ops_api = ops_api
        self._ctx = ctx
        self._console = console
        self._metadata = metadata
        self._source = source
        self._max_workers = max_workers

    def execute(self) -> Result[AutoDeployOutcome, ReleaseFailure]:
        resolver = ComponentVersionResolver(self._api, ctx=self._ctx, console=self._console)
        resolved = resolver.resolve(self._source.api_path(self._ctx), self.commit_id)
        if isinstance(resolved, Err):
            return resolved
        version_map = resolved.value
        self._metadata.add_auto_deploy_components(version_map)

        def run(target: AutoDeployTarget) -> Result[TagOutcome, ReleaseFailure]:
            tagger = AutoDeployTagger(
                target,
                self.branch,
                version_map,
                api=self._api,
                ops_api=self._ops_api,
                ctx=self._ctx,
                console=self._console,
                metadata=self._metadata,
            )
            return tagger.tag()

        results = run_parallel(self.targets, run, max_workers=self._max_workers)

        tags: list[TagOutcome] = []
        failures: dict[str, ReleaseFailure] = {}
        for target, result in zip(self.targets, results, strict=True):
            match result:
                case Ok(outcome):
                    tags.append(outcome)
                case Err(error):
                    self._console.fatal(f"Auto-deploy tagging failed for {target.label}", error=str(error))
                    failures[target.name] = error

        return Ok(AutoDeployOutcome(version_map=version_map, tags=tuple(tags), failures=failures))


# Repositories an auto-deploy branch is cut in, application first.
BRANCH_PROJECTS: tuple[Project, ...] = (GITLAB, OMNIBUS, CNG, HELM_CHART)


@dataclass(frozen=True, slots=True)
class BranchOutcome:
    """What happened to the auto-deploy branch of one repository.

    Attributes:
        commit: Branch head after the run; None in dry runs and on failure.
    """

    project: str
    ref: str
    created: bool
    commit: str | None = None
    error: ApiError | None = None


class AutoDeployBranchCreator:
    """Cut an auto-deploy branch in every repository from per-project refs.

    A branch that already exists is left where it is. One repository failing
    does not stop the others.
    """

    def __init__(
        self,
        branch: AutoDeployBranch,
        refs: Mapping[str, Ref] | None = None,
        *,
        api: ContentApi,
        ctx: RunContext,
        console: ConsoleProtocol,
        default_ref: Ref = Ref("master"),
        projects: tuple[Project, ...] = BRANCH_PROJECTS,
        max_workers: int | None = None,
    ) -> None:
        self.branch = branch
        self.refs = dict(refs or {})
        self.default_ref = default_ref
        self.projects = projects
        self._api = api
        self._ctx = ctx
        self._console = console
        self._max_workers = max_workers

    def ref_for(self, project: Project) -> str:
        return self.refs.get(project.name, self.default_ref).for_project(project)

    def execute(self) -> tuple[BranchOutcome, ...]:
        return tuple(run_parallel(self.projects, self._create, max_workers=self._max_workers))

    def _create(self, project: Project) -> BranchOutcome:
        path = project.api_path(self._ctx)
        ref = self.ref_for(project)

        existing = self._api.get_commit(path, self.branch.name)
        match existing:
            case Ok(commit):
                self._console.warning("Auto-deploy branch already exists", project=path, branch=self.branch)
                return BranchOutcome(project=path, ref=ref, created=False, commit=commit.id)
            case Err(error) if not error.not_found:
                return self._failed(path, ref, error)
            case Err(_):
                pass

        if self._ctx.dry_run:
            self._console.trace("Would create branch", project=path, branch=self.branch, ref=ref)
            return BranchOutcome(project=path, ref=ref, created=False)

        self._console.info("Creating auto-deploy branch", project=path, branch=self.branch, ref=ref)
        created = self._api.create_branch(path, self.branch.name, ref)
        if isinstance(created, Err):
            return self._failed(path, ref, created.error)
        return BranchOutcome(project=path, ref=ref, created=True, commit=created.value.commit.id)

    def _failed(self, path: str, ref: str, error: ApiError) -> BranchOutcome:
        self._console.fatal(
            "Failed to create auto-deploy branch",
            project=path,
            branch=self.branch,
            ref=ref,
            error_code=error.status,
            error_message=error.message,
        )
        return BranchOutcome(project=path, ref=ref, created=False, error=error)
