"""Catalogue of the repositories a release touches."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType

from rt.core.config import Config
from rt.core.context import RunContext

__all__ = [
    "CNG",
    "DEPLOYER",
    "GITALY",
    "GITLAB",
    "HELM_CHART",
    "OMNIBUS",
    "PROJECTS",
    "Project",
    "project_path",
    "projects_for",
]

# git@host:group/sub/project.git -> group/sub/project
_REMOTE_PATH_RE = re.compile(r"^.*:(?P<group>.*)/(?P<project>[^/]+)\.git$")

_ROLES = ("canonical", "dev", "security")


def project_path(remote: str) -> str:
    """API path (``group/project``) encoded in an SSH clone URL."""
    m = _REMOTE_PATH_RE.match(remote)
    if m is None:
        raise ValueError(f"Unable to extract path from {remote}")
    return f"{m.group('group')}/{m.group('project')}"


@dataclass(frozen=True, slots=True)
class Project:
    """A repository with its ordered remote set.

    Attributes:
        name: Catalogue key.
        remotes: Role (canonical, dev, security) -> clone URL, canonical first.
        default_branch: Branch version bumps land on outside stable branches.
        ee_refs: Release tags and stable branches carry an ``-ee`` suffix.
    """

    name: str
    remotes: Mapping[str, str]
    default_branch: str = "master"
    ee_refs: bool = False

    def __post_init__(self) -> None:
        if not self.remotes or next(iter(self.remotes)) != "canonical":
            raise ValueError(f"{self.name}: the canonical remote must come first")

    def active_remotes(self, ctx: RunContext) -> dict[str, str]:
        """Remotes for this run: only ``dev`` for security releases, everything but ``security`` otherwise."""
        if ctx.security_release:
            return {k: v for k, v in self.remotes.items() if k == "dev"}
        return {k: v for k, v in self.remotes.items() if k != "security"}

    @property
    def path(self) -> str:
        return project_path(self.remotes["canonical"])

    @property
    def dev_path(self) -> str:
        return project_path(self.remotes.get("dev", self.remotes["canonical"]))

    def api_path(self, ctx: RunContext) -> str:
        """Project path on the API instance the run targets."""
        return self.dev_path if ctx.security_release else self.path

    def with_remotes(self, overrides: Mapping[str, str]) -> Project:
        merged = dict(self.remotes)
        merged.update(overrides)
        ordered = {role: merged[role] for role in _ROLES if role in merged}
        return replace(self, remotes=MappingProxyType(ordered))


def _project(name: str, **remotes: str) -> Project:
    return Project(name=name, remotes=MappingProxyType(dict(remotes)))


GITLAB = _project(
    "gitlab",
    canonical="git@gitlab.com:gitlab-org/gitlab.git",
    dev="git@dev.gitlab.org:gitlab/gitlab-ee.git",
    security="git@gitlab.com:gitlab-org/security/gitlab.git",
)

OMNIBUS = _project(
    "omnibus-gitlab",
    canonical="git@gitlab.com:gitlab-org/omnibus-gitlab.git",
    dev="git@dev.gitlab.org:gitlab/omnibus-gitlab.git",
    security="git@gitlab.com:gitlab-org/security/omnibus-gitlab.git",
)

CNG = _project(
    "cng",
    canonical="git@gitlab.com:gitlab-org/build/CNG.git",
    dev="git@dev.gitlab.org:gitlab/charts/components/images.git",
    security="git@gitlab.com:gitlab-org/security/charts/components/images.git",
)

HELM_CHART = _project(
    "helm-gitlab",
    canonical="git@gitlab.com:gitlab-org/charts/gitlab.git",
    dev="git@dev.gitlab.org:gitlab/charts/gitlab.git",
    security="git@gitlab.com:gitlab-org/security/charts/gitlab.git",
)

GITALY = _project(
    "gitaly",
    canonical="git@gitlab.com:gitlab-org/gitaly.git",
    dev="git@dev.gitlab.org:gitlab/gitaly.git",
    security="git@gitlab.com:gitlab-org/security/gitaly.git",
)

DEPLOYER = _project(
    "deployer",
    canonical="git@ops.gitlab.net:gitlab-com/gl-infra/deployer.git",
)

PROJECTS: Mapping[str, Project] = MappingProxyType(
    {p.name: p for p in (GITLAB, OMNIBUS, CNG, HELM_CHART, GITALY, DEPLOYER)}
)


def projects_for(config: Config) -> dict[str, Project]:
    """Catalogue with remote URL overrides from ``[projects.<name>]`` applied."""
    out: dict[str, Project] = {}
    for name, project in PROJECTS.items():
        overrides = config.project_remotes.get(name)
        out[name] = project.with_remotes(overrides) if overrides else project
    return out
