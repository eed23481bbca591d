"""Release kinds processed by the shared state machine.

Each kind carries only its configuration; the state machine dispatches on
the kind with ``match``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .projects import GITALY, GITLAB, HELM_CHART, OMNIBUS, Project
from .version import Version

__all__ = [
    "ChartRelease",
    "ComponentRelease",
    "GITALY_VERSION_RB",
    "ReleaseKind",
    "StandardRelease",
    "VersionFile",
    "chart_app_version",
    "gitaly_release",
    "gitlab_release",
    "helm_release",
    "omnibus_release",
    "rewrite_chart",
]

_CHART_VERSION_RE = re.compile(r"^version:.*$", re.MULTILINE)
_CHART_APP_VERSION_RE = re.compile(r"^appVersion:.*$", re.MULTILINE)
_CHART_APP_VERSION_VALUE_RE = re.compile(r"^appVersion:\s*['\"]?(?P<value>[^'\"\s#]+)", re.MULTILINE)


@dataclass(frozen=True, slots=True)
class VersionFile:
    """A secondary file rewritten from a template on every release.

    ``template`` is formatted with ``version`` (the full version string).
    """

    path: str
    template: str = "{version}\n"

    def render(self, version: Version) -> str:
        return self.template.format(version=version)


GITALY_VERSION_RB = VersionFile(
    path="ruby/proto/gitaly/version.rb",
    template=(
        "# This file was auto-generated by release-tools\n"
        "module Gitaly\n"
        "  VERSION = '{version}'\n"
        "end\n"
    ),
)


@dataclass(frozen=True, slots=True)
class StandardRelease:
    """Bump ``version_file`` on the stable branch and tag it."""

    project: Project
    name: str
    version_file: str = "VERSION"
    downstream: tuple[ReleaseKind, ...] = ()


@dataclass(frozen=True, slots=True)
class ComponentRelease:
    """Standard release that also rewrites ``extra_files``.

    The extra files are folded into the version bump commit.
    """

    project: Project
    name: str
    version_file: str = "VERSION"
    extra_files: tuple[VersionFile, ...] = ()
    downstream: tuple[ReleaseKind, ...] = ()


@dataclass(frozen=True, slots=True)
class ChartRelease:
    """Deployment chart release.

    Attributes:
        app_version: Application version the chart ships; read from the chart
            file when not given.
        update_default_branch: Re-apply the bump on the default branch after
            a release whose application version is final.
        skip_tag_for_prerelease: Do not tag while the application version is
            a release candidate.
    """

    project: Project
    name: str
    app_version: Version | None = None
    chart_file: str = "Chart.yaml"
    update_default_branch: bool = True
    skip_tag_for_prerelease: bool = True
    downstream: tuple[ReleaseKind, ...] = ()


type ReleaseKind = StandardRelease | ComponentRelease | ChartRelease


def rewrite_chart(content: str, chart_version: Version, app_version: Version | None) -> str:
    """Set ``version:`` (and ``appVersion:`` when given) in a chart file."""
    out = _CHART_VERSION_RE.sub(f"version: {chart_version}", content, count=1)
    if app_version is not None:
        out = _CHART_APP_VERSION_RE.sub(f"appVersion: {app_version}", out, count=1)
    return out


def chart_app_version(content: str) -> str | None:
    m = _CHART_APP_VERSION_VALUE_RE.search(content)
    return m.group("value") if m else None


# Presets for the catalogue


def gitlab_release(project: Project = GITLAB) -> StandardRelease:
    return StandardRelease(project=project, name="gitlab")


def omnibus_release(project: Project = OMNIBUS) -> StandardRelease:
    return StandardRelease(project=project, name="omnibus-gitlab")


def gitaly_release(project: Project = GITALY) -> ComponentRelease:
    return ComponentRelease(project=project, name="gitaly", extra_files=(GITALY_VERSION_RB,))


def helm_release(app_version: Version | None = None, project: Project = HELM_CHART) -> ChartRelease:
    return ChartRelease(project=project, name="helm-gitlab", app_version=app_version)
