"""Release orchestration: versions, projects, release kinds and auto-deploy tagging."""

from .autodeploy import (
    CNG_TARGET,
    OMNIBUS_TARGET,
    AutoDeployBranch,
    AutoDeployBuilder,
    AutoDeployOutcome,
    AutoDeployTagger,
    AutoDeployTarget,
    DependentOutcome,
    DependentRepo,
    TagOutcome,
    auto_deploy_tag_name,
)
from .components import (
    COMPONENT_FILES,
    LOCKFILE,
    LOCKFILE_COMPONENTS,
    CiVariables,
    ComponentVersionResolver,
    PointerFiles,
    VersionTarget,
    to_ci_variables,
    version_from_lockfile,
)
from .errors import (
    InvalidBranchName,
    InvalidVariablesFile,
    InvalidVersion,
    ReleaseFailure,
    VersionFileMissing,
    VersionNotFound,
)
from .kinds import (
    GITALY_VERSION_RB,
    ChartRelease,
    ComponentRelease,
    ReleaseKind,
    StandardRelease,
    VersionFile,
    chart_app_version,
    gitaly_release,
    gitlab_release,
    helm_release,
    omnibus_release,
    rewrite_chart,
)
from .metadata import ReleaseMetadata, ReleaseRecord
from .parallel import default_workers, run_parallel
from .projects import CNG, DEPLOYER, GITALY, GITLAB, HELM_CHART, OMNIBUS, PROJECTS, Project, project_path, projects_for
from .state_machine import ReleaseOutcome, ReleaseState, ReleaseStateMachine, RepositoryFactory
from .version import Edition, Version, is_valid_version, parse_version

__all__ = [
    # autodeploy
    "AutoDeployBranch",
    "AutoDeployBuilder",
    "AutoDeployOutcome",
    "AutoDeployTagger",
    "AutoDeployTarget",
    "CNG_TARGET",
    "DependentOutcome",
    "DependentRepo",
    "OMNIBUS_TARGET",
    "TagOutcome",
    "auto_deploy_tag_name",
    # components
    "COMPONENT_FILES",
    "CiVariables",
    "ComponentVersionResolver",
    "LOCKFILE",
    "LOCKFILE_COMPONENTS",
    "PointerFiles",
    "VersionTarget",
    "to_ci_variables",
    "version_from_lockfile",
    # errors
    "InvalidBranchName",
    "InvalidVariablesFile",
    "InvalidVersion",
    "ReleaseFailure",
    "VersionFileMissing",
    "VersionNotFound",
    # kinds
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
    # metadata
    "ReleaseMetadata",
    "ReleaseRecord",
    # parallel
    "default_workers",
    "run_parallel",
    # projects
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
    # state machine
    "ReleaseOutcome",
    "ReleaseState",
    "ReleaseStateMachine",
    "RepositoryFactory",
    # version
    "Edition",
    "Version",
    "is_valid_version",
    "parse_version",
]
