"""Component version maps: resolving them from a source commit and writing
them into dependent repositories.

A version map links one commit of the main application to the versions of
the components it was built against:

    {"VERSION": "<commit sha>", "GITALY_SERVER_VERSION": "1.1.1", ...}

Two kinds of dependent repository store it:

- ``PointerFiles``: one single-line file per component (packaging repo).
- ``CiVariables``: a YAML file whose ``variables`` table holds image-compatible
  values (image-build repo).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass

import yaml

from rt.api.client import ContentApi
from rt.api.models import ApiError, Commit, FileAction
from rt.core.context import RunContext
from rt.core.result import Err, Ok, Result
from rt.core.structured import as_str_dict, get_table
from rt.output.console import ConsoleProtocol

from .errors import InvalidVariablesFile, VersionNotFound
from .version import parse_version

__all__ = [
    "COMPONENT_FILES",
    "CiVariables",
    "ComponentVersionResolver",
    "LOCKFILE",
    "LOCKFILE_COMPONENTS",
    "PointerFiles",
    "VersionTarget",
    "stored_versions",
    "to_ci_variables",
    "version_from_lockfile",
]

COMPONENT_FILES = (
    "GITALY_SERVER_VERSION",
    "GITLAB_ELASTICSEARCH_INDEXER_VERSION",
    "GITLAB_PAGES_VERSION",
    "GITLAB_SHELL_VERSION",
    "GITLAB_WORKHORSE_VERSION",
)

LOCKFILE = "Gemfile.lock"

# dependency name in the lock file -> component key
LOCKFILE_COMPONENTS: Mapping[str, str] = {"mail_room": "MAILROOM_VERSION"}

COMMIT_MESSAGE = "Update component versions"

# "    mail_room (0.9.1)" -- specs sit at exactly four spaces
_LOCK_SPEC_RE = re.compile(r"^ {4}(?P<name>[^\s(]+) \((?P<version>[^)]+)\)\s*$")


def _chomp(text: str) -> str:
    """Drop a single trailing newline."""
    if text.endswith("\r\n"):
        return text[:-2]
    if text.endswith("\n"):
        return text[:-1]
    return text


def version_from_lockfile(lockfile: str, name: str) -> Result[str, VersionNotFound]:
    """Pinned version of ``name``: the first spec entry with that name."""
    for line in lockfile.splitlines():
        m = _LOCK_SPEC_RE.match(line)
        if m is None or m.group("name") != name:
            continue
        # "1.10.3-x86_64-linux" carries a platform suffix
        return Ok(m.group("version").split("-", 1)[0])
    return Err(VersionNotFound(name))


def to_ci_variables(version_map: Mapping[str, str]) -> dict[str, str]:
    """Rename and format a version map for the image-build CI variables."""
    variables = dict(version_map)
    if "GITALY_SERVER_VERSION" in variables:
        variables["GITALY_VERSION"] = variables.pop("GITALY_SERVER_VERSION")
    gitlab_version = variables.pop("VERSION", None)
    if gitlab_version is not None:
        for key in ("GITLAB_VERSION", "GITLAB_REF_SLUG", "GITLAB_ASSETS_TAG"):
            variables[key] = gitlab_version

    out: dict[str, str] = {}
    for key, value in variables.items():
        parsed = parse_version(value)
        out[key] = parsed.value.tag if isinstance(parsed, Ok) else value
    return out


@dataclass(frozen=True, slots=True)
class PointerFiles:
    """One ``<component>`` file per entry at the repository root."""

    project: str
    components: tuple[str, ...] = ("VERSION", *COMPONENT_FILES)

    def select(self, version_map: Mapping[str, str]) -> dict[str, str]:
        return {k: v for k, v in version_map.items() if k in self.components}


@dataclass(frozen=True, slots=True)
class CiVariables:
    """A YAML file with a top-level ``variables`` mapping."""

    project: str
    path: str = "ci_files/variables.yml"


VersionTarget = PointerFiles | CiVariables


def stored_versions(target: VersionTarget, version_map: Mapping[str, str]) -> dict[str, str]:
    """The entries ``target`` actually keeps, under the names it keeps them."""
    match target:
        case PointerFiles():
            return target.select(version_map)
        case CiVariables():
            return to_ci_variables(version_map)


class ComponentVersionResolver:
    """Read version maps from the main project and write them into dependents."""

    def __init__(self, api: ContentApi, *, ctx: RunContext, console: ConsoleProtocol) -> None:
        self._api = api
        self._ctx = ctx
        self._console = console

    # -------------------------------------------------------------------------
    # Resolve
    # -------------------------------------------------------------------------

    def resolve(
        self,
        project: str,
        commit_id: str,
        *,
        include_dependencies: bool = True,
    ) -> Result[dict[str, str], ApiError | VersionNotFound]:
        """Version map of ``project`` at ``commit_id``.

        Every component file must be readable; a missing dependency in the
        lock file is a hard error.
        """
        versions: dict[str, str] = {"VERSION": commit_id}

        for file in COMPONENT_FILES:
            content = self._api.read_file(project, file, commit_id)
            if isinstance(content, Err):
                return content
            versions[file] = _chomp(content.value).strip()

        if include_dependencies and LOCKFILE_COMPONENTS:
            lockfile = self._api.read_file(project, LOCKFILE, commit_id)
            if isinstance(lockfile, Err):
                return lockfile
            for name, key in LOCKFILE_COMPONENTS.items():
                version = version_from_lockfile(lockfile.value, name)
                if isinstance(version, Err):
                    return version
                self._console.trace("Version from lock file", dependency=name, version=version.value)
                versions[key] = version.value

        self._console.info("Resolved component versions", project=project, **versions)
        return Ok(versions)

    # -------------------------------------------------------------------------
    # Change detection
    # -------------------------------------------------------------------------

    def has_changes(self, target: VersionTarget, branch: str, version_map: Mapping[str, str]) -> bool:
        """False exactly when every entry already matches ``branch``.

        A file that cannot be read counts as changed.
        """
        match target:
            case PointerFiles():
                for file, version in target.select(version_map).items():
                    current = self._api.read_file(target.project, file, branch)
                    if isinstance(current, Err):
                        self._console.trace("Unreadable version file", file=file, error=current.error.message)
                        return True
                    if _chomp(current.value) != version:
                        return True
                return False
            case CiVariables():
                loaded = self._load_variables(target, branch)
                if isinstance(loaded, Err):
                    self._console.trace("Unreadable variables file", path=target.path, error=str(loaded.error))
                    return True
                variables = get_table(loaded.value, "variables") or {}
                return any(variables.get(k) != v for k, v in to_ci_variables(version_map).items())

    # -------------------------------------------------------------------------
    # Apply
    # -------------------------------------------------------------------------

    def apply(
        self,
        target: VersionTarget,
        branch: str,
        version_map: Mapping[str, str],
    ) -> Result[Commit | None, ApiError | InvalidVariablesFile]:
        """Write every changed entry to ``branch`` in a single commit.

        Returns Ok(None) when nothing changed or in dry-run mode.
        """
        match target:
            case PointerFiles():
                actions = self._pointer_actions(target, branch, version_map)
            case CiVariables():
                actions_result = self._variables_actions(target, branch, version_map)
                if isinstance(actions_result, Err):
                    return actions_result
                actions = actions_result.value

        if not actions:
            self._console.trace("Component versions already up to date", project=target.project, branch=branch)
            return Ok(None)

        if self._ctx.dry_run:
            for action in actions:
                self._console.trace("Would update", project=target.project, branch=branch, file=action.file_path)
            return Ok(None)

        self._console.info(
            "Updating component versions",
            project=target.project,
            branch=branch,
            files=",".join(a.file_path for a in actions),
        )
        committed = self._api.create_commit(target.project, branch, COMMIT_MESSAGE, actions)
        if isinstance(committed, Err):
            return committed
        return Ok(committed.value)

    def _pointer_actions(
        self,
        target: PointerFiles,
        branch: str,
        version_map: Mapping[str, str],
    ) -> list[FileAction]:
        actions: list[FileAction] = []
        for file, version in target.select(version_map).items():
            current = self._api.read_file(target.project, file, branch)
            if isinstance(current, Ok) and _chomp(current.value) == version:
                continue
            missing = isinstance(current, Err) and current.error.not_found
            actions.append(
                FileAction(
                    action="create" if missing else "update",
                    file_path=file,
                    content=f"{version}\n",
                )
            )
        return actions

    def _variables_actions(
        self,
        target: CiVariables,
        branch: str,
        version_map: Mapping[str, str],
    ) -> Result[list[FileAction], ApiError | InvalidVariablesFile]:
        loaded = self._load_variables(target, branch)
        if isinstance(loaded, Err):
            return loaded

        document = loaded.value
        variables = get_table(document, "variables")
        if variables is None:
            return Err(InvalidVariablesFile(target.project, target.path, "missing 'variables' mapping"))

        wanted = to_ci_variables(version_map)
        if all(variables.get(k) == v for k, v in wanted.items()):
            return Ok([])

        variables.update(wanted)
        content = yaml.safe_dump(document, default_flow_style=False, sort_keys=False)
        return Ok([FileAction(action="update", file_path=target.path, content=content)])

    def _load_variables(
        self,
        target: CiVariables,
        branch: str,
    ) -> Result[dict[str, object], ApiError | InvalidVariablesFile]:
        content = self._api.read_file(target.project, target.path, branch)
        if isinstance(content, Err):
            return content
        try:
            data: object = yaml.safe_load(content.value)
        except yaml.YAMLError as e:
            return Err(InvalidVariablesFile(target.project, target.path, str(e)))
        document = as_str_dict(data)
        if document is None:
            return Err(InvalidVariablesFile(target.project, target.path, "expected a mapping"))
        return Ok(document)
