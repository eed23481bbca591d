"""Tests for rt.release.components module."""

from __future__ import annotations

import pytest
import yaml

from rt.api.mock import MockContentApi
from rt.api.models import ApiError
from rt.core.context import RunContext
from rt.core.result import Err, Ok
from rt.output.console import MockConsole
from rt.release.components import (
    CiVariables,
    ComponentVersionResolver,
    PointerFiles,
    stored_versions,
    to_ci_variables,
    version_from_lockfile,
)
from rt.release.errors import InvalidVariablesFile, VersionNotFound

GITLAB = "gitlab-org/gitlab"
OMNIBUS = "gitlab-org/omnibus-gitlab"
CNG = "gitlab-org/build/CNG"
BRANCH = "12-1-auto-deploy-20190701"

LOCKFILE = """\
GEM
  remote: https://rubygems.org/
  specs:
    mail_room (0.9.1)
      charlock_holmes (~> 0.7)
    nokogiri (1.10.3-x86_64-linux)

DEPENDENCIES
  mail_room (~> 0.9.1)
"""

SOURCE_FILES = {
    "GITALY_SERVER_VERSION": "1.42.0\n",
    "GITLAB_ELASTICSEARCH_INDEXER_VERSION": "1.3.0\n",
    "GITLAB_PAGES_VERSION": "1.6.1\n",
    "GITLAB_SHELL_VERSION": "9.3.0\n",
    "GITLAB_WORKHORSE_VERSION": "8.7.0\n",
    "Gemfile.lock": LOCKFILE,
}


def version_map(commit: str = "0123456789abcdef") -> dict[str, str]:
    return {
        "VERSION": commit,
        "GITALY_SERVER_VERSION": "1.42.0",
        "GITLAB_ELASTICSEARCH_INDEXER_VERSION": "1.3.0",
        "GITLAB_PAGES_VERSION": "1.6.1",
        "GITLAB_SHELL_VERSION": "9.3.0",
        "GITLAB_WORKHORSE_VERSION": "8.7.0",
        "MAILROOM_VERSION": "0.9.1",
    }


@pytest.fixture
def api() -> MockContentApi:
    return MockContentApi()


def resolver(api: MockContentApi, *, dry_run: bool = False) -> ComponentVersionResolver:
    return ComponentVersionResolver(api, ctx=RunContext(dry_run=dry_run), console=MockConsole())


# =============================================================================
# Pure helpers
# =============================================================================


class TestVersionFromLockfile:
    def test_found(self) -> None:
        assert version_from_lockfile(LOCKFILE, "mail_room") == Ok("0.9.1")

    def test_platform_suffix_dropped(self) -> None:
        assert version_from_lockfile(LOCKFILE, "nokogiri") == Ok("1.10.3")

    def test_nested_requirement_ignored(self) -> None:
        assert version_from_lockfile(LOCKFILE, "charlock_holmes") == Err(VersionNotFound("charlock_holmes"))

    def test_missing(self) -> None:
        assert version_from_lockfile(LOCKFILE, "rails") == Err(VersionNotFound("rails"))


class TestToCiVariables:
    def test_renames_and_tags(self) -> None:
        out = to_ci_variables({"VERSION": "abc123", "GITALY_SERVER_VERSION": "1.42.0", "GITLAB_SHELL_VERSION": "master"})

        assert out == {
            "GITALY_VERSION": "v1.42.0",
            "GITLAB_SHELL_VERSION": "master",
            "GITLAB_VERSION": "abc123",
            "GITLAB_REF_SLUG": "abc123",
            "GITLAB_ASSETS_TAG": "abc123",
        }


class TestStoredVersions:
    VERSIONS = {"VERSION": "abc123", "GITALY_SERVER_VERSION": "1.42.0", "MAILROOM_VERSION": "0.9.1"}

    def test_pointer_files_keep_only_their_files(self) -> None:
        assert stored_versions(PointerFiles(OMNIBUS), self.VERSIONS) == {
            "VERSION": "abc123",
            "GITALY_SERVER_VERSION": "1.42.0",
        }

    def test_ci_variables_use_variable_names(self) -> None:
        stored = stored_versions(CiVariables(CNG), self.VERSIONS)

        assert stored["GITALY_VERSION"] == "v1.42.0"
        assert stored["MAILROOM_VERSION"] == "v0.9.1"
        assert "GITALY_SERVER_VERSION" not in stored


# =============================================================================
# Resolve
# =============================================================================


class TestResolve:
    def test_reads_every_component(self, api: MockContentApi) -> None:
        commit = api.add_branch(GITLAB, "master", files=SOURCE_FILES)

        result = resolver(api).resolve(GITLAB, commit.id)

        assert result == Ok(version_map(commit.id))

    def test_missing_component_file(self, api: MockContentApi) -> None:
        files = dict(SOURCE_FILES)
        del files["GITLAB_PAGES_VERSION"]
        commit = api.add_branch(GITLAB, "master", files=files)

        result = resolver(api).resolve(GITLAB, commit.id)

        assert isinstance(result, Err)
        assert isinstance(result.error, ApiError)
        assert result.error.not_found

    def test_missing_dependency(self, api: MockContentApi) -> None:
        commit = api.add_branch(GITLAB, "master", files={**SOURCE_FILES, "Gemfile.lock": "GEM\n  specs:\n"})

        assert resolver(api).resolve(GITLAB, commit.id) == Err(VersionNotFound("mail_room"))

    def test_without_dependencies(self, api: MockContentApi) -> None:
        commit = api.add_branch(GITLAB, "master", files={k: v for k, v in SOURCE_FILES.items() if k != "Gemfile.lock"})

        result = resolver(api).resolve(GITLAB, commit.id, include_dependencies=False)

        assert isinstance(result, Ok)
        assert "MAILROOM_VERSION" not in result.value


# =============================================================================
# Pointer files
# =============================================================================


class TestPointerFiles:
    def test_select_skips_dependencies(self) -> None:
        assert "MAILROOM_VERSION" not in PointerFiles(OMNIBUS).select(version_map())

    def test_has_changes(self, api: MockContentApi) -> None:
        vmap = version_map()
        api.add_branch(OMNIBUS, BRANCH, files={k: f"{v}\n" for k, v in PointerFiles(OMNIBUS).select(vmap).items()})

        assert not resolver(api).has_changes(PointerFiles(OMNIBUS), BRANCH, vmap)
        assert resolver(api).has_changes(PointerFiles(OMNIBUS), BRANCH, {**vmap, "GITLAB_SHELL_VERSION": "9.4.0"})

    def test_unreadable_file_counts_as_changed(self, api: MockContentApi) -> None:
        api.add_branch(OMNIBUS, BRANCH, files={"VERSION": "0123456789abcdef\n"})

        assert resolver(api).has_changes(PointerFiles(OMNIBUS), BRANCH, version_map())

    def test_apply_creates_and_updates_in_one_commit(self, api: MockContentApi) -> None:
        api.add_branch(OMNIBUS, BRANCH, files={"VERSION": "old\n", "GITALY_SERVER_VERSION": "1.42.0\n"})
        before = api.commit_count(OMNIBUS)

        result = resolver(api).apply(PointerFiles(OMNIBUS), BRANCH, version_map())

        assert isinstance(result, Ok)
        assert result.value is not None
        assert api.commit_count(OMNIBUS) == before + 1
        files = api.files_at(OMNIBUS, BRANCH)
        assert files["VERSION"] == "0123456789abcdef\n"
        assert files["GITLAB_WORKHORSE_VERSION"] == "8.7.0\n"
        assert "MAILROOM_VERSION" not in files
        assert api.branch_head(OMNIBUS, BRANCH).message == "Update component versions"

    def test_apply_up_to_date(self, api: MockContentApi) -> None:
        vmap = version_map()
        api.add_branch(OMNIBUS, BRANCH, files={k: f"{v}\n" for k, v in PointerFiles(OMNIBUS).select(vmap).items()})

        assert resolver(api).apply(PointerFiles(OMNIBUS), BRANCH, vmap) == Ok(None)

    def test_dry_run_makes_no_commit(self, api: MockContentApi) -> None:
        api.add_branch(OMNIBUS, BRANCH, files={"VERSION": "old\n"})
        before = api.commit_count(OMNIBUS)

        assert resolver(api, dry_run=True).apply(PointerFiles(OMNIBUS), BRANCH, version_map()) == Ok(None)
        assert api.commit_count(OMNIBUS) == before

    def test_partial_failure_persists_nothing(self, api: MockContentApi) -> None:
        api.add_branch(OMNIBUS, BRANCH, files={"VERSION": "old\n"})
        api.fail_after_actions = 2

        result = resolver(api).apply(PointerFiles(OMNIBUS), BRANCH, version_map())

        assert isinstance(result, Err)
        assert api.files_at(OMNIBUS, BRANCH) == {"VERSION": "old\n"}


# =============================================================================
# CI variables
# =============================================================================


VARIABLES = """\
variables:
  GITLAB_VERSION: old
  GITALY_VERSION: v1.41.0
  REGISTRY: registry.gitlab.com
"""


class TestCiVariables:
    def test_apply_updates_variables_table(self, api: MockContentApi) -> None:
        api.add_branch(CNG, BRANCH, files={"ci_files/variables.yml": VARIABLES})

        result = resolver(api).apply(CiVariables(CNG), BRANCH, version_map())

        assert isinstance(result, Ok)
        document = yaml.safe_load(api.files_at(CNG, BRANCH)["ci_files/variables.yml"])
        variables = document["variables"]
        assert variables["GITALY_VERSION"] == "v1.42.0"
        assert variables["GITLAB_VERSION"] == "0123456789abcdef"
        assert variables["GITLAB_REF_SLUG"] == "0123456789abcdef"
        assert variables["MAILROOM_VERSION"] == "v0.9.1"
        assert variables["REGISTRY"] == "registry.gitlab.com"

    def test_has_changes_after_apply(self, api: MockContentApi) -> None:
        api.add_branch(CNG, BRANCH, files={"ci_files/variables.yml": VARIABLES})
        target = CiVariables(CNG)

        assert resolver(api).has_changes(target, BRANCH, version_map())
        resolver(api).apply(target, BRANCH, version_map())
        assert not resolver(api).has_changes(target, BRANCH, version_map())

    def test_missing_variables_table(self, api: MockContentApi) -> None:
        api.add_branch(CNG, BRANCH, files={"ci_files/variables.yml": "stages: [build]\n"})

        result = resolver(api).apply(CiVariables(CNG), BRANCH, version_map())

        assert isinstance(result, Err)
        assert isinstance(result.error, InvalidVariablesFile)

    def test_invalid_yaml(self, api: MockContentApi) -> None:
        api.add_branch(CNG, BRANCH, files={"ci_files/variables.yml": "variables: [unclosed\n"})

        result = resolver(api).apply(CiVariables(CNG), BRANCH, version_map())

        assert isinstance(result, Err)
        assert isinstance(result.error, InvalidVariablesFile)
