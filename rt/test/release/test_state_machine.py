"""Tests for rt.release.state_machine module."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import replace
from pathlib import Path

import pytest

from rt.core.context import RunContext
from rt.core.result import Err, Ok, Result
from rt.git.errors import CannotCreateTag, GitFailure
from rt.output.console import MockConsole
from rt.release.errors import VersionFileMissing
from rt.release.kinds import ReleaseKind, gitaly_release, gitlab_release, helm_release, omnibus_release
from rt.release.metadata import ReleaseMetadata, ReleaseRecord
from rt.release.projects import Project
from rt.release.state_machine import ReleaseState, ReleaseStateMachine
from rt.release.version import Version

FULL_HISTORY = [
    ReleaseState.PREPARING,
    ReleaseState.BEFORE_HOOK,
    ReleaseState.TAG_CHECK,
    ReleaseState.BUMPING_VERSIONS,
    ReleaseState.TAGGING,
    ReleaseState.AFTER_HOOK,
    ReleaseState.CLEANUP,
    ReleaseState.COMPLETED,
]

CHART = """\
apiVersion: v1
name: gitlab
version: 1.8.0
appVersion: 11.10.0
"""


class FakeRepository:
    """Records every call; files are shared across branches."""

    def __init__(self, name: str, files: dict[str, str] | None = None, tags: list[str] | None = None) -> None:
        self.name = name
        self.remotes = {"canonical": f"git@example.com:org/{name}.git", "dev": f"git@dev.example.com:org/{name}.git"}
        self.files = dict(files or {})
        self.tag_list = list(tags or [])
        self.commits: list[tuple[tuple[str, ...], str | None, bool]] = []
        self.created_tags: list[tuple[str, str | None]] = []
        self.pushed: list[str] = []
        self.pulled: list[str] = []
        self.cleaned = False
        self.tag_error: GitFailure | None = None

    def pull_from_all_remotes(self, ref: str) -> Result[None, GitFailure]:
        self.pulled.append(ref)
        return Ok(None)

    def ensure_branch_exists(self, branch: str, base: str = "master") -> Result[None, GitFailure]:
        return Ok(None)

    def verify_sync(self, ref: str) -> Result[None, GitFailure]:
        return Ok(None)

    def tags(self, sort: str | None = None) -> Result[list[str], GitFailure]:
        return Ok(list(self.tag_list))

    def read_file(self, file: str) -> Result[str | None, GitFailure]:
        return Ok(self.files.get(file))

    def write_file(self, file: str, content: str) -> Result[None, GitFailure]:
        self.files[file] = content
        return Ok(None)

    def commit(
        self,
        files: tuple[str, ...] | list[str],
        message: str | None = None,
        *,
        amend: bool = False,
        no_edit: bool = False,
    ) -> Result[None, GitFailure]:
        self.commits.append((tuple(files), message, amend))
        return Ok(None)

    def push_to_all_remotes(self, ref: str) -> dict[str, bool]:
        self.pushed.append(ref)
        return {remote: True for remote in self.remotes}

    def create_tag(self, name: str, message: str | None = None) -> Result[None, GitFailure]:
        if self.tag_error is not None:
            return Err(self.tag_error)
        self.created_tags.append((name, message))
        self.tag_list.append(name)
        return Ok(None)

    def sha_of_tag(self, tag: str) -> Result[str | None, GitFailure]:
        return Ok("deadbeef" if tag in self.tag_list else None)

    def cleanup(self) -> None:
        self.cleaned = True


class Harness:
    def __init__(self, tmp_path: Path) -> None:
        self.repos: dict[str, FakeRepository] = {}
        self.console = MockConsole()
        self.metadata = ReleaseMetadata()
        self.workdir = tmp_path

    def add(self, name: str, files: dict[str, str] | None = None, tags: list[str] | None = None) -> FakeRepository:
        repo = FakeRepository(name, files, tags)
        self.repos[name] = repo
        return repo

    def factory(self, project: Project) -> FakeRepository:
        return self.repos[project.name]

    def machine(self, kind: ReleaseKind, version: Version) -> ReleaseStateMachine:
        return ReleaseStateMachine(
            kind,
            version,
            ctx=RunContext(),
            console=self.console,
            metadata=self.metadata,
            workdir=self.workdir,
            repository_factory=self.factory,  # type: ignore[arg-type]
        )


@pytest.fixture
def harness(tmp_path: Path) -> Harness:
    return Harness(tmp_path)


# =============================================================================
# Standard releases
# =============================================================================


class TestStandardRelease:
    def test_happy_path(self, harness: Harness) -> None:
        repo = harness.add("gitlab", {"VERSION": "9.0.0\n"})
        machine = harness.machine(gitlab_release(), Version(9, 1, 0))

        result = machine.execute()

        assert isinstance(result, Ok)
        outcome = result.value
        assert outcome.state == ReleaseState.COMPLETED
        assert outcome.tagged
        assert outcome.tag == "v9.1.0"
        assert outcome.sha == "deadbeef"
        assert machine.history == FULL_HISTORY

        assert repo.files["VERSION"] == "9.1.0\n"
        assert repo.commits == [(("VERSION",), "Update VERSION to 9.1.0", False)]
        assert repo.created_tags == [("v9.1.0", None)]
        assert repo.pushed == ["9-1-stable", "master", "v9.1.0"]
        assert set(outcome.pushes) == {"9-1-stable", "master", "v9.1.0"}
        assert repo.cleaned

        assert harness.metadata.records == (
            ReleaseRecord(name="gitlab", version="9.1.0", sha="deadbeef", ref="v9.1.0", tag=True),
        )

    def test_existing_tag_skips(self, harness: Harness) -> None:
        repo = harness.add("gitlab", {"VERSION": "9.0.0\n"}, tags=["v9.1.0"])
        machine = harness.machine(gitlab_release(), Version(9, 1, 0))

        result = machine.execute()

        assert isinstance(result, Ok)
        assert result.value.state == ReleaseState.SKIPPED_TAG_EXISTS
        assert not result.value.tagged
        assert machine.history == [
            ReleaseState.PREPARING,
            ReleaseState.BEFORE_HOOK,
            ReleaseState.TAG_CHECK,
            ReleaseState.CLEANUP,
            ReleaseState.SKIPPED_TAG_EXISTS,
        ]
        assert repo.commits == []
        assert repo.pushed == []
        assert repo.cleaned
        assert len(harness.metadata) == 0

    def test_missing_version_file_is_fatal(self, harness: Harness) -> None:
        repo = harness.add("gitlab", {})
        machine = harness.machine(gitlab_release(), Version(9, 1, 0))

        result = machine.execute()

        assert result == Err(VersionFileMissing(repository="gitlab", path="VERSION"))
        assert machine.history[-2:] == [ReleaseState.CLEANUP, ReleaseState.FAILED_FATAL]
        assert repo.cleaned
        assert harness.console.has_fatal()

    def test_version_already_bumped_still_tags(self, harness: Harness) -> None:
        repo = harness.add("gitlab", {"VERSION": "9.1.0\n"})

        result = harness.machine(gitlab_release(), Version(9, 1, 0)).execute()

        assert isinstance(result, Ok)
        assert result.value.tagged
        assert repo.commits == []

    def test_tag_failure_is_fatal(self, harness: Harness) -> None:
        repo = harness.add("gitlab", {"VERSION": "9.0.0\n"})
        repo.tag_error = CannotCreateTag(repository="gitlab", tag="v9.1.0", output="already exists")
        machine = harness.machine(gitlab_release(), Version(9, 1, 0))

        result = machine.execute()

        assert isinstance(result, Err)
        assert machine.state == ReleaseState.FAILED_FATAL
        assert repo.cleaned
        assert len(harness.metadata) == 0

    def test_ee_version_uses_ee_branch(self, harness: Harness) -> None:
        repo = harness.add("gitlab", {"VERSION": "9.0.0-ee\n"})

        result = harness.machine(gitlab_release(), Version(9, 1, 0, edition="ee")).execute()

        assert isinstance(result, Ok)
        assert repo.pushed[0] == "9-1-stable-ee"
        assert repo.created_tags == [("v9.1.0-ee", None)]
        assert harness.metadata.records[0].version == "9.1.0"


# =============================================================================
# Component releases
# =============================================================================


class TestComponentRelease:
    def test_extra_file_amends_bump_commit(self, harness: Harness) -> None:
        repo = harness.add("gitaly", {"VERSION": "1.41.0\n", "ruby/proto/gitaly/version.rb": "old\n"})

        result = harness.machine(gitaly_release(), Version(1, 42, 0)).execute()

        assert isinstance(result, Ok)
        assert repo.commits == [
            (("VERSION",), "Update VERSION to 1.42.0", False),
            (("ruby/proto/gitaly/version.rb",), None, True),
        ]
        assert "  VERSION = '1.42.0'\n" in repo.files["ruby/proto/gitaly/version.rb"]

    def test_extra_file_commits_alone_when_version_current(self, harness: Harness) -> None:
        repo = harness.add("gitaly", {"VERSION": "1.42.0\n", "ruby/proto/gitaly/version.rb": "old\n"})

        harness.machine(gitaly_release(), Version(1, 42, 0)).execute()

        assert repo.commits == [
            (("ruby/proto/gitaly/version.rb",), "Update ruby/proto/gitaly/version.rb to 1.42.0", False),
        ]


# =============================================================================
# Chart releases
# =============================================================================


class TestChartRelease:
    def test_tag_message_names_app_version(self, harness: Harness) -> None:
        repo = harness.add("helm-gitlab", {"Chart.yaml": CHART})

        result = harness.machine(helm_release(Version(11, 11, 0)), Version(1, 9, 0)).execute()

        assert isinstance(result, Ok)
        assert result.value.tagged
        assert repo.created_tags == [("v1.9.0", "Version v1.9.0 - contains GitLab EE 11.11.0")]
        assert repo.commits[0] == (
            ("Chart.yaml",),
            "Update Chart Version to 1.9.0\nUpdate Gitlab Version to 11.11.0",
            False,
        )
        assert "appVersion: 11.11.0\n" in repo.files["Chart.yaml"]
        # default branch is pushed again after the release
        assert repo.pushed.count("master") == 2

    def test_release_candidate_app_version_is_not_tagged(self, harness: Harness) -> None:
        repo = harness.add("helm-gitlab", {"Chart.yaml": CHART})

        result = harness.machine(helm_release(Version(11, 11, 0, rc=1)), Version(1, 9, 0)).execute()

        assert isinstance(result, Ok)
        assert result.value.state == ReleaseState.COMPLETED
        assert not result.value.tagged
        assert repo.created_tags == []
        assert repo.pushed.count("master") == 1
        assert harness.console.find("Not tagging a chart for a release candidate")
        assert len(harness.metadata) == 0

    def test_app_version_read_from_chart(self, harness: Harness) -> None:
        repo = harness.add("helm-gitlab", {"Chart.yaml": CHART})

        harness.machine(helm_release(), Version(1, 8, 1)).execute()

        assert repo.created_tags == [("v1.8.1", "Version v1.8.1 - contains GitLab EE 11.10.0")]
        assert "appVersion: 11.10.0\n" in repo.files["Chart.yaml"]


# =============================================================================
# Downstream releases
# =============================================================================


class TestDownstream:
    def test_downstream_release_runs_after_tagging(self, harness: Harness) -> None:
        harness.add("gitlab", {"VERSION": "9.0.0\n"})
        omnibus = harness.add("omnibus-gitlab", {"VERSION": "9.0.0\n"})
        kind = replace(gitlab_release(), downstream=(omnibus_release(),))

        result = harness.machine(kind, Version(9, 1, 0)).execute()

        assert isinstance(result, Ok)
        assert [d.name for d in result.value.downstream] == ["omnibus-gitlab"]
        assert omnibus.created_tags == [("v9.1.0", None)]
        assert [r.name for r in harness.metadata.records] == ["gitlab", "omnibus-gitlab"]

    def test_downstream_failure_is_reported_not_raised(self, harness: Harness) -> None:
        harness.add("gitlab", {"VERSION": "9.0.0\n"})
        omnibus = harness.add("omnibus-gitlab", {})
        kind = replace(gitlab_release(), downstream=(omnibus_release(),))

        result = harness.machine(kind, Version(9, 1, 0)).execute()

        assert isinstance(result, Ok)
        assert result.value.state == ReleaseState.COMPLETED
        assert result.value.downstream == ()
        assert harness.console.find("Downstream release failed")
        assert omnibus.cleaned

    def test_skipped_release_does_not_run_downstream(self, harness: Harness) -> None:
        harness.add("gitlab", {"VERSION": "9.0.0\n"}, tags=["v9.1.0"])
        omnibus = harness.add("omnibus-gitlab", {"VERSION": "9.0.0\n"})
        kind = replace(gitlab_release(), downstream=(omnibus_release(),))

        harness.machine(kind, Version(9, 1, 0)).execute()

        assert omnibus.pulled == []


# =============================================================================
# End to end against local bare repositories
# =============================================================================


def _git(*args: str, cwd: Path) -> str:
    return subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True).stdout


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestRealGitRelease:
    @pytest.fixture(autouse=True)
    def git_identity(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        home = tmp_path / "home"
        home.mkdir()
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
        monkeypatch.setenv("GIT_AUTHOR_NAME", "Release Bot")
        monkeypatch.setenv("GIT_AUTHOR_EMAIL", "bot@example.com")
        monkeypatch.setenv("GIT_COMMITTER_NAME", "Release Bot")
        monkeypatch.setenv("GIT_COMMITTER_EMAIL", "bot@example.com")

    @pytest.fixture
    def remote(self, tmp_path: Path) -> Path:
        seed = tmp_path / "seed"
        seed.mkdir()
        _git("init", "--quiet", "-b", "master", cwd=seed)
        (seed / "VERSION").write_text("9.0.0\n", encoding="utf-8")
        _git("add", "VERSION", cwd=seed)
        _git("commit", "--quiet", "--message", "Initial commit", cwd=seed)
        bare = tmp_path / "remotes" / "gitaly.git"
        bare.parent.mkdir()
        _git("clone", "--quiet", "--bare", str(seed), str(bare), cwd=tmp_path)
        return bare

    def _machine(self, remote: Path, tmp_path: Path, metadata: ReleaseMetadata) -> ReleaseStateMachine:
        project = Project(name="gitaly", remotes={"canonical": remote.as_uri()})
        return ReleaseStateMachine(
            replace(gitlab_release(), project=project, name="gitaly"),
            Version(9, 1, 0),
            ctx=RunContext(),
            console=MockConsole(),
            metadata=metadata,
            workdir=tmp_path / "work",
        )

    def test_release_then_rerun_skips(self, remote: Path, tmp_path: Path) -> None:
        metadata = ReleaseMetadata()

        first = self._machine(remote, tmp_path, metadata).execute()

        assert isinstance(first, Ok)
        assert first.value.state == ReleaseState.COMPLETED
        assert _git("show", "9-1-stable:VERSION", cwd=remote) == "9.1.0\n"
        tagged = _git("rev-parse", "v9.1.0^{commit}", cwd=remote).strip()
        assert first.value.sha == tagged
        assert not (tmp_path / "work" / "gitaly").exists()

        second = self._machine(remote, tmp_path, metadata).execute()

        assert isinstance(second, Ok)
        assert second.value.state == ReleaseState.SKIPPED_TAG_EXISTS
        assert len(metadata) == 1
