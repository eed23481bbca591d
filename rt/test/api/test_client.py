"""Tests for rt.api.client with urllib faked."""

from __future__ import annotations

import io
import json
import urllib.error
import urllib.request
from collections.abc import Mapping
from datetime import UTC, datetime

import pytest

from rt.api.client import ContentApi, GitLabClient, client_for, ops_client_for
from rt.api.mock import MockContentApi
from rt.api.models import Commit, CommitRef, FileAction, Tag
from rt.api.retry import RetryPolicy
from rt.core.config import Config, RetryConfig
from rt.core.context import RunContext
from rt.core.result import Err, Ok

BASE = "https://gitlab.example.com/api/v4"


class _Response:
    def __init__(self, body: bytes) -> None:
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> _Response:
        return self

    def __exit__(self, *exc: object) -> None:
        return None


class FakeServer:
    """Replacement for ``urllib.request.urlopen``; answers queued responses in order."""

    def __init__(self) -> None:
        self.requests: list[urllib.request.Request] = []
        self.timeouts: list[float | None] = []
        self._queue: list[object] = []

    def reply(self, payload: object) -> None:
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        self._queue.append(_Response(body))

    def fail(self, status: int, payload: Mapping[str, object] | None = None) -> None:
        body = io.BytesIO(json.dumps(payload or {}).encode("utf-8"))
        self._queue.append(urllib.error.HTTPError(BASE, status, "Error", {}, body))  # type: ignore[arg-type]

    def unreachable(self, reason: str) -> None:
        self._queue.append(urllib.error.URLError(reason))

    def __call__(self, req: urllib.request.Request, timeout: float | None = None, context: object = None) -> _Response:
        self.requests.append(req)
        self.timeouts.append(timeout)
        item = self._queue.pop(0)
        if isinstance(item, Exception):
            raise item
        assert isinstance(item, _Response)
        return item

    def body(self, index: int = -1) -> dict[str, object]:
        data = self.requests[index].data
        assert isinstance(data, bytes)
        return json.loads(data.decode("utf-8"))


@pytest.fixture
def server(monkeypatch: pytest.MonkeyPatch) -> FakeServer:
    fake = FakeServer()
    monkeypatch.setattr(urllib.request, "urlopen", fake)
    return fake


@pytest.fixture
def client() -> GitLabClient:
    return GitLabClient(BASE, "secret", retry=RetryPolicy(attempts=3, base_interval=0.0, sleep=lambda _s: None))


# =============================================================================
# Reads
# =============================================================================


class TestReads:
    def test_read_file_raw(self, server: FakeServer, client: GitLabClient) -> None:
        server.reply(b"1.42.0\n")

        assert client.read_file("gitlab-org/gitlab", "GITALY_SERVER_VERSION", "abc123") == Ok("1.42.0\n")

        req = server.requests[0]
        assert req.full_url == (
            f"{BASE}/projects/gitlab-org%2Fgitlab/repository/files/GITALY_SERVER_VERSION/raw?ref=abc123"
        )
        assert req.get_method() == "GET"
        assert req.get_header("Private-token") == "secret"

    def test_nested_file_path_is_encoded(self, server: FakeServer, client: GitLabClient) -> None:
        server.reply({"variables": {}})
        client.read_file("gitlab-org/build/CNG", "ci_files/variables.yml", "master")
        assert "/files/ci_files%2Fvariables.yml/raw" in server.requests[0].full_url

    def test_get_commit(self, server: FakeServer, client: GitLabClient) -> None:
        server.reply({"id": "a" * 40, "created_at": "2019-07-01T12:34:56.000Z", "message": "Update"})

        result = client.get_commit("gitlab-org/omnibus-gitlab", "12-1-auto-deploy-20190701")

        assert result == Ok(
            Commit(id="a" * 40, created_at=datetime(2019, 7, 1, 12, 34, 56, tzinfo=UTC), message="Update")
        )

    def test_get_tag_not_found_is_none(self, server: FakeServer, client: GitLabClient) -> None:
        server.fail(404, {"message": "404 Tag Not Found"})
        assert client.get_tag("gitlab-org/charts/gitlab", "v1.0.0") == Ok(None)

    def test_get_tag(self, server: FakeServer, client: GitLabClient) -> None:
        server.reply({"name": "v1.0.0", "message": "Version v1.0.0", "commit": {"id": "b" * 40}})
        assert client.get_tag("gitlab-org/charts/gitlab", "v1.0.0") == Ok(
            Tag(name="v1.0.0", target="b" * 40, message="Version v1.0.0")
        )

    def test_list_refs_for_commit(self, server: FakeServer, client: GitLabClient) -> None:
        server.reply([{"type": "branch", "name": "master"}, {"type": "tag", "name": "v1.0.0"}, {"type": "x"}])

        result = client.list_refs_for_commit("gitlab-org/omnibus-gitlab", "abc")

        assert result == Ok([CommitRef(type="branch", name="master"), CommitRef(type="tag", name="v1.0.0")])
        assert "type=all" in server.requests[0].full_url

    def test_reads_retry_server_errors(self, server: FakeServer, client: GitLabClient) -> None:
        server.fail(502)
        server.unreachable("Connection reset by peer")
        server.reply(b"ok")

        assert client.read_file("p", "VERSION", "master") == Ok("ok")
        assert len(server.requests) == 3

    def test_error_message_from_json(self, server: FakeServer, client: GitLabClient) -> None:
        server.fail(403, {"message": "403 Forbidden"})

        result = client.read_file("p", "VERSION", "master")

        assert isinstance(result, Err)
        assert result.error.status == 403
        assert result.error.message == "403 Forbidden"
        assert len(server.requests) == 1


# =============================================================================
# Writes
# =============================================================================


class TestWrites:
    def test_create_commit_payload(self, server: FakeServer, client: GitLabClient) -> None:
        server.reply({"id": "c" * 40, "created_at": "2019-07-01T12:00:00Z"})
        actions = [
            FileAction(action="update", file_path="VERSION", content="abc\n"),
            FileAction(action="create", file_path="GITLAB_PAGES_VERSION", content="1.5.0\n"),
        ]

        result = client.create_commit("gitlab-org/omnibus-gitlab", "12-1-auto-deploy", "Update component versions", actions)

        assert isinstance(result, Ok)
        assert result.value.id == "c" * 40
        assert server.requests[0].get_method() == "POST"
        assert server.body() == {
            "branch": "12-1-auto-deploy",
            "commit_message": "Update component versions",
            "actions": [
                {"action": "update", "file_path": "VERSION", "content": "abc\n"},
                {"action": "create", "file_path": "GITLAB_PAGES_VERSION", "content": "1.5.0\n"},
            ],
        }

    def test_writes_are_not_retried(self, server: FakeServer, client: GitLabClient) -> None:
        server.fail(502)

        result = client.create_tag("gitlab-org/omnibus-gitlab", "12.1.201907011200+aaa.bbb", "bbb", "msg")

        assert isinstance(result, Err)
        assert len(server.requests) == 1

    def test_create_tag_payload(self, server: FakeServer, client: GitLabClient) -> None:
        server.reply({"name": "v1.0.0", "commit": {"id": "d" * 40}, "message": "m"})

        result = client.create_tag("gitlab-org/charts/gitlab", "v1.0.0", "master", "m")

        assert result == Ok(Tag(name="v1.0.0", target="d" * 40, message="m"))
        assert server.body() == {"tag_name": "v1.0.0", "ref": "master", "message": "m"}

    def test_create_branch_payload(self, server: FakeServer, client: GitLabClient) -> None:
        server.reply(
            {"name": "12-1-auto-deploy-20190701", "commit": {"id": "e" * 40, "created_at": "2019-07-01T12:00:00Z"}}
        )

        result = client.create_branch("gitlab-org/build/CNG", "12-1-auto-deploy-20190701", "master")

        assert isinstance(result, Ok)
        assert result.value.name == "12-1-auto-deploy-20190701"
        assert result.value.commit.id == "e" * 40
        assert server.requests[0].full_url == f"{BASE}/projects/gitlab-org%2Fbuild%2FCNG/repository/branches"
        assert server.body() == {"branch": "12-1-auto-deploy-20190701", "ref": "master"}

    def test_create_existing_branch_is_not_retried(self, server: FakeServer, client: GitLabClient) -> None:
        server.fail(400, {"message": "Branch already exists"})

        result = client.create_branch("gitlab-org/build/CNG", "12-1-auto-deploy-20190701", "master")

        assert isinstance(result, Err)
        assert result.error.status == 400
        assert result.error.message == "Branch already exists"
        assert len(server.requests) == 1


# =============================================================================
# Factories
# =============================================================================


class TestFactories:
    def test_client_for_regular_run(self) -> None:
        config = Config(retry=RetryConfig(attempts=2, base_interval=1.0))
        client = client_for(config, RunContext(), env={"RELEASE_BOT_PRIVATE_TOKEN": "t"})
        assert client.base_url == "https://gitlab.com/api/v4"
        assert client.retry.attempts == 2

    def test_client_for_security_run(self) -> None:
        client = client_for(Config(), RunContext(security_release=True), env={})
        assert client.base_url == "https://dev.gitlab.org/api/v4"

    def test_partial_api_table_keeps_token_and_timeout(self, server: FakeServer) -> None:
        config = Config.from_dict({"api": {"url": BASE}})
        client = client_for(config, RunContext(), env={"RELEASE_BOT_PRIVATE_TOKEN": "secret"})
        server.reply(b"1.42.0\n")

        assert client.read_file("gitlab-org/gitlab", "VERSION", "master") == Ok("1.42.0\n")
        assert server.requests[0].get_header("Private-token") == "secret"
        assert server.timeouts == [60.0]

    def test_ops_client(self) -> None:
        assert ops_client_for(Config(), env={}).base_url == "https://ops.gitlab.net/api/v4"

    def test_protocol_conformance(self) -> None:
        assert isinstance(GitLabClient(BASE), ContentApi)
        assert isinstance(MockContentApi(), ContentApi)
