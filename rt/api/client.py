"""Content API client.

This module provides:
- ContentApi: Protocol for the remote repository content API (injectable for tests)
- GitLabClient: Real implementation of the GitLab v4 REST API using urllib
- client_for / ops_client_for: pick the instance for a run
"""

from __future__ import annotations

import json
import os
import ssl
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from rt import __version__
from rt.core.config import Config
from rt.core.context import RunContext
from rt.core.result import Err, Ok, Result
from rt.core.structured import as_obj_list, as_str_dict, get_str, get_table

from .models import ApiError, Branch, Commit, CommitRef, FileAction, Tag
from .retry import RetryPolicy

__all__ = [
    "ContentApi",
    "GitLabClient",
    "client_for",
    "ops_client_for",
]


@runtime_checkable
class ContentApi(Protocol):
    """Read/write access to repositories through a hosting API.

    Expected absence is never an error for ``get_tag`` (``Ok(None)``); every
    other method reports a missing object as an ``ApiError`` with status 404.
    """

    def read_file(self, project: str, path: str, ref: str) -> Result[str, ApiError]: ...

    def create_commit(
        self,
        project: str,
        branch: str,
        message: str,
        actions: Sequence[FileAction],
    ) -> Result[Commit, ApiError]:
        """Apply all actions as a single commit, or none of them."""
        ...

    def create_tag(self, project: str, name: str, target: str, message: str) -> Result[Tag, ApiError]: ...

    def create_branch(self, project: str, branch: str, ref: str) -> Result[Branch, ApiError]:
        """Create ``branch`` pointing at what ``ref`` resolves to; 400 when it already exists."""
        ...

    def get_tag(self, project: str, name: str) -> Result[Tag | None, ApiError]: ...

    def get_commit(self, project: str, ref: str) -> Result[Commit, ApiError]:
        """Commit a ref (branch, tag or SHA) resolves to."""
        ...

    def list_refs_for_commit(self, project: str, sha: str) -> Result[list[CommitRef], ApiError]:
        """Branches and tags that contain ``sha``."""
        ...


def _quote(value: str) -> str:
    return urllib.parse.quote(value, safe="")


def _parse_time(value: str | None) -> datetime:
    if not value:
        return datetime.fromtimestamp(0, tz=UTC)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _commit_from(data: Mapping[str, object]) -> Commit | None:
    sha = get_str(data, "id")
    if sha is None:
        return None
    return Commit(
        id=sha,
        created_at=_parse_time(get_str(data, "created_at") or get_str(data, "committed_date")),
        message=get_str(data, "message") or "",
    )


def _tag_from(data: Mapping[str, object]) -> Tag | None:
    name = get_str(data, "name")
    if name is None:
        return None
    commit = get_table(data, "commit") or {}
    target = get_str(commit, "id") or get_str(data, "target") or ""
    return Tag(name=name, target=target, message=get_str(data, "message") or "")


class GitLabClient:
    """GitLab v4 REST client using urllib.

    Reads go through the retry policy; creation calls are sent once.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = 60.0,
        retry: RetryPolicy | None = None,
        user_agent: str = f"rt-release-tools/{__version__}",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry = retry or RetryPolicy()
        self._token = token
        self._user_agent = user_agent
        self._ssl_context = ssl.create_default_context()

    def _url(self, path: str, query: Mapping[str, str] | None = None) -> str:
        url = f"{self.base_url}/{path}"
        if query:
            url += "?" + urllib.parse.urlencode(query)
        return url

    def _request(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, str] | None = None,
        body: Mapping[str, object] | None = None,
    ) -> Result[bytes, ApiError]:
        url = self._url(path, query)
        headers = {"User-Agent": self._user_agent, "Accept": "application/json"}
        if self._token:
            headers["PRIVATE-TOKEN"] = self._token
        data: bytes | None = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        try:
            req = urllib.request.Request(url, data=data, headers=headers, method=method)
            with urllib.request.urlopen(req, timeout=self.timeout, context=self._ssl_context) as response:
                return Ok(response.read())
        except urllib.error.HTTPError as e:
            return Err(ApiError(method=method, url=url, status=e.code, message=_http_message(e)))
        except urllib.error.URLError as e:
            return Err(ApiError(method=method, url=url, status=0, message=str(e.reason)))
        except TimeoutError:
            return Err(ApiError(method=method, url=url, status=0, message="Request timed out"))
        except (ValueError, OSError) as e:
            return Err(ApiError(method=method, url=url, status=0, message=str(e)))

    def _json(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, str] | None = None,
        body: Mapping[str, object] | None = None,
    ) -> Result[object, ApiError]:
        result = self._request(method, path, query=query, body=body)
        if isinstance(result, Err):
            return result
        try:
            return Ok(json.loads(result.value.decode("utf-8")))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return Err(ApiError(method=method, url=self._url(path, query), status=0, message=f"JSON parse error: {e}"))

    def _object(
        self,
        method: str,
        path: str,
        *,
        body: Mapping[str, object] | None = None,
    ) -> Result[dict[str, object], ApiError]:
        result = self._json(method, path, body=body)
        if isinstance(result, Err):
            return result
        data = as_str_dict(result.value)
        if data is None:
            return Err(ApiError(method=method, url=self._url(path), status=0, message="Expected JSON object"))
        return Ok(data)

    # -- reads -----------------------------------------------------------

    def read_file(self, project: str, path: str, ref: str) -> Result[str, ApiError]:
        api_path = f"projects/{_quote(project)}/repository/files/{_quote(path.lstrip('/'))}/raw"

        def call() -> Result[str, ApiError]:
            result = self._request("GET", api_path, query={"ref": ref})
            if isinstance(result, Err):
                return result
            try:
                return Ok(result.value.decode("utf-8"))
            except UnicodeDecodeError as e:
                return Err(ApiError(method="GET", url=self._url(api_path), status=0, message=f"Decode error: {e}"))

        return self.retry.run(call)

    def get_tag(self, project: str, name: str) -> Result[Tag | None, ApiError]:
        api_path = f"projects/{_quote(project)}/repository/tags/{_quote(name)}"

        def call() -> Result[Tag | None, ApiError]:
            result = self._object("GET", api_path)
            match result:
                case Err(e) if e.not_found:
                    return Ok(None)
                case Err(_):
                    return result
                case Ok(data):
                    return Ok(_tag_from(data))

        return self.retry.run(call)

    def get_commit(self, project: str, ref: str) -> Result[Commit, ApiError]:
        api_path = f"projects/{_quote(project)}/repository/commits/{_quote(ref)}"

        def call() -> Result[Commit, ApiError]:
            result = self._object("GET", api_path)
            if isinstance(result, Err):
                return result
            commit = _commit_from(result.value)
            if commit is None:
                return Err(ApiError(method="GET", url=self._url(api_path), status=0, message="Commit without id"))
            return Ok(commit)

        return self.retry.run(call)

    def list_refs_for_commit(self, project: str, sha: str) -> Result[list[CommitRef], ApiError]:
        api_path = f"projects/{_quote(project)}/repository/commits/{_quote(sha)}/refs"

        def call() -> Result[list[CommitRef], ApiError]:
            result = self._json("GET", api_path, query={"type": "all", "per_page": "100"})
            if isinstance(result, Err):
                return result
            refs: list[CommitRef] = []
            for item in as_obj_list(result.value) or []:
                entry = as_str_dict(item) or {}
                kind = get_str(entry, "type")
                name = get_str(entry, "name")
                if name is None:
                    continue
                if kind == "tag":
                    refs.append(CommitRef(type="tag", name=name))
                elif kind == "branch":
                    refs.append(CommitRef(type="branch", name=name))
            return Ok(refs)

        return self.retry.run(call)

    # -- writes ----------------------------------------------------------

    def create_commit(
        self,
        project: str,
        branch: str,
        message: str,
        actions: Sequence[FileAction],
    ) -> Result[Commit, ApiError]:
        api_path = f"projects/{_quote(project)}/repository/commits"
        body: dict[str, object] = {
            "branch": branch,
            "commit_message": message,
            "actions": [a.as_payload() for a in actions],
        }
        result = self._object("POST", api_path, body=body)
        if isinstance(result, Err):
            return result
        commit = _commit_from(result.value)
        if commit is None:
            return Err(ApiError(method="POST", url=self._url(api_path), status=0, message="Commit without id"))
        return Ok(commit)

    def create_tag(self, project: str, name: str, target: str, message: str) -> Result[Tag, ApiError]:
        api_path = f"projects/{_quote(project)}/repository/tags"
        body: dict[str, object] = {"tag_name": name, "ref": target, "message": message}
        result = self._object("POST", api_path, body=body)
        if isinstance(result, Err):
            return result
        return Ok(_tag_from(result.value) or Tag(name=name, target=target, message=message))

    def create_branch(self, project: str, branch: str, ref: str) -> Result[Branch, ApiError]:
        api_path = f"projects/{_quote(project)}/repository/branches"
        body: dict[str, object] = {"branch": branch, "ref": ref}
        result = self._object("POST", api_path, body=body)
        if isinstance(result, Err):
            return result
        commit = _commit_from(get_table(result.value, "commit") or {})
        if commit is None:
            return Err(ApiError(method="POST", url=self._url(api_path), status=0, message="Branch without commit"))
        return Ok(Branch(name=get_str(result.value, "name") or branch, commit=commit))


def _http_message(error: urllib.error.HTTPError) -> str:
    """Prefer GitLab's JSON ``message`` over the bare reason phrase."""
    try:
        payload: object = json.loads(error.read().decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError, OSError, ValueError):
        return str(error.reason)
    data = as_str_dict(payload)
    if data is not None:
        message = data.get("message") or data.get("error")
        if message:
            return str(message)
    return str(error.reason)


def _retry_policy(config: Config) -> RetryPolicy:
    return RetryPolicy(attempts=config.retry.attempts, base_interval=config.retry.base_interval)


def client_for(config: Config, ctx: RunContext, env: Mapping[str, str] | None = None) -> GitLabClient:
    """Client for the instance a run targets: the dev instance for security releases."""
    source = os.environ if env is None else env
    if ctx.security_release:
        url, token_env = config.api.security_url, config.api.security_token_env
    else:
        url, token_env = config.api.url, config.api.token_env
    return GitLabClient(url, source.get(token_env), timeout=config.api.timeout, retry=_retry_policy(config))


def ops_client_for(config: Config, env: Mapping[str, str] | None = None) -> GitLabClient:
    """Client for the operations instance hosting the deployer."""
    source = os.environ if env is None else env
    return GitLabClient(
        config.api.ops_url,
        source.get(config.api.ops_token_env),
        timeout=config.api.timeout,
        retry=_retry_policy(config),
    )
