"""Typed configuration loading.

The config file is optional TOML; every value has a default so the tool runs
against the public instances without one.

    [api]
    url = "https://gitlab.com/api/v4"
    security_url = "https://dev.gitlab.org/api/v4"
    ops_url = "https://ops.gitlab.net/api/v4"
    token_env = "RELEASE_BOT_PRIVATE_TOKEN"

    [retry]
    attempts = 3
    base_interval = 5.0

    [workdir]
    root = "/tmp/release-tools"

    [projects.gitaly]
    canonical = "git@gitlab.com:gitlab-org/gitaly.git"
    dev = "git@dev.gitlab.org:gitlab/gitaly.git"
"""

from __future__ import annotations

import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_float, get_int, get_str, get_table

__all__ = [
    "ApiConfig",
    "Config",
    "ConfigError",
    "RetryConfig",
    "load_config",
    "load_config_or_default",
]

DEFAULT_API_URL = "https://gitlab.com/api/v4"
DEFAULT_SECURITY_API_URL = "https://dev.gitlab.org/api/v4"
DEFAULT_OPS_API_URL = "https://ops.gitlab.net/api/v4"
DEFAULT_TOKEN_ENV = "RELEASE_BOT_PRIVATE_TOKEN"
DEFAULT_SECURITY_TOKEN_ENV = "RELEASE_BOT_DEV_TOKEN"
DEFAULT_OPS_TOKEN_ENV = "RELEASE_BOT_OPS_TOKEN"
DEFAULT_API_TIMEOUT = 60.0

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BASE_INTERVAL = 5.0


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Config file could not be read or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ApiConfig:
    """Content API endpoints and the environment variables holding tokens."""

    url: str = DEFAULT_API_URL
    security_url: str = DEFAULT_SECURITY_API_URL
    ops_url: str = DEFAULT_OPS_API_URL
    token_env: str = DEFAULT_TOKEN_ENV
    security_token_env: str = DEFAULT_SECURITY_TOKEN_ENV
    ops_token_env: str = DEFAULT_OPS_TOKEN_ENV
    timeout: float = DEFAULT_API_TIMEOUT


@dataclass(frozen=True, slots=True)
class RetryConfig:
    attempts: int = DEFAULT_RETRY_ATTEMPTS
    base_interval: float = DEFAULT_RETRY_BASE_INTERVAL


def _default_workdir() -> Path:
    return Path(tempfile.gettempdir())


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    api: ApiConfig = field(default_factory=ApiConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    workdir: Path = field(default_factory=_default_workdir)
    # project name -> {remote role -> clone URL}
    project_remotes: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from a parsed TOML mapping."""
        api: StrDict = get_table(data, "api") or {}
        retry: StrDict = get_table(data, "retry") or {}
        workdir: StrDict = get_table(data, "workdir") or {}
        projects: StrDict = get_table(data, "projects") or {}

        remotes: dict[str, dict[str, str]] = {}
        for name, raw in projects.items():
            table = as_str_dict(raw)
            if table is None:
                raise ValueError(f"[projects.{name}] must be a table")
            roles: dict[str, str] = {}
            for role in ("canonical", "dev", "security"):
                url = get_str(table, role)
                if url is not None:
                    roles[role] = url
            remotes[name] = roles

        root = get_str(workdir, "root")

        return cls(
            api=ApiConfig(
                url=get_str(api, "url") or DEFAULT_API_URL,
                security_url=get_str(api, "security_url") or DEFAULT_SECURITY_API_URL,
                ops_url=get_str(api, "ops_url") or DEFAULT_OPS_API_URL,
                token_env=get_str(api, "token_env") or DEFAULT_TOKEN_ENV,
                security_token_env=get_str(api, "security_token_env") or DEFAULT_SECURITY_TOKEN_ENV,
                ops_token_env=get_str(api, "ops_token_env") or DEFAULT_OPS_TOKEN_ENV,
                timeout=get_float(api, "timeout") or DEFAULT_API_TIMEOUT,
            ),
            retry=RetryConfig(
                attempts=get_int(retry, "attempts") or DEFAULT_RETRY_ATTEMPTS,
                base_interval=get_float(retry, "base_interval") or DEFAULT_RETRY_BASE_INTERVAL,
            ),
            workdir=Path(root).expanduser() if root else _default_workdir(),
            project_remotes=remotes,
        )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        data_obj: object = tomllib.loads(path.read_bytes().decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file."""
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(path: Path | None) -> Result[Config, ConfigError]:
    """Load config when a file exists; fall back to defaults otherwise.

    A file that exists but is broken is still an error.
    """
    if path is None or not path.exists():
        return Ok(Config())
    return load_config(path)
