"""Run-wide switches threaded through every component."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

__all__ = ["RunContext"]


@dataclass(frozen=True, slots=True)
class RunContext:
    """Explicit replacement for process-wide release flags.

    Attributes:
        security_release: Use only the internal (dev) remote and the security
            content API instance.
        dry_run: Replace pushes, remote commits and remote tags with logged
            no-ops. Local working-copy mutations still happen.
    """

    security_release: bool = False
    dry_run: bool = False

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> RunContext:
        """Read `SECURITY=true` and `TEST`/`DRY_RUN` from the environment."""
        source = os.environ if env is None else env
        security = source.get("SECURITY", "").strip().lower() == "true"
        dry_run = bool(source.get("TEST", "").strip()) or _truthy(source.get("DRY_RUN", ""))
        return cls(security_release=security, dry_run=dry_run)

    @property
    def tags(self) -> tuple[str, ...]:
        """Console tags that mark every log line of this run."""
        out: list[str] = []
        if self.dry_run:
            out.append("dry-run")
        if self.security_release:
            out.append("security")
        return tuple(out)


def _truthy(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}
