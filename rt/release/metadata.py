"""Append-only record of what was released where during one run.

The driver owns the recorder and passes it into every state machine and
tagger, which may run on different threads.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import asdict, dataclass

from .version import is_valid_version

__all__ = ["ReleaseMetadata", "ReleaseRecord"]


@dataclass(frozen=True, slots=True)
class ReleaseRecord:
    name: str
    version: str
    sha: str | None
    ref: str | None
    tag: bool


class ReleaseMetadata:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[ReleaseRecord] = []

    def add_release(
        self,
        name: str,
        version: str,
        *,
        sha: str | None = None,
        ref: str | None = None,
        tag: bool = False,
    ) -> ReleaseRecord:
        record = ReleaseRecord(name=name, version=version, sha=sha, ref=ref, tag=tag)
        with self._lock:
            self._records.append(record)
        return record

    def add_auto_deploy_components(self, version_map: Mapping[str, str]) -> None:
        """Record each component of an auto-deploy snapshot.

        Components pinned to a release version are recorded as tags; components
        pinned to a commit are recorded by SHA.
        """
        for component, value in version_map.items():
            name = _component_name(component)
            if is_valid_version(value):
                version = value.removeprefix("v")
                self.add_release(name, version, ref=f"v{version}", tag=True)
            else:
                self.add_release(name, value, sha=value, ref=value, tag=False)

    @property
    def records(self) -> tuple[ReleaseRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def tagged(self) -> tuple[ReleaseRecord, ...]:
        return tuple(r for r in self.records if r.tag)

    def as_dict(self) -> dict[str, list[dict[str, object]]]:
        """Serializable snapshot for an external store."""
        return {"releases": [asdict(r) for r in self.records]}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def _component_name(component: str) -> str:
    """``GITALY_SERVER_VERSION`` -> ``gitaly-server``; ``VERSION`` -> ``gitlab``."""
    if component in ("VERSION", "GITLAB_VERSION"):
        return "gitlab"
    return component.removesuffix("_VERSION").lower().replace("_", "-")
