"""Content API value types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

__all__ = [
    "ApiError",
    "Branch",
    "Commit",
    "CommitRef",
    "FileAction",
    "Tag",
]


@dataclass(frozen=True, slots=True)
class ApiError:
    """Content API failure.

    Attributes:
        method: HTTP method of the failed call.
        url: The URL that failed.
        status: HTTP status code (0 for transport errors and timeouts).
        message: Human-readable error message.
    """

    method: str
    url: str
    status: int
    message: str

    @property
    def not_found(self) -> bool:
        return self.status == 404

    def __str__(self) -> str:
        if self.status:
            return f"{self.method} {self.url}: HTTP {self.status}: {self.message}"
        return f"{self.method} {self.url}: {self.message}"


@dataclass(frozen=True, slots=True)
class Commit:
    id: str
    created_at: datetime
    message: str = ""

    @property
    def short_id(self) -> str:
        return self.id[:11]


@dataclass(frozen=True, slots=True)
class Branch:
    name: str
    commit: Commit


@dataclass(frozen=True, slots=True)
class Tag:
    name: str
    target: str
    message: str = ""


@dataclass(frozen=True, slots=True)
class CommitRef:
    """A branch or tag that contains a commit."""

    type: Literal["branch", "tag"]
    name: str


@dataclass(frozen=True, slots=True)
class FileAction:
    """One file change inside an atomic multi-file commit."""

    action: Literal["create", "update"]
    file_path: str
    content: str

    def as_payload(self) -> dict[str, str]:
        return {"action": self.action, "file_path": self.file_path, "content": self.content}
