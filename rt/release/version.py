"""Release version identifiers and the names derived from them."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Literal

from rt.core.result import Err, Ok, Result

from .errors import InvalidVersion

__all__ = ["Edition", "Version", "is_valid_version", "parse_version"]

Edition = Literal["ce", "ee"]

_VERSION_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-rc(?P<rc>[1-9]\d*))?"
    r"(?:-(?P<edition>ce|ee))?$"
)


@dataclass(frozen=True, slots=True)
class Version:
    major: int
    minor: int
    patch: int
    rc: int | None = None
    edition: Edition | None = None

    def __str__(self) -> str:
        text = self.to_patch()
        if self.rc is not None:
            text += f"-rc{self.rc}"
        if self.edition is not None:
            text += f"-{self.edition}"
        return text

    @property
    def is_rc(self) -> bool:
        return self.rc is not None

    @property
    def is_ee(self) -> bool:
        return self.edition == "ee"

    @property
    def tag(self) -> str:
        return f"v{self}"

    @property
    def stable_branch(self) -> str:
        branch = f"{self.major}-{self.minor}-stable"
        return f"{branch}-ee" if self.is_ee else branch

    @property
    def milestone(self) -> str:
        return f"{self.major}.{self.minor}"

    def to_patch(self) -> str:
        """``major.minor.patch`` without qualifiers."""
        return f"{self.major}.{self.minor}.{self.patch}"

    def to_ce(self) -> Version:
        return replace(self, edition=None)

    def to_ee(self) -> Version:
        return replace(self, edition="ee")


def parse_version(text: str) -> Result[Version, InvalidVersion]:
    """Parse ``9.1.0``, ``v9.1.0``, ``9.1.0-rc1``, ``9.1.0-ee`` or ``9.1.0-rc1-ee``."""
    m = _VERSION_RE.match(text.strip())
    if m is None:
        return Err(InvalidVersion(text))
    rc = m.group("rc")
    edition = m.group("edition")
    return Ok(
        Version(
            major=int(m.group("major")),
            minor=int(m.group("minor")),
            patch=int(m.group("patch")),
            rc=int(rc) if rc else None,
            edition="ee" if edition == "ee" else "ce" if edition == "ce" else None,
        )
    )


def is_valid_version(text: str) -> bool:
    return isinstance(parse_version(text), Ok)
