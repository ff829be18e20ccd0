"""Version specifications.

A requested version is one of three things:

- Exact("1.2.3-rc.1"): a concrete, installable version
- Alias("stable"): a symbolic name looked up in a plugin's catalog
- Canary(): the rolling, unpinned channel

Only Exact versions are ordered and only Exact versions reach the install
pipeline; Alias and Canary are resolved first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from tm.core.result import Err, Ok, Result

__all__ = [
    "Exact",
    "Alias",
    "Canary",
    "VersionSpec",
    "LATEST",
    "CANARY",
    "parse_version_spec",
    "parse_exact",
]

LATEST = "latest"
CANARY = "canary"

_EXACT_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
_PARTIAL_RE = re.compile(r"^v?(0|[1-9]\d*)(?:\.(0|[1-9]\d*))?$")
_ALIAS_RE = re.compile(r"^[A-Za-z][A-Za-z0-9._/*+-]*$")


def _pre_key(pre: tuple[str, ...]) -> tuple[tuple[int, int | str], ...]:
    # numeric identifiers sort before alphanumeric ones
    return tuple((0, int(part)) if part.isdigit() else (1, part) for part in pre)


@dataclass(frozen=True, slots=True)
class Exact:
    """A concrete version: major.minor.patch with optional pre-release/build."""

    major: int
    minor: int
    patch: int
    pre: tuple[str, ...] = ()
    build: tuple[str, ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        if min(self.major, self.minor, self.patch) < 0:
            raise ValueError(f"version components cannot be negative: {self}")

    @property
    def is_prerelease(self) -> bool:
        return bool(self.pre)

    def sort_key(self) -> tuple[int, int, int, int, tuple[tuple[int, int | str], ...]]:
        """SemVer precedence key; a release sorts after its pre-releases."""
        return (self.major, self.minor, self.patch, 0 if self.pre else 1, _pre_key(self.pre))

    def __lt__(self, other: Exact) -> bool:
        return self.sort_key() < other.sort_key()

    def __le__(self, other: Exact) -> bool:
        return self.sort_key() <= other.sort_key()

    def __gt__(self, other: Exact) -> bool:
        return self.sort_key() > other.sort_key()

    def __ge__(self, other: Exact) -> bool:
        return self.sort_key() >= other.sort_key()

    def has_prefix(self, parts: tuple[int, ...]) -> bool:
        """True if the leading numeric components equal parts: (1, 2) matches 1.2.x."""
        return (self.major, self.minor, self.patch)[: len(parts)] == parts

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(self.pre)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


@dataclass(frozen=True, slots=True)
class Alias:
    """A symbolic version name resolved against a catalog."""

    name: str

    @property
    def numeric_prefix(self) -> tuple[int, ...] | None:
        """(20,) for "20", (20, 1) for "20.1", None for non-numeric names."""
        m = _PARTIAL_RE.match(self.name)
        if m is None:
            return None
        return tuple(int(g) for g in m.groups() if g is not None)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class Canary:
    """The rolling, unpinned release channel."""

    def __str__(self) -> str:
        return CANARY


type VersionSpec = Exact | Alias | Canary


def parse_exact(text: str) -> Exact | None:
    """Parse a full version ("1.2.3", "v1.2.3-rc.1+build.5"), or None."""
    m = _EXACT_RE.match(text.strip())
    if m is None:
        return None
    major, minor, patch, pre, build = m.groups()
    return Exact(
        major=int(major),
        minor=int(minor),
        patch=int(patch),
        pre=tuple(pre.split(".")) if pre else (),
        build=tuple(build.split(".")) if build else (),
    )


def parse_version_spec(text: str) -> Result[VersionSpec, str]:
    """Parse user or plugin input into a VersionSpec.

    Args:
        text: Raw version string

    Returns:
        Ok with the spec, or Err with a reason the input was rejected
    """
    raw = text.strip()
    if not raw:
        return Err("version is empty")

    exact = parse_exact(raw)
    if exact is not None:
        return Ok(exact)

    if raw.lower() == CANARY:
        return Ok(Canary())

    m = _PARTIAL_RE.match(raw)
    if m is not None:
        # "v20" and "20" name the same release line
        return Ok(Alias(raw.removeprefix("v")))

    if raw[0].isdigit():
        return Err("not a valid version number")

    if _ALIAS_RE.match(raw) is None:
        return Err("not a valid version or alias name")

    return Ok(Alias(raw))
