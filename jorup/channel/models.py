from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Union

from packaging.version import InvalidVersion, Version

from ..errors import ChannelParseError, ResolutionError


_SPEC_RE = re.compile(
    r"^(?P<name>[a-z0-9][a-z0-9_.-]*?)(?:[@-](?P<date>\d{4}-\d{2}-\d{2}))?$"
)


def parse_date(text: str) -> date:
    try:
        return date.fromisoformat(text.strip())
    except ValueError as exc:
        raise ChannelParseError(f"Invalid date {text!r}, expected YYYY-MM-DD") from exc


def parse_version(text: Union[str, Version]) -> Version:
    """Parse a release version, accepting an optional leading ``v``."""
    if isinstance(text, Version):
        return text
    raw = text.strip()
    if raw[:1] in ("v", "V"):
        raw = raw[1:]
    try:
        return Version(raw)
    except InvalidVersion as exc:
        raise ResolutionError(f"Invalid version {text!r}") from exc


# ----------------------------------------------------------------------
# Channel
# ----------------------------------------------------------------------

class ChannelName(str, Enum):
    STABLE = "stable"
    BETA = "beta"
    NIGHTLY = "nightly"

    @classmethod
    def parse(cls, text: str) -> "ChannelName":
        try:
            return cls(text.strip().lower())
        except ValueError as exc:
            raise ChannelParseError(
                f"Unknown channel {text!r}; expected one of "
                + ", ".join(c.value for c in cls)
            ) from exc

    @classmethod
    def is_family(cls, text: str) -> bool:
        return text.strip().lower() in {c.value for c in cls}

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Channel:
    """
    A release track, optionally pinned to a publish date.

    Only nightly channels may carry a date. A dated nightly is a strict
    refinement of the bare nightly family: ``Channel(NIGHTLY)`` matches
    every nightly, ``Channel(NIGHTLY, d)`` only the ones published on ``d``.
    """

    name: ChannelName
    date: Optional[date] = None

    def __post_init__(self) -> None:
        if self.date is not None and self.name is not ChannelName.NIGHTLY:
            raise ChannelParseError(
                f"Only nightly channels can be pinned to a date, not {self.name}"
            )

    def matches(self, name: ChannelName, published: Optional[date] = None) -> bool:
        if name is not self.name:
            return False
        if self.date is None:
            return True
        return published == self.date

    def __str__(self) -> str:
        if self.date is None:
            return self.name.value
        return f"{self.name.value}@{self.date.isoformat()}"


# ----------------------------------------------------------------------
# Channel specification (user input)
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class ChannelSpec:
    """
    What the user typed to select a channel.

    ``name`` is either a blockchain network from the index (``itn``) or a
    bare channel family (``stable``, ``beta``, ``nightly``). An optional
    date suffix is written ``name@YYYY-MM-DD`` or ``name-YYYY-MM-DD``.
    """

    name: str
    date: Optional[date] = None

    @classmethod
    def parse(cls, text: str) -> "ChannelSpec":
        raw = (text or "").strip().lower()
        m = _SPEC_RE.match(raw)
        if not m:
            raise ChannelParseError(f"Invalid channel {text!r}")
        day = parse_date(m.group("date")) if m.group("date") else None
        return cls(name=m.group("name"), date=day)

    @property
    def family(self) -> Optional[ChannelName]:
        """The channel family named directly, if the name is one."""
        if ChannelName.is_family(self.name):
            return ChannelName.parse(self.name)
        return None

    def __str__(self) -> str:
        if self.date is None:
            return self.name
        return f"{self.name}@{self.date.isoformat()}"


# ----------------------------------------------------------------------
# Version constraint
# ----------------------------------------------------------------------

class ConstraintKind(str, Enum):
    UNCONSTRAINED = "unconstrained"
    EXACT_VERSION = "exact_version"
    CHANNEL_DATE = "channel_date"


@dataclass(frozen=True)
class VersionConstraint:
    kind: ConstraintKind = ConstraintKind.UNCONSTRAINED
    version: Optional[Version] = None
    date: Optional[date] = None

    @classmethod
    def unconstrained(cls) -> "VersionConstraint":
        return cls()

    @classmethod
    def exact(cls, version: Union[str, Version]) -> "VersionConstraint":
        return cls(ConstraintKind.EXACT_VERSION, version=parse_version(version))

    @classmethod
    def channel_date(cls, day: date) -> "VersionConstraint":
        return cls(ConstraintKind.CHANNEL_DATE, date=day)

    @classmethod
    def from_request(
        cls,
        version: Optional[str],
        spec: Optional[ChannelSpec] = None,
    ) -> "VersionConstraint":
        """
        Normalize CLI input into a single constraint.

        An explicit version and a dated channel are mutually exclusive.
        """
        dated = spec is not None and spec.date is not None
        if version and dated:
            raise ChannelParseError(
                "Cannot combine an explicit version with a dated channel"
            )
        if version:
            return cls.exact(version)
        if dated:
            return cls.channel_date(spec.date)
        return cls.unconstrained()

    @property
    def is_unconstrained(self) -> bool:
        return self.kind is ConstraintKind.UNCONSTRAINED

    def __str__(self) -> str:
        if self.kind is ConstraintKind.EXACT_VERSION:
            return f"version {self.version}"
        if self.kind is ConstraintKind.CHANNEL_DATE:
            return f"nightly published {self.date.isoformat()}"
        return "latest"
