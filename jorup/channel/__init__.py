"""
Channel and version model.

Value types and parsing rules for channel names, dated nightlies and
version constraints. Everything user-typed is normalized here before it
reaches the resolver.
"""

from .models import (
    Channel,
    ChannelName,
    ChannelSpec,
    ConstraintKind,
    VersionConstraint,
    parse_date,
    parse_version,
)

__all__ = [
    "Channel",
    "ChannelName",
    "ChannelSpec",
    "ConstraintKind",
    "VersionConstraint",
    "parse_date",
    "parse_version",
]
