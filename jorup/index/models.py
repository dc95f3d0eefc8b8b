"""
Release index records.

The index is a single JSON document published remotely:

    {
      "schema_version": 1,
      "releases": [
        {"channel": "stable", "version": "1.2.0", "publish_date": "2024-01-01",
         "artifacts": {"x86_64-linux": {"url": "...", "checksum": "sha256:..."}}}
      ],
      "blockchains": [
        {"name": "itn", "description": "...", "channel": "stable",
         "genesis_block_hash": "...", "compatible_versions": ">=1.0,<2.0",
         "trusted_peers": [{"address": "...", "id": "..."}],
         "default_config": {...}}
      ]
    }

All records are immutable; a refresh replaces the whole Index.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import Version

from ..channel import ChannelName, parse_date, parse_version
from ..errors import JorupError


INDEX_SCHEMA_VERSION = 1


def _require(data: Mapping[str, Any], key: str, what: str) -> Any:
    if key not in data or data[key] in (None, ""):
        raise ValueError(f"{what} is missing {key!r}")
    return data[key]


# ----------------------------------------------------------------------
# Releases
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Artifact:
    url: str
    checksum: str


@dataclass(frozen=True)
class ReleaseDescriptor:
    channel: ChannelName
    version: Version
    publish_date: date
    platform_artifacts: Mapping[str, Artifact] = field(default_factory=dict)

    @property
    def sort_key(self) -> Tuple[date, Version]:
        return (self.publish_date, self.version)

    def artifact_for(self, platform_id: str) -> Optional[Artifact]:
        return self.platform_artifacts.get(platform_id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReleaseDescriptor":
        try:
            channel = ChannelName.parse(_require(data, "channel", "release"))
            version = parse_version(str(_require(data, "version", "release")))
            published = parse_date(str(_require(data, "publish_date", "release")))
        except JorupError as exc:
            raise ValueError(str(exc)) from exc

        artifacts: Dict[str, Artifact] = {}
        for platform_id, art in (data.get("artifacts") or {}).items():
            artifacts[platform_id] = Artifact(
                url=_require(art, "url", f"artifact {platform_id}"),
                checksum=_require(art, "checksum", f"artifact {platform_id}"),
            )
        return cls(channel, version, published, artifacts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel.value,
            "version": str(self.version),
            "publish_date": self.publish_date.isoformat(),
            "artifacts": {
                pid: {"url": a.url, "checksum": a.checksum}
                for pid, a in sorted(self.platform_artifacts.items())
            },
        }

    def __str__(self) -> str:
        return f"{self.channel.value} {self.version} ({self.publish_date.isoformat()})"


# ----------------------------------------------------------------------
# Blockchains
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class TrustedPeer:
    address: str
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"address": self.address}
        if self.id is not None:
            out["id"] = self.id
        return out


@dataclass(frozen=True)
class BlockchainConfigDescriptor:
    name: str
    channel_family: ChannelName
    genesis_block_hash: str
    compatible_versions: SpecifierSet
    description: str = ""
    trusted_peers: Tuple[TrustedPeer, ...] = ()
    default_config_fragment: Mapping[str, Any] = field(default_factory=dict)

    def is_compatible(self, version: Version) -> bool:
        return self.compatible_versions.contains(version, prereleases=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BlockchainConfigDescriptor":
        name = str(_require(data, "name", "blockchain")).lower()
        try:
            family = ChannelName.parse(_require(data, "channel", f"blockchain {name}"))
        except JorupError as exc:
            raise ValueError(str(exc)) from exc
        try:
            spec = SpecifierSet(str(data.get("compatible_versions") or ""))
        except InvalidSpecifier as exc:
            raise ValueError(f"blockchain {name}: {exc}") from exc

        peers = tuple(
            TrustedPeer(address=_require(p, "address", "trusted peer"), id=p.get("id"))
            for p in data.get("trusted_peers") or []
        )
        fragment = data.get("default_config") or {}
        if not isinstance(fragment, Mapping):
            raise ValueError(f"blockchain {name}: default_config must be an object")

        return cls(
            name=name,
            channel_family=family,
            genesis_block_hash=_require(data, "genesis_block_hash", f"blockchain {name}"),
            compatible_versions=spec,
            description=data.get("description") or "",
            trusted_peers=peers,
            default_config_fragment=dict(fragment),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "channel": self.channel_family.value,
            "genesis_block_hash": self.genesis_block_hash,
            "compatible_versions": str(self.compatible_versions),
            "trusted_peers": [p.to_dict() for p in self.trusted_peers],
            "default_config": dict(self.default_config_fragment),
        }


# ----------------------------------------------------------------------
# Whole index
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Index:
    releases: Tuple[ReleaseDescriptor, ...] = ()
    blockchains: Tuple[BlockchainConfigDescriptor, ...] = ()

    @classmethod
    def empty(cls) -> "Index":
        return cls()

    @classmethod
    def from_document(cls, doc: Any) -> "Index":
        """
        Validate and load an index document.

        Raises ValueError for structurally invalid documents and
        for schema versions newer than this build understands.
        """
        if not isinstance(doc, Mapping):
            raise ValueError("index document must be a JSON object")
        schema = doc.get("schema_version", 1)
        if not isinstance(schema, int) or schema > INDEX_SCHEMA_VERSION:
            raise ValueError(
                f"index schema_version {schema!r} is newer than supported "
                f"({INDEX_SCHEMA_VERSION}); upgrade jorup"
            )

        releases = tuple(ReleaseDescriptor.from_dict(r) for r in doc.get("releases") or [])
        blockchains: List[BlockchainConfigDescriptor] = []
        seen = set()
        for raw in doc.get("blockchains") or []:
            bc = BlockchainConfigDescriptor.from_dict(raw)
            if bc.name in seen:
                raise ValueError(f"duplicate blockchain {bc.name!r} in index")
            seen.add(bc.name)
            blockchains.append(bc)
        return cls(releases=releases, blockchains=tuple(blockchains))

    def to_document(self) -> Dict[str, Any]:
        return {
            "schema_version": INDEX_SCHEMA_VERSION,
            "releases": [r.to_dict() for r in self.releases],
            "blockchains": [b.to_dict() for b in self.blockchains],
        }

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_blockchain(self, name: str) -> Optional[BlockchainConfigDescriptor]:
        name = name.lower()
        for bc in self.blockchains:
            if bc.name == name:
                return bc
        return None

    def blockchains_for_family(self, family: ChannelName) -> List[BlockchainConfigDescriptor]:
        return [bc for bc in self.blockchains if bc.channel_family is family]

    def releases_for(self, family: ChannelName) -> List[ReleaseDescriptor]:
        return [r for r in self.releases if r.channel is family]

    def find_release(self, family: ChannelName, version: Version) -> Optional[ReleaseDescriptor]:
        for release in self.releases_for(family):
            if release.version == version:
                return release
        return None


__all__ = [
    "INDEX_SCHEMA_VERSION",
    "Artifact",
    "ReleaseDescriptor",
    "TrustedPeer",
    "BlockchainConfigDescriptor",
    "Index",
]
