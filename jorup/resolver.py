"""
Channel and release resolution.

Turns what the user asked for (a channel spec plus an optional version or
date) into exactly one concrete release:

    1. optional index refresh (only when network use is allowed and the
       cache is stale)
    2. blockchain lookup: by network name, by bare channel family, or from
       the default selection
    3. explicit versions (or a pinned default) are looked up directly
    4. otherwise: same family, compatible with the blockchain's version
       range, available for this platform, optionally published on the
       requested date; the newest by (publish_date, version) wins
    5. offline, with nothing usable in the cache, compatible installed
       releases are considered
    6. nothing left -> NoCompatibleRelease

Resolution never falls back to a different channel or version than the
one requested; every failure names the unmet constraint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from packaging.version import Version

from .channel import Channel, ChannelName, ChannelSpec, ConstraintKind, VersionConstraint, parse_version
from .errors import (
    ChannelParseError,
    NoCompatibleRelease,
    NoDefaultChannel,
    NoSuchVersion,
    ResolutionError,
    UnknownBlockchain,
)
from .index import BlockchainConfigDescriptor, Index, ReleaseDescriptor, ReleaseIndex
from .registry import DefaultRegistry, InstalledRegistry, InstalledRelease

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedRelease:
    """
    The outcome of a resolution.

    ``channel`` is the name of the resolved blockchain (``itn``, ``qa``
    ...) whichever alias was typed, and user-facing state is keyed by it.
    ``installed`` is set when a usable local copy of the release already
    exists.
    """

    channel: str
    blockchain: BlockchainConfigDescriptor
    release: ReleaseDescriptor
    installed: Optional[InstalledRelease] = None

    @property
    def version(self) -> str:
        return str(self.release.version)

    @property
    def family(self) -> ChannelName:
        return self.release.channel

    @property
    def needs_install(self) -> bool:
        return self.installed is None


class Resolver:
    def __init__(
        self,
        index: ReleaseIndex,
        installed: InstalledRegistry,
        defaults: DefaultRegistry,
        platform_id: str,
    ) -> None:
        self.index = index
        self.installed = installed
        self.defaults = defaults
        self.platform_id = platform_id

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(
        self,
        requested: Optional[ChannelSpec],
        constraint: Optional[VersionConstraint] = None,
        allow_network_refresh: bool = True,
    ) -> ResolvedRelease:
        constraint = constraint or VersionConstraint.unconstrained()

        if allow_network_refresh and self.index.is_stale:
            self.index.refresh()
        index = self.index.current()

        spec = requested or self._default_spec()
        blockchain = self.resolve_blockchain(spec, index)
        # state (defaults, run records, node directories) is keyed per blockchain
        channel = blockchain.name

        wanted_date = constraint.date if constraint.kind is ConstraintKind.CHANNEL_DATE else spec.date
        if wanted_date is not None and blockchain.channel_family is not ChannelName.NIGHTLY:
            raise ChannelParseError(
                f"{channel} follows the {blockchain.channel_family} channel; "
                "only nightly channels can be pinned to a date"
            )

        version: Optional[Version] = None
        pinned = False
        if constraint.kind is ConstraintKind.EXACT_VERSION:
            version = constraint.version
        elif constraint.is_unconstrained and wanted_date is None:
            pinned_text = self.defaults.get().version_for(channel)
            if pinned_text:
                version = parse_version(pinned_text)
                pinned = True

        if version is not None:
            resolved = self._resolve_exact(
                channel, blockchain, index, version, allow_network_refresh
            )
            logger.info(
                "Resolved %s to %s (%s)",
                channel, resolved.version, "default" if pinned else "explicit",
            )
            return resolved

        candidates = self._eligible(blockchain, index.releases_for(blockchain.channel_family))
        if wanted_date is not None:
            track = Channel(blockchain.channel_family, wanted_date)
            candidates = [r for r in candidates if track.matches(r.channel, r.publish_date)]

        if not candidates and not allow_network_refresh:
            candidates = self._installed_candidates(blockchain, wanted_date)

        if not candidates:
            raise NoCompatibleRelease(
                channel, self._describe(blockchain, constraint, wanted_date)
            )

        best = max(candidates, key=lambda r: r.sort_key)
        resolved = ResolvedRelease(
            channel=channel,
            blockchain=blockchain,
            release=best,
            installed=self.installed.get_present(best.channel.value, str(best.version)),
        )
        logger.info("Resolved %s to %s", channel, best)
        return resolved

    def resolve_blockchain(
        self,
        spec: ChannelSpec,
        index: Optional[Index] = None,
    ) -> BlockchainConfigDescriptor:
        """
        Find the blockchain a spec refers to: an exact network name first,
        then the first blockchain following a bare channel family.
        """
        index = index or self.index.current()

        blockchain = index.get_blockchain(spec.name)
        if blockchain is not None:
            return blockchain

        family = spec.family
        if family is not None:
            matches = index.blockchains_for_family(family)
            if matches:
                return matches[0]

        raise UnknownBlockchain(spec.name)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _default_spec(self) -> ChannelSpec:
        selection = self.defaults.get()
        if selection.default_channel:
            return ChannelSpec.parse(selection.default_channel)

        present = self.installed.list_present()
        if present:
            latest = max(present, key=lambda rec: rec.installed_at)
            logger.info("No default channel set; using installed %s", latest.channel)
            return ChannelSpec.parse(latest.channel)

        raise NoDefaultChannel()

    def _eligible(
        self,
        blockchain: BlockchainConfigDescriptor,
        releases: List[ReleaseDescriptor],
    ) -> List[ReleaseDescriptor]:
        return [
            r for r in releases
            if r.channel is blockchain.channel_family
            and blockchain.is_compatible(r.version)
            and r.artifact_for(self.platform_id) is not None
        ]

    def _resolve_exact(
        self,
        channel: str,
        blockchain: BlockchainConfigDescriptor,
        index: Index,
        version: Version,
        allow_network_refresh: bool,
    ) -> ResolvedRelease:
        family = blockchain.channel_family
        installed = self.installed.get_present(family.value, str(version))

        release = index.find_release(family, version)
        if release is None and not allow_network_refresh and installed is not None:
            release = _descriptor_from_installed(family, installed)
        if release is None:
            raise NoSuchVersion(str(version), channel)

        if not blockchain.is_compatible(version):
            raise NoCompatibleRelease(
                channel,
                f"version {version} within {blockchain.compatible_versions or 'any version'}",
            )
        if installed is None and release.artifact_for(self.platform_id) is None:
            raise NoCompatibleRelease(
                channel, f"version {version} for platform {self.platform_id}"
            )
        return ResolvedRelease(
            channel=channel,
            blockchain=blockchain,
            release=release,
            installed=installed,
        )

    def _installed_candidates(
        self,
        blockchain: BlockchainConfigDescriptor,
        wanted_date: Optional[date],
    ) -> List[ReleaseDescriptor]:
        family = blockchain.channel_family
        track = Channel(family, wanted_date)
        out: List[ReleaseDescriptor] = []
        for rec in self.installed.list_present():
            if rec.channel != family.value:
                continue
            try:
                desc = _descriptor_from_installed(family, rec)
            except ResolutionError:
                logger.warning("Ignoring installed release with bad version %s", rec.key)
                continue
            if not blockchain.is_compatible(desc.version):
                continue
            if not track.matches(desc.channel, desc.publish_date):
                continue
            out.append(desc)
        return out

    def _describe(
        self,
        blockchain: BlockchainConfigDescriptor,
        constraint: VersionConstraint,
        wanted_date: Optional[date],
    ) -> str:
        parts = [str(constraint)]
        if wanted_date is not None and constraint.kind is not ConstraintKind.CHANNEL_DATE:
            parts = [f"nightly published {wanted_date.isoformat()}"]
        parts.append(f"{blockchain.channel_family} releases")
        parts.append(f"within {blockchain.compatible_versions or 'any version'}")
        parts.append(f"for platform {self.platform_id}")
        return " ".join(parts)


def _descriptor_from_installed(
    family: ChannelName,
    rec: InstalledRelease,
) -> ReleaseDescriptor:
    published = date.min
    if rec.publish_date:
        try:
            published = date.fromisoformat(rec.publish_date)
        except ValueError:
            published = date.min
    return ReleaseDescriptor(
        channel=family,
        version=parse_version(rec.version),
        publish_date=published,
    )


__all__ = ["ResolvedRelease", "Resolver"]
