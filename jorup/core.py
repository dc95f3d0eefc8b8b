"""
Core façade for jorup.

Jorup is the single, high-level entrypoint used by the command line and
by tests. It wraps:

    - the release index (remote catalog + local cache)
    - the registries (installed releases, defaults, run records)
    - the resolver, installer and config renderer
    - the process controller

Every public method maps to one user-facing command and raises a
JorupError subclass on failure; turning those into messages and exit
codes is the CLI's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .channel import ChannelName, ChannelSpec, VersionConstraint
from .clock import SYSTEM_CLOCK, Clock
from .config import JorupConfig, load_config
from .errors import FetchError, InstallError, NoDefaultChannel, UnknownBlockchain
from .fetch import HttpClient, local_source_path
from .index import BlockchainConfigDescriptor, ReleaseIndex
from .installer import Emitter, InstalledEntry, ReleaseInstaller
from .platforms import resolve_platform
from .registry import DefaultRegistry, InstalledRegistry, InstalledRelease, RunRecord, RunRegistry
from .renderer import ConfigRenderer, UseDefaults, UseOverride, dump_config
from .resolver import ResolvedRelease, Resolver
from .runtime import NodeInfo, ProcessBackend, ProcessController, ShutdownResult
from .utils import HomeLayout

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Jorup façade
# ---------------------------------------------------------------------------

@dataclass
class Jorup:
    """
    High-level façade over the jorup components.

    Attributes
    ----------
    config:
        JorupConfig used to construct this instance.

    layout:
        Paths below the jorup home directory.

    index:
        Cached release index.

    installed, defaults, runs:
        Durable registries.

    resolver, installer, renderer, controller:
        The moving parts behind each command.
    """

    config: JorupConfig
    layout: HomeLayout
    platform_id: str
    index: ReleaseIndex
    installed: InstalledRegistry
    defaults: DefaultRegistry
    runs: RunRegistry
    resolver: Resolver
    installer: ReleaseInstaller
    renderer: ConfigRenderer
    controller: ProcessController

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: Optional[JorupConfig] = None,
        *,
        http: Optional[HttpClient] = None,
        process_backend: Optional[ProcessBackend] = None,
        clock: Clock = SYSTEM_CLOCK,
    ) -> "Jorup":
        """
        Construct a Jorup instance from a JorupConfig.

        This:
            - creates the home directory layout,
            - detects the platform (unless overridden),
            - wires up the index, registries, resolver, installer,
              renderer and process controller.
        """
        cfg = config or load_config()

        if cfg.enable_logging:
            logging.basicConfig(level=logging.INFO)
            logger.info("Initializing jorup with config: %s", cfg)

        layout = HomeLayout.at(cfg.home_dir).ensure()
        platform_id = resolve_platform(cfg.platform)
        http = http or HttpClient()

        index = ReleaseIndex(
            layout,
            cfg.index_url,
            http=http,
            ttl_seconds=cfg.index_ttl_seconds,
            retries=cfg.fetch_retries,
            lock_timeout=cfg.lock_timeout,
            clock=clock,
        )
        installed = InstalledRegistry(layout, lock_timeout=cfg.lock_timeout)
        defaults = DefaultRegistry(layout, lock_timeout=cfg.lock_timeout)
        runs = RunRegistry(layout, lock_timeout=cfg.lock_timeout)

        return cls(
            config=cfg,
            layout=layout,
            platform_id=platform_id,
            index=index,
            installed=installed,
            defaults=defaults,
            runs=runs,
            resolver=Resolver(index, installed, defaults, platform_id),
            installer=ReleaseInstaller(layout, installed, platform_id, http=http),
            renderer=ConfigRenderer(layout),
            controller=ProcessController(
                layout,
                runs,
                backend=process_backend,
                http=http,
                clock=clock,
                shutdown_timeout=cfg.shutdown_timeout,
                daemon_grace_period=cfg.daemon_grace_period,
            ),
        )

    # ------------------------------------------------------------------
    # Index
    # ------------------------------------------------------------------

    @property
    def allow_network(self) -> bool:
        return not self.config.offline

    def update_index(self) -> bool:
        """Refresh the release index now (``jorup blockchain update``)."""
        if not self.allow_network:
            raise FetchError("Cannot update the release index in offline mode")
        return self.index.refresh()

    def _ensure_index(self) -> None:
        if not self.allow_network:
            return
        pinned_local = (
            self.config.index_pinned
            and local_source_path(self.config.index_url) is not None
        )
        if pinned_local or self.index.is_stale:
            self.index.refresh()

    def list_blockchains(self) -> List[BlockchainConfigDescriptor]:
        self._ensure_index()
        return list(self.index.current().blockchains)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        channel: Optional[str] = None,
        version: Optional[str] = None,
    ) -> ResolvedRelease:
        spec = ChannelSpec.parse(channel) if channel else None
        constraint = VersionConstraint.from_request(version, spec)
        self._ensure_index()
        return self.resolver.resolve(spec, constraint, allow_network_refresh=self.allow_network)

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    def install(
        self,
        channel: Optional[str] = None,
        version: Optional[str] = None,
        *,
        make_default: bool = False,
        force: bool = False,
        emit: Optional[Emitter] = None,
    ) -> InstalledRelease:
        """
        Install a release (``jorup node install``).

        Without a channel the default channel is used, falling back to
        the stable channel when no default exists yet.
        """
        try:
            resolved = self.resolve(channel, version)
        except NoDefaultChannel:
            logger.info("No default channel; installing from %s", ChannelName.STABLE)
            resolved = self.resolve(ChannelName.STABLE.value, version)

        record = self._ensure_installed(resolved, force=force, emit=emit)
        if make_default:
            self.defaults.set_default(resolved.channel, resolved.version)
        return record

    def _ensure_installed(
        self,
        resolved: ResolvedRelease,
        *,
        force: bool = False,
        emit: Optional[Emitter] = None,
    ) -> InstalledRelease:
        if resolved.installed is not None and not force:
            logger.info("%s %s is already installed", resolved.channel, resolved.version)
            return resolved.installed
        if not self.allow_network:
            raise InstallError(
                f"Release {resolved.version} for {resolved.channel} is not installed "
                "and cannot be downloaded in offline mode"
            )
        return self.installer.install(resolved, emit=emit)

    def list_installed(self) -> List[InstalledEntry]:
        return self.installer.list_installed()

    # ------------------------------------------------------------------
    # Node lifecycle
    # ------------------------------------------------------------------

    def run(
        self,
        channel: Optional[str] = None,
        version: Optional[str] = None,
        *,
        daemon: bool = False,
        make_default: bool = False,
        config_path: Optional[str] = None,
        extra_flags: Sequence[str] = (),
        emit: Optional[Emitter] = None,
    ) -> RunRecord:
        """
        Resolve, install if needed, render the configuration and start
        the node (``jorup run``).
        """
        resolved = self.resolve(channel, version)
        record = self._ensure_installed(resolved, emit=emit)
        executable = self.installer.node_binary(record)

        if make_default:
            self.defaults.set_default(resolved.channel, resolved.version)

        choice = UseOverride(Path(config_path)) if config_path else UseDefaults(resolved.blockchain)
        rendered = self.renderer.render(choice, extra_flags)
        return self.controller.start(resolved, executable, rendered, daemon=daemon)

    def info(self, channel: str) -> NodeInfo:
        return self.controller.info(self._blockchain_name(channel))

    def shutdown(self, channel: str) -> ShutdownResult:
        return self.controller.shutdown(self._blockchain_name(channel))

    def _blockchain_name(self, channel: str) -> str:
        """Map a typed channel (``stable``, ``itn``) to the name its node is kept under."""
        spec = ChannelSpec.parse(channel)
        try:
            return self.resolver.resolve_blockchain(spec).name
        except UnknownBlockchain:
            # not in the cached index; the literal name is all there is
            return spec.name

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def defaults_config(self, channel: str, fmt: str = "yaml") -> str:
        """Default node configuration for a blockchain (``jorup defaults``)."""
        self._ensure_index()
        blockchain = self.resolver.resolve_blockchain(ChannelSpec.parse(channel))
        self.renderer.prepare_channel(blockchain)
        return dump_config(self.renderer.default_config(blockchain), fmt)


__all__ = ["Jorup"]
