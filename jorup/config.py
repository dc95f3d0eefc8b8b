"""
Global configuration settings for jorup.

This module centralizes configuration for:

    - the jorup home directory (all durable state lives below it)
    - the release index source and its refresh policy
    - platform detection override
    - process supervision timings
    - feature flags (logging, offline mode)

It provides:
    JorupConfig  – structured config object
    load_config() – load from environment variables or defaults
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Optional

from .errors import ConfigError


DEFAULT_INDEX_URL = (
    "https://raw.githubusercontent.com/input-output-hk/jorup/master/jorfile.json"
)


@dataclass
class JorupConfig:
    """
    Canonical configuration for jorup.

    Attributes
    ----------
    home_dir:
        Root of the per-user state (index cache, registries, releases,
        run records). Defaults to ~/.jorup.

    index_url:
        HTTP(S) URL, ``file://`` URL or plain path of the release index.

    index_pinned:
        True when the index was given explicitly (``--index``). A pinned
        index is never synced from the default remote.

    offline:
        Never touch the network; work from the cached index and the
        installed releases only.

    platform:
        Platform identifier override (e.g. "x86_64-linux"). None means
        detect from the running interpreter.

    index_ttl_seconds:
        Age after which the cached index is considered stale.

    fetch_retries:
        Attempts for an index refresh before giving up.

    shutdown_timeout:
        Seconds to wait for a graceful exit before forcing termination.

    daemon_grace_period:
        Seconds to wait for a detached node to prove it is alive.

    lock_timeout:
        Seconds to wait for a state lock before failing with ResourceBusy.

    enable_logging:
        Whether to enable internal debug logging.
    """

    home_dir: str = os.path.join(os.path.expanduser("~"), ".jorup")
    index_url: str = DEFAULT_INDEX_URL
    index_pinned: bool = False
    offline: bool = False
    platform: Optional[str] = None

    index_ttl_seconds: float = 24 * 3600.0
    fetch_retries: int = 3
    shutdown_timeout: float = 10.0
    daemon_grace_period: float = 2.0
    lock_timeout: float = 10.0

    enable_logging: bool = False


def load_config() -> JorupConfig:
    """
    Load JorupConfig from environment variables, falling back to defaults.

    Recognized variables:
        JORUP_HOME              (directory path)
        JORUP_INDEX_URL         (URL or path of the release index)
        JORUP_OFFLINE           ("true" / "false" / "1" / "0")
        JORUP_PLATFORM          (platform id override)
        JORUP_INDEX_TTL         (seconds)
        JORUP_FETCH_RETRIES     (integer)
        JORUP_SHUTDOWN_TIMEOUT  (seconds)
        JORUP_DAEMON_GRACE      (seconds)
        JORUP_LOCK_TIMEOUT      (seconds)
        JORUP_ENABLE_LOGGING    ("true" / "false" / "1" / "0")

    Returns
    -------
    JorupConfig
    """

    def _env_flag(name: str, default: bool) -> bool:
        val = os.getenv(name)
        if val is None:
            return default
        return val.strip().lower() in ("1", "true", "yes", "on")

    def _env_float(name: str, default: float) -> float:
        val = os.getenv(name)
        if val is None or not val.strip():
            return default
        try:
            return float(val)
        except ValueError as exc:
            raise ConfigError(f"{name} must be a number, got {val!r}") from exc

    defaults = JorupConfig()
    index_url = os.getenv("JORUP_INDEX_URL")

    return JorupConfig(
        home_dir=os.path.abspath(
            os.path.expanduser(os.getenv("JORUP_HOME", defaults.home_dir))
        ),
        index_url=index_url or DEFAULT_INDEX_URL,
        index_pinned=index_url is not None,
        offline=_env_flag("JORUP_OFFLINE", default=False),
        platform=os.getenv("JORUP_PLATFORM") or None,

        index_ttl_seconds=_env_float("JORUP_INDEX_TTL", defaults.index_ttl_seconds),
        fetch_retries=int(_env_float("JORUP_FETCH_RETRIES", defaults.fetch_retries)),
        shutdown_timeout=_env_float(
            "JORUP_SHUTDOWN_TIMEOUT",
            defaults.shutdown_timeout
        ),
        daemon_grace_period=_env_float(
            "JORUP_DAEMON_GRACE",
            defaults.daemon_grace_period
        ),
        lock_timeout=_env_float("JORUP_LOCK_TIMEOUT", defaults.lock_timeout),

        enable_logging=_env_flag(
            "JORUP_ENABLE_LOGGING",
            default=False
        ),
    )


__all__ = [
    "DEFAULT_INDEX_URL",
    "JorupConfig",
    "load_config",
]
