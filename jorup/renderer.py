"""
Node configuration rendering.

Produces the configuration file and command-line flags for one node run.
The caller chooses explicitly between the blockchain defaults and a user
supplied file:

    UseDefaults(blockchain)  base config + blockchain fragment, written to
                             <home>/channels/<name>/node-config.yaml
    UseOverride(path)        the user's file, passed through verbatim

Default configuration (before the blockchain fragment is merged in):

    log:    [{output: stderr, level: info, format: plain}]
    p2p:    {public_address: /ip4/127.0.0.1/tcp/3000, trusted_peers: [...]}
    rest:   {listen: 127.0.0.1:8080}
    storage: <home>/channels/<name>/node-storage
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import yaml

from .errors import ConfigError
from .index import BlockchainConfigDescriptor
from .utils import HomeLayout

logger = logging.getLogger(__name__)


DEFAULT_PUBLIC_ADDRESS = "/ip4/127.0.0.1/tcp/3000"
DEFAULT_REST_LISTEN = "127.0.0.1:8080"

NODE_CONFIG_FILENAME = "node-config.yaml"
GENESIS_HASH_FILENAME = "genesis.block.hash"
NODE_SECRET_FILENAME = "node-secret.yaml"
NODE_STORAGE_DIRNAME = "node-storage"

FORMATS = ("yaml", "json")


# ----------------------------------------------------------------------
# Render choices and result
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class UseDefaults:
    blockchain: BlockchainConfigDescriptor


@dataclass(frozen=True)
class UseOverride:
    path: Path


ConfigChoice = Union[UseDefaults, UseOverride]


@dataclass(frozen=True)
class RenderedConfig:
    config_path: Path
    flags: List[str]
    control_endpoint: Optional[str]


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge ``overlay`` into a copy of ``base``.

    Nested mappings merge key by key; any other value in ``overlay``
    (lists included) replaces the base value.
    """
    out: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(out.get(key), Mapping):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def endpoint_from_listen(listen: Optional[str]) -> Optional[str]:
    """
    Turn a REST listen address into the node's API base URL.

    Example:
        "127.0.0.1:8080" -> "http://127.0.0.1:8080/api"
        "0.0.0.0:8443"   -> "http://127.0.0.1:8443/api"
    """
    if not listen:
        return None
    listen = str(listen).strip()
    if "://" in listen:
        listen = listen.split("://", 1)[1]
    host, sep, port = listen.rpartition(":")
    if not sep or not port.isdigit():
        return None
    if host in ("0.0.0.0", "", "[::]"):
        host = "127.0.0.1"
    return f"http://{host}:{port}/api"


def _flag_value(flags: Sequence[str], name: str) -> Optional[str]:
    value: Optional[str] = None
    for i, flag in enumerate(flags):
        if flag == name and i + 1 < len(flags):
            value = flags[i + 1]
        elif flag.startswith(name + "="):
            value = flag.split("=", 1)[1]
    return value


def load_config_file(path: Path) -> Dict[str, Any]:
    """Read a node config file as YAML or JSON, chosen by extension."""
    suffix = path.suffix.lower()
    try:
        with open(path, "r", encoding="utf-8") as f:
            if suffix == ".json":
                data = json.load(f)
            elif suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                raise ConfigError(
                    f"Configuration file {path} should be either yaml or json"
                )
    except OSError as exc:
        raise ConfigError(f"Cannot read configuration file {path}: {exc}") from exc
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot parse configuration file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")
    return data


def dump_config(mapping: Mapping[str, Any], fmt: str = "yaml") -> str:
    fmt = fmt.lower()
    if fmt == "json":
        return json.dumps(mapping, indent=2) + "\n"
    if fmt == "yaml":
        return yaml.safe_dump(dict(mapping), default_flow_style=False, sort_keys=False)
    raise ConfigError(f"Unknown configuration format {fmt!r}; expected yaml or json")


# ----------------------------------------------------------------------
# Renderer
# ----------------------------------------------------------------------

class ConfigRenderer:
    """
    Builds the node configuration for a channel directory.

    Parameters
    ----------
    layout : HomeLayout
        Where channel directories live.
    """

    def __init__(self, layout: HomeLayout) -> None:
        self.layout = layout

    def prepare_channel(self, blockchain: BlockchainConfigDescriptor) -> Path:
        """
        Create the channel directory and record the genesis block hash.
        """
        channel_dir = self.layout.channel_dir(blockchain.name)
        (channel_dir / NODE_STORAGE_DIRNAME).mkdir(parents=True, exist_ok=True)
        (channel_dir / GENESIS_HASH_FILENAME).write_text(
            blockchain.genesis_block_hash, encoding="utf-8"
        )
        return channel_dir

    def default_config(self, blockchain: BlockchainConfigDescriptor) -> Dict[str, Any]:
        channel_dir = self.layout.channel_dir(blockchain.name)
        base: Dict[str, Any] = {
            "log": [{"output": "stderr", "level": "info", "format": "plain"}],
            "p2p": {
                "public_address": DEFAULT_PUBLIC_ADDRESS,
                "trusted_peers": [p.to_dict() for p in blockchain.trusted_peers],
            },
            "rest": {"listen": DEFAULT_REST_LISTEN},
            "storage": str(channel_dir / NODE_STORAGE_DIRNAME),
        }
        secret = channel_dir / NODE_SECRET_FILENAME
        if secret.is_file():
            base["secret_files"] = [str(secret)]
        return deep_merge(base, blockchain.default_config_fragment)

    def render(
        self,
        choice: ConfigChoice,
        extra_flags: Sequence[str] = (),
    ) -> RenderedConfig:
        extra = [str(f) for f in extra_flags]

        if isinstance(choice, UseDefaults):
            blockchain = choice.blockchain
            channel_dir = self.prepare_channel(blockchain)
            config = self.default_config(blockchain)
            config_path = channel_dir / NODE_CONFIG_FILENAME
            config_path.write_text(dump_config(config, "yaml"), encoding="utf-8")
            flags = [
                "--config", str(config_path),
                "--genesis-block-hash", blockchain.genesis_block_hash,
            ]
            logger.info("Rendered default configuration for %s at %s", blockchain.name, config_path)

        elif isinstance(choice, UseOverride):
            config_path = Path(choice.path).expanduser()
            if not config_path.is_file():
                raise ConfigError(f"Configuration file {config_path} does not exist")
            config_path = config_path.resolve()
            config = load_config_file(config_path)
            flags = ["--config", str(config_path)]
            logger.info("Using configuration file %s", config_path)

        else:
            raise TypeError(f"Unsupported config choice: {choice!r}")

        listen = _flag_value(extra, "--rest-listen")
        if listen is None:
            listen = (config.get("rest") or {}).get("listen")

        return RenderedConfig(
            config_path=config_path,
            flags=flags + extra,
            control_endpoint=endpoint_from_listen(listen),
        )


__all__ = [
    "DEFAULT_PUBLIC_ADDRESS",
    "DEFAULT_REST_LISTEN",
    "FORMATS",
    "UseDefaults",
    "UseOverride",
    "ConfigChoice",
    "RenderedConfig",
    "ConfigRenderer",
    "deep_merge",
    "endpoint_from_listen",
    "load_config_file",
    "dump_config",
]
