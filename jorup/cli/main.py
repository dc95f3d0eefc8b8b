"""
Command line entry point for jorup.

    jorup [--jorup-home DIR] [--index URL|PATH] [--offline] [-v] <command>

    blockchain update                 refresh the release index
    blockchain list                   list known blockchains
    node install [CHANNEL] [-v VER]   install a node release
    node list                         list installed releases
    run [CHANNEL] [-v VER] [-d]       start a node (-- passes extra node flags)
    info CHANNEL                      query a running node
    shutdown CHANNEL                  stop a running node
    defaults CHANNEL [--format F]     print the default node configuration

Library errors are mapped to exit codes here and nowhere else.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
import warnings
from typing import Any, Callable, List, Optional, Sequence

from .. import __version__
from ..config import JorupConfig, load_config
from ..core import Jorup
from ..errors import ForcedShutdown, JorupError
from ..renderer import FORMATS

logger = logging.getLogger(__name__)


JorupFactory = Callable[[JorupConfig], Jorup]


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------

def _cmd_blockchain_update(jorup: Jorup, args: argparse.Namespace) -> int:
    if jorup.update_index():
        print(f"Release index updated from {jorup.config.index_url}")
    else:
        print("Release index is up to date")
    return 0


def _cmd_blockchain_list(jorup: Jorup, args: argparse.Namespace) -> int:
    blockchains = jorup.list_blockchains()
    if not blockchains:
        print("No blockchains known; run `jorup blockchain update`")
        return 0
    width = max(len(bc.name) for bc in blockchains)
    for bc in blockchains:
        print(f"{bc.name:<{width}}  {bc.description}")
    return 0


def _progress_printer(kind: str, payload: dict) -> None:
    if kind == "install_start":
        print(f"Downloading {payload['release']} from {payload['url']}")
    elif kind == "verified":
        print(f"Verified {payload['release']} ({payload['checksum']})")


def _cmd_node_install(jorup: Jorup, args: argparse.Namespace) -> int:
    record = jorup.install(
        args.channel,
        args.version,
        make_default=args.make_default,
        force=args.force,
        emit=_progress_printer,
    )
    print(f"Installed {record.channel} {record.version} in {record.install_dir}")
    return 0


def _cmd_node_list(jorup: Jorup, args: argparse.Namespace) -> int:
    entries = jorup.list_installed()
    if not entries:
        print("No releases installed")
        return 0
    for entry in entries:
        rec = entry.release
        suffix = "  (missing, reinstall)" if entry.orphaned else ""
        print(f"{rec.channel:<8} {rec.version:<16} {rec.install_dir}{suffix}")
    return 0


def _cmd_run(jorup: Jorup, args: argparse.Namespace) -> int:
    record = jorup.run(
        args.channel,
        args.version,
        daemon=args.daemon,
        make_default=args.make_default,
        config_path=args.config,
        extra_flags=args.extra,
        emit=_progress_printer,
    )
    if record.daemon:
        print(f"Node for {record.channel} started (pid {record.pid}); logs in {record.log_file}")
    return 0


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, sort_keys=True, default=str)


def _cmd_info(jorup: Jorup, args: argparse.Namespace) -> int:
    info = jorup.info(args.channel)
    rec = info.record
    print(f"channel:  {rec.channel}")
    print(f"version:  {rec.version}")
    print(f"pid:      {rec.pid}")
    print(f"state:    {info.state.value}")
    print(f"endpoint: {rec.control_endpoint}")
    if rec.log_file:
        print(f"logs:     {rec.log_file}")
    print("node stats:")
    print(_dump(info.stats))
    print("settings:")
    print(_dump(info.settings))
    return 0


def _cmd_shutdown(jorup: Jorup, args: argparse.Namespace) -> int:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", ForcedShutdown)
        result = jorup.shutdown(args.channel)
    for w in caught:
        if issubclass(w.category, ForcedShutdown):
            print(f"warning: {w.message}", file=sys.stderr)
    print(f"Node for {result.channel} (pid {result.pid}) stopped")
    return 0


def _cmd_defaults(jorup: Jorup, args: argparse.Namespace) -> int:
    sys.stdout.write(jorup.defaults_config(args.channel, args.format))
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jorup",
        description="Install and run jormungandr nodes per blockchain channel.",
    )
    parser.add_argument("--version", action="version", version=f"jorup {__version__}")
    parser.add_argument("--jorup-home", metavar="DIR", help="State directory (default ~/.jorup)")
    parser.add_argument("--index", metavar="URL", help="Release index file or URL to use")
    parser.add_argument("--offline", action="store_true", help="Never use the network")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging")

    sub = parser.add_subparsers(dest="command", metavar="<command>")
    sub.required = True

    # blockchain ...
    p_bc = sub.add_parser("blockchain", help="Release index and blockchains")
    bc_sub = p_bc.add_subparsers(dest="blockchain_command", metavar="<action>")
    bc_sub.required = True
    bc_sub.add_parser("update", help="Refresh the release index").set_defaults(
        func=_cmd_blockchain_update
    )
    bc_sub.add_parser("list", help="List known blockchains").set_defaults(
        func=_cmd_blockchain_list
    )

    # node ...
    p_node = sub.add_parser("node", help="Node releases")
    node_sub = p_node.add_subparsers(dest="node_command", metavar="<action>")
    node_sub.required = True
    p_install = node_sub.add_parser("install", help="Install a node release")
    p_install.add_argument("channel", nargs="?", help="Blockchain or channel, e.g. itn, nightly@2024-01-31")
    p_install.add_argument("-v", "--version", dest="version", help="Exact release version")
    p_install.add_argument("--make-default", action="store_true", help="Make this the default")
    p_install.add_argument("--force", action="store_true", help="Reinstall when already installed")
    p_install.set_defaults(func=_cmd_node_install)
    node_sub.add_parser("list", help="List installed releases").set_defaults(func=_cmd_node_list)

    # run
    p_run = sub.add_parser("run", help="Start a node")
    p_run.add_argument("channel", nargs="?", help="Blockchain or channel")
    p_run.add_argument("-v", "--version", dest="version", help="Exact release version")
    p_run.add_argument("-d", "--daemon", action="store_true", help="Run the node in the background")
    p_run.add_argument("--make-default", action="store_true", help="Make this the default")
    p_run.add_argument("--config", metavar="PATH", help="Use this node configuration file")
    p_run.set_defaults(func=_cmd_run, accepts_extra=True)

    # info / shutdown / defaults
    p_info = sub.add_parser("info", help="Query a running node")
    p_info.add_argument("channel")
    p_info.set_defaults(func=_cmd_info)

    p_shutdown = sub.add_parser("shutdown", help="Stop a running node")
    p_shutdown.add_argument("channel")
    p_shutdown.set_defaults(func=_cmd_shutdown)

    p_defaults = sub.add_parser("defaults", help="Print the default node configuration")
    p_defaults.add_argument("channel")
    p_defaults.add_argument("--format", choices=FORMATS, default="yaml")
    p_defaults.set_defaults(func=_cmd_defaults)

    return parser


def _split_extra(argv: Sequence[str]) -> tuple:
    argv = list(argv)
    if "--" in argv:
        idx = argv.index("--")
        return argv[:idx], argv[idx + 1:]
    return argv, []


def _apply_overrides(cfg: JorupConfig, args: argparse.Namespace) -> JorupConfig:
    changes = {}
    if args.jorup_home:
        changes["home_dir"] = args.jorup_home
    if args.index:
        changes["index_url"] = args.index
        changes["index_pinned"] = True
    if args.offline:
        changes["offline"] = True
    if args.verbose:
        changes["enable_logging"] = True
    return dataclasses.replace(cfg, **changes) if changes else cfg


def _report(exc: BaseException, verbose: int) -> None:
    print(f"error: {exc}", file=sys.stderr)
    cause = exc.__cause__
    while verbose and cause is not None:
        print(f"  caused by: {cause}", file=sys.stderr)
        cause = cause.__cause__


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(
    argv: Optional[List[str]] = None,
    *,
    jorup_factory: Optional[JorupFactory] = None,
) -> int:
    parser = build_parser()
    own, extra = _split_extra(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(own)

    if extra and not getattr(args, "accepts_extra", False):
        parser.error("extra node arguments after `--` are only accepted by `run`")
    args.extra = extra

    if args.verbose > 1:
        logging.basicConfig(level=logging.DEBUG)

    factory = jorup_factory or Jorup.from_config
    try:
        cfg = _apply_overrides(load_config(), args)
        jorup = factory(cfg)
        return args.func(jorup, args)
    except JorupError as exc:
        _report(exc, args.verbose)
        return exc.exit_code
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
