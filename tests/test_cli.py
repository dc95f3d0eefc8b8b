"""
End-to-end command line scenarios.

Each test drives ``jorup.cli.main`` with an injected factory so the
commands share one fake process backend and node session.
"""

import dataclasses
import json
import shutil

import pytest
import yaml

from jorup.cli import main

from conftest import GENESIS


@pytest.fixture
def cli(config, make_jorup, home, index_file, monkeypatch):
    for var in ("JORUP_HOME", "JORUP_INDEX_URL", "JORUP_OFFLINE", "JORUP_PLATFORM"):
        monkeypatch.delenv(var, raising=False)
    seen = []

    def factory(cfg):
        seen.append(cfg)
        return make_jorup(dataclasses.replace(config, offline=cfg.offline))

    def run(*argv):
        args = ["--jorup-home", str(home), "--index", str(index_file)] + list(argv)
        return main(args, jorup_factory=factory)

    run.seen = seen
    return run


class TestScenarios:
    def test_install_run_shutdown(self, cli, processes, capsys):
        assert cli("node", "install", "itn") == 0
        out = capsys.readouterr().out
        assert "Installed stable 1.2.0" in out

        assert cli("run", "itn", "-d") == 0
        out = capsys.readouterr().out
        assert "started (pid 4001)" in out
        assert len(processes.spawned) == 1

        assert cli("run", "itn", "-d") == 14
        assert "already running" in capsys.readouterr().err

        assert cli("shutdown", "itn") == 0
        assert "stopped" in capsys.readouterr().out
        assert cli("shutdown", "itn") == 15

    def test_install_without_channel_uses_stable(self, cli, capsys):
        assert cli("node", "install", "--make-default") == 0
        assert "Installed stable 1.2.0" in capsys.readouterr().out

        # The stable default now stands in for a missing channel argument.
        assert cli("run", "-d") == 0
        assert "Node for itn started" in capsys.readouterr().out

    def test_overrides_reach_the_config(self, cli, home, index_file):
        cli("blockchain", "list")
        cfg = cli.seen[-1]
        assert cfg.home_dir == str(home)
        assert cfg.index_url == str(index_file)
        assert cfg.index_pinned

    def test_missing_version_spawns_nothing(self, cli, processes, capsys):
        assert cli("run", "itn", "-v", "9.9.9") == 10
        assert "9.9.9" in capsys.readouterr().err
        assert processes.spawned == []

    def test_incompatible_version(self, cli, processes, capsys):
        assert cli("node", "install", "itn", "-v", "2.0.0") == 10
        assert "Cannot run without compatible release" in capsys.readouterr().err

    def test_extra_flags_reach_the_node(self, cli, processes):
        assert cli("run", "itn", "-d", "--", "--enable-explorer") == 0
        assert processes.spawned[0].argv[-1] == "--enable-explorer"

    def test_extra_flags_rejected_elsewhere(self, cli):
        with pytest.raises(SystemExit) as info:
            cli("node", "install", "itn", "--", "--enable-explorer")
        assert info.value.code == 2

    def test_forced_shutdown_is_a_warning(self, cli, processes, capsys):
        cli("run", "itn", "-d")
        processes.ignore_graceful = True
        assert cli("shutdown", "itn") == 0
        captured = capsys.readouterr()
        assert "warning:" in captured.err
        assert "stopped" in captured.out

    def test_offline_without_installed_release(self, cli, processes, capsys):
        cli("blockchain", "update")
        assert cli("--offline", "run", "itn", "-d") == 12
        assert "offline" in capsys.readouterr().err
        assert processes.spawned == []

    def test_offline_with_installed_release(self, cli, processes):
        cli("node", "install", "itn")
        assert cli("--offline", "run", "itn", "-d") == 0
        assert len(processes.spawned) == 1


class TestListings:
    def test_blockchain_list(self, cli, capsys):
        assert cli("blockchain", "list") == 0
        out = capsys.readouterr().out
        assert "itn" in out
        assert "Incentivized testnet" in out
        assert "qa" in out

    def test_node_list_marks_missing(self, cli, home, capsys):
        cli("node", "install", "itn")
        cli("node", "install", "itn", "-v", "1.0.0")
        shutil.rmtree(home / "releases" / "stable-1.0.0")
        capsys.readouterr()

        assert cli("node", "list") == 0
        lines = capsys.readouterr().out.splitlines()
        assert any("1.0.0" in line and "(missing, reinstall)" in line for line in lines)
        assert any("1.2.0" in line and "missing" not in line for line in lines)

    def test_info(self, cli, capsys):
        cli("run", "itn", "-d")
        capsys.readouterr()
        assert cli("info", "itn") == 0
        out = capsys.readouterr().out
        assert "state:    running" in out
        assert GENESIS in out

    def test_info_without_node(self, cli):
        assert cli("info", "itn") == 15

    def test_unreadable_install_registry(self, cli, home, capsys):
        home.mkdir(parents=True, exist_ok=True)
        (home / "installed.json").write_text(json.dumps({
            "schema_version": 1,
            "releases": [{"channel": "stable", "version": "1.2.0"}],
        }))
        assert cli("node", "list") == 13
        assert "not recognized" in capsys.readouterr().err


class TestDefaultsCommand:
    def test_json(self, cli, capsys):
        assert cli("defaults", "itn", "--format", "json") == 0
        doc = json.loads(capsys.readouterr().out)
        assert doc["rest"]["listen"] == "127.0.0.1:3100"

    def test_yaml(self, cli, capsys):
        assert cli("defaults", "itn") == 0
        doc = yaml.safe_load(capsys.readouterr().out)
        assert doc["p2p"]["trusted_peers"][0]["address"] == "/ip4/52.9.132.248/tcp/3000"

    def test_unknown_blockchain(self, cli):
        assert cli("defaults", "mainnet") == 10
