"""
Tests for the durable registries and their schema migrations.

Covers:
- installed releases: upsert idempotence, orphan detection
- default selection: idempotent make-default, one entry per blockchain
- run records: create / update / remove
- upgrades from older state files
- newer or corrupt files raise StateError
- lock contention raises ResourceBusy
"""

import json

import pytest

from jorup.errors import ResourceBusy, StateError
from jorup.registry import (
    DefaultRegistry,
    InstalledRegistry,
    InstalledRelease,
    RunRecord,
    RunRegistry,
    RunStatus,
    SchemaMigrations,
)
from jorup.utils import FileLock, HomeLayout


@pytest.fixture
def layout(home):
    return HomeLayout.at(home).ensure()


def _release(layout, version="1.2.0", create=True):
    install_dir = layout.release_dir("stable", version)
    if create:
        install_dir.mkdir(parents=True, exist_ok=True)
    return InstalledRelease(channel="stable", version=version, install_dir=str(install_dir))


class TestInstalledRegistry:
    def test_upsert_same_key_keeps_one_entry(self, layout):
        reg = InstalledRegistry(layout)
        reg.upsert(_release(layout))
        reg.upsert(_release(layout))
        assert [r.key for r in reg.list()] == ["stable-1.2.0"]

        doc = json.loads(layout.installed_file.read_text())
        assert doc["schema_version"] == 1
        assert len(doc["releases"]) == 1

    def test_orphaned_entry_reads_as_not_installed(self, layout):
        reg = InstalledRegistry(layout)
        reg.upsert(_release(layout, "1.0.0", create=False))
        assert reg.get("stable", "1.0.0") is not None
        assert reg.get_present("stable", "1.0.0") is None
        assert reg.list_present() == []

    def test_remove(self, layout):
        reg = InstalledRegistry(layout)
        reg.upsert(_release(layout))
        assert reg.remove("stable", "1.2.0") is True
        assert reg.remove("stable", "1.2.0") is False
        assert reg.list() == []

    def test_upgrades_bare_list(self, layout):
        layout.installed_file.write_text(json.dumps([
            {"channel": "stable", "version": "0.8.0", "install_dir": "/nowhere"},
        ]))
        reg = InstalledRegistry(layout)
        assert reg.list()[0].version == "0.8.0"

    def test_newer_schema_is_refused(self, layout):
        layout.installed_file.write_text(json.dumps({"schema_version": 7, "releases": []}))
        with pytest.raises(StateError, match="newer"):
            InstalledRegistry(layout).list()

    def test_corrupt_file_is_not_treated_as_empty(self, layout):
        layout.installed_file.write_text("[{")
        with pytest.raises(StateError):
            InstalledRegistry(layout).list()

    def test_entry_missing_field_is_a_state_error(self, layout):
        layout.installed_file.write_text(json.dumps({
            "schema_version": 1,
            "releases": [{"channel": "stable", "version": "1.2.0"}],
        }))
        with pytest.raises(StateError, match="install_dir"):
            InstalledRegistry(layout).list()


class TestDefaultRegistry:
    def test_empty(self, layout):
        sel = DefaultRegistry(layout).get()
        assert sel.default_channel is None
        assert sel.version_for("itn") is None

    def test_make_default_twice_is_idempotent(self, layout):
        reg = DefaultRegistry(layout)
        reg.set_default("itn", "1.2.0")
        first = layout.defaults_file.read_text()
        reg.set_default("itn", "1.2.0")
        assert layout.defaults_file.read_text() == first
        assert dict(reg.get().selections) == {"itn": "1.2.0"}

    def test_new_default_overwrites(self, layout):
        reg = DefaultRegistry(layout)
        reg.set_default("itn", "1.1.0")
        reg.set_default("itn", "1.2.0")
        reg.set_default("qa", "1.3.0.dev2", make_channel_default=False)
        sel = reg.get()
        assert sel.default_channel == "itn"
        assert dict(sel.selections) == {"itn": "1.2.0", "qa": "1.3.0.dev2"}

    def test_family_alias_and_blockchain_share_one_entry(self, jorup):
        jorup.install("itn", make_default=True)
        jorup.install("stable", "1.1.0", make_default=True)
        sel = jorup.defaults.get()
        assert sel.default_channel == "itn"
        assert dict(sel.selections) == {"itn": "1.1.0"}
        assert jorup.resolve("stable").version == "1.1.0"
        assert jorup.resolve("itn").version == "1.1.0"

    def test_unrecognized_selections_are_a_state_error(self, layout):
        layout.defaults_file.write_text(json.dumps({
            "schema_version": 1,
            "default_channel": "itn",
            "selections": ["itn"],
        }))
        with pytest.raises(StateError, match="not recognized"):
            DefaultRegistry(layout).get()

    def test_upgrade_collapses_duplicate_entries(self, layout):
        layout.defaults_file.write_text(json.dumps({
            "default": "itn",
            "entries": [
                {"channel": "itn", "version": "1.1.0"},
                {"channel": "itn", "version": "1.2.0"},
            ],
        }))
        sel = DefaultRegistry(layout).get()
        assert sel.default_channel == "itn"
        assert dict(sel.selections) == {"itn": "1.2.0"}


class TestRunRegistry:
    def _record(self, **kw):
        data = dict(
            channel="itn",
            version="1.2.0",
            pid=4242,
            executable="/opt/jormungandr",
            control_endpoint="http://127.0.0.1:3100/api",
            status=RunStatus.STARTING,
        )
        data.update(kw)
        return RunRecord(**data)

    def test_create_update_remove(self, layout):
        reg = RunRegistry(layout)
        assert reg.get("itn") is None

        reg.create(self._record())
        assert reg.get("itn").status is RunStatus.STARTING

        updated = reg.update_status("itn", RunStatus.RUNNING)
        assert updated.status is RunStatus.RUNNING
        assert reg.get("itn").pid == 4242

        assert reg.remove("itn") is True
        assert reg.get("itn") is None
        assert reg.update_status("itn", RunStatus.STOPPING) is None

    def test_upgrades_old_runner_file(self, layout):
        layout.runs_dir.mkdir(parents=True, exist_ok=True)
        layout.run_record_file("itn").write_text(json.dumps({
            "pid": 77,
            "rest_port": 8443,
            "jcli": "/old/jcli",
            "jormungandr": "/old/jormungandr",
        }))
        rec = RunRegistry(layout).get("itn")
        assert rec.channel == "itn"
        assert rec.pid == 77
        assert rec.executable == "/old/jormungandr"
        assert rec.control_endpoint == "http://127.0.0.1:8443/api"
        assert rec.daemon is True

    def test_unrecognized_old_file(self, layout):
        layout.runs_dir.mkdir(parents=True, exist_ok=True)
        layout.run_record_file("itn").write_text(json.dumps({"hello": "world"}))
        with pytest.raises(StateError):
            RunRegistry(layout).get("itn")


class TestSchemaMigrations:
    def test_missing_step(self):
        mgr = SchemaMigrations("demo")
        mgr.register(2, lambda doc: doc)
        with pytest.raises(StateError, match="no migration"):
            mgr.apply({"schema_version": 0})

    def test_duplicate_registration(self):
        mgr = SchemaMigrations("demo")
        mgr.register(1, lambda doc: doc)
        with pytest.raises(ValueError):
            mgr.register(1, lambda doc: doc)


class TestLocking:
    def test_contended_lock_times_out(self, layout):
        path = layout.lock_file("installed")
        with FileLock(path, timeout=1.0):
            with pytest.raises(ResourceBusy):
                InstalledRegistry(layout, lock_timeout=0.1).upsert(_release(layout))
        # Released: the write now goes through.
        InstalledRegistry(layout, lock_timeout=0.1).upsert(_release(layout))
