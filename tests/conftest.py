"""
Shared fixtures for the jorup test suite.

Nothing here touches the network or starts real node processes:

- the release index is a local JSON file
- release archives are small tar.gz / zip files built on the fly
- node REST calls go to FakeNodeSession
- processes are FakeHandle objects from FakeProcessBackend
- time is a FakeClock that advances when something sleeps
"""

import io
import json
import tarfile
import zipfile
from pathlib import Path

import pytest
import requests

from jorup.config import JorupConfig
from jorup.core import Jorup
from jorup.fetch import HttpClient
from jorup.hashing import compute_content_hash


PLATFORM = "x86_64-linux"
GENESIS = "adbdd5ede31637f6c9bad5c271eec0bc3d0cb9efb86a5b913bb55cba549d0770"

NODE_SCRIPT = b"#!/bin/sh\nwhile true; do sleep 1; done\n"


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

class FakeClock:
    """Virtual clock: sleep() advances time instantly."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start
        self.sleeps = []

    def time(self):
        return self.now

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds):
        self.now += seconds


# ---------------------------------------------------------------------------
# Processes
# ---------------------------------------------------------------------------

class FakeHandle:
    def __init__(self, backend, pid, argv, daemon):
        self.backend = backend
        self.pid = pid
        self.argv = list(argv)
        self.daemon = daemon
        self.alive = True
        self.exit_code = backend.exit_code
        self.graceful_requests = 0
        self.forced = False

    def is_alive(self):
        return self.alive

    def request_graceful(self):
        self.graceful_requests += 1
        if not self.backend.ignore_graceful:
            self.alive = False

    def force_terminate(self):
        self.forced = True
        self.alive = False

    def wait(self):
        if self.backend.interrupt_wait:
            self.backend.interrupt_wait = False
            raise KeyboardInterrupt
        self.alive = False
        return self.exit_code


class FakeProcessBackend:
    """
    Records spawned processes. ``attach`` returns the same handle for a
    known pid, so state changes are visible across controller calls.
    """

    def __init__(self):
        self.handles = {}
        self.spawned = []
        self.next_pid = 4000
        self.exit_code = 0
        self.ignore_graceful = False
        self.die_on_start = False
        self.spawn_error = None
        self.interrupt_wait = False

    def spawn(self, argv, *, daemon, log_file=None, cwd=None):
        if self.spawn_error is not None:
            raise self.spawn_error
        self.next_pid += 1
        handle = FakeHandle(self, self.next_pid, argv, daemon)
        if self.die_on_start:
            handle.alive = False
        handle.log_file = log_file
        self.handles[handle.pid] = handle
        self.spawned.append(handle)
        return handle

    def attach(self, pid, executable=None, graceful=None):
        handle = self.handles.get(pid)
        if handle is None:
            handle = FakeHandle(self, pid, [executable or "?"], True)
            handle.alive = False
            self.handles[pid] = handle
        return handle


# ---------------------------------------------------------------------------
# Node REST API
# ---------------------------------------------------------------------------

def _json_response(url, payload, status=200):
    resp = requests.Response()
    resp.status_code = status
    resp.url = url
    resp._content = json.dumps(payload).encode("utf-8") if payload is not None else b""
    resp.headers["Content-Type"] = "application/json"
    return resp


class FakeNodeSession:
    """Stands in for requests.Session when talking to a node."""

    def __init__(self):
        self.headers = {}
        self.calls = []
        self.reachable = True
        self.stats = {"state": "Running", "uptime": 42, "lastBlockHeight": "1234"}
        self.settings = {"block0Hash": GENESIS, "slotDuration": 2}

    def request(self, method, url, timeout=None):
        self.calls.append((method, url))
        if not self.reachable:
            raise requests.ConnectionError(f"connection refused: {url}")
        if url.endswith("/v0/node/stats"):
            return _json_response(url, self.stats)
        if url.endswith("/v0/settings"):
            return _json_response(url, self.settings)
        if url.endswith("/v0/shutdown"):
            return _json_response(url, None)
        return _json_response(url, {"error": "not found"}, status=404)

    def get(self, url, **kwargs):
        raise AssertionError(f"unexpected download from {url}")


# ---------------------------------------------------------------------------
# Archives and index
# ---------------------------------------------------------------------------

def make_tar_archive(path, files=None):
    """Build a tar.gz with a node binary inside a release directory."""
    files = files if files is not None else {
        "jormungandr-release/jormungandr": (NODE_SCRIPT, 0o755),
        "jormungandr-release/jcli": (NODE_SCRIPT, 0o755),
        "jormungandr-release/README": (b"node release\n", 0o644),
    }
    with tarfile.open(path, "w:gz") as tf:
        for name, (data, mode) in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = mode
            tf.addfile(info, io.BytesIO(data))
    return Path(path)


def make_zip_archive(path, files=None):
    files = files if files is not None else {
        "jormungandr.exe": b"MZ fake node",
        "jcli.exe": b"MZ fake cli",
    }
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return Path(path)


def sha256_checksum(path):
    return "sha256:" + compute_content_hash(Path(path))


def build_index(archive, *, checksum=None):
    url = str(archive)
    checksum = checksum or sha256_checksum(archive)
    art = {PLATFORM: {"url": url, "checksum": checksum}}
    return {
        "schema_version": 1,
        "releases": [
            {"channel": "stable", "version": "1.0.0", "publish_date": "2024-01-10", "artifacts": art},
            {"channel": "stable", "version": "1.1.0", "publish_date": "2024-02-01", "artifacts": art},
            {"channel": "stable", "version": "1.2.0", "publish_date": "2024-02-01", "artifacts": art},
            {"channel": "stable", "version": "2.0.0", "publish_date": "2024-03-01", "artifacts": art},
            {
                "channel": "stable", "version": "1.5.0", "publish_date": "2024-04-01",
                "artifacts": {"x86_64-windows": {"url": url, "checksum": checksum}},
            },
            {"channel": "nightly", "version": "1.3.0.dev1", "publish_date": "2024-03-01", "artifacts": art},
            {"channel": "nightly", "version": "1.3.0.dev2", "publish_date": "2024-03-02", "artifacts": art},
        ],
        "blockchains": [
            {
                "name": "itn",
                "description": "Incentivized testnet",
                "channel": "stable",
                "genesis_block_hash": GENESIS,
                "compatible_versions": ">=1.0,<2.0",
                "trusted_peers": [
                    {"address": "/ip4/52.9.132.248/tcp/3000", "id": "671a9e7a5c739532668511bea823f0f5c5557c99b813456c"},
                ],
                "default_config": {"rest": {"listen": "127.0.0.1:3100"}},
            },
            {
                "name": "qa",
                "description": "Nightly QA network",
                "channel": "nightly",
                "genesis_block_hash": "11" * 32,
                "compatible_versions": "",
            },
        ],
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def archive(tmp_path):
    return make_tar_archive(tmp_path / "jormungandr-linux.tar.gz")


@pytest.fixture
def index_file(tmp_path, archive):
    path = tmp_path / "index.json"
    path.write_text(json.dumps(build_index(archive)), encoding="utf-8")
    return path


@pytest.fixture
def home(tmp_path):
    return tmp_path / "jorup-home"


@pytest.fixture
def config(home, index_file):
    return JorupConfig(
        home_dir=str(home),
        index_url=str(index_file),
        index_pinned=True,
        platform=PLATFORM,
        shutdown_timeout=5.0,
        daemon_grace_period=1.0,
        lock_timeout=2.0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def processes():
    return FakeProcessBackend()


@pytest.fixture
def node_session():
    return FakeNodeSession()


@pytest.fixture
def make_jorup(config, clock, processes, node_session):
    def factory(cfg=None):
        return Jorup.from_config(
            cfg or config,
            http=HttpClient(session=node_session),
            process_backend=processes,
            clock=clock,
        )
    return factory


@pytest.fixture
def jorup(make_jorup):
    return make_jorup()
