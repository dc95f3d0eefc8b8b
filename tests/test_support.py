"""
Tests for configuration loading, platform ids, checksums and HTTP access.
"""

from unittest.mock import MagicMock

import pytest
import requests

from jorup.config import DEFAULT_INDEX_URL, load_config
from jorup.errors import ConfigError, FetchError
from jorup.fetch import HttpClient, local_source_path
from jorup.hashing import compute_content_hash, parse_checksum, verify_checksum
from jorup.platforms import is_windows_platform, resolve_platform


class TestLoadConfig:
    def test_defaults(self, monkeypatch):
        for var in ("JORUP_HOME", "JORUP_INDEX_URL", "JORUP_OFFLINE", "JORUP_SHUTDOWN_TIMEOUT"):
            monkeypatch.delenv(var, raising=False)
        cfg = load_config()
        assert cfg.index_url == DEFAULT_INDEX_URL
        assert not cfg.index_pinned
        assert not cfg.offline
        assert cfg.shutdown_timeout == 10.0

    def test_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("JORUP_HOME", str(tmp_path / "h"))
        monkeypatch.setenv("JORUP_INDEX_URL", "/srv/jorfile.json")
        monkeypatch.setenv("JORUP_OFFLINE", "yes")
        monkeypatch.setenv("JORUP_SHUTDOWN_TIMEOUT", "2.5")
        cfg = load_config()
        assert cfg.home_dir == str(tmp_path / "h")
        assert cfg.index_pinned
        assert cfg.offline
        assert cfg.shutdown_timeout == 2.5

    def test_bad_number(self, monkeypatch):
        monkeypatch.setenv("JORUP_LOCK_TIMEOUT", "soon")
        with pytest.raises(ConfigError, match="JORUP_LOCK_TIMEOUT"):
            load_config()


class TestPlatforms:
    def test_override_is_normalized(self):
        assert resolve_platform(" X86_64-Linux ") == "x86_64-linux"

    def test_detected_platform_has_arch_and_os(self):
        arch, _, system = resolve_platform(None).partition("-")
        assert arch and system

    def test_windows(self):
        assert is_windows_platform("x86_64-windows")
        assert not is_windows_platform("aarch64-darwin")


class TestChecksums:
    def test_bare_digest_is_sha256(self):
        assert parse_checksum("ABCDEF") == ("sha256", "abcdef")

    def test_verify(self, tmp_path):
        path = tmp_path / "blob"
        path.write_bytes(b"jormungandr")
        digest = compute_content_hash(b"jormungandr")
        assert verify_checksum(path, f"sha256:{digest}") == (True, f"sha256:{digest}")
        ok, actual = verify_checksum(path, "sha256:" + "0" * 64)
        assert not ok
        assert actual == f"sha256:{digest}"

    @pytest.mark.parametrize("text", ["nope:abc", "sha256:"])
    def test_unusable(self, text):
        with pytest.raises(ValueError):
            parse_checksum(text)


def _response(status=200, content=b"", headers=None):
    resp = requests.Response()
    resp.status_code = status
    resp._content = content
    resp.headers.update(headers or {})
    return resp


class TestHttpClient:
    def test_get_json_with_etag(self):
        session = MagicMock()
        session.headers = {}
        session.get.return_value = _response(content=b'{"a": 1}', headers={"ETag": '"x"'})
        client = HttpClient(session=session)

        assert client.get_json("https://h/i.json") == ({"a": 1}, '"x"')
        assert session.headers["User-Agent"].startswith("jorup/")

        session.get.return_value = _response(status=304)
        assert client.get_json("https://h/i.json", etag='"x"') == (None, '"x"')
        assert session.get.call_args.kwargs["headers"] == {"If-None-Match": '"x"'}

    def test_http_error_carries_body(self):
        session = MagicMock()
        session.headers = {}
        session.get.return_value = _response(status=500, content=b"upstream broke")
        with pytest.raises(FetchError, match="upstream broke"):
            HttpClient(session=session).get_json("https://h/i.json")

    def test_transport_error(self):
        session = MagicMock()
        session.headers = {}
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(FetchError, match="Cannot reach"):
            HttpClient(session=session).get_json("https://h/i.json")

    def test_local_download_reports_progress(self, tmp_path):
        src = tmp_path / "src.bin"
        src.write_bytes(b"x" * 10)
        seen = []
        session = MagicMock()
        session.headers = {}
        dest = HttpClient(session=session).download(
            src.as_uri(), tmp_path / "out" / "dst.bin", progress=lambda d, t: seen.append((d, t))
        )
        assert dest.read_bytes() == b"x" * 10
        assert seen[-1] == (10, 10)
        session.get.assert_not_called()

    def test_local_source_path(self):
        assert local_source_path("https://example.invalid/x") is None
        assert str(local_source_path("/tmp/x.json")) == "/tmp/x.json"
