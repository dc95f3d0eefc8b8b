"""
Tests for node configuration rendering.
"""

import json

import pytest
import yaml

from jorup.errors import ConfigError
from jorup.index import Index
from jorup.renderer import (
    ConfigRenderer,
    UseDefaults,
    UseOverride,
    deep_merge,
    dump_config,
    endpoint_from_listen,
)
from jorup.utils import HomeLayout

from conftest import GENESIS, build_index


@pytest.fixture
def layout(home):
    return HomeLayout.at(home).ensure()


@pytest.fixture
def renderer(layout):
    return ConfigRenderer(layout)


@pytest.fixture
def itn(archive):
    return Index.from_document(build_index(archive)).get_blockchain("itn")


@pytest.fixture
def qa(archive):
    return Index.from_document(build_index(archive)).get_blockchain("qa")


class TestDefaults:
    def test_renders_merged_config(self, renderer, layout, itn):
        rendered = renderer.render(UseDefaults(itn))
        channel_dir = layout.channel_dir("itn")

        assert rendered.config_path == channel_dir / "node-config.yaml"
        assert rendered.flags == [
            "--config", str(rendered.config_path),
            "--genesis-block-hash", GENESIS,
        ]
        assert rendered.control_endpoint == "http://127.0.0.1:3100/api"

        config = yaml.safe_load(rendered.config_path.read_text())
        assert config["rest"]["listen"] == "127.0.0.1:3100"
        assert config["storage"] == str(channel_dir / "node-storage")
        assert config["p2p"]["public_address"] == "/ip4/127.0.0.1/tcp/3000"
        assert config["p2p"]["trusted_peers"][0]["address"] == "/ip4/52.9.132.248/tcp/3000"
        assert "secret_files" not in config

        assert (channel_dir / "genesis.block.hash").read_text() == GENESIS
        assert (channel_dir / "node-storage").is_dir()

    def test_base_rest_listen_without_fragment(self, renderer, qa):
        rendered = renderer.render(UseDefaults(qa))
        assert rendered.control_endpoint == "http://127.0.0.1:8080/api"

    def test_node_secret_is_picked_up(self, renderer, layout, itn):
        channel_dir = renderer.prepare_channel(itn)
        secret = channel_dir / "node-secret.yaml"
        secret.write_text("bft:\n  signing_key: x\n")
        config = renderer.default_config(itn)
        assert config["secret_files"] == [str(secret)]

    def test_extra_flags_are_appended_and_rest_listen_wins(self, renderer, itn):
        rendered = renderer.render(UseDefaults(itn), ["--rest-listen", "0.0.0.0:9000", "--enable-explorer"])
        assert rendered.flags[-3:] == ["--rest-listen", "0.0.0.0:9000", "--enable-explorer"]
        assert rendered.control_endpoint == "http://127.0.0.1:9000/api"


class TestOverride:
    def test_file_is_used_verbatim(self, renderer, tmp_path):
        user = tmp_path / "my-node.yaml"
        user.write_text("rest:\n  listen: 127.0.0.1:4444\n")
        rendered = renderer.render(UseOverride(user))
        assert rendered.flags == ["--config", str(user.resolve())]
        assert rendered.control_endpoint == "http://127.0.0.1:4444/api"
        assert user.read_text() == "rest:\n  listen: 127.0.0.1:4444\n"

    def test_json_override_without_rest(self, renderer, tmp_path):
        user = tmp_path / "node.json"
        user.write_text(json.dumps({"storage": "/data"}))
        rendered = renderer.render(UseOverride(user), ["--rest-listen=127.0.0.1:5555"])
        assert rendered.control_endpoint == "http://127.0.0.1:5555/api"

    def test_missing_file(self, renderer, tmp_path):
        with pytest.raises(ConfigError, match="does not exist"):
            renderer.render(UseOverride(tmp_path / "nope.yaml"))

    def test_unknown_extension(self, renderer, tmp_path):
        user = tmp_path / "node.toml"
        user.write_text("[rest]\n")
        with pytest.raises(ConfigError, match="yaml or json"):
            renderer.render(UseOverride(user))

    def test_unparseable(self, renderer, tmp_path):
        user = tmp_path / "node.yaml"
        user.write_text("rest: [unclosed\n")
        with pytest.raises(ConfigError):
            renderer.render(UseOverride(user))


class TestHelpers:
    def test_deep_merge(self):
        base = {"rest": {"listen": "a", "cors": {"allowed_origins": ["x"]}}, "log": [1]}
        merged = deep_merge(base, {"rest": {"listen": "b"}, "log": [2, 3]})
        assert merged == {"rest": {"listen": "b", "cors": {"allowed_origins": ["x"]}}, "log": [2, 3]}
        assert base["rest"]["listen"] == "a"

    @pytest.mark.parametrize(
        "listen,expected",
        [
            ("127.0.0.1:8080", "http://127.0.0.1:8080/api"),
            ("0.0.0.0:8443", "http://127.0.0.1:8443/api"),
            ("http://10.0.0.2:3100", "http://10.0.0.2:3100/api"),
            ("localhost", None),
            (None, None),
        ],
    )
    def test_endpoint_from_listen(self, listen, expected):
        assert endpoint_from_listen(listen) == expected

    def test_dump_formats(self):
        doc = {"rest": {"listen": "127.0.0.1:8080"}, "log": [{"level": "info"}]}
        assert json.loads(dump_config(doc, "json")) == doc
        assert yaml.safe_load(dump_config(doc, "YAML")) == doc
        with pytest.raises(ConfigError):
            dump_config(doc, "toml")
