"""
Tests for musicdirect.config and the command line front-end.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from musicdirect.__main__ import build_config, parse_args
from musicdirect.config import ConfigError, ServerConfig, load_config
from musicdirect.core.hub import BroadcastScope


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "musicdirect.toml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for load_config()."""

    def test_defaults_match_dataclass(self) -> None:
        assert load_config() == ServerConfig()

    def test_partial_override(self, tmp_path: Path) -> None:
        path = write_config(
            tmp_path,
            """
            [server]
            port = 9100

            [rooms]
            ttl_seconds = 3600

            [broadcast]
            scope = "global"
            """,
        )

        config = load_config(path)

        assert config.port == 9100
        assert config.room_ttl_s == 3600.0
        assert config.broadcast_scope is BroadcastScope.GLOBAL
        # Untouched keys keep their defaults
        assert config.host == "0.0.0.0"
        assert config.code_length == 5

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "[server\nport = ")
        with pytest.raises(ConfigError):
            load_config(path)

    @pytest.mark.parametrize(
        "text",
        [
            "[server]\nport = 0",
            "[server]\nport = \"8080\"",
            "[server]\ncors_origins = [1, 2]",
            "[rooms]\ncode_length = 0",
            "[rooms]\ncode_alphabet = \"abc\"",
            "[rooms]\ncode_alphabet = \"A\"",
            "[rooms]\nttl_seconds = -1",
            "[rooms]\nmax_attempts = true",
            "[broadcast]\nscope = \"everyone\"",
            "[broadcast]\nsend_timeout_seconds = 0",
            "[catalog]\ntimeout_seconds = -2.5",
            "rooms = 5",
        ],
    )
    def test_invalid_values(self, tmp_path: Path, text: str) -> None:
        path = write_config(tmp_path, text)
        with pytest.raises(ConfigError):
            load_config(path)

    def test_with_overrides_skips_none(self) -> None:
        config = ServerConfig().with_overrides(host=None, port=1234)
        assert config.port == 1234
        assert config.host == "0.0.0.0"


class TestCommandLine:
    """Tests for argument parsing."""

    def test_flags_override_file(self, tmp_path: Path) -> None:
        path = write_config(tmp_path, "[server]\nport = 9100\n[database]\npath = \"a.db\"")

        args = parse_args(["--config", str(path), "--port", "9200", "--db", "b.db"])
        config = build_config(args)

        assert config.port == 9200
        assert config.db_path == "b.db"

    def test_no_flags_uses_defaults(self) -> None:
        args = parse_args([])
        assert not args.verbose
        assert build_config(args) == ServerConfig()
