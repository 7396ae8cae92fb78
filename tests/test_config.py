"""TOML configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from shared.config import ImageConfig, ScopeConfig


def test_defaults() -> None:
    config = ScopeConfig()
    assert config.global_settings.log_level == "INFO"
    assert config.image.max_file_size == 256 * 1024 * 1024
    assert config.image.verbose_logging is False
    assert config.image.prebuild_symbol_index is False
    assert config.server.takeover_env_var == "SOCKET_TAKEOVER"
    assert config.server.backlog == 5


def test_load_from_toml(tmp_path: Path) -> None:
    path = tmp_path / "elfscope.toml"
    path.write_text(
        "[global]\n"
        'log_level = "DEBUG"\n'
        "\n"
        "[image]\n"
        "max_file_size = 4096\n"
        "prebuild_symbol_index = true\n"
        "unknown_key = 1\n"
        "\n"
        "[server]\n"
        'socket_path = "/run/elfscope.sock"\n'
    )
    config = ScopeConfig.load(path)
    assert config.global_settings.log_level == "DEBUG"
    assert config.image.max_file_size == 4096
    assert config.image.prebuild_symbol_index is True
    assert config.image.max_symbols_displayed == 200
    assert config.server.socket_path == "/run/elfscope.sock"


def test_missing_explicit_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        ScopeConfig.load(tmp_path / "absent.toml")


def test_missing_default_file_gives_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("shared.config._DEFAULT_CONFIG_PATH", tmp_path / "config.toml")
    config = ScopeConfig.load()
    assert config.image.max_file_size == ImageConfig().max_file_size


def test_log_settings(tmp_path: Path) -> None:
    path = tmp_path / "elfscope.toml"
    path.write_text('[global]\nlog_file = "scope.jsonl"\nlog_json = true\ndebug = true\n')
    config = ScopeConfig.load(path)
    assert config.global_settings.log_file == "scope.jsonl"
    assert config.global_settings.log_json is True
    assert not hasattr(config.global_settings, "debug")
