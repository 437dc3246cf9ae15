from __future__ import annotations

from pathlib import Path

import pytest

from shared.config import BingrepConfig


def test_defaults() -> None:
    config = BingrepConfig()
    assert config.global_settings.log_level == "WARNING"
    assert config.search.max_file_size == 512 * 1024 * 1024
    assert config.search.chunk_size == 0
    assert config.search.encoding == "utf-8"
    assert config.display.pretty is False
    assert config.display.color is None
    assert config.display.max_matches == 1000


def test_load_partial_file(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text(
        '[global]\nlog_level = "DEBUG"\n'
        "[search]\nchunk_size = 4096\nunknown_key = 1\n"
        "[display]\npretty = true\n"
    )
    config = BingrepConfig.load(path)
    assert config.global_settings.log_level == "DEBUG"
    assert config.search.chunk_size == 4096
    # Unspecified keys keep their defaults
    assert config.search.max_file_size == 512 * 1024 * 1024
    assert config.display.pretty is True
    assert config.display.max_matches == 1000


def test_missing_explicit_path_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        BingrepConfig.load(tmp_path / "nope.toml")


def test_invalid_toml_raises(tmp_path: Path) -> None:
    path = tmp_path / "broken.toml"
    path.write_text("[search\nchunk_size = ")
    with pytest.raises(ValueError):
        BingrepConfig.load(path)


def test_to_dict_round_trips_sections() -> None:
    data = BingrepConfig().to_dict()
    assert set(data) == {"global_settings", "search", "display"}
    assert data["search"]["chunk_size"] == 0
