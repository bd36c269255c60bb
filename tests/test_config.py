"""
Tests for configuration loading
"""
import pytest
from pydantic import ValidationError

from core.config import AppConfig, clamp_concurrency, load_config, yaml_settings
from core.errors import ConfigError

REQUIRED_ENV = {"PLEX_URL": "http://plex:32400/", "PLEX_TOKEN": "abc", "TMDB_KEY": "k"}


@pytest.fixture
def required_env(monkeypatch):
    for name, value in REQUIRED_ENV.items():
        monkeypatch.setenv(name, value)


def test_defaults_from_environment(tmp_path, required_env):
    config = load_config(tmp_path / "missing.yaml")

    assert config.plex_url == "http://plex:32400"
    assert config.library_id == "1"
    assert config.shows_library_id == "2"
    assert config.port == 3000
    assert config.webhook_delay == 10.0
    assert config.overlays_path is None


def test_missing_mandatory_values(tmp_path, monkeypatch):
    monkeypatch.setenv("PLEX_URL", "http://plex")
    with pytest.raises(ConfigError) as exc:
        load_config(tmp_path / "missing.yaml")
    assert "PLEX_TOKEN" in str(exc.value)
    assert "TMDB_KEY" in str(exc.value)
    assert "PLEX_URL" not in str(exc.value)


def test_blank_environment_value_counts_as_missing(tmp_path, required_env, monkeypatch):
    monkeypatch.setenv("TMDB_KEY", "")
    with pytest.raises(ConfigError, match="TMDB_KEY"):
        load_config(tmp_path / "missing.yaml")


def test_yaml_file_is_read(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "plex:\n  url: http://nas:32400\n  token: filetoken\n"
        "tmdb:\n  apiKey: filekey\n"
        "libraries:\n  movies: 7\n  shows: 9\n"
        "server:\n  port: 8080\n  webhookDelay: 2.5\n"
        "logging:\n  level: DEBUG\n",
        encoding="utf-8",
    )
    config = load_config(path)

    assert config.plex_token == "filetoken"
    assert config.library_id == "7"
    assert config.shows_library_id == "9"
    assert config.port == 8080
    assert config.webhook_delay == 2.5
    assert config.log_level == "DEBUG"


def test_environment_wins_over_file(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("plex:\n  url: http://nas\n  token: t\ntmdb:\n  apiKey: k\nlibraries:\n  movies: 7\n")
    monkeypatch.setenv("LIBRARY_ID", "3")
    monkeypatch.setenv("PLEX_URL", "http://env")

    config = load_config(path)

    assert config.library_id == "3"
    assert config.plex_url == "http://env"
    assert config.plex_token == "t"


def test_invalid_port(tmp_path, required_env, monkeypatch):
    monkeypatch.setenv("PORT", "eighty")
    with pytest.raises(ConfigError, match="PORT"):
        load_config(tmp_path / "missing.yaml")


def test_non_mapping_yaml(tmp_path, required_env):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_yaml_settings_skips_blank_values():
    data = {"plex": {"url": "", "token": "t"}, "server": "not a section", "overlays": {"path": None}}
    assert yaml_settings(data) == {"plex_token": "t"}


def test_config_is_frozen():
    config = AppConfig(plex_url="http://p", plex_token="t", tmdb_key="k")
    with pytest.raises(ValidationError):
        config.port = 1


def test_with_overrides_ignores_none():
    config = AppConfig(plex_url="http://p", plex_token="t", tmdb_key="k")
    changed = config.with_overrides(port=9000, library_id=None)
    assert changed.port == 9000
    assert changed.library_id == "1"
    assert config.port == 3000


@pytest.mark.parametrize("value, expected", [(0, 1), (-3, 1), (1, 1), (4, 4), (10, 10), (50, 10)])
def test_clamp_concurrency(value, expected):
    assert clamp_concurrency(value) == expected
