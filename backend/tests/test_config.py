"""Tests for configuration loading."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from app.config import AppConfig, get_config, load_config, reset_config, set_config


def test_defaults_when_files_missing(tmp_path):
    """Missing settings and secrets files fall back to defaults."""
    cfg = load_config(
        settings_path=tmp_path / "missing.settings.yaml",
        secrets_path=tmp_path / "missing.secrets.yaml",
    )
    assert cfg.server.port == 3001
    assert cfg.server.ws_ping_interval == 25.0
    assert cfg.server.ws_ping_timeout == 60.0
    assert cfg.presence.backend == "redis"
    assert cfg.messages.max_content_length == 4000


def test_settings_and_secrets_are_merged(tmp_path):
    settings_file = tmp_path / "messenger.settings.yaml"
    settings_file.write_text(
        "server:\n"
        "  port: 4000\n"
        "presence:\n"
        "  backend: memory\n"
        "messages:\n"
        "  max_page_size: 20\n",
        encoding="utf-8",
    )
    secrets_file = tmp_path / "messenger.secrets.yaml"
    secrets_file.write_text(
        "jwt:\n"
        "  secret_key: s3cret\n"
        "redis:\n"
        "  url: redis://cache:6379/1\n",
        encoding="utf-8",
    )

    cfg = load_config(settings_path=settings_file, secrets_path=secrets_file)
    assert cfg.server.port == 4000
    assert cfg.presence.backend == "memory"
    assert cfg.messages.max_page_size == 20
    assert cfg.secrets.jwt.secret_key == "s3cret"
    assert cfg.secrets.redis.url == "redis://cache:6379/1"


def test_database_path_relative_to_settings_dir(tmp_path):
    """Relative database.path resolves from the settings file directory."""
    settings_file = tmp_path / "messenger.settings.yaml"
    settings_file.write_text("database:\n  path: data/messenger.duckdb\n", encoding="utf-8")

    cfg = load_config(settings_path=settings_file, secrets_path=tmp_path / "none.yaml")
    assert Path(cfg.database.path) == tmp_path / "data" / "messenger.duckdb"


def test_database_in_memory_is_kept(tmp_path):
    settings_file = tmp_path / "messenger.settings.yaml"
    settings_file.write_text("database:\n  path: ':memory:'\n", encoding="utf-8")

    cfg = load_config(settings_path=settings_file, secrets_path=tmp_path / "none.yaml")
    assert cfg.database.path == ":memory:"


def test_env_var_overrides_settings_location(tmp_path, monkeypatch):
    settings_file = tmp_path / "custom.yaml"
    settings_file.write_text("server:\n  port: 5050\n", encoding="utf-8")
    monkeypatch.setenv("MESSENGER_SETTINGS", str(settings_file))
    monkeypatch.setenv("MESSENGER_SECRETS", str(tmp_path / "none.yaml"))

    assert load_config().server.port == 5050


def test_invalid_presence_backend_is_rejected(tmp_path):
    settings_file = tmp_path / "messenger.settings.yaml"
    settings_file.write_text("presence:\n  backend: memcached\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(settings_path=settings_file, secrets_path=tmp_path / "none.yaml")


def test_translation_concurrency_must_be_positive():
    with pytest.raises(ValidationError):
        AppConfig(translation={"max_concurrency": 0})


def test_set_and_reset_config():
    cfg = AppConfig()
    set_config(cfg)
    try:
        assert get_config() is cfg
    finally:
        reset_config()
