"""Tests for configuration loading."""

from pathlib import Path

import pytest

from pm2panel.config import Config
from pm2panel.exceptions import ConfigError
from pm2panel.main import create_app


def test_missing_secrets_are_fatal():
    with pytest.raises(ConfigError) as excinfo:
        Config().validate()
    assert "ADMIN_PASSWORD" in excinfo.value.message
    assert "SESSION_SECRET" in excinfo.value.message


def test_missing_session_secret_only():
    with pytest.raises(ConfigError) as excinfo:
        Config(admin_password="pw").validate()
    assert "SESSION_SECRET" in excinfo.value.message
    assert "ADMIN_PASSWORD" not in excinfo.value.message


def test_create_app_refuses_incomplete_config(fake_pm2):
    with pytest.raises(ConfigError):
        create_app(Config(admin_password="pw"), client=fake_pm2)


def test_defaults():
    config = Config(admin_password="pw", session_secret="s").validate()
    assert config.port == 4747
    assert config.admin_user == "admin"
    assert config.session_ttl == 24 * 60 * 60
    assert config.script_extension == ".js"
    assert config.cors_origin == "http://localhost:4747"
    assert config.base_dir == Path.home()


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("PM2_BASE_DIR", str(tmp_path))
    monkeypatch.setenv("ADMIN_USER", "root")
    monkeypatch.setenv("ADMIN_PASSWORD", "pw")
    monkeypatch.setenv("SESSION_SECRET", "s3")
    monkeypatch.setenv("SESSION_TTL", "60")
    monkeypatch.setenv("COOKIE_SECURE", "true")
    monkeypatch.setenv("RATE_LIMIT", "")
    monkeypatch.setenv("PANEL_LOG_FILE", "")
    monkeypatch.delenv("CORS_ORIGIN", raising=False)

    config = Config.from_env().validate()

    assert config.port == 8080
    assert config.base_dir == tmp_path
    assert config.admin_user == "root"
    assert config.admin_password == "pw"
    assert config.session_secret == "s3"
    assert config.session_ttl == 60
    assert config.cookie_secure is True
    assert config.rate_limit == ""
    assert config.log_file is None
    assert config.cors_origin == "http://localhost:8080"


def test_empty_password_counts_as_missing(monkeypatch):
    monkeypatch.setenv("ADMIN_PASSWORD", "")
    monkeypatch.setenv("SESSION_SECRET", "s3")
    with pytest.raises(ConfigError):
        Config.from_env().validate()
