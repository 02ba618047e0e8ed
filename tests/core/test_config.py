"""Tests for the Config system."""

import os
import pytest
from pathlib import Path
from polykv.core.config import (
    DriverConfig,
    PolyKVConfig,
    _convert_value,
    _deep_merge,
    _substitute_env_vars,
)
from polykv.core.errors import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("POLYKV_"):
            monkeypatch.delenv(name)


@pytest.fixture
def no_files(tmp_path):
    return {
        "project_path": tmp_path / "missing-project.toml",
        "user_path": tmp_path / "missing-user.toml",
    }


def test_default_config():
    """Default config has sensible values."""
    config = PolyKVConfig()

    assert config.driver.base == ""
    assert config.driver.url == "memory://"
    assert config.driver.lazy_connect is True
    assert config.driver.ttl is None
    assert config.logging.level == "WARNING"


def test_driver_config_scheme():
    assert DriverConfig(url="redis://localhost:6379/0").scheme == "redis"
    assert DriverConfig(url="HTTPS://kv.example.com").scheme == "https"
    assert DriverConfig(url="no-scheme").scheme == ""


def test_driver_config_rejects_bad_ttl():
    with pytest.raises(ValueError):
        DriverConfig(ttl=0)


@pytest.mark.parametrize("base", ["test:", "a:b:", "1:", ""])
def test_driver_config_accepts_base(base):
    assert DriverConfig(base=base).base == base


@pytest.mark.parametrize("base", ["tes", "x::", ":", "::a:", "a:b"])
def test_driver_config_rejects_bad_base(base):
    with pytest.raises(ValueError):
        DriverConfig(base=base)


def test_load_rejects_bad_base(no_files):
    with pytest.raises(ConfigError):
        PolyKVConfig.load(overrides={"driver": {"base": "x::"}}, **no_files)


def test_load_with_overrides(no_files):
    """Explicit overrides take highest precedence."""
    config = PolyKVConfig.load(
        overrides={"driver": {"url": "redis://cache:6379/1", "base": "app:"}},
        **no_files,
    )

    assert config.driver.url == "redis://cache:6379/1"
    assert config.driver.base == "app:"
    # Defaults still work for non-overridden values
    assert config.driver.lazy_connect is True


def test_env_var_loading(monkeypatch, no_files):
    """POLYKV_* environment variables are loaded."""
    monkeypatch.setenv("POLYKV_URL", "sqlite:///tmp/kv.db")
    monkeypatch.setenv("POLYKV_BASE", "1:")
    monkeypatch.setenv("POLYKV_LAZY_CONNECT", "false")
    monkeypatch.setenv("POLYKV_TTL", "60")
    monkeypatch.setenv("POLYKV_LOG_LEVEL", "DEBUG")

    config = PolyKVConfig.load(**no_files)

    assert config.driver.url == "sqlite:///tmp/kv.db"
    assert config.driver.base == "1:"
    assert config.driver.lazy_connect is False
    assert config.driver.ttl == 60
    assert config.logging.level == "DEBUG"


def test_toml_precedence(tmp_path, monkeypatch):
    """Project toml beats user toml; env beats both."""
    user = tmp_path / "user.toml"
    user.write_text('[driver]\nurl = "file:///user"\nbase = "user:"\n')
    project = tmp_path / "project.toml"
    project.write_text('[driver]\nurl = "file:///project"\n')

    config = PolyKVConfig.load(project_path=project, user_path=user)
    assert config.driver.url == "file:///project"
    assert config.driver.base == "user:"

    monkeypatch.setenv("POLYKV_URL", "memory://")
    config = PolyKVConfig.load(project_path=project, user_path=user)
    assert config.driver.url == "memory://"


def test_toml_driver_options(tmp_path, no_files):
    project = tmp_path / "polykv.toml"
    project.write_text(
        '[driver]\nurl = "https://kv.example.com"\n'
        '[driver.options]\nlisting = false\nheaders = { Authorization = "Bearer ${KV_TOKEN}" }\n'
    )
    os.environ["KV_TOKEN"] = "secret123"
    try:
        config = PolyKVConfig.load(project_path=project, user_path=no_files["user_path"])
    finally:
        del os.environ["KV_TOKEN"]

    assert config.driver.options["listing"] is False
    assert config.driver.options["headers"] == {"Authorization": "Bearer secret123"}


def test_malformed_toml_raises(tmp_path, no_files):
    project = tmp_path / "polykv.toml"
    project.write_text("[driver\nurl = ")
    with pytest.raises(ConfigError):
        PolyKVConfig.load(project_path=project, user_path=no_files["user_path"])


def test_invalid_values_raise(no_files):
    with pytest.raises(ConfigError):
        PolyKVConfig.load(overrides={"driver": {"ttl": -5}}, **no_files)


def test_env_var_substitution():
    """${VAR} in config values gets replaced with env var values."""
    data = {"key": "${HOME}/something", "nested": {"api": "${MY_KEY}"}, "list": ["${MY_KEY}", 1]}

    os.environ["MY_KEY"] = "secret123"
    _substitute_env_vars(data)

    assert "something" in data["key"]
    assert data["nested"]["api"] == "secret123"
    assert data["list"] == ["secret123", 1]

    # Cleanup
    del os.environ["MY_KEY"]


def test_deep_merge():
    base = {"a": 1, "b": {"c": 2, "d": 3}, "e": 5}
    override = {"b": {"c": 20, "f": 6}, "g": 7}

    _deep_merge(base, override)

    assert base == {"a": 1, "b": {"c": 20, "d": 3, "f": 6}, "e": 5, "g": 7}


def test_convert_value():
    assert _convert_value("true") is True
    assert _convert_value("false") is False
    assert _convert_value("42") == 42
    assert _convert_value("3.14") == 3.14
    assert _convert_value("hello") == "hello"


def test_load_nonexistent_toml():
    """Loading from nonexistent files just uses defaults."""
    config = PolyKVConfig.load(
        project_path=Path("/nonexistent/polykv.toml"),
        user_path=Path("/nonexistent/config.toml"),
    )
    assert config.driver.url == "memory://"
