from pathlib import Path

import pytest

from photostream.infrastructure.config import settings
from photostream.infrastructure.config.settings import (
    clear_test_config, env_key_for, get_config, get_environment, get_rate_limit_backend,
    get_rate_limit_rules, load_configuration, reset_configuration, set_config_for_testing,
)


@pytest.fixture
def yaml_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "cloudinary:\n"
        "  cloud_name: yaml-cloud\n"
        "rate_limit:\n"
        "  window_ms: 30000\n"
        "  batch:\n"
        "    requests: 4\n"
        "cache:\n"
        "  ttl_seconds: 120\n"
    )
    return path


@pytest.fixture
def loaded(yaml_config: Path, tmp_path: Path, monkeypatch):
    clear_test_config()
    reset_configuration()
    monkeypatch.chdir(tmp_path)
    for name in ("CLOUDINARY_CLOUD_NAME", "RATE_LIMIT_WINDOW_MS", "RATE_LIMIT_BACKEND", "REDIS_URL",
                 "CACHE_TTL_SECONDS", "UPLOAD_RATE_LIMIT_REQUESTS", "APP_ENV", "NODE_ENV"):
        monkeypatch.delenv(name, raising=False)
    load_configuration(config_file=yaml_config, env_file=tmp_path / "missing.env")
    yield
    reset_configuration()


def test_env_key_for():
    assert env_key_for("cloudinary.api-key") == "CLOUDINARY_API_KEY"


def test_yaml_values_are_read_by_dotted_key(loaded):
    assert get_config("cloudinary.cloud_name") == "yaml-cloud"
    assert get_config("cache.ttl_seconds") == 120
    assert get_config("missing.key", "fallback") == "fallback"


def test_precedence_test_config_over_env_over_yaml(loaded, monkeypatch):
    monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "env-cloud")
    assert get_config("cloudinary.cloud_name") == "env-cloud"

    set_config_for_testing({"cloudinary.cloud_name": "test-cloud"})
    assert get_config("cloudinary.cloud_name") == "test-cloud"

    clear_test_config()
    assert get_config("cloudinary.cloud_name") == "env-cloud"


def test_env_values_are_coerced(loaded, monkeypatch):
    monkeypatch.setenv("CACHE_TTL_SECONDS", "60")
    monkeypatch.setenv("RATE_LIMIT_FAIL_OPEN", "true")
    assert get_config("cache.ttl_seconds") == 60
    assert get_config("rate_limit.fail_open") is True


def test_rate_limit_rules_defaults_and_overrides(loaded, monkeypatch):
    rules = get_rate_limit_rules()
    assert rules["BATCH"] == {"limit": 4, "window_ms": 30000}
    assert rules["UPDATE"] == {"limit": 20, "window_ms": 30000}
    assert rules["BATCH_STATUS"]["limit"] == 30

    monkeypatch.setenv("UPLOAD_RATE_LIMIT_REQUESTS", "2")
    assert get_rate_limit_rules()["UPLOAD"] == {"limit": 2, "window_ms": 30000}


def test_rate_limit_backend_selection(loaded, monkeypatch):
    assert get_rate_limit_backend() == "memory"
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    assert get_rate_limit_backend() == "redis"
    monkeypatch.setenv("RATE_LIMIT_BACKEND", "Memory")
    assert get_rate_limit_backend() == "memory"


def test_environment_defaults_to_development(loaded):
    assert get_environment() == "development"
    set_config_for_testing({"app.env": "production"})
    assert get_environment() == "production"
    assert settings.is_development() is False
