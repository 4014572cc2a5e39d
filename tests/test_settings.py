"""Tests for enterprise configuration loader."""

from decimal import Decimal
from pathlib import Path

import pytest

from laundry_dispatch.enterprise.config.settings import OfflinePolicy, get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_load_default_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Default environment should combine base settings and dev overrides."""

    config_dir = tmp_path / "config"
    env_dir = config_dir / "environments"
    env_dir.mkdir(parents=True)

    (config_dir / "settings.yaml").write_text(
        """
        environment: dev
        liveness:
          offline_threshold_s: 8
          offline_policy: requeue
        pricing:
          rate_per_kg: "30.00"
        mqtt:
          broker_host: base-broker
          port: 1883
        """,
        encoding="utf-8",
    )

    (env_dir / "dev.yaml").write_text(
        """
        mqtt:
          broker_host: dev-broker
        logging:
          level: DEBUG
        """,
        encoding="utf-8",
    )

    monkeypatch.setenv("LD_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("LD_ENVIRONMENT", raising=False)

    settings = get_settings()

    assert settings.environment == "dev"
    assert settings.liveness.offline_threshold_s == 8
    assert settings.liveness.offline_policy == OfflinePolicy.REQUEUE
    assert settings.pricing.rate_per_kg == Decimal("30.00")
    assert settings.pricing.minimum_charge == Decimal("50.00")
    assert settings.mqtt.broker_host == "dev-broker"
    assert settings.mqtt.port == 1883
    assert settings.logging.level == "DEBUG"


def test_settings_env_override(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Environment variables should override YAML configuration."""

    config_dir = tmp_path / "config"
    env_dir = config_dir / "environments"
    env_dir.mkdir(parents=True)

    (config_dir / "settings.yaml").write_text(
        """
        environment: prod
        mqtt:
          broker_host: base
          port: 1883
        dispatch:
          preemption_enabled: true
        """,
        encoding="utf-8",
    )

    (env_dir / "prod.yaml").write_text("{}", encoding="utf-8")

    monkeypatch.setenv("LD_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("LD_ENVIRONMENT", "prod")
    monkeypatch.setenv("LD_MQTT__PORT", "2883")
    monkeypatch.setenv("LD_DISPATCH__PREEMPTION_ENABLED", "false")

    settings = get_settings()

    assert settings.environment == "prod"
    assert settings.mqtt.port == 2883
    assert settings.mqtt.broker_host == "base"
    assert settings.dispatch.preemption_enabled is False


def test_settings_cache_clear(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Clearing the cache should re-read configuration files."""

    config_dir = tmp_path / "config"
    env_dir = config_dir / "environments"
    env_dir.mkdir(parents=True)

    (config_dir / "settings.yaml").write_text("{}", encoding="utf-8")
    (env_dir / "dev.yaml").write_text("{}", encoding="utf-8")

    monkeypatch.setenv("LD_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("LD_ENVIRONMENT", raising=False)

    first = get_settings()

    monkeypatch.setenv("LD_ENVIRONMENT", "qa")
    (env_dir / "qa.yaml").write_text(
        "logging:\n  level: WARNING\n",
        encoding="utf-8",
    )

    get_settings.cache_clear()
    second = get_settings()

    assert first.environment == "dev"
    assert second.environment == "qa"
    assert second.logging.level == "WARNING"


def test_defaults_without_config_files(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LD_CONFIG_DIR", str(tmp_path / "missing"))
    monkeypatch.delenv("LD_ENVIRONMENT", raising=False)

    settings = get_settings()

    assert settings.liveness.offline_threshold_s == 5.0
    assert settings.liveness.offline_policy == OfflinePolicy.ALERT
    assert settings.dispatch.preemption_enabled is True
    assert settings.intake.max_requests_per_day == 10
    assert settings.database.enabled is False
