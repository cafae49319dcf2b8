from __future__ import annotations

import os
from pathlib import Path

import pytest

from ha_monitor.config import ConfigLoader, load_settings
from ha_monitor.errors import ConfigError

CONFIG_YAML = """
monitor:
  ha_url: "http://ha.local:8123/api/"
  ha_token: "token-1"
  retry_times: 3
  timeout: 5
  schedule: "*/30 * * * * *"
  notify:
    api_url: "https://notify.example/send"
    api_token: "n-token"
    topic_id: 12
  tuya:
    enabled: true
    access_id: "aid"
    access_key: "akey"
    device_id: "dev"
    region: "eu"
    wait_seconds: 15
"""


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("HA_URL", "HA_TOKEN", "HA_MONITOR_RETRY_TIMES", "HA_MONITOR_TIMEOUT", "HA_MONITOR_CONFIG"):
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, text: str = CONFIG_YAML) -> Path:
    p = tmp_path / "config.yaml"
    p.write_text(text, encoding="utf-8")
    return p


def test_load_settings_reads_nested_sections(tmp_path: Path) -> None:
    settings = load_settings(str(_write(tmp_path)))
    assert settings.ha_url == "http://ha.local:8123/api/"
    assert settings.retry_times == 3
    assert settings.timeout == 5
    assert settings.schedule == "*/30 * * * * *"
    assert settings.notify.topic_id == 12
    assert settings.tuya.enabled is True
    assert settings.tuya.region == "eu"
    assert settings.tuya.wait_seconds == 15


def test_settings_are_immutable(tmp_path: Path) -> None:
    settings = load_settings(str(_write(tmp_path)))
    with pytest.raises(Exception):
        settings.ha_url = "http://other"  # type: ignore[misc]
    with pytest.raises(Exception):
        settings.tuya.enabled = False  # type: ignore[misc]


def test_invalid_numbers_are_normalized(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "monitor:\n  ha_url: http://ha\n  retry_times: 0\n  timeout: 0\n  tuya:\n    wait_seconds: -3\n",
    )
    settings = load_settings(str(path))
    assert settings.retry_times == 1
    assert settings.timeout == 10
    assert settings.tuya.wait_seconds == 0
    assert settings.tuya.enabled is False


def test_env_overrides_file_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HA_TOKEN", "from-env")
    monkeypatch.setenv("HA_MONITOR_RETRY_TIMES", "7")
    settings = load_settings(str(_write(tmp_path)))
    assert settings.ha_token == "from-env"
    assert settings.retry_times == 7


def test_config_path_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HA_MONITOR_CONFIG", str(_write(tmp_path)))
    assert load_settings().ha_token == "token-1"


@pytest.mark.parametrize(
    "text",
    [
        "- just\n- a list\n",
        "other: {}\n",
        "monitor:\n  retry_times: 3\n",
        "monitor: [unclosed\n",
    ],
)
def test_invalid_config_raises_config_error(tmp_path: Path, text: str) -> None:
    with pytest.raises(ConfigError):
        load_settings(str(_write(tmp_path, text)))


def test_missing_file_raises_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_settings(str(tmp_path / "missing.yaml"))


def test_loader_reloads_when_file_changes(tmp_path: Path) -> None:
    path = _write(tmp_path)
    loader = ConfigLoader(str(path))
    first = loader.get()

    assert loader.reload_if_changed() is False
    assert loader.get() is first

    path.write_text(CONFIG_YAML.replace("token-1", "token-2"), encoding="utf-8")
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))

    assert loader.reload_if_changed() is True
    assert loader.get().ha_token == "token-2"
    assert first.ha_token == "token-1"


def test_loader_keeps_previous_snapshot_on_broken_reload(tmp_path: Path) -> None:
    path = _write(tmp_path)
    loader = ConfigLoader(str(path))
    first = loader.get()

    path.write_text("monitor: [unclosed\n", encoding="utf-8")
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 10))

    assert loader.reload_if_changed() is False
    assert loader.get() is first
