from __future__ import annotations

from pathlib import Path

import pytest

from printlink.core.errors import ConfigError
from printlink.core.settings import Settings, default_config_path, load_settings


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_default_file_yields_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

    settings = load_settings()

    assert settings == Settings()
    assert settings.bluetooth.channel == 1
    assert settings.network.port == 9100


def test_default_path_follows_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert default_config_path() == tmp_path / "printlink" / "config.yaml"


def test_xdg_file_is_loaded(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    (tmp_path / "printlink").mkdir()
    _write(
        tmp_path / "printlink" / "config.yaml",
        "bluetooth:\n  channel: 2\n  timeout_s: 8\nnetwork:\n  port: 6101\n",
    )

    settings = load_settings()

    assert settings.bluetooth.channel == 2
    assert settings.bluetooth.timeout_s == 8.0
    assert settings.network.port == 6101
    assert settings.network.timeout_s == 5.0
    assert settings.discovery.network_scan_s == 3.0


def test_empty_file_yields_defaults(tmp_path: Path) -> None:
    assert load_settings(_write(tmp_path / "config.yaml", "")) == Settings()


def test_explicit_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "absent.yaml")


def test_duplicate_keys_are_rejected(tmp_path: Path) -> None:
    path = _write(tmp_path / "config.yaml", "network:\n  port: 9100\n  port: 6101\n")
    with pytest.raises(ConfigError, match="Duplicate key 'port'"):
        load_settings(path)


@pytest.mark.parametrize(
    ("text", "where"),
    [
        ("network:\n  port: 70000\n", "network.port"),
        ("bluetooth:\n  channel: abc\n", "bluetooth.channel"),
        ("discovery:\n  bluetooth_scan_s: 0\n", "discovery.bluetooth_scan_s"),
        ("printer: zq320\n", ""),
    ],
)
def test_schema_violations_are_config_errors(tmp_path: Path, text: str, where: str) -> None:
    path = _write(tmp_path / "config.yaml", text)
    with pytest.raises(ConfigError) as exc:
        load_settings(path)
    assert "Schema validation failed" in str(exc.value)
    assert where in str(exc.value)


def test_non_mapping_root_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="mapping"):
        load_settings(_write(tmp_path / "config.yaml", "- 1\n- 2\n"))


def test_invalid_yaml_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_settings(_write(tmp_path / "config.yaml", "network: [unclosed\n"))
