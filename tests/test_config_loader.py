import json
import os

import pytest

from studiobridge.config import access
from studiobridge.config.loader import camel_to_snake, load_config, save_config, snake_to_camel
from studiobridge.config.schema import Config


def test_missing_file_yields_defaults(tmp_path):
    cfg = load_config(tmp_path / "absent.json")
    assert cfg.bridge.port == 8081
    assert cfg.bridge.host == "127.0.0.1"
    assert cfg.bridge.timeout_ms == 30_000
    assert cfg.bridge.retries == 2
    assert cfg.bridge.retry_delay_ms == 1_000
    assert cfg.bridge.port_fallback_attempts == 10
    assert cfg.bridge.disconnect_policy == "wait"
    assert cfg.logging.level == "INFO"


def test_camel_case_file_is_converted(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "bridge": {"port": 9100, "timeoutMs": 5000, "retryDelayMs": 250, "disconnectPolicy": "fail_fast"},
                "logging": {"level": "DEBUG", "file": False},
            }
        )
    )
    cfg = load_config(path)
    assert cfg.bridge.port == 9100
    assert cfg.bridge.timeout_ms == 5000
    assert cfg.bridge.retry_delay_ms == 250
    assert cfg.bridge.disconnect_policy == "fail_fast"
    assert cfg.logging.file is False


@pytest.mark.parametrize("content", ["{broken", "[1, 2]", '{"bridge": {"port": 0}}'])
def test_malformed_file_raises_value_error_naming_path(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)
    with pytest.raises(ValueError) as excinfo:
        load_config(path)
    assert str(path) in str(excinfo.value)


def test_save_config_writes_camel_case(tmp_path):
    path = tmp_path / "nested" / "config.json"
    cfg = Config()
    cfg.bridge.retry_delay_ms = 42
    save_config(cfg, path)

    raw = json.loads(path.read_text())
    assert raw["bridge"]["retryDelayMs"] == 42
    assert load_config(path).bridge.retry_delay_ms == 42


def test_env_vars_override_nested_fields(monkeypatch):
    monkeypatch.setenv("STUDIOBRIDGE_BRIDGE__PORT", "9001")
    monkeypatch.setenv("STUDIOBRIDGE_LOGGING__LEVEL", "WARNING")
    cfg = Config()
    assert cfg.bridge.port == 9001
    assert cfg.logging.level == "WARNING"


def test_key_case_helpers():
    assert camel_to_snake("retryDelayMs") == "retry_delay_ms"
    assert snake_to_camel("port_fallback_attempts") == "portFallbackAttempts"


def test_get_config_uses_cache_and_force_reload(monkeypatch):
    calls = {"n": 0}

    def _fake_load_config(_path=None):
        calls["n"] += 1
        cfg = Config()
        cfg.bridge.port = 18000 + calls["n"]
        return cfg

    monkeypatch.setattr(access, "load_config", _fake_load_config)
    access.clear_config_cache()

    first = access.get_config()
    second = access.get_config()
    third = access.get_config(force_reload=True)

    assert first.bridge.port == second.bridge.port
    assert third.bridge.port != second.bridge.port
    assert calls["n"] == 2
    access.clear_config_cache()


def test_get_config_reloads_when_file_changes(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"bridge": {"port": 18001}}))
    access.clear_config_cache()

    first = access.get_config(config_path=path)
    assert access.get_config(config_path=path) is first

    path.write_text(json.dumps({"bridge": {"port": 18002}}))
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

    second = access.get_config(config_path=path)
    assert first.bridge.port == 18001
    assert second.bridge.port == 18002

    path.unlink()
    assert access.get_config(config_path=path).bridge.port == Config().bridge.port
    access.clear_config_cache()


def test_save_config_invalidates_cached_entry(tmp_path):
    path = tmp_path / "config.json"
    access.clear_config_cache()
    assert access.get_config(config_path=path).bridge.retries == Config().bridge.retries

    cfg = Config()
    cfg.bridge.retries = 7
    save_config(cfg, path)

    assert access.get_config(config_path=path).bridge.retries == 7
    access.clear_config_cache()
