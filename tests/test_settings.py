"""Tests for typed settings and application wiring."""

import pytest

from chatbridge.core.exceptions import ConfigurationError
from chatbridge.main import build_bridge
from chatbridge.settings import DEFAULT_BOUNCE_INSTRUCTION, BridgeSettings


class TestBridgeSettings:
    def test_defaults_for_empty_config(self, monkeypatch):
        monkeypatch.delenv("CHATBRIDGE_HOST", raising=False)
        monkeypatch.delenv("CHATBRIDGE_PORT", raising=False)
        settings = BridgeSettings.from_config({})
        assert settings.server.host == "127.0.0.1"
        assert settings.server.port == 3033
        assert settings.backend.endpoint == "ai/v1/chat"
        assert settings.backend.token is None
        assert settings.tools.bounce_instruction == DEFAULT_BOUNCE_INSTRUCTION
        assert settings.conversations.max_in_memory == 100
        assert settings.conversations.sync.auto_sync is False
        assert settings.log_level == "INFO"

    def test_reads_all_sections(self, monkeypatch):
        monkeypatch.delenv("CHATBRIDGE_HOST", raising=False)
        monkeypatch.delenv("CHATBRIDGE_PORT", raising=False)
        settings = BridgeSettings.from_config({
            "server": {"host": "0.0.0.0", "port": "8000"},
            "backend": {"base_url": "http://b", "token": "t", "timeout": "12.5", "enable_web_search": "yes"},
            "tools": {"prefix": "client_"},
            "conversations": {
                "max_in_memory": 3,
                "sync": {"auto_sync": True, "debounce_ms": 10, "url": "http://sync/push"},
            },
            "log": {"level": "debug"},
        })
        assert settings.server.host == "0.0.0.0"
        assert settings.server.port == 8000
        assert settings.backend.timeout == 12.5
        assert settings.backend.enable_web_search is True
        assert settings.tools.prefix == "client_"
        assert settings.conversations.max_in_memory == 3
        assert settings.conversations.sync.debounce_ms == 10
        assert settings.conversations.sync.min_interval_ms == 30000
        assert settings.log_level == "DEBUG"

    def test_environment_overrides_bind_address(self, monkeypatch):
        monkeypatch.setenv("CHATBRIDGE_HOST", "10.0.0.1")
        monkeypatch.setenv("CHATBRIDGE_PORT", "9999")
        settings = BridgeSettings.from_config({"server": {"host": "127.0.0.1", "port": 1}})
        assert settings.server.host == "10.0.0.1"
        assert settings.server.port == 9999

    def test_invalid_numbers_fall_back_to_defaults(self):
        settings = BridgeSettings.from_config({"conversations": {"max_in_memory": "many"}})
        assert settings.conversations.max_in_memory == 100

    def test_sync_settings_to_auto_sync_config(self):
        settings = BridgeSettings.from_config({
            "conversations": {"sync": {"auto_sync": "true", "min_interval_ms": 100, "max_delay_ms": 50}},
        })
        config = settings.conversations.sync.to_auto_sync_config()
        assert config.enabled is True
        assert config.normalized().max_delay_ms == 100


class TestBuildBridge:
    def test_requires_backend_token(self):
        with pytest.raises(ConfigurationError):
            build_bridge(BridgeSettings.from_config({}))

    def test_without_sync_url_has_no_scheduler(self):
        settings = BridgeSettings.from_config({
            "backend": {"token": "t"},
            "conversations": {"sync": {"auto_sync": True}},
        })
        bridge = build_bridge(settings)
        assert bridge.scheduler is None
        assert bridge.store.on_change is None
        assert bridge.store.retain_evicted is False

    def test_sync_url_wires_scheduler_to_store(self):
        settings = BridgeSettings.from_config({
            "backend": {"token": "t"},
            "conversations": {"max_in_memory": 7, "sync": {"auto_sync": True, "url": "http://sync/push"}},
        })
        bridge = build_bridge(settings)
        assert bridge.scheduler is not None
        assert bridge.scheduler.config.enabled is True
        assert bridge.store.on_change == bridge.scheduler.notify_dirty
        assert bridge.store.max_conversations == 7
        assert bridge.store.retain_evicted is True
