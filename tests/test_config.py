"""Tests for the configuration schema."""

import pytest
from pydantic import ValidationError

from yeelan.config.schema import ChannelConfig, DiscoveryConfig, YeelanConfig


class TestConfig:

    def test_defaults(self):
        cfg = YeelanConfig()
        assert cfg.discovery.multicast_group == "239.255.255.250"
        assert cfg.discovery.multicast_port == 1982
        assert cfg.discovery.local_port == 0
        assert cfg.discovery.timeout == 2.0
        assert cfg.channel.default_port == 55443
        assert cfg.channel.command_timeout == 5.0
        assert cfg.channel.notification_queue_size == 256

    def test_camel_case_keys(self):
        cfg = ChannelConfig.model_validate({"commandTimeout": 1.5, "connectTimeout": 2})
        assert cfg.command_timeout == 1.5
        assert cfg.connect_timeout == 2.0

    def test_snake_case_keys(self):
        cfg = DiscoveryConfig(multicast_port=1983, recv_buffer=1024)
        assert cfg.multicast_port == 1983
        assert cfg.recv_buffer == 1024

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("YEELAN_CHANNEL__COMMAND_TIMEOUT", "0.5")
        monkeypatch.setenv("YEELAN_DISCOVERY__TIMEOUT", "4")
        cfg = YeelanConfig()
        assert cfg.channel.command_timeout == 0.5
        assert cfg.discovery.timeout == 4.0

    @pytest.mark.parametrize("kwargs", [{"timeout": 0}, {"timeout": -1}])
    def test_timeout_must_be_positive(self, kwargs):
        with pytest.raises(ValidationError):
            DiscoveryConfig(**kwargs)

    def test_queue_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            ChannelConfig(notification_queue_size=0)
