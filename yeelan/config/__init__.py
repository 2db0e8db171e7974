"""Configuration for yeelan."""

from yeelan.config.schema import ChannelConfig, DiscoveryConfig, YeelanConfig

__all__ = ["ChannelConfig", "DiscoveryConfig", "YeelanConfig"]
