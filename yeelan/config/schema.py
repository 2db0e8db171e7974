"""Configuration schema using Pydantic."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DiscoveryConfig(Base):
    """Multicast search settings."""

    multicast_group: str = "239.255.255.250"
    multicast_port: int = 1982
    interface: str = "0.0.0.0"   # Local interface to bind and join the group on
    local_port: int = 0          # 0 = ephemeral, so concurrent searches never share a socket
    timeout: float = Field(default=2.0, gt=0)  # Seconds to collect replies
    multicast_ttl: int = 2
    recv_buffer: int = 4096      # Max bytes read per reply datagram


class ChannelConfig(Base):
    """Command channel settings."""

    default_port: int = 55443           # Used when a Location header omits the port
    connect_timeout: float = Field(default=5.0, gt=0)
    command_timeout: float = Field(default=5.0, gt=0)   # Deadline per pending command
    notification_queue_size: int = Field(default=256, ge=1)  # Oldest dropped when full


class YeelanConfig(BaseSettings):
    """Root configuration for yeelan."""

    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    channel: ChannelConfig = Field(default_factory=ChannelConfig)

    model_config = SettingsConfigDict(env_prefix="YEELAN_", env_nested_delimiter="__")
