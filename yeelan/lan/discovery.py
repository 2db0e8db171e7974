"""Multicast discovery of lights on the LAN.

How it works
------------
1. Open a UDP socket, join the multicast group ``239.255.255.250`` and send
   one ``M-SEARCH`` request to ``239.255.255.250:1982``.
2. Every light answers with an HTTP-style header block:

       HTTP/1.1 200 OK
       Cache-Control: max-age=3600
       Location: yeelight://192.168.1.239:55443
       id: 0x000000000015243f
       model: color
       fw_ver: 18
       support: get_prop set_default set_power toggle set_bright ...
       power: on
       bright: 100
       color_mode: 2
       ct: 4000
       rgb: 16711680
       hue: 100
       sat: 35
       name: my_bulb

   Lights also push the same block unprompted as ``NOTIFY * HTTP/1.1``
   advertisements; both are accepted.
3. Replies are collected until the timeout elapses, parsed into
   ``DeviceDescriptor`` values and deduplicated by ``id``.

No state survives the call: each search owns its socket and returns a fresh
list of descriptors.
"""

from __future__ import annotations

import asyncio
import socket
import struct
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping
from urllib.parse import urlsplit

from loguru import logger

from yeelan.config.schema import ChannelConfig, DiscoveryConfig
from yeelan.lan.errors import DiscoverySetupError, MalformedReplyError
from yeelan.lan.fields import ColorMode, PowerStatus, Rgb

SEARCH_TEMPLATE = (
    "M-SEARCH * HTTP/1.1\r\n"
    "HOST: {group}:{port}\r\n"
    'MAN: "ssdp:discover"\r\n'
    "ST: wifi_bulb\r\n"
)

LOCATION_SCHEME = "yeelight"
DEFAULT_COMMAND_PORT = 55443

# Headers that describe the HTTP exchange rather than the light.
_TRANSPORT_HEADERS = frozenset({
    "cache-control", "date", "ext", "server", "host", "nts", "location", "id", "support",
})

# Typed decoders for advertised properties; a reply whose value fails to
# decode is malformed.
_PROPERTY_DECODERS: dict[str, Callable[[str], Any]] = {
    "fw_ver": int,
    "power": PowerStatus.parse,
    "bright": int,
    "color_mode": ColorMode.parse,
    "ct": int,
    "rgb": Rgb.parse,
    "hue": int,
    "sat": int,
}


@dataclass(frozen=True)
class DeviceDescriptor:
    """One light as advertised in a discovery reply.

    ``properties`` holds the advertised values as strings; they reflect the
    moment of discovery and are never refreshed. Equality and hashing ignore
    them: two replies from the same device at the same location compare equal
    even when the advertised state differs.
    """

    id: str
    host: str
    port: int
    support: frozenset[str] = frozenset()
    properties: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "support", frozenset(self.support))
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    @property
    def location(self) -> tuple[str, int]:
        return self.host, self.port

    def supports(self, method: str) -> bool:
        return method in self.support

    def _decoded(self, name: str) -> Any:
        raw = self.properties.get(name)
        if raw is None or raw == "":
            return None
        return _PROPERTY_DECODERS[name](raw)

    # -- typed accessors -----------------------------------------------------

    @property
    def model(self) -> str | None:
        return self.properties.get("model")

    @property
    def name(self) -> str | None:
        return self.properties.get("name")

    @property
    def fw_ver(self) -> int | None:
        return self._decoded("fw_ver")

    @property
    def power(self) -> PowerStatus | None:
        return self._decoded("power")

    @property
    def bright(self) -> int | None:
        return self._decoded("bright")

    @property
    def color_mode(self) -> ColorMode | None:
        return self._decoded("color_mode")

    @property
    def ct(self) -> int | None:
        return self._decoded("ct")

    @property
    def rgb(self) -> Rgb | None:
        return self._decoded("rgb")

    @property
    def hue(self) -> int | None:
        return self._decoded("hue")

    @property
    def sat(self) -> int | None:
        return self._decoded("sat")


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

def parse_headers(data: bytes) -> dict[str, str]:
    """Parse an HTTP-style reply into lower-cased header names → values.

    Raises ``MalformedReplyError`` when the start line is not a search reply
    or an advertisement.
    """
    text = data.decode("utf-8", errors="replace")
    lines = text.splitlines()
    if not lines:
        raise MalformedReplyError("empty reply")
    start = lines[0].strip()
    if not (start.startswith("HTTP/1.1 200") or start.startswith("NOTIFY")):
        raise MalformedReplyError(f"unexpected start line: {start!r}")

    headers: dict[str, str] = {}
    for line in lines[1:]:
        name, sep, value = line.partition(":")
        if not sep:
            continue
        name = name.strip().lower()
        if name:
            headers[name] = value.strip()
    return headers


def parse_location(location: str, default_port: int = DEFAULT_COMMAND_PORT) -> tuple[str, int]:
    """Split ``yeelight://host:port`` into ``(host, port)``."""
    try:
        parts = urlsplit(location)
        port = parts.port
    except ValueError as exc:
        raise MalformedReplyError(f"unparseable Location {location!r}: {exc}") from exc
    if parts.scheme != LOCATION_SCHEME or not parts.hostname:
        raise MalformedReplyError(f"unparseable Location {location!r}")
    return parts.hostname, port if port is not None else default_port


def parse_reply(
    data: bytes,
    default_port: int = DEFAULT_COMMAND_PORT,
) -> DeviceDescriptor:
    """Build a ``DeviceDescriptor`` from one discovery reply or advertisement.

    Raises ``MalformedReplyError`` when ``id``, ``Location`` or ``support`` is
    missing, the location cannot be parsed, or a typed property does not
    decode.
    """
    headers = parse_headers(data)

    device_id = headers.get("id", "")
    if not device_id:
        raise MalformedReplyError("missing 'id' header")
    if "location" not in headers:
        raise MalformedReplyError(f"device {device_id}: missing 'Location' header")
    if "support" not in headers:
        raise MalformedReplyError(f"device {device_id}: missing 'support' header")

    host, port = parse_location(headers["location"], default_port)
    properties = {k: v for k, v in headers.items() if k not in _TRANSPORT_HEADERS}
    for name, decode in _PROPERTY_DECODERS.items():
        raw = properties.get(name)
        if not raw:
            continue
        try:
            decode(raw)
        except ValueError as exc:
            raise MalformedReplyError(
                f"device {device_id}: bad {name} value {raw!r}: {exc}"
            ) from exc

    return DeviceDescriptor(
        id=device_id,
        host=host,
        port=port,
        support=frozenset(headers["support"].split()),
        properties=properties,
    )


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

def search_message(config: DiscoveryConfig) -> bytes:
    return SEARCH_TEMPLATE.format(group=config.multicast_group, port=config.multicast_port).encode()


def _open_socket(config: DiscoveryConfig) -> socket.socket:
    """Create a non-blocking UDP socket joined to the multicast group."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((config.interface, config.local_port))
        membership = struct.pack(
            "4s4s",
            socket.inet_aton(config.multicast_group),
            socket.inet_aton(config.interface),
        )
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, config.multicast_ttl)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


async def discover(
    timeout: float | None = None,
    *,
    config: DiscoveryConfig | None = None,
    channel_config: ChannelConfig | None = None,
) -> list[DeviceDescriptor]:
    """Search the LAN and return the lights that answered within *timeout* seconds.

    The list is in order of first arrival; when a light answers more than
    once, its most recent descriptor is kept. An empty list means nothing
    answered.

    Raises ``DiscoverySetupError`` if the multicast socket cannot be set up or
    the search request cannot be sent.
    """
    config = config or DiscoveryConfig()
    default_port = (channel_config or ChannelConfig()).default_port
    if timeout is None:
        timeout = config.timeout
    if timeout <= 0:
        raise ValueError(f"Discovery timeout must be positive, got {timeout}")

    try:
        sock = _open_socket(config)
    except OSError as exc:
        raise DiscoverySetupError(
            f"cannot join {config.multicast_group} on {config.interface}: {exc}"
        ) from exc

    loop = asyncio.get_running_loop()
    found: dict[str, DeviceDescriptor] = {}
    try:
        try:
            await loop.sock_sendto(
                sock, search_message(config), (config.multicast_group, config.multicast_port)
            )
        except OSError as exc:
            raise DiscoverySetupError(f"cannot send search request: {exc}") from exc
        logger.debug(
            f"[Yeelight/Discovery] search sent to {config.multicast_group}:"
            f"{config.multicast_port}, collecting for {timeout}s"
        )

        deadline = loop.time() + timeout
        while (remaining := deadline - loop.time()) > 0:
            try:
                data, addr = await asyncio.wait_for(
                    loop.sock_recvfrom(sock, config.recv_buffer), timeout=remaining
                )
            except asyncio.TimeoutError:
                break
            except OSError as exc:
                logger.debug(f"[Yeelight/Discovery] receive error: {exc}")
                continue
            _handle_reply(data, addr, found, default_port)
    finally:
        sock.close()

    logger.info(f"[Yeelight/Discovery] found {len(found)} device(s)")
    return list(found.values())


def _handle_reply(
    data: bytes,
    addr: Any,
    found: dict[str, DeviceDescriptor],
    default_port: int,
) -> None:
    if data.startswith(b"M-SEARCH"):
        return  # our own request looped back
    try:
        descriptor = parse_reply(data, default_port)
    except MalformedReplyError as exc:
        logger.debug(f"[Yeelight/Discovery] dropping reply from {addr[0]}: {exc}")
        return

    if descriptor.id not in found:
        logger.info(
            f"[Yeelight/Discovery] new device: {descriptor.id} @ "
            f"{descriptor.host}:{descriptor.port} model={descriptor.model}"
        )
    found[descriptor.id] = descriptor
