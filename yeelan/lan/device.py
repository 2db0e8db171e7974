"""Device handle: typed control operations for one discovered light.

A ``Light`` owns exactly one ``CommandChannel`` for its lifetime. Each
operation validates its arguments, sends one command, and waits for the
correlated reply:

    async with await Light.open(descriptor) as light:
        await light.set_power(True, smooth(500))
        await light.set_ct_abx(3500, smooth(400))
        props = await light.get_prop("power", "bright")

A success reply returns ``None`` (``get_prop`` returns the values); an error
reply raises ``DeviceError``. Nothing is retried: a repeated ``toggle`` is not
the same as a lost one, so retry policy belongs to the caller.
"""

from __future__ import annotations

import weakref
from typing import Any, AsyncIterator

from loguru import logger

from yeelan.config.schema import ChannelConfig
from yeelan.lan.channel import CommandChannel, NotificationHandler
from yeelan.lan.commands import Method
from yeelan.lan.discovery import DeviceDescriptor
from yeelan.lan.errors import InvalidParameterError, UnsupportedMethodError
from yeelan.lan.fields import PowerMode, PowerStatus, Rgb
from yeelan.lan.protocol import CommandResult, Notification
from yeelan.lan.transition import SUDDEN, Flow, Transition


class Light:
    """Control handle for one light.

    Use ``await Light.open(descriptor)`` to construct one with its channel
    connected; leaving ``async with`` or calling ``close()`` releases it. Once
    the channel is closed the handle is spent: open a new one to reconnect.
    """

    def __init__(
        self,
        descriptor: DeviceDescriptor,
        config: ChannelConfig | None = None,
        channel: CommandChannel | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.channel = channel or CommandChannel(descriptor.host, descriptor.port, config)
        # dropping the handle without close() still releases the connection
        self._finalizer = weakref.finalize(self, _release_channel, self.channel)
        self._finalizer.atexit = False

    @classmethod
    async def open(
        cls,
        descriptor: DeviceDescriptor,
        config: ChannelConfig | None = None,
    ) -> Light:
        light = cls(descriptor, config)
        await light.channel.open()
        logger.info(f"[Yeelight/Light] opened {descriptor.id} ({descriptor.name or descriptor.model})")
        return light

    async def close(self) -> None:
        await self.channel.close()

    async def __aenter__(self) -> Light:
        if not self.channel.is_open:
            await self.channel.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def id(self) -> str:
        return self.descriptor.id

    def __repr__(self) -> str:
        return f"<Light {self.descriptor.id} @ {self.descriptor.host}:{self.descriptor.port}>"

    # -- core operations -----------------------------------------------------

    async def set_power(
        self,
        on: bool | PowerStatus | str,
        transition: Transition = SUDDEN,
        mode: PowerMode | int | None = None,
    ) -> None:
        """Switch the light on or off, optionally into *mode* when turning on."""
        if isinstance(on, bool):
            power: Any = PowerStatus.ON if on else PowerStatus.OFF
        else:
            power = on
        params: list[Any] = [power, transition]
        if mode is not None:
            params.append(mode)
        await self._call(Method.SET_POWER, params)

    async def turn_on(self, transition: Transition = SUDDEN) -> None:
        await self.set_power(True, transition)

    async def turn_off(self, transition: Transition = SUDDEN) -> None:
        await self.set_power(False, transition)

    async def set_bright(self, brightness: int, transition: Transition = SUDDEN) -> None:
        """Set brightness as a percentage, 1-100."""
        await self._call(Method.SET_BRIGHT, [brightness, transition])

    async def set_ct_abx(self, ct: int, transition: Transition = SUDDEN) -> None:
        """Set colour temperature in kelvin, 1700-6500."""
        await self._call(Method.SET_CT_ABX, [ct, transition])

    async def set_rgb(self, rgb: int | Rgb, transition: Transition = SUDDEN) -> None:
        """Set colour as a packed ``0xRRGGBB`` integer or an ``Rgb``."""
        if isinstance(rgb, Rgb):
            errors = [
                f"{name}: expected int 0-255, got {value!r}"
                for name, value in rgb._asdict().items()
                if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 0xFF
            ]
            if errors:
                raise InvalidParameterError(Method.SET_RGB.value, errors)
            rgb = rgb.to_int()
        await self._call(Method.SET_RGB, [rgb, transition])

    async def set_hsv(self, hue: int, sat: int, transition: Transition = SUDDEN) -> None:
        """Set hue (0-359) and saturation (0-100)."""
        await self._call(Method.SET_HSV, [hue, sat, transition])

    async def toggle(self) -> None:
        await self._call(Method.TOGGLE, [])

    # -- extended operations -------------------------------------------------

    async def get_prop(self, *names: str) -> dict[str, str]:
        """Query current property values; unknown properties come back as ``""``."""
        result = await self._call(Method.GET_PROP, list(names))
        values = [str(v) for v in result.result]
        values += [""] * (len(names) - len(values))
        return dict(zip(names, values))

    async def set_default(self) -> None:
        """Save the current state as the power-on default."""
        await self._call(Method.SET_DEFAULT, [])

    async def set_name(self, name: str) -> None:
        await self._call(Method.SET_NAME, [name])

    async def set_adjust(self, action: str, prop: str) -> None:
        """Nudge ``bright``/``ct`` up or down, or ``circle`` through ``color``."""
        await self._call(Method.SET_ADJUST, [action, prop])

    async def start_cf(self, flow: Flow, count: int = 0, action: int = 0) -> None:
        """Run a colour flow *count* times (0 = forever), then recover/stay/turn off."""
        await self._call(Method.START_CF, [count, action, flow])

    async def stop_cf(self) -> None:
        await self._call(Method.STOP_CF, [])

    # -- notifications -------------------------------------------------------

    def notifications(self) -> AsyncIterator[Notification]:
        return self.channel.notifications()

    def on_notification(self, handler: NotificationHandler) -> None:
        self.channel.on_notification(handler)

    # -- internals -----------------------------------------------------------

    async def _call(self, method: Method, params: list[Any]) -> CommandResult:
        if self.descriptor.support and not self.descriptor.supports(method.value):
            raise UnsupportedMethodError(self.descriptor.id, method.value)
        return await self.channel.request(method, params)


def _release_channel(channel: CommandChannel) -> None:
    if channel.closed:
        return
    try:
        channel._shutdown("light handle dropped")
    except RuntimeError as exc:
        # the event loop is already gone; nothing left to fail or close
        logger.debug(f"[Yeelight/Light] could not release {channel.host}:{channel.port}: {exc}")
