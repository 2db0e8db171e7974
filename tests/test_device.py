"""Tests for the Light device handle."""

import asyncio
import gc

import pytest

from fake_light import FakeLight, reply_ok
from yeelan.config.schema import ChannelConfig
from yeelan.lan.device import Light
from yeelan.lan.discovery import DeviceDescriptor
from yeelan.lan.errors import (
    ChannelClosedError,
    DeviceError,
    InvalidParameterError,
    InvalidTransitionError,
    UnsupportedMethodError,
)
from yeelan.lan.fields import PowerMode, Rgb
from yeelan.lan.transition import Flow, FlowMode, FlowStep, smooth

ALL_METHODS = (
    "get_prop set_default set_power toggle set_bright start_cf stop_cf "
    "set_scene cron_add cron_get cron_del set_ct_abx set_rgb set_hsv "
    "set_adjust set_name"
)


def _descriptor(port: int, support: str = ALL_METHODS) -> DeviceDescriptor:
    return DeviceDescriptor(
        id="0x000000000015243f",
        host="127.0.0.1",
        port=port,
        support=frozenset(support.split()),
        properties={"model": "color", "name": "desk"},
    )


async def _open(fake: FakeLight, support: str = ALL_METHODS) -> Light:
    port = await fake.start()
    return await Light.open(_descriptor(port, support))


# ---------------------------------------------------------------------------
# Typed operations
# ---------------------------------------------------------------------------


class TestLightOperations:

    @pytest.mark.asyncio
    async def test_set_power(self):
        fake = FakeLight(auto_reply=reply_ok)
        light = await _open(fake)

        assert await light.set_power(True, smooth(500)) is None
        await light.set_power(False)
        await light.set_power(True, mode=PowerMode.RGB)

        assert [c["params"] for c in fake.received] == [
            ["on", "smooth", 500],
            ["off", "sudden", 0],
            ["on", "sudden", 0, 2],
        ]
        assert all(c["method"] == "set_power" for c in fake.received)

        await light.close()
        await fake.stop()

    @pytest.mark.asyncio
    async def test_turn_on_off(self):
        fake = FakeLight(auto_reply=reply_ok)
        light = await _open(fake)

        await light.turn_on(smooth(300))
        await light.turn_off()
        assert [c["params"][0] for c in fake.received] == ["on", "off"]

        await light.close()
        await fake.stop()

    @pytest.mark.asyncio
    async def test_colour_commands(self):
        fake = FakeLight(auto_reply=reply_ok)
        light = await _open(fake)

        await light.set_bright(80, smooth(200))
        await light.set_ct_abx(3500, smooth(400))
        await light.set_rgb(Rgb(255, 0, 0))
        await light.set_rgb(0x00FF00, smooth(30))
        await light.set_hsv(255, 45, smooth(1000))
        await light.toggle()

        assert [(c["id"], c["method"], c["params"]) for c in fake.received] == [
            (1, "set_bright", [80, "smooth", 200]),
            (2, "set_ct_abx", [3500, "smooth", 400]),
            (3, "set_rgb", [16711680, "sudden", 0]),
            (4, "set_rgb", [65280, "smooth", 30]),
            (5, "set_hsv", [255, 45, "smooth", 1000]),
            (6, "toggle", []),
        ]

        await light.close()
        await fake.stop()

    @pytest.mark.asyncio
    async def test_get_prop(self):
        fake = FakeLight(auto_reply=lambda c: {"id": c["id"], "result": ["on", "80", ""]})
        light = await _open(fake)

        props = await light.get_prop("power", "bright", "nl_br")
        assert props == {"power": "on", "bright": "80", "nl_br": ""}
        assert fake.received[0]["params"] == ["power", "bright", "nl_br"]

        await light.close()
        await fake.stop()

    @pytest.mark.asyncio
    async def test_extended_commands(self):
        fake = FakeLight(auto_reply=reply_ok)
        light = await _open(fake)

        flow = Flow([
            FlowStep(1000, FlowMode.COLOR_TEMPERATURE, 2700, 100),
            FlowStep.sleep(500),
        ])
        await light.start_cf(flow, count=4, action=1)
        await light.stop_cf()
        await light.set_name("desk")
        await light.set_adjust("increase", "bright")
        await light.set_default()

        assert [(c["method"], c["params"]) for c in fake.received] == [
            ("start_cf", [4, 1, "1000,2,2700,100,500,7,0,-1"]),
            ("stop_cf", []),
            ("set_name", ["desk"]),
            ("set_adjust", ["increase", "bright"]),
            ("set_default", []),
        ]

        await light.close()
        await fake.stop()


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestLightErrors:

    @pytest.mark.asyncio
    async def test_invalid_brightness_not_sent(self):
        fake = FakeLight(auto_reply=reply_ok)
        light = await _open(fake)

        for value in (0, 101, -1):
            with pytest.raises(InvalidParameterError):
                await light.set_bright(value)
        with pytest.raises(InvalidTransitionError):
            await light.set_bright(50, smooth(10))
        await asyncio.sleep(0.05)
        assert fake.received == []

        await light.close()
        await fake.stop()

    @pytest.mark.asyncio
    async def test_invalid_rgb_channels_not_sent(self):
        fake = FakeLight(auto_reply=reply_ok)
        light = await _open(fake)

        for rgb in (Rgb(300, 0, 0), Rgb(0, -1, 0), Rgb(0, 0, 1.5), Rgb(True, 0, 0)):
            with pytest.raises(InvalidParameterError) as exc_info:
                await light.set_rgb(rgb)
            assert exc_info.value.method == "set_rgb"
        with pytest.raises(InvalidParameterError):
            await light.set_rgb(0x1000000)
        await asyncio.sleep(0.05)
        assert fake.received == []

        await light.set_rgb(Rgb(255, 128, 0))
        assert fake.received[0]["params"] == [0xFF8000, "sudden", 0]

        await light.close()
        await fake.stop()

    @pytest.mark.asyncio
    async def test_unsupported_method_not_sent(self):
        fake = FakeLight(auto_reply=reply_ok)
        light = await _open(fake, support="get_prop set_power toggle set_bright")

        with pytest.raises(UnsupportedMethodError) as exc_info:
            await light.set_hsv(10, 10)
        assert exc_info.value.method == "set_hsv"
        await light.toggle()
        assert [c["method"] for c in fake.received] == ["toggle"]

        await light.close()
        await fake.stop()

    @pytest.mark.asyncio
    async def test_empty_support_allows_everything(self):
        fake = FakeLight(auto_reply=reply_ok)
        light = await _open(fake, support="")

        await light.set_hsv(10, 10)
        assert fake.received[0]["method"] == "set_hsv"

        await light.close()
        await fake.stop()

    @pytest.mark.asyncio
    async def test_device_error(self):
        fake = FakeLight(
            auto_reply=lambda c: {"id": c["id"], "error": {"code": -5000, "message": "general error"}}
        )
        light = await _open(fake)

        with pytest.raises(DeviceError) as exc_info:
            await light.set_ct_abx(4000)
        assert exc_info.value.code == -5000
        assert exc_info.value.message == "general error"

        await light.close()
        await fake.stop()

    @pytest.mark.asyncio
    async def test_closed_handle_is_spent(self):
        fake = FakeLight(auto_reply=reply_ok)
        port = await fake.start()

        async with await Light.open(_descriptor(port)) as light:
            await light.toggle()
        with pytest.raises(ChannelClosedError):
            await light.toggle()

        await fake.stop()

    @pytest.mark.asyncio
    async def test_notifications_passthrough(self):
        fake = FakeLight()
        light = await _open(fake)

        await fake.send({"method": "props", "params": {"ct": "2700"}})
        note = await asyncio.wait_for(light.notifications().__anext__(), 2.0)
        assert note.params == {"ct": "2700"}

        await light.close()
        await fake.stop()

    @pytest.mark.asyncio
    async def test_dropped_handle_releases_channel(self):
        fake = FakeLight()
        port = await fake.start()
        light = await Light.open(_descriptor(port), ChannelConfig(command_timeout=30))
        channel = light.channel

        pending = await channel.send("toggle")
        await fake.next_command()
        del light
        gc.collect()
        await asyncio.sleep(0.1)

        assert channel.closed
        with pytest.raises(ChannelClosedError):
            await asyncio.wait_for(pending, 1.0)

        await fake.stop()
