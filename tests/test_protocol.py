"""Tests for response parsing and typed property fields."""

import asyncio

import pytest

from yeelan.lan.errors import MalformedMessageError
from yeelan.lan.fields import ColorMode, PowerStatus, Rgb
from yeelan.lan.protocol import (
    CommandResult,
    ErrorReply,
    Notification,
    parse_message,
    read_message,
)


class TestParseMessage:

    def test_result(self):
        msg = parse_message(b'{"id":1,"result":["ok"]}\r\n')
        assert msg == CommandResult(id=1, result=["ok"])
        assert msg.is_ok

    def test_result_values(self):
        msg = parse_message('{"id":3,"result":["on","","100"]}')
        assert msg == CommandResult(id=3, result=["on", "", "100"])
        assert not msg.is_ok

    def test_error(self):
        msg = parse_message(b'{"id":2,"error":{"code":-1,"message":"unsupported method"}}')
        assert msg == ErrorReply(id=2, code=-1, message="unsupported method")

    def test_notification(self):
        msg = parse_message(b'{"method":"props","params":{"power":"on","bright":"10"}}')
        assert msg == Notification(method="props", params={"power": "on", "bright": "10"})

    @pytest.mark.parametrize("line", [
        b"not json",
        b"[1, 2, 3]",
        b'{"id":"1","result":["ok"]}',
        b'{"id":true,"result":["ok"]}',
        b'{"id":1}',
        b'{"id":1,"error":"boom"}',
        b'{"id":1,"error":{"code":"x","message":"m"}}',
        b'{"params":{"power":"on"}}',
        b'{"method":"props","params":[1]}',
    ])
    def test_malformed(self, line):
        with pytest.raises(MalformedMessageError):
            parse_message(line)


class TestReadMessage:

    @pytest.mark.asyncio
    async def test_skips_blank_and_malformed_lines(self):
        reader = asyncio.StreamReader()
        reader.feed_data(b"\r\ngarbage\r\n" b'{"id":5,"result":["ok"]}\r\n')
        reader.feed_eof()

        assert await read_message(reader) == CommandResult(id=5, result=["ok"])
        assert await read_message(reader) is None


class TestFields:

    def test_rgb_packing(self):
        assert Rgb.from_int(657930) == Rgb(10, 10, 10)
        assert Rgb(255, 128, 0).to_int() == 0xFF8000
        assert Rgb.parse("16711680") == Rgb(255, 0, 0)
        assert str(Rgb(10, 10, 10)) == "#0A0A0A"

    @pytest.mark.parametrize("value", [-1, 0x1000000])
    def test_rgb_out_of_range(self, value):
        with pytest.raises(ValueError):
            Rgb.from_int(value)

    def test_rgb_channel_out_of_range(self):
        with pytest.raises(ValueError):
            Rgb(256, 0, 0).to_int()

    def test_power_status(self):
        assert PowerStatus.parse("ON") is PowerStatus.ON
        assert PowerStatus.parse("off") is PowerStatus.OFF
        with pytest.raises(ValueError):
            PowerStatus.parse("dim")

    def test_color_mode(self):
        assert ColorMode.parse("1") is ColorMode.COLOR
        assert ColorMode.parse("2") is ColorMode.COLOR_TEMPERATURE
        assert ColorMode.parse("3") is ColorMode.HSV
        with pytest.raises(ValueError):
            ColorMode.parse("9")
