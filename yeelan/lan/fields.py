"""Typed values for the properties a light advertises and accepts."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import NamedTuple

RGB_MAX = 0xFFFFFF


class PowerStatus(str, Enum):
    """Power state, as sent in ``set_power`` and advertised in ``power``."""

    ON = "on"
    OFF = "off"

    @classmethod
    def parse(cls, value: str) -> PowerStatus:
        return cls(value.strip().lower())


class ColorMode(IntEnum):
    """Which of the colour properties currently drives the light."""

    COLOR = 1
    COLOR_TEMPERATURE = 2
    HSV = 3

    @classmethod
    def parse(cls, value: str) -> ColorMode:
        return cls(int(value))


class PowerMode(IntEnum):
    """Optional mode switched to by ``set_power`` when turning on."""

    NORMAL = 0
    COLOR_TEMPERATURE = 1
    RGB = 2
    HSV = 3
    COLOR_FLOW = 4
    NIGHT_LIGHT = 5


class Rgb(NamedTuple):
    """An 8-bit-per-channel colour, packed on the wire as ``r << 16 | g << 8 | b``."""

    r: int
    g: int
    b: int

    @classmethod
    def from_int(cls, value: int) -> Rgb:
        if not 0 <= value <= RGB_MAX:
            raise ValueError(f"RGB value {value} out of range [0, {RGB_MAX}]")
        return cls((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)

    @classmethod
    def parse(cls, value: str) -> Rgb:
        return cls.from_int(int(value))

    def to_int(self) -> int:
        for channel in self:
            if not 0 <= channel <= 0xFF:
                raise ValueError(f"RGB channel {channel} out of range [0, 255]")
        return (self.r << 16) | (self.g << 8) | self.b

    def __str__(self) -> str:
        return f"#{self.r:02X}{self.g:02X}{self.b:02X}"
