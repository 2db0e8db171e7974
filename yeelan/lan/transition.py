"""Transition effects for lighting changes.

Every state-changing command (``set_power``, ``set_bright``, ``set_ct_abx``,
``set_rgb``, ``set_hsv``) ends with two wire parameters: an effect token and a
duration in milliseconds.

    sudden()      -> "sudden", 0
    smooth(400)   -> "smooth", 400

The device ignores the duration of a sudden change and rejects smooth changes
shorter than ``MIN_SMOOTH_MS``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum, IntEnum

from yeelan.lan.errors import InvalidTransitionError

MIN_SMOOTH_MS = 30
MAX_SMOOTH_MS = 2**31 - 1


class Effect(str, Enum):
    SUDDEN = "sudden"
    SMOOTH = "smooth"


@dataclass(frozen=True)
class Transition:
    """How a change is applied: at once, or faded over ``duration_ms``."""

    effect: Effect
    duration_ms: int = 0

    @classmethod
    def sudden(cls) -> Transition:
        return SUDDEN

    @classmethod
    def smooth(cls, duration: int | timedelta) -> Transition:
        """Fade over *duration* (milliseconds, or a ``timedelta``).

        Raises ``InvalidTransitionError`` unless the duration is a whole number
        of milliseconds in ``[MIN_SMOOTH_MS, MAX_SMOOTH_MS]``.
        """
        return cls(Effect.SMOOTH, _to_milliseconds(duration))

    @property
    def is_smooth(self) -> bool:
        return self.effect is Effect.SMOOTH

    def to_params(self) -> tuple[str, int]:
        """Return the ``(effect, duration_ms)`` pair appended to command params."""
        return self.effect.value, self.duration_ms


SUDDEN = Transition(Effect.SUDDEN, 0)


def sudden() -> Transition:
    return SUDDEN


def smooth(duration: int | timedelta) -> Transition:
    return Transition.smooth(duration)


def _to_milliseconds(duration: int | timedelta) -> int:
    if isinstance(duration, timedelta):
        # integer arithmetic on microseconds; float seconds would round
        micros = (duration.days * 86_400 + duration.seconds) * 1_000_000 + duration.microseconds
        ms, rest = divmod(micros, 1000)
        if rest:
            raise InvalidTransitionError(
                f"Transition duration {duration} is not a whole number of milliseconds"
            )
    elif isinstance(duration, int) and not isinstance(duration, bool):
        ms = duration
    else:
        raise InvalidTransitionError(
            f"Transition duration must be int milliseconds or timedelta, "
            f"got {type(duration).__name__}"
        )

    if ms < MIN_SMOOTH_MS:
        raise InvalidTransitionError(
            f"Smooth transition of {ms}ms is below the {MIN_SMOOTH_MS}ms minimum"
        )
    if ms > MAX_SMOOTH_MS:
        raise InvalidTransitionError(
            f"Smooth transition of {ms}ms exceeds the {MAX_SMOOTH_MS}ms maximum"
        )
    return ms


# ---------------------------------------------------------------------------
# Colour flow (start_cf)
# ---------------------------------------------------------------------------

MIN_FLOW_STEP_MS = 50


class FlowMode(IntEnum):
    COLOR = 1
    COLOR_TEMPERATURE = 2
    SLEEP = 7


@dataclass(frozen=True)
class FlowStep:
    """One step of a colour flow: fade to *value* over *duration_ms*.

    ``value`` is a packed RGB integer for ``COLOR``, a colour temperature for
    ``COLOR_TEMPERATURE`` and ignored for ``SLEEP``. ``brightness`` is 1-100,
    or -1 to keep the current brightness.
    """

    duration_ms: int
    mode: FlowMode
    value: int = 0
    brightness: int = -1

    def __post_init__(self) -> None:
        for name in ("duration_ms", "value", "brightness"):
            n = getattr(self, name)
            if not isinstance(n, int) or isinstance(n, bool):
                raise InvalidTransitionError(
                    f"Flow step {name} must be int, got {type(n).__name__}"
                )
        try:
            if isinstance(self.mode, bool):
                raise ValueError(self.mode)
            mode = FlowMode(self.mode)
        except ValueError:
            raise InvalidTransitionError(
                f"Flow step mode {self.mode!r} is not one of "
                f"{', '.join(str(int(m)) for m in FlowMode)}"
            ) from None
        object.__setattr__(self, "mode", mode)

        if not MIN_FLOW_STEP_MS <= self.duration_ms <= MAX_SMOOTH_MS:
            raise InvalidTransitionError(
                f"Flow step of {self.duration_ms}ms is outside "
                f"[{MIN_FLOW_STEP_MS}, {MAX_SMOOTH_MS}]"
            )
        if mode is FlowMode.COLOR and not 0 <= self.value <= 0xFFFFFF:
            raise InvalidTransitionError(f"Flow colour {self.value} out of range")
        if mode is FlowMode.COLOR_TEMPERATURE and not 1700 <= self.value <= 6500:
            raise InvalidTransitionError(f"Flow colour temperature {self.value} out of range")
        if self.brightness != -1 and not 1 <= self.brightness <= 100:
            raise InvalidTransitionError(f"Flow brightness {self.brightness} out of range")

    @classmethod
    def sleep(cls, duration_ms: int) -> FlowStep:
        return cls(duration_ms, FlowMode.SLEEP)

    def to_tuple(self) -> tuple[int, int, int, int]:
        return self.duration_ms, int(self.mode), self.value, self.brightness


@dataclass(frozen=True)
class Flow:
    steps: tuple[FlowStep, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        if not self.steps:
            raise InvalidTransitionError("A colour flow needs at least one step")
        for step in self.steps:
            if not isinstance(step, FlowStep):
                raise InvalidTransitionError(
                    f"Flow steps must be FlowStep, got {type(step).__name__}"
                )

    def expression(self) -> str:
        """Return the comma-joined flow expression sent to the device."""
        return ",".join(str(n) for step in self.steps for n in step.to_tuple())
