"""Command encoding and parameter validation.

Every command is one JSON object on a single ``\\r\\n``-terminated line:

    {"id":1,"method":"set_ct_abx","params":[3500,"smooth",400]}

Callers pass *logical* parameters; a ``Transition`` counts as one logical
parameter and is flattened into its ``(effect, duration)`` pair, a ``Flow``
into its expression string. Parameters are validated against the method's
rules before anything is encoded, so a doomed request never consumes a
correlation id or reaches the device.

Usage
-----
>>> encode("set_ct_abx", [3500, smooth(400)], 1)
b'{"id":1,"method":"set_ct_abx","params":[3500,"smooth",400]}\\r\\n'
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from yeelan.lan.errors import InvalidParameterError
from yeelan.lan.fields import RGB_MAX
from yeelan.lan.transition import Flow, Transition

LINE_TERMINATOR = b"\r\n"


# ---------------------------------------------------------------------------
# Methods
# ---------------------------------------------------------------------------

class Method(str, Enum):
    """The closed set of methods this client can send."""

    SET_CT_ABX = "set_ct_abx"
    SET_RGB = "set_rgb"
    SET_HSV = "set_hsv"
    SET_BRIGHT = "set_bright"
    SET_POWER = "set_power"
    TOGGLE = "toggle"
    GET_PROP = "get_prop"
    SET_DEFAULT = "set_default"
    SET_NAME = "set_name"
    SET_ADJUST = "set_adjust"
    START_CF = "start_cf"
    STOP_CF = "stop_cf"


class ParamKind(str, Enum):
    INT = "int"
    STRING = "string"
    CHOICE = "choice"
    TRANSITION = "transition"
    FLOW = "flow"


@dataclass(frozen=True)
class ParamRule:
    """Type and range constraints for one logical parameter."""

    name: str
    kind: ParamKind
    value_range: tuple[int, int] | None = None
    choices: tuple[str, ...] = ()
    optional: bool = False   # may be omitted, only as a trailing parameter
    variadic: bool = False   # one or more values, only as the last rule


_TRANSITION = ParamRule("transition", ParamKind.TRANSITION)

METHOD_PARAMS: dict[Method, tuple[ParamRule, ...]] = {
    Method.SET_CT_ABX: (
        ParamRule("ct", ParamKind.INT, value_range=(1700, 6500)),
        _TRANSITION,
    ),
    Method.SET_RGB: (
        ParamRule("rgb", ParamKind.INT, value_range=(0, RGB_MAX)),
        _TRANSITION,
    ),
    Method.SET_HSV: (
        ParamRule("hue", ParamKind.INT, value_range=(0, 359)),
        ParamRule("sat", ParamKind.INT, value_range=(0, 100)),
        _TRANSITION,
    ),
    Method.SET_BRIGHT: (
        ParamRule("brightness", ParamKind.INT, value_range=(1, 100)),
        _TRANSITION,
    ),
    Method.SET_POWER: (
        ParamRule("power", ParamKind.CHOICE, choices=("on", "off")),
        _TRANSITION,
        ParamRule("mode", ParamKind.INT, value_range=(0, 5), optional=True),
    ),
    Method.TOGGLE: (),
    Method.GET_PROP: (
        ParamRule("prop", ParamKind.STRING, variadic=True),
    ),
    Method.SET_DEFAULT: (),
    Method.SET_NAME: (
        ParamRule("name", ParamKind.STRING),
    ),
    Method.SET_ADJUST: (
        ParamRule("action", ParamKind.CHOICE, choices=("increase", "decrease", "circle")),
        ParamRule("prop", ParamKind.CHOICE, choices=("bright", "ct", "color")),
    ),
    Method.START_CF: (
        ParamRule("count", ParamKind.INT, value_range=(0, 2**31 - 1)),
        ParamRule("action", ParamKind.INT, value_range=(0, 2)),
        ParamRule("flow", ParamKind.FLOW),
    ),
    Method.STOP_CF: (),
}


def parse_method(method: str | Method) -> Method:
    """Return the ``Method`` for *method*, or raise ``InvalidParameterError``."""
    try:
        return Method(method)
    except ValueError:
        valid = sorted(m.value for m in Method)
        raise InvalidParameterError(
            str(method), [f"Unknown method '{method}'. Valid: {valid}"],
        ) from None


# ---------------------------------------------------------------------------
# Command data model
# ---------------------------------------------------------------------------

@dataclass
class Command:
    """An encoded request: correlation id, method and flattened wire params."""

    method: str
    params: list[Any] = field(default_factory=list)
    id: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "method": self.method, "params": self.params}

    def to_bytes(self) -> bytes:
        body = json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)
        return body.encode() + LINE_TERMINATOR


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_params(method: str | Method, params: list[Any] | tuple[Any, ...]) -> list[Any]:
    """Validate logical *params* for *method* and return the wire params.

    Raises ``InvalidParameterError`` listing every problem found.
    """
    m = parse_method(method)
    rules = METHOD_PARAMS[m]
    params = list(params)
    errors: list[str] = []

    required = sum(1 for r in rules if not r.optional)
    variadic = bool(rules) and rules[-1].variadic
    if len(params) < required:
        errors.append(f"Expected at least {required} parameter(s), got {len(params)}")
    elif len(params) > len(rules) and not variadic:
        errors.append(f"Expected at most {len(rules)} parameter(s), got {len(params)}")
    if errors:
        raise InvalidParameterError(m.value, errors)

    wire: list[Any] = []
    for index, value in enumerate(params):
        rule = rules[min(index, len(rules) - 1)]
        _validate_value(value, rule, errors)
        wire.extend(_flatten(value))

    if m is Method.SET_ADJUST and not errors:
        action, prop = params
        if prop == "color" and action != "circle":
            errors.append("Property 'color' can only be adjusted with action 'circle'")

    if errors:
        raise InvalidParameterError(m.value, errors)
    return wire


def _validate_value(value: Any, rule: ParamRule, errors: list[str]) -> None:
    """Validate a value against one parameter rule."""
    if rule.kind == ParamKind.INT:
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"Value for '{rule.name}' must be int, got {type(value).__name__}")
            return
        if rule.value_range is not None:
            lo, hi = rule.value_range
            if value < lo or value > hi:
                errors.append(f"Value {value} for '{rule.name}' out of range [{lo}, {hi}]")
    elif rule.kind == ParamKind.STRING:
        if not isinstance(value, str):
            errors.append(f"Value for '{rule.name}' must be str, got {type(value).__name__}")
        elif not value:
            errors.append(f"Value for '{rule.name}' must not be empty")
    elif rule.kind == ParamKind.CHOICE:
        if value not in rule.choices:
            errors.append(
                f"Value {value!r} not in allowed values for '{rule.name}': {list(rule.choices)}"
            )
    elif rule.kind == ParamKind.TRANSITION:
        if not isinstance(value, Transition):
            errors.append(
                f"Value for '{rule.name}' must be a Transition, got {type(value).__name__}"
            )
    elif rule.kind == ParamKind.FLOW:
        if not isinstance(value, Flow):
            errors.append(f"Value for '{rule.name}' must be a Flow, got {type(value).__name__}")


def _flatten(value: Any) -> list[Any]:
    if isinstance(value, Transition):
        return list(value.to_params())
    if isinstance(value, Flow):
        return [value.expression()]
    if isinstance(value, Enum):
        return [value.value]
    return [value]


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def build_command(
    method: str | Method,
    params: list[Any] | tuple[Any, ...],
    correlation_id: int,
) -> Command:
    """Validate *params* and return the ``Command`` carrying *correlation_id*."""
    wire = validate_params(method, params)
    return Command(method=parse_method(method).value, params=wire, id=correlation_id)


def encode(
    method: str | Method,
    params: list[Any] | tuple[Any, ...],
    correlation_id: int,
) -> bytes:
    """Validate and encode one command line. Pure: no I/O, no state."""
    return build_command(method, params, correlation_id).to_bytes()
