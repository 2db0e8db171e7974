"""Wire-level parsing of messages received on the command channel.

A light writes one JSON object per ``\\r\\n``-terminated line. Three shapes
exist:

    {"id": 1, "result": ["ok"]}                                  # success
    {"id": 2, "error": {"code": -1, "message": "unsupported method"}}  # failure
    {"method": "props", "params": {"power": "on", "bright": "10"}}     # notification

Only the first two carry a correlation id. A notification is pushed by the
device whenever its state changes, whoever caused the change.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from loguru import logger

from yeelan.lan.errors import MalformedMessageError


@dataclass(frozen=True)
class CommandResult:
    """Success envelope for the command with correlation id ``id``."""

    id: int
    result: list[Any] = field(default_factory=list)

    @property
    def is_ok(self) -> bool:
        return self.result == ["ok"]


@dataclass(frozen=True)
class ErrorReply:
    """Error envelope for the command with correlation id ``id``."""

    id: int
    code: int
    message: str


@dataclass(frozen=True)
class Notification:
    """Unsolicited state-change message; never answers a command."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)


Response = Union[CommandResult, ErrorReply, Notification]


def parse_message(data: bytes | str) -> Response:
    """Parse one received line.

    Raises ``MalformedMessageError`` when the line is not valid JSON or matches
    none of the three shapes.
    """
    try:
        obj = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedMessageError(f"not JSON: {exc}") from exc
    if not isinstance(obj, dict):
        raise MalformedMessageError(f"expected a JSON object, got {type(obj).__name__}")

    if "id" not in obj:
        method = obj.get("method")
        params = obj.get("params", {})
        if not isinstance(method, str) or not isinstance(params, dict):
            raise MalformedMessageError(f"message without id is not a notification: {obj}")
        return Notification(method=method, params=params)

    msg_id = obj["id"]
    if not isinstance(msg_id, int) or isinstance(msg_id, bool):
        raise MalformedMessageError(f"correlation id must be an int: {msg_id!r}")

    if "result" in obj:
        result = obj["result"]
        if not isinstance(result, list):
            result = [result]
        return CommandResult(id=msg_id, result=result)

    if "error" in obj:
        error = obj["error"]
        if not isinstance(error, dict):
            raise MalformedMessageError(f"error envelope must be an object: {error!r}")
        try:
            code = int(error.get("code", 0))
        except (TypeError, ValueError) as exc:
            raise MalformedMessageError(f"bad error code: {error.get('code')!r}") from exc
        return ErrorReply(id=msg_id, code=code, message=str(error.get("message", "")))

    raise MalformedMessageError(f"message with id {msg_id} has neither result nor error")


async def read_message(reader: Any) -> Response | None:
    """Read lines from an ``asyncio.StreamReader`` until one parses.

    Returns *None* on EOF. Malformed lines are logged and skipped.
    """
    while True:
        line = await reader.readline()
        if not line:
            return None
        if not line.strip():
            continue
        try:
            return parse_message(line)
        except MalformedMessageError as exc:
            logger.warning("[Yeelight/Protocol] dropping malformed line: {}", exc)
