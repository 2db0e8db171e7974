"""Exception hierarchy for the Yeelight LAN protocol engine.

Local validation failures (``InvalidTransitionError``, ``InvalidParameterError``,
``UnsupportedMethodError``) are raised before anything touches the network.
Channel failures (``CommandTimeoutError``, ``ChannelClosedError``) and
device-reported errors (``DeviceError``) are raised from the awaited command.
"""

from __future__ import annotations


class YeelightError(Exception):
    """Base class for every error raised by ``yeelan``."""


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

class DiscoverySetupError(YeelightError):
    """The multicast socket could not be created, bound, joined or used.

    Attributes:
        reason: Specific failure reason
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Discovery setup failed: {reason}")


class MalformedReplyError(YeelightError, ValueError):
    """A discovery reply is missing required headers or has bad values."""


# ---------------------------------------------------------------------------
# Local validation
# ---------------------------------------------------------------------------

class InvalidTransitionError(YeelightError, ValueError):
    """A smooth transition duration is outside the accepted bounds."""


class InvalidParameterError(YeelightError, ValueError):
    """Command parameters failed validation; the command was not sent.

    Attributes:
        method: Method the parameters were meant for
        errors: Every problem found, in parameter order
    """

    def __init__(self, method: str, errors: list[str]):
        self.method = method
        self.errors = errors
        super().__init__(f"Invalid parameters for {method!r}: {'; '.join(errors)}")


class UnsupportedMethodError(YeelightError):
    """The device did not advertise the method in its ``support`` header."""

    def __init__(self, device_id: str, method: str):
        self.device_id = device_id
        self.method = method
        super().__init__(f"Device {device_id} does not support {method!r}")


# ---------------------------------------------------------------------------
# Command channel
# ---------------------------------------------------------------------------

class MalformedMessageError(YeelightError, ValueError):
    """A line received on the command channel is not a valid response."""


class CommandTimeoutError(YeelightError, TimeoutError):
    """No response arrived before the pending command's deadline.

    Attributes:
        command_id: Correlation id of the expired command
        method: Method of the expired command
        timeout_seconds: Deadline that was exceeded
    """

    def __init__(self, command_id: int, method: str, timeout_seconds: float):
        self.command_id = command_id
        self.method = method
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"No response to {method!r} (id={command_id}) within {timeout_seconds}s"
        )


class ChannelClosedError(YeelightError, ConnectionError):
    """The command channel is closed; pending and future commands fail."""

    def __init__(self, reason: str = "channel closed"):
        self.reason = reason
        super().__init__(reason)


class ChannelBusyError(YeelightError):
    """Every correlation id is held by a pending command; nothing was sent.

    Attributes:
        pending: Number of commands in flight when the id space ran out
    """

    def __init__(self, pending: int):
        self.pending = pending
        super().__init__(f"No free correlation id: {pending} commands pending")


class DeviceError(YeelightError):
    """The device answered a command with an error envelope.

    Attributes:
        code: Error code reported by the device
        message: Error message reported by the device
    """

    def __init__(self, code: int, message: str, method: str = ""):
        self.code = code
        self.message = message
        self.method = method
        prefix = f"{method}: " if method else ""
        super().__init__(f"{prefix}device error {code}: {message}")
