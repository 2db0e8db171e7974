"""Command channel: one TCP connection to one light.

The channel multiplexes concurrent requests over a single persistent
connection. Each request gets a correlation id and an entry in the pending
map; a background receive task reads response lines and resolves the entry
whose id matches, in whatever order the replies arrive.

    send ──► pending[id] = PendingCommand ──► write line
                                                 │
    receive task ◄── {"id": id, "result": ...} ◄─┘
        ├── id in pending    → resolve + remove
        ├── id unknown       → log, drop
        └── no id            → notification stream

The pending map lives on the event loop thread and is only touched there:
the send path inserts, the receive path, the per-entry deadline timer and the
entry's own done-callback remove. Closing the channel (explicitly or because
the connection dropped) fails every pending entry with ``ChannelClosedError``
and refuses further sends.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable, Generator

from loguru import logger

from yeelan.config.schema import ChannelConfig
from yeelan.lan.commands import Command, Method, parse_method, validate_params
from yeelan.lan.errors import (
    ChannelBusyError,
    ChannelClosedError,
    CommandTimeoutError,
    DeviceError,
)
from yeelan.lan.protocol import (
    CommandResult,
    ErrorReply,
    Notification,
    Response,
    read_message,
)
from yeelan.lan.resilience import supervised_task

# Correlation ids run 1..MAX_COMMAND_ID and then wrap to 1.
MAX_COMMAND_ID = 2**31 - 1

NotificationHandler = Callable[[Notification], Any]


class PendingCommand:
    """Handle for one in-flight command.

    Await it for the device's ``CommandResult`` or ``ErrorReply``. It raises
    ``CommandTimeoutError`` when the deadline passes first and
    ``ChannelClosedError`` when the channel closes first. Cancelling it drops
    the entry from the channel; a late reply is then ignored.
    """

    def __init__(self, command: Command, future: asyncio.Future, deadline: float, timeout: float):
        self.command = command
        self.deadline = deadline
        self.timeout = timeout
        self._future = future
        self._timer: asyncio.TimerHandle | None = None

    @property
    def id(self) -> int:
        return self.command.id

    @property
    def method(self) -> str:
        return self.command.method

    def done(self) -> bool:
        return self._future.done()

    def cancel(self) -> bool:
        return self._future.cancel()

    def __await__(self) -> Generator[Any, None, Response]:
        return self._future.__await__()

    def __repr__(self) -> str:
        state = "done" if self.done() else "pending"
        return f"<PendingCommand id={self.id} method={self.method} {state}>"

    # -- resolution (channel side) -------------------------------------------

    def _resolve(self, response: Response) -> None:
        if not self._future.done():
            self._future.set_result(response)

    def _fail(self, exc: BaseException) -> None:
        if not self._future.done():
            self._future.set_exception(exc)


class CommandChannel:
    """Persistent request/response connection to a light's command port.

    Parameters
    ----------
    host, port:
        Command channel location from the device's discovery reply.
    config:
        Timeouts and notification queue size (defaults from ``ChannelConfig``).
    """

    def __init__(self, host: str, port: int, config: ChannelConfig | None = None):
        self.host = host
        self.port = port
        self.config = config or ChannelConfig()

        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._recv_task: asyncio.Task | None = None
        self._closed = False
        self._close_reason = "channel not open"

        # correlation id → PendingCommand
        self._pending: dict[int, PendingCommand] = {}
        self._last_id = 0

        self._notifications: asyncio.Queue[Notification | None] = asyncio.Queue()
        self._handlers: list[NotificationHandler] = []

    # -- lifecycle -----------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._writer is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_ids(self) -> list[int]:
        return list(self._pending)

    async def open(self) -> None:
        """Connect and start the receive task.

        Raises ``ChannelClosedError`` if the connection cannot be made; the
        channel is then closed for good.
        """
        if self._closed:
            raise ChannelClosedError(self._close_reason)
        if self._writer is not None:
            return
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.config.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            self._closed = True
            self._close_reason = f"cannot connect to {self.host}:{self.port}: {exc!r}"
            self._notifications.put_nowait(None)
            raise ChannelClosedError(self._close_reason) from exc

        self._recv_task = supervised_task(
            self._receive_loop(),
            name=f"yeelight-recv-{self.host}:{self.port}",
            on_error=self._receive_crashed,
        )
        logger.info(f"[Yeelight/Channel] connected to {self.host}:{self.port}")

    async def close(self) -> None:
        """Close the connection and fail every pending command. Idempotent."""
        if self._closed:
            return
        self._shutdown("channel closed by client")
        task, self._recv_task = self._recv_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._wait_writer_closed()

    async def __aenter__(self) -> CommandChannel:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -- sending -------------------------------------------------------------

    async def send(
        self,
        method: str | Method,
        params: list[Any] | tuple[Any, ...] = (),
        *,
        timeout: float | None = None,
    ) -> PendingCommand:
        """Validate, register and write one command; do not wait for the reply.

        Raises ``InvalidParameterError`` before any id is allocated, and
        ``ChannelClosedError`` without touching the network when the channel
        is closed.
        """
        if self._closed or self._writer is None:
            raise ChannelClosedError(self._close_reason)

        m = parse_method(method)
        wire = validate_params(m, params)

        loop = asyncio.get_running_loop()
        timeout = timeout if timeout is not None else self.config.command_timeout
        command = Command(method=m.value, params=wire, id=self._next_id())
        pending = PendingCommand(command, loop.create_future(), loop.time() + timeout, timeout)
        self._pending[command.id] = pending
        pending._timer = loop.call_later(timeout, self._expire, pending)
        pending._future.add_done_callback(lambda _f: self._forget(pending))

        try:
            self._writer.write(command.to_bytes())
            await self._writer.drain()
        except (OSError, ConnectionError) as exc:
            self._shutdown(f"write error: {exc!r}")
            raise ChannelClosedError(self._close_reason) from exc
        except asyncio.CancelledError:
            pending.cancel()
            raise

        logger.debug(
            "[Yeelight/Channel] sent id={} {} {} to {}:{}",
            command.id, command.method, command.params, self.host, self.port,
        )
        return pending

    async def request(
        self,
        method: str | Method,
        params: list[Any] | tuple[Any, ...] = (),
        *,
        timeout: float | None = None,
    ) -> CommandResult:
        """Send a command and wait for its reply.

        Raises ``DeviceError`` when the device answers with an error envelope.
        """
        pending = await self.send(method, params, timeout=timeout)
        reply = await pending
        if isinstance(reply, ErrorReply):
            raise DeviceError(reply.code, reply.message, method=pending.method)
        return reply

    def _next_id(self) -> int:
        for _ in range(MAX_COMMAND_ID):
            self._last_id = self._last_id % MAX_COMMAND_ID + 1
            if self._last_id not in self._pending:
                return self._last_id
        raise ChannelBusyError(len(self._pending))

    # -- pending map maintenance ---------------------------------------------

    def _expire(self, pending: PendingCommand) -> None:
        if pending.done():
            return
        self._pending.pop(pending.id, None)
        logger.warning(
            "[Yeelight/Channel] id={} {} timed out after {}s",
            pending.id, pending.method, pending.timeout,
        )
        pending._fail(CommandTimeoutError(pending.id, pending.method, pending.timeout))

    def _forget(self, pending: PendingCommand) -> None:
        """Done-callback: drop the entry however the future finished."""
        if self._pending.get(pending.id) is pending:
            del self._pending[pending.id]
        if pending._timer is not None:
            pending._timer.cancel()
        if not pending._future.cancelled():
            # mark as retrieved; awaiters still receive the exception
            pending._future.exception()

    # -- receiving -----------------------------------------------------------

    async def _receive_loop(self) -> None:
        """Read responses until the connection closes."""
        assert self._reader is not None
        try:
            while True:
                message = await read_message(self._reader)
                if message is None:
                    reason = "connection closed by device"
                    break
                self._dispatch(message)
        except (OSError, ConnectionError, ValueError, asyncio.IncompleteReadError) as exc:
            reason = f"read error: {exc!r}"

        if not self._closed:
            logger.warning(f"[Yeelight/Channel] {self.host}:{self.port} lost: {reason}")
            self._shutdown(reason)
            await self._wait_writer_closed()

    def _receive_crashed(self, exc: BaseException) -> None:
        if not self._closed:
            self._shutdown(f"receive task crashed: {exc!r}")

    def _dispatch(self, message: Response) -> None:
        if isinstance(message, Notification):
            self._deliver_notification(message)
            return

        pending = self._pending.pop(message.id, None)
        if pending is None:
            logger.debug(
                "[Yeelight/Channel] dropping response for unknown id={} from {}:{}",
                message.id, self.host, self.port,
            )
            return
        pending._resolve(message)

    # -- notifications -------------------------------------------------------

    def on_notification(self, handler: NotificationHandler) -> None:
        """Register a callback invoked for every notification (sync or async)."""
        self._handlers.append(handler)

    async def notifications(self) -> AsyncIterator[Notification]:
        """Yield notifications as they arrive; ends when the channel closes."""
        while True:
            item = await self._notifications.get()
            if item is None:
                # leave the marker for any other consumer
                self._notifications.put_nowait(None)
                return
            yield item

    def _deliver_notification(self, notification: Notification) -> None:
        if self._notifications.qsize() >= self.config.notification_queue_size:
            dropped = self._notifications.get_nowait()
            logger.warning(f"[Yeelight/Channel] notification queue full, dropped {dropped}")
        self._notifications.put_nowait(notification)

        for handler in self._handlers:
            try:
                result = handler(notification)
                if asyncio.iscoroutine(result):
                    supervised_task(result, name="yeelight-notification-handler")
            except Exception as exc:
                logger.error(f"[Yeelight/Channel] notification handler error: {exc}")

    # -- shutdown ------------------------------------------------------------

    def _shutdown(self, reason: str) -> None:
        """Close the channel for good and fail everything still pending."""
        self._closed = True
        self._close_reason = reason

        pending, self._pending = list(self._pending.values()), {}
        for entry in pending:
            entry._fail(ChannelClosedError(reason))
        if pending:
            logger.info(f"[Yeelight/Channel] failed {len(pending)} pending command(s): {reason}")

        if self._writer is not None:
            self._writer.close()
        self._notifications.put_nowait(None)

    async def _wait_writer_closed(self) -> None:
        if self._writer is None:
            return
        try:
            await self._writer.wait_closed()
        except (OSError, ConnectionError) as exc:
            logger.debug(f"[Yeelight/Channel] error while closing {self.host}:{self.port}: {exc}")
