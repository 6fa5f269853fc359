"""Serialized command execution with idle arbitration.

All traffic on a connection goes through one CommandDispatcher. A single
worker task drains a FIFO queue of PendingCommand items, so there is never
more than one command in flight and commands complete in submission order.

When the queue has been empty for ``idle_delay`` seconds the worker sends
``idle`` and hands the (unbounded) idle read to a reader task. The next
command, or a server push ending the idle wait, makes the worker send
``noidle``, collect the idle response and return to normal operation. Every
``idle`` is matched by exactly one ``noidle``; MPD ignores a ``noidle`` that
arrives after the idle response was already sent.
"""

import asyncio
import itertools
import logging
from collections.abc import Callable
from typing import Any, Protocol

from mpdlink.api.mpd import commands
from mpdlink.api.mpd.connection import MpdConnection, MpdConnectionError
from mpdlink.api.mpd.parsers import parse_changed
from mpdlink.api.mpd.protocol import MpdParseError, MpdServerError
from mpdlink.api.mpd.types import CommandResult, PendingCommand, ResponseParser, ResultCallback

logger = logging.getLogger(__name__)

IDLE_DELAY = 0.5
NOIDLE_TIMEOUT = 5.0

Deliver = Callable[..., None]


class IdleHook(Protocol):
    """Observer deciding when to idle and reacting to idle events."""

    def wants_idle(self) -> bool:
        """Return True if the dispatcher should idle when the queue is empty."""
        ...

    def on_idle(self) -> None:
        """Called after ``idle`` was sent."""
        ...

    def on_changed(self, subsystems: list[str]) -> None:
        """Called with the subsystems reported by an idle response."""
        ...


def _call_now(func: Callable[..., Any], *args: Any) -> None:
    func(*args)


class CommandDispatcher:
    """FIFO command queue with exactly one worker.

    Attributes:
        idle_hook: Optional observer; without one the dispatcher always idles.
        on_connection_lost: Called once with the error when the connection
            drops while the worker runs.
        idle_sent: Number of ``idle`` commands written.
        noidle_sent: Number of ``noidle`` commands written.
        max_in_flight: Highest number of commands observed in flight.
    """

    def __init__(
        self,
        connection: MpdConnection,
        deliver: Deliver | None = None,
        idle_delay: float = IDLE_DELAY,
        noidle_timeout: float = NOIDLE_TIMEOUT,
        idle_subsystems: tuple[str, ...] = commands.DEFAULT_IDLE_SUBSYSTEMS,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            connection: Transport to drive. Must be connected before start().
            deliver: Invokes result callbacks, e.g. ListenerRelay.post.
                Defaults to calling them directly on the event loop.
            idle_delay: Seconds of empty queue before sending ``idle``.
            noidle_timeout: Seconds to wait for the idle response after
                ``noidle``.
            idle_subsystems: Subsystems passed to ``idle``.
        """
        self._connection = connection
        self._deliver = deliver or _call_now
        self.idle_delay = idle_delay
        self.noidle_timeout = noidle_timeout
        self.idle_subsystems = idle_subsystems

        self.idle_hook: IdleHook | None = None
        self.on_connection_lost: Callable[[MpdConnectionError], None] | None = None

        self.idle_sent = 0
        self.noidle_sent = 0
        self.max_in_flight = 0

        self._queue: asyncio.Queue[PendingCommand] = asyncio.Queue()
        self._sequence = itertools.count()
        self._worker: asyncio.Task[None] | None = None
        self._idle_reader: asyncio.Task[list[str]] | None = None
        self._current: PendingCommand | None = None
        self._in_flight = 0

    @property
    def is_running(self) -> bool:
        """Return True if the worker is accepting commands."""
        return self._worker is not None and not self._worker.done()

    @property
    def is_idling(self) -> bool:
        """Return True if an idle command is outstanding."""
        return self._idle_reader is not None

    @property
    def pending_count(self) -> int:
        """Return the number of queued commands, excluding the one in flight."""
        return self._queue.qsize()

    def start(self) -> None:
        """Start the worker on the running event loop."""
        if self.is_running:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run(), name="mpd-dispatcher")

    async def stop(self) -> None:
        """Stop the worker and fail every outstanding command.

        The connection itself is left to the caller.
        """
        worker = self._worker
        self._worker = None
        for task in (worker, self._idle_reader):
            if task is not None and not task.done():
                task.cancel()
        for task in (worker, self._idle_reader):
            if task is not None:
                try:
                    await task
                except (asyncio.CancelledError, MpdConnectionError, MpdServerError):
                    pass
        self._idle_reader = None
        self._fail_outstanding(MpdConnectionError("Disconnected"))

    def submit(
        self,
        command: str,
        parser: ResponseParser,
        callback: ResultCallback | None = None,
    ) -> asyncio.Future[CommandResult[Any]]:
        """Queue a command. Must be called on the event loop thread.

        Args:
            command: Command line without newline.
            parser: Turns the response lines into the result value.
            callback: Invoked exactly once with the CommandResult.

        Returns:
            Future resolved with the CommandResult. Never raises; failures
            are carried in the result.
        """
        future: asyncio.Future[CommandResult[Any]] = asyncio.get_running_loop().create_future()
        pending = PendingCommand(
            command=command,
            parser=parser,
            callback=callback,
            sequence=next(self._sequence),
            future=future,
        )
        if not self.is_running or not self._connection.is_connected:
            self._complete(
                pending, CommandResult(command, error=MpdConnectionError("Not connected"))
            )
            return future

        logger.debug("Queued #%d: %s", pending.sequence, command)
        self._queue.put_nowait(pending)
        return future

    async def execute(self, command: str, parser: ResponseParser) -> Any:
        """Submit a command and return its parsed value.

        Raises:
            MpdConnectionError: If the connection is or becomes unavailable.
            MpdServerError: If the server rejects the command.
            MpdParseError: If the parser fails.
        """
        result = await self.submit(command, parser)
        return result.unwrap()

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    async def _run(self) -> None:
        try:
            while True:
                pending = await self._next_command()
                if pending is not None:
                    await self._execute(pending)
        except MpdConnectionError as e:
            await self._handle_loss(e)

    async def _next_command(self) -> PendingCommand | None:
        """Return the next command, idling while the queue stays empty.

        Returns None when an idle cycle ended without a queued command
        (the server pushed a change).
        """
        if not self._queue.empty():
            return self._queue.get_nowait()
        try:
            return await asyncio.wait_for(self._queue.get(), self.idle_delay)
        except TimeoutError:
            pass

        if self.idle_hook is not None and not self.idle_hook.wants_idle():
            return await self._queue.get()

        reader = await self._enter_idle()
        get_task = asyncio.ensure_future(self._queue.get())
        try:
            await asyncio.wait({get_task, reader}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not get_task.done():
                get_task.cancel()
        if not get_task.done():
            await asyncio.wait({get_task})
        pending = None if get_task.cancelled() else get_task.result()

        try:
            await self._leave_idle()
        except (MpdConnectionError, asyncio.CancelledError) as e:
            if pending is not None:
                if not isinstance(e, MpdConnectionError):
                    e = MpdConnectionError("Disconnected")
                self._complete(pending, CommandResult(pending.command, error=e))
            raise
        return pending

    async def _enter_idle(self) -> asyncio.Task[list[str]]:
        await self._connection.send_line(commands.idle(*self.idle_subsystems))
        self.idle_sent += 1
        self._connection.mark_idling()
        self._idle_reader = asyncio.create_task(self._read_idle(), name="mpd-idle-reader")
        logger.debug("Idling (%d idle / %d noidle)", self.idle_sent, self.noidle_sent)
        if self.idle_hook is not None:
            self.idle_hook.on_idle()
        return self._idle_reader

    async def _read_idle(self) -> list[str]:
        """Read the idle response; the only unbounded read."""
        try:
            lines = await self._connection.read_response(timeout=None)
        except MpdServerError as e:
            logger.warning("Idle rejected by server: %s", e)
            return []
        changed = parse_changed(lines)
        if changed:
            logger.debug("Server reported changes: %s", ", ".join(changed))
            if self.idle_hook is not None:
                self.idle_hook.on_changed(changed)
        return changed

    async def _leave_idle(self) -> None:
        reader = self._idle_reader
        if reader is None:
            return
        # MPD ignores noidle once the idle response is out, so always send it
        await self._connection.send_line(commands.NOIDLE, allow_idle=True)
        self.noidle_sent += 1
        try:
            await asyncio.wait_for(reader, self.noidle_timeout)
        except TimeoutError as e:
            await self._connection.close()
            raise MpdConnectionError(
                f"No idle response within {self.noidle_timeout}s of noidle"
            ) from e
        finally:
            self._idle_reader = None
        self._connection.mark_connected()

    async def _execute(self, pending: PendingCommand) -> None:
        if pending.future.done():
            logger.debug("Skipping cancelled #%d: %s", pending.sequence, pending.command)
            return

        self._current = pending
        self._in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            lines = await self._connection.command(pending.command)
        except MpdServerError as e:
            logger.debug("Command %s failed: %s", pending.command, e)
            result: CommandResult[Any] = CommandResult(pending.command, error=e)
        except MpdConnectionError as e:
            self._finish(pending, CommandResult(pending.command, error=e))
            raise
        else:
            result = self._parse(pending, lines)
        self._finish(pending, result)

    def _parse(self, pending: PendingCommand, lines: list[str]) -> CommandResult[Any]:
        try:
            value = pending.parser(lines)
        except Exception as e:  # noqa: BLE001
            logger.warning("Failed to parse response to %s: %s", pending.command, e)
            error = MpdParseError(pending.command, str(e) or type(e).__name__)
            return CommandResult(pending.command, error=error)
        return CommandResult(pending.command, value=value)

    def _finish(self, pending: PendingCommand, result: CommandResult[Any]) -> None:
        self._in_flight -= 1
        self._current = None
        self._complete(pending, result)

    def _complete(self, pending: PendingCommand, result: CommandResult[Any]) -> None:
        if not pending.future.done():
            pending.future.set_result(result)
        if pending.callback is not None:
            self._deliver(pending.callback, result)

    def _fail_outstanding(self, error: MpdConnectionError) -> None:
        if self._current is not None:
            self._finish(self._current, CommandResult(self._current.command, error=error))
        while not self._queue.empty():
            pending = self._queue.get_nowait()
            self._complete(pending, CommandResult(pending.command, error=error))

    async def _handle_loss(self, error: MpdConnectionError) -> None:
        logger.warning("Dispatcher stopped: %s", error)
        reader = self._idle_reader
        self._idle_reader = None
        if reader is not None:
            if not reader.done():
                reader.cancel()
            elif not reader.cancelled() and reader.exception() is not None:
                logger.debug("Idle reader ended with: %s", reader.exception())
        await self._connection.close()
        self._fail_outstanding(error)
        self._worker = None
        if self.on_connection_lost is not None:
            self.on_connection_lost(error)
