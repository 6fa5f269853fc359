"""Tests for the command dispatcher and idle arbitration."""

import asyncio
from typing import Any

import pytest

from conftest import FakeMpdServer, wait_until
from mpdlink.api.mpd.connection import READ_LIMIT, MpdConnection, MpdConnectionError
from mpdlink.api.mpd.dispatcher import CommandDispatcher
from mpdlink.api.mpd.parsers import parse_ok, parse_status
from mpdlink.api.mpd.protocol import MpdParseError, MpdServerError
from mpdlink.api.mpd.types import CommandResult, ConnectionState


class RecordingHook:
    """Idle hook recording idle entries and reported changes."""

    def __init__(self, want: bool = True) -> None:
        self.want = want
        self.idles = 0
        self.changed: list[list[str]] = []

    def wants_idle(self) -> bool:
        return self.want

    def on_idle(self) -> None:
        self.idles += 1

    def on_changed(self, subsystems: list[str]) -> None:
        self.changed.append(subsystems)


async def _start(**kwargs: Any) -> tuple[MpdConnection, CommandDispatcher]:
    connection = MpdConnection()
    await connection.connect("localhost")
    kwargs.setdefault("idle_delay", 10.0)
    dispatcher = CommandDispatcher(connection, **kwargs)
    dispatcher.start()
    return connection, dispatcher


async def _shutdown(connection: MpdConnection, dispatcher: CommandDispatcher) -> None:
    await dispatcher.stop()
    await connection.close()


class TestOrdering:
    """Tests for FIFO execution."""

    @pytest.mark.asyncio
    async def test_commands_complete_in_order(self, mpd_server: FakeMpdServer) -> None:
        """Test that commands are sent and completed in submission order."""
        connection, dispatcher = await _start()
        completed: list[str] = []

        futures = [
            dispatcher.submit(name, parse_ok, lambda r: completed.append(r.command))
            for name in ("stats", "status", "ping")
        ]
        results = [await future for future in futures]

        assert [r.command for r in results] == ["stats", "status", "ping"]
        assert completed == ["stats", "status", "ping"]
        assert mpd_server.sent == ["stats", "status", "ping"]
        assert dispatcher.max_in_flight == 1
        await _shutdown(connection, dispatcher)

    @pytest.mark.asyncio
    async def test_execute_returns_parsed_value(self, mpd_server: FakeMpdServer) -> None:
        """Test execute with a real parser."""
        connection, dispatcher = await _start()
        status = await dispatcher.execute("status", parse_status)
        assert status.volume == 80
        assert status.is_playing
        await _shutdown(connection, dispatcher)

    @pytest.mark.asyncio
    async def test_callbacks_go_through_deliver(self, mpd_server: FakeMpdServer) -> None:
        """Test that result callbacks are handed to the deliver function."""
        delivered: list[Any] = []

        def deliver(func: Any, *args: Any) -> None:
            delivered.append(args)
            func(*args)

        connection, dispatcher = await _start(deliver=deliver)
        seen: list[CommandResult[Any]] = []
        await dispatcher.submit("ping", parse_ok, seen.append)

        assert len(delivered) == 1
        assert seen[0].ok
        await _shutdown(connection, dispatcher)


class TestIdle:
    """Tests for idle entry and exit."""

    @pytest.mark.asyncio
    async def test_status_while_idling(self, mpd_server: FakeMpdServer) -> None:
        """Test that a command leaves idle with noidle and idles again afterwards."""
        connection, dispatcher = await _start(idle_delay=0.01, idle_subsystems=("player",))

        await wait_until(lambda: dispatcher.is_idling)
        status = await dispatcher.execute("status", parse_status)
        assert status.current_song_index == 2

        await wait_until(lambda: dispatcher.idle_sent == 2)
        assert mpd_server.sent[:4] == ["idle player", "noidle", "status", "idle player"]
        assert mpd_server.connections == 1
        await _shutdown(connection, dispatcher)

    @pytest.mark.asyncio
    async def test_idle_and_noidle_balance(self, mpd_server: FakeMpdServer) -> None:
        """Test that every idle is matched by one noidle."""
        connection, dispatcher = await _start(idle_delay=0.01)

        for _ in range(5):
            await wait_until(lambda: dispatcher.is_idling)
            await dispatcher.execute("ping", parse_ok)
            assert dispatcher.idle_sent - dispatcher.noidle_sent in (0, 1)

        assert dispatcher.noidle_sent == 5
        assert dispatcher.max_in_flight == 1
        assert mpd_server.commands_without_idle() == ["ping"] * 5
        await _shutdown(connection, dispatcher)

    @pytest.mark.asyncio
    async def test_server_push_reaches_hook(self, mpd_server: FakeMpdServer) -> None:
        """Test that a pushed change is reported and idle is resumed."""
        hook = RecordingHook()
        connection, dispatcher = await _start(idle_delay=0.01)
        dispatcher.idle_hook = hook

        await wait_until(lambda: dispatcher.is_idling)
        mpd_server.push_change("player")

        await wait_until(lambda: hook.changed == [["player"]])
        await wait_until(lambda: dispatcher.idle_sent == 2)
        assert dispatcher.noidle_sent == 1
        assert hook.idles == 2
        await _shutdown(connection, dispatcher)

    @pytest.mark.asyncio
    async def test_no_idle_when_hook_declines(self, mpd_server: FakeMpdServer) -> None:
        """Test that the hook can keep the dispatcher out of idle."""
        hook = RecordingHook(want=False)
        connection, dispatcher = await _start(idle_delay=0.01)
        dispatcher.idle_hook = hook

        await asyncio.sleep(0.05)
        await dispatcher.execute("ping", parse_ok)

        assert dispatcher.idle_sent == 0
        assert mpd_server.sent == ["ping"]
        await _shutdown(connection, dispatcher)

    @pytest.mark.asyncio
    async def test_noidle_timeout_drops_connection(self, mpd_server: FakeMpdServer) -> None:
        """Test that a server never answering noidle counts as a lost connection."""
        mpd_server.ignore_noidle = True
        lost: list[MpdConnectionError] = []
        connection, dispatcher = await _start(idle_delay=0.01, noidle_timeout=0.05)
        dispatcher.on_connection_lost = lost.append

        await wait_until(lambda: dispatcher.is_idling)
        result = await dispatcher.submit("status", parse_status)

        assert isinstance(result.error, MpdConnectionError)
        await wait_until(lambda: len(lost) == 1)
        assert not connection.is_connected
        assert not dispatcher.is_running


class TestErrors:
    """Tests for command failures."""

    @pytest.mark.asyncio
    async def test_ack_does_not_stop_queue(self, mpd_server: FakeMpdServer) -> None:
        """Test that an ACK fails only its own command."""
        mpd_server.errors["play"] = "ACK [5@0] {play} Bad song index"
        connection, dispatcher = await _start()

        failed = dispatcher.submit("play 99", parse_ok)
        following = dispatcher.submit("ping", parse_ok)

        result = await failed
        assert isinstance(result.error, MpdServerError)
        assert result.error.code == 5
        assert (await following).ok
        assert dispatcher.is_running
        await _shutdown(connection, dispatcher)

    @pytest.mark.asyncio
    async def test_parser_failure(self, mpd_server: FakeMpdServer) -> None:
        """Test that a parser exception becomes a parse error result."""

        def broken(lines: list[str]) -> None:
            raise ValueError("bad data")

        connection, dispatcher = await _start()
        result = await dispatcher.submit("status", broken)

        assert isinstance(result.error, MpdParseError)
        with pytest.raises(MpdParseError):
            result.unwrap()
        assert (await dispatcher.submit("ping", parse_ok)).ok
        await _shutdown(connection, dispatcher)

    @pytest.mark.asyncio
    async def test_submit_when_not_running(self) -> None:
        """Test that submitting without a worker fails immediately."""
        dispatcher = CommandDispatcher(MpdConnection())
        seen: list[CommandResult[Any]] = []

        result = await dispatcher.submit("status", parse_status, seen.append)

        assert isinstance(result.error, MpdConnectionError)
        assert seen == [result]
        with pytest.raises(MpdConnectionError):
            await dispatcher.execute("status", parse_status)

    @pytest.mark.asyncio
    async def test_connection_loss_fails_outstanding(self, mpd_server: FakeMpdServer) -> None:
        """Test that a dropped connection fails in-flight and queued commands."""
        mpd_server.silent.add("status")
        lost: list[MpdConnectionError] = []
        connection, dispatcher = await _start()
        dispatcher.on_connection_lost = lost.append

        in_flight = dispatcher.submit("status", parse_status)
        queued = dispatcher.submit("ping", parse_ok)
        await wait_until(lambda: mpd_server.count("status") == 1)
        mpd_server.drop()

        assert isinstance((await in_flight).error, MpdConnectionError)
        assert isinstance((await queued).error, MpdConnectionError)
        assert len(lost) == 1
        assert not dispatcher.is_running
        assert mpd_server.count("ping") == 0

        result = await dispatcher.submit("ping", parse_ok)
        assert isinstance(result.error, MpdConnectionError)

    @pytest.mark.asyncio
    async def test_overlong_line_fails_outstanding(self, mpd_server: FakeMpdServer) -> None:
        """Test that a response line over the read limit is a connection loss."""
        mpd_server.responses["status"] = ["Title: " + "x" * READ_LIMIT]
        lost: list[MpdConnectionError] = []
        connection, dispatcher = await _start()
        dispatcher.on_connection_lost = lost.append

        result = await dispatcher.submit("status", parse_status)

        assert isinstance(result.error, MpdConnectionError)
        await wait_until(lambda: len(lost) == 1)
        assert not dispatcher.is_running
        assert connection.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_stop_fails_outstanding(self, mpd_server: FakeMpdServer) -> None:
        """Test that stop fails the in-flight and queued commands."""
        mpd_server.silent.add("status")
        connection, dispatcher = await _start()

        in_flight = dispatcher.submit("status", parse_status)
        queued = dispatcher.submit("ping", parse_ok)
        await wait_until(lambda: mpd_server.count("status") == 1)
        await dispatcher.stop()

        assert str((await in_flight).error) == "Disconnected"
        assert str((await queued).error) == "Disconnected"
        assert dispatcher.pending_count == 0
        await connection.close()
