"""Tests for MpdWorker (QThread worker for the asyncio client)."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from pytestqt.qtbot import QtBot

from conftest import CURRENT_SONG_LINES, FakeMpdServer
from mpdlink.api.mpd.connection import MpdConnectionError
from mpdlink.api.mpd.parsers import parse_current_song, parse_status
from mpdlink.api.mpd.protocol import MpdServerError
from mpdlink.api.mpd.types import ServerVersion
from mpdlink.core.config import ClientSettings
from mpdlink.core.worker import MpdWorker


class TestMpdWorkerBasics:
    """Test basic MpdWorker functionality."""

    def test_initialization(self) -> None:
        """Test worker initialization."""
        worker = MpdWorker("192.168.1.100", 6601, password="pw")

        assert worker.host == "192.168.1.100"
        assert worker.port == 6601
        assert worker.client is None
        assert not worker.is_connected

    def test_default_port(self) -> None:
        """Test default port is 6600."""
        worker = MpdWorker("192.168.1.100")
        assert worker.port == 6600

    def test_commands_without_loop(self) -> None:
        """Test that commands are safe before the thread runs."""
        worker = MpdWorker("host")
        worker.stop()
        worker.request_status()
        worker.play()
        worker.pause()
        worker.stop_playback()
        worker.next_track()
        worker.previous_track()
        worker.seek(10.0)
        worker.set_volume(50)
        worker.disconnect_from_server()

    def test_connect_to_updates_target(self) -> None:
        """Test connect_to stores the new server without a loop."""
        worker = MpdWorker("host")
        worker.connect_to("otherhost", "pw", 6602)
        assert worker.host == "otherhost"
        assert worker.port == 6602


class TestMpdWorkerListenerSignals:
    """Test listener callbacks re-emitted as signals."""

    def test_on_connected(self) -> None:
        """Test on_connected emits connected."""
        worker = MpdWorker("host")
        versions: list[Any] = []
        worker.connected.connect(versions.append)

        worker.on_connected(ServerVersion(0, 23, 5))
        assert versions == [ServerVersion(0, 23, 5)]

    def test_on_disconnected_requested(self) -> None:
        """Test that a requested disconnect emits disconnected."""
        worker = MpdWorker("host")
        signals_received: list[str] = []
        worker.disconnected.connect(lambda: signals_received.append("disconnected"))
        worker.connection_lost.connect(lambda e: signals_received.append("lost"))

        worker.on_disconnected(None)
        assert signals_received == ["disconnected"]

    def test_on_disconnected_error(self) -> None:
        """Test that an unexpected disconnect emits connection_lost."""
        worker = MpdWorker("host")
        errors: list[Any] = []
        worker.connection_lost.connect(errors.append)

        error = MpdConnectionError("Connection closed by server")
        worker.on_disconnected(error)
        assert errors == [error]

    def test_status_and_track(self) -> None:
        """Test status and track signals."""
        worker = MpdWorker("host")
        received: list[Any] = []
        worker.status_received.connect(received.append)
        worker.track_received.connect(received.append)

        status = parse_status(["state: play"])
        track = parse_current_song(CURRENT_SONG_LINES)
        worker.on_new_status(status)
        worker.on_new_track(track)
        worker.on_new_track(None)

        assert received == [status, track, None]


class TestMpdWorkerAsyncMethods:
    """Test async helper methods with a mocked client."""

    @pytest.mark.asyncio
    async def test_safe_call_no_client(self) -> None:
        """Test _safe_call returns early without client."""
        worker = MpdWorker("host")
        await worker._safe_call("play")

    @pytest.mark.asyncio
    async def test_safe_call_invokes_client(self) -> None:
        """Test _safe_call forwards arguments."""
        worker = MpdWorker("host")
        mock_client = MagicMock()
        mock_client.set_volume = AsyncMock()
        worker._client = mock_client

        await worker._safe_call("set_volume", 40)
        mock_client.set_volume.assert_awaited_once_with(40)

    @pytest.mark.asyncio
    async def test_safe_call_emits_error(self) -> None:
        """Test _safe_call emits error_occurred on MPD errors."""
        worker = MpdWorker("host")
        errors: list[Exception] = []
        worker.error_occurred.connect(errors.append)

        error = MpdServerError(2, 0, "play", "Bad song index")
        mock_client = MagicMock()
        mock_client.play = AsyncMock(side_effect=error)
        worker._client = mock_client

        await worker._safe_call("play", 99)
        assert errors == [error]


class TestMpdWorkerThread:
    """Test the worker thread against the fake server."""

    def test_connects_and_stops(self, mpd_server: FakeMpdServer, qtbot: QtBot) -> None:
        """Test that the thread connects, delivers the track and shuts down."""
        worker = MpdWorker("localhost", settings=ClientSettings(idle_delay=0.01))

        with qtbot.wait_signal(worker.connected, timeout=2000) as blocker:
            worker.start()
        assert blocker.args == [ServerVersion(0, 23, 5)]

        qtbot.wait_until(lambda: worker.is_connected, timeout=2000)

        with qtbot.wait_signal(worker.disconnected, timeout=2000):
            worker.stop()
        assert worker.wait(2000)
        assert worker.client is None
