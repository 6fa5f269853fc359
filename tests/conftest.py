"""Test fixtures for mpdlink tests.

FakeMpdServer scripts an MPD server behind in-memory stream doubles that
replace ``asyncio.open_connection``. It answers commands from a response
table, blocks ``idle`` until ``noidle`` or a pushed change, and ignores a
``noidle`` that arrives outside idle, like MPD does.
"""

import asyncio
import time
from collections import deque
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import patch

import pytest

from mpdlink.api.mpd.types import CurrentStatus, ServerVersion, Track


class FakeStreamReader:
    """asyncio StreamReader double fed line by line by the fake server.

    Like the real reader, a line longer than ``limit`` makes readline raise
    ValueError.
    """

    def __init__(self, limit: int = 0) -> None:
        self._limit = limit
        self._lines: deque[bytes] = deque()
        self._event = asyncio.Event()
        self._eof = False

    def feed(self, line: str) -> None:
        """Queue one line for the client."""
        self._lines.append(f"{line}\n".encode())
        self._event.set()

    def feed_eof(self) -> None:
        """Make further reads return EOF."""
        self._eof = True
        self._event.set()

    async def readline(self) -> bytes:
        """Return the next line, waiting for one if needed."""
        while not self._lines:
            if self._eof:
                return b""
            self._event.clear()
            await self._event.wait()
        line = self._lines.popleft()
        if self._limit and len(line) > self._limit:
            raise ValueError("Separator is found, but chunk is longer than limit")
        return line


class FakeStreamWriter:
    """asyncio StreamWriter double forwarding each line to the fake server."""

    def __init__(self, on_line: Callable[[str], None]) -> None:
        self._on_line = on_line
        self._buffer = b""
        self._closed = False

    def write(self, data: bytes) -> None:
        """Split written data into lines and hand them to the server."""
        if self._closed:
            raise ConnectionResetError("Writer closed")
        self._buffer += data
        while b"\n" in self._buffer:
            line, self._buffer = self._buffer.split(b"\n", 1)
            self._on_line(line.decode())

    async def drain(self) -> None:
        """Mock drain."""

    def close(self) -> None:
        """Mark as closed."""
        self._closed = True

    async def wait_closed(self) -> None:
        """Mock wait_closed."""

    def is_closing(self) -> bool:
        """Check if closing."""
        return self._closed


class FakeMpdServer:
    """Scripted MPD server.

    Attributes:
        version: Version announced in the greeting.
        password: Accepted password, empty if none is required.
        responses: Response bodies by full command line or command name.
        errors: ACK lines by full command line or command name.
        sent: Every line received, across all connections.
        connections: Number of accepted connections.
        refuse: Refuse new connections with OSError.
        greeting: Override for the greeting line.
        silent: Commands (line or name) that never get a response.
        ignore_noidle: Never answer noidle, to simulate a hung server.
    """

    def __init__(self, version: str = "0.23.5", password: str = "") -> None:
        self.version = version
        self.password = password
        self.responses: dict[str, list[str]] = {}
        self.errors: dict[str, str] = {}
        self.sent: list[str] = []
        self.connections = 0
        self.refuse = False
        self.greeting: str | None = None
        self.silent: set[str] = set()
        self.ignore_noidle = False
        self.idling = False
        self._pending_changes: list[str] = []
        self._reader: FakeStreamReader | None = None

    def open_connection(
        self, host: str, port: int, limit: int = 0
    ) -> tuple[FakeStreamReader, FakeStreamWriter]:
        """Replacement for asyncio.open_connection."""
        if self.refuse:
            raise OSError("Connection refused")
        self.connections += 1
        self.idling = False
        self._pending_changes.clear()
        reader = FakeStreamReader(limit)
        writer = FakeStreamWriter(self._handle)
        reader.feed(self.greeting if self.greeting is not None else f"OK MPD {self.version}")
        self._reader = reader
        return reader, writer

    def _send(self, line: str) -> None:
        if self._reader is not None:
            self._reader.feed(line)

    def _lookup(self, table: dict[str, Any], line: str) -> Any:
        if line in table:
            return table[line]
        return table.get(line.split(" ", 1)[0])

    def _handle(self, line: str) -> None:
        self.sent.append(line)
        name = line.split(" ", 1)[0]

        if line == "noidle":
            if self.idling and not self.ignore_noidle:
                self.idling = False
                self._flush_changes()
            return
        if self.idling:
            # Anything but noidle while idling makes MPD drop the client
            self.drop()
            return
        if name == "idle":
            self.idling = True
            if self._pending_changes:
                self.idling = False
                self._flush_changes()
            return
        if name == "password":
            given = line.split(" ", 1)[1].strip('"') if " " in line else ""
            if given == self.password:
                self._send("OK")
            else:
                self._send("ACK [3@0] {password} incorrect password")
            return

        if line in self.silent or name in self.silent:
            return
        error = self._lookup(self.errors, line)
        if error is not None:
            self._send(error)
            return
        for body_line in self._lookup(self.responses, line) or []:
            self._send(body_line)
        self._send("OK")

    def _flush_changes(self) -> None:
        for subsystem in self._pending_changes:
            self._send(f"changed: {subsystem}")
        self._pending_changes.clear()
        self._send("OK")

    def push_change(self, *subsystems: str) -> None:
        """Report changed subsystems, waking an idling client."""
        self._pending_changes.extend(subsystems)
        if self.idling:
            self.idling = False
            self._flush_changes()

    def drop(self) -> None:
        """Close the current connection from the server side."""
        if self._reader is not None:
            self._reader.feed_eof()
        self.idling = False

    def count(self, name: str) -> int:
        """Return how many received lines start with the command ``name``."""
        return sum(1 for line in self.sent if line.split(" ", 1)[0] == name)

    def commands_without_idle(self) -> list[str]:
        """Return received lines without idle and noidle."""
        return [line for line in self.sent if line.split(" ", 1)[0] not in ("idle", "noidle")]


class RecordingListener:
    """Status and connection listener recording every call."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def on_new_status(self, status: CurrentStatus) -> None:
        self.events.append(("status", status))

    def on_new_track(self, track: Track | None) -> None:
        self.events.append(("track", track))

    def on_connected(self, version: ServerVersion) -> None:
        self.events.append(("connected", version))

    def on_disconnected(self, error: Exception | None) -> None:
        self.events.append(("disconnected", error))

    def of(self, kind: str) -> list[Any]:
        """Return the payloads of one event kind."""
        return [value for event, value in self.events if event == kind]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the event loop until it holds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.005)


STATUS_LINES = [
    "volume: 80",
    "repeat: 0",
    "random: 1",
    "single: 0",
    "consume: 0",
    "playlist: 7",
    "playlistlength: 12",
    "state: play",
    "song: 2",
    "songid: 3",
    "nextsong: 3",
    "nextsongid: 4",
    "time: 42:215",
    "elapsed: 42.310",
    "duration: 215.000",
    "bitrate: 320",
    "audio: 44100:16:2",
]

CURRENT_SONG_LINES = [
    "file: Pink Floyd/Wish You Were Here/03 - Have a Cigar.flac",
    "Last-Modified: 2021-03-04T10:11:12Z",
    "Artist: Pink Floyd",
    "AlbumArtist: Pink Floyd",
    "Album: Wish You Were Here",
    "Title: Have a Cigar",
    "Track: 3/5",
    "Disc: 1/1",
    "Date: 1975",
    "Time: 308",
    "duration: 307.896",
    "Pos: 2",
    "Id: 3",
]


@pytest.fixture
def mpd_server() -> Generator[FakeMpdServer, None, None]:
    """Provide a fake MPD server patched in for asyncio.open_connection."""
    server = FakeMpdServer()
    server.responses["status"] = list(STATUS_LINES)
    server.responses["currentsong"] = list(CURRENT_SONG_LINES)
    with patch("asyncio.open_connection", side_effect=server.open_connection):
        yield server


@pytest.fixture
def listener() -> RecordingListener:
    """Provide a recording listener."""
    return RecordingListener()
