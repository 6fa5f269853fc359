"""QThread worker for running MpdClient in a Qt application.

Qt widgets must run in the main thread, but MpdClient uses asyncio.
This worker runs the asyncio event loop in a background thread and bridges
listener events to the main thread via Qt signals.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from PySide6.QtCore import QThread, Signal

from mpdlink.api.mpd.connection import DEFAULT_PORT
from mpdlink.api.mpd.protocol import MpdError
from mpdlink.api.mpd.types import CurrentStatus, ServerVersion, Track
from mpdlink.core.client import MpdClient
from mpdlink.core.config import ClientSettings

logger = logging.getLogger(__name__)


class MpdWorker(QThread):
    """Background thread worker for the MPD client.

    Runs an MpdClient on its own event loop in a QThread so the main Qt
    thread stays responsive. The worker registers itself as status and
    connection listener and re-emits those events as Qt signals.

    Example:
        worker = MpdWorker("192.168.1.100")
        worker.connected.connect(lambda version: print(f"MPD {version}"))
        worker.track_received.connect(lambda track: print(track.display_title))
        worker.start()
    """

    # Connection state signals
    connected = Signal(object)  # ServerVersion
    disconnected = Signal()  # Disconnected on request
    connection_lost = Signal(object)  # MpdError that closed the connection

    # Data signals
    status_received = Signal(object)  # CurrentStatus
    track_received = Signal(object)  # Track | None

    # Error signal
    error_occurred = Signal(object)  # Exception

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        password: str = "",
        settings: ClientSettings | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            host: MPD server hostname or IP.
            port: TCP port (default 6600).
            password: Optional MPD password.
            settings: Client tunables; defaults when None.
        """
        super().__init__()
        self._host = host
        self._port = port
        self._password = password
        self._settings = settings or ClientSettings()
        self._client: MpdClient | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def host(self) -> str:
        """Return server host."""
        return self._host

    @property
    def port(self) -> int:
        """Return server port."""
        return self._port

    @property
    def client(self) -> MpdClient | None:
        """Return the client while the worker runs."""
        return self._client

    @property
    def is_connected(self) -> bool:
        """Return True if client is connected."""
        return self._client is not None and self._client.is_connected

    def stop(self) -> None:
        """Signal the worker to stop (called from main thread)."""
        if self._loop and self._loop.is_running() and self._stop_event is not None:
            self._loop.call_soon_threadsafe(self._stop_event.set)

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        if self._loop and self._loop.is_running() and self._client:
            asyncio.run_coroutine_threadsafe(coro, self._loop)
        else:
            coro.close()

    # -------------------------------------------------------------------------
    # Thread-safe commands
    # -------------------------------------------------------------------------

    def request_status(self) -> None:
        """Request a status resync. Thread-safe call from main thread."""
        if self._loop and self._loop.is_running() and self._client:
            self._loop.call_soon_threadsafe(self._client.update_status)

    def connect_to(self, host: str, password: str = "", port: int = DEFAULT_PORT) -> None:
        """Switch to another server. Thread-safe call from main thread."""
        self._host = host
        self._port = port
        self._password = password
        self._schedule(self._safe_connect())

    def disconnect_from_server(self) -> None:
        """Disconnect without stopping the thread. Thread-safe."""
        self._schedule(self._safe_call("disconnect"))

    def play(self, index: int = -1) -> None:
        """Start playback. Thread-safe call from main thread."""
        self._schedule(self._safe_call("play", index))

    def pause(self, paused: bool = True) -> None:
        """Pause or resume playback. Thread-safe call from main thread."""
        self._schedule(self._safe_call("pause", paused))

    def stop_playback(self) -> None:
        """Stop playback. Thread-safe call from main thread."""
        self._schedule(self._safe_call("stop"))

    def next_track(self) -> None:
        """Skip to next track. Thread-safe call from main thread."""
        self._schedule(self._safe_call("next"))

    def previous_track(self) -> None:
        """Skip to previous track. Thread-safe call from main thread."""
        self._schedule(self._safe_call("previous"))

    def seek(self, seconds: float) -> None:
        """Seek in the current track. Thread-safe call from main thread."""
        self._schedule(self._safe_call("seek", seconds))

    def set_volume(self, volume: int) -> None:
        """Set the volume (0-100). Thread-safe call from main thread."""
        self._schedule(self._safe_call("set_volume", volume))

    async def _safe_call(self, method: str, *args: Any) -> None:
        """Call a client coroutine with error handling."""
        if not self._client:
            return
        try:
            await getattr(self._client, method)(*args)
        except MpdError as e:
            self.error_occurred.emit(e)

    async def _safe_connect(self) -> None:
        if not self._client:
            return
        try:
            await self._client.connect(self._host, self._password, self._port)
        except MpdError as e:
            self.error_occurred.emit(e)

    # -------------------------------------------------------------------------
    # Thread body
    # -------------------------------------------------------------------------

    def run(self) -> None:
        """Run the worker thread (entry point)."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        try:
            self._loop.run_until_complete(self._main())
        except Exception as e:
            self.error_occurred.emit(e)
        finally:
            self._loop.close()
            self._loop = None
            self._client = None

    async def _main(self) -> None:
        """Connect, then keep the loop alive until stop() is called."""
        self._stop_event = asyncio.Event()
        self._client = MpdClient(self._settings)
        self._client.register_connection_listener(self)
        self._client.register_status_listener(self)

        try:
            await self._client.connect(self._host, self._password, self._port)
        except MpdError as e:
            # The supervisor keeps retrying unless the password was rejected
            self.error_occurred.emit(e)

        try:
            await self._stop_event.wait()
        finally:
            await self._client.close()
            self._client.unregister_status_listener(self)
            self._client.unregister_connection_listener(self)
            self._stop_event = None

    # -------------------------------------------------------------------------
    # Listener callbacks (relay thread)
    # -------------------------------------------------------------------------

    def on_connected(self, version: ServerVersion) -> None:
        """Handle a successful connect."""
        self.connected.emit(version)

    def on_disconnected(self, error: MpdError | None) -> None:
        """Handle a closed connection or a failed connect attempt."""
        if error is None:
            self.disconnected.emit()
        else:
            self.connection_lost.emit(error)

    def on_new_status(self, status: CurrentStatus) -> None:
        """Handle a status update."""
        self.status_received.emit(status)

    def on_new_track(self, track: Track | None) -> None:
        """Handle a track update."""
        self.track_received.emit(track)
