"""Player state tracking on top of the idle-driven dispatcher.

The monitor keeps the last known status and track and publishes them to
status listeners. While the connection idles it interpolates the elapsed
time once a second without talking to the server, and resyncs with the
server when MPD pushes a change or after ``resync_interval`` seconds,
whichever comes first.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from mpdlink.api.mpd import commands
from mpdlink.api.mpd.parsers import parse_current_song, parse_status
from mpdlink.api.mpd.protocol import MpdError
from mpdlink.api.mpd.types import CurrentStatus, Track

if TYPE_CHECKING:
    from mpdlink.api.mpd.dispatcher import CommandDispatcher
    from mpdlink.core.listeners import StatusListener

logger = logging.getLogger(__name__)

RESYNC_INTERVAL = 30.0
INTERPOLATION_INTERVAL = 1.0


class MonitorState(Enum):
    """What the monitor is currently doing."""

    STOPPED = "stopped"
    IDLING = "idling"
    RESYNCING = "resyncing"
    INTERPOLATING = "interpolating"


class IdleMonitor:
    """Publishes status and track changes to registered listeners.

    Installed as the dispatcher's idle hook: the dispatcher reports when it
    starts idling and which subsystems the server says changed.
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        deliver: Callable[..., None],
        resync_interval: float = RESYNC_INTERVAL,
        interpolation_interval: float = INTERPOLATION_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the monitor.

        Args:
            dispatcher: Dispatcher used to fetch status and current song.
            deliver: Hands listener calls to the delivery thread.
            resync_interval: Seconds between forced resyncs while idling.
            interpolation_interval: Seconds between elapsed-time ticks.
            clock: Monotonic time source.
        """
        self._dispatcher = dispatcher
        self._deliver = deliver
        self.resync_interval = resync_interval
        self.interpolation_interval = interpolation_interval
        self._clock = clock

        self._state = MonitorState.STOPPED
        self._listeners: list[StatusListener] = []
        self._listeners_lock = threading.Lock()

        self._last_status = CurrentStatus()
        self._last_track: Track | None = None
        self._resync_time = clock()
        self._synced = False

        self._loop: asyncio.AbstractEventLoop | None = None
        self._interpolation_timer: asyncio.TimerHandle | None = None
        self._resync_timer: asyncio.TimerHandle | None = None
        self._resync_task: asyncio.Task[None] | None = None
        self._resync_again = False

    @property
    def state(self) -> MonitorState:
        """Return the current monitor state."""
        return self._state

    @property
    def last_status(self) -> CurrentStatus:
        """Return the last status fetched from the server."""
        return self._last_status

    @property
    def last_track(self) -> Track | None:
        """Return the last track fetched from the server."""
        return self._last_track

    @property
    def timers_armed(self) -> bool:
        """Return True if the interpolation or resync timer is pending."""
        return self._interpolation_timer is not None or self._resync_timer is not None

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def register_listener(self, listener: StatusListener) -> None:
        """Add a listener and send it the last known track and status."""
        with self._listeners_lock:
            if listener in self._listeners:
                return
            self._listeners.append(listener)
            track, status = self._last_track, self._last_status
        self._deliver(listener.on_new_track, track)
        self._deliver(listener.on_new_status, status)

    def unregister_listener(self, listener: StatusListener) -> None:
        """Remove a listener; unknown listeners are ignored."""
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _publish(self, method: str, value: Any) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            self._deliver(getattr(listener, method), value)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Begin monitoring a fresh connection. Call on the event loop."""
        self._loop = asyncio.get_running_loop()
        self._cancel_timers()
        self._last_status = CurrentStatus()
        self._last_track = None
        self._synced = False
        self._state = MonitorState.IDLING
        self._publish("on_new_track", None)
        self._publish("on_new_status", self._last_status)
        self.update_status()

    def stop(self) -> None:
        """Stop monitoring; cancels timers and any running resync."""
        self._state = MonitorState.STOPPED
        self._cancel_timers()
        if self._resync_task is not None and not self._resync_task.done():
            self._resync_task.cancel()
        self._resync_task = None
        self._resync_again = False

    def update_status(self) -> None:
        """Request a resync now. Concurrent requests coalesce."""
        if self._state is MonitorState.STOPPED or self._loop is None:
            return
        if self._resync_task is not None and not self._resync_task.done():
            self._resync_again = True
            return
        self._resync_task = self._loop.create_task(self._resync(), name="mpd-resync")

    # -------------------------------------------------------------------------
    # Idle hook
    # -------------------------------------------------------------------------

    def wants_idle(self) -> bool:
        """Idle whenever the monitor is running."""
        return self._state is not MonitorState.STOPPED

    def on_idle(self) -> None:
        """Arm the timers when the dispatcher starts idling."""
        if self._state is MonitorState.STOPPED or self._loop is None:
            return
        if self._resync_timer is None:
            self._resync_timer = self._loop.call_later(self.resync_interval, self._on_resync_timer)
        if self._interpolation_timer is None:
            self._interpolation_timer = self._loop.call_later(
                self.interpolation_interval, self._on_interpolation_tick
            )
        if self._state is not MonitorState.RESYNCING:
            self._state = self._resting_state()

    def on_changed(self, subsystems: list[str]) -> None:
        """Resync after the server reported changes."""
        logger.debug("Resync requested by server push: %s", ", ".join(subsystems))
        self.update_status()

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def _resting_state(self) -> MonitorState:
        if self._last_status.is_playing:
            return MonitorState.INTERPOLATING
        return MonitorState.IDLING

    def _cancel_timers(self) -> None:
        for timer in (self._interpolation_timer, self._resync_timer):
            if timer is not None:
                timer.cancel()
        self._interpolation_timer = None
        self._resync_timer = None

    def _on_resync_timer(self) -> None:
        self._resync_timer = None
        self.update_status()

    def _on_interpolation_tick(self) -> None:
        self._interpolation_timer = None
        if self._state is MonitorState.STOPPED or self._loop is None:
            return
        self._interpolation_timer = self._loop.call_later(
            self.interpolation_interval, self._on_interpolation_tick
        )
        status = self.interpolated_status()
        if status is not None:
            self._publish("on_new_status", status)

    def interpolated_status(self) -> CurrentStatus | None:
        """Return the last status with elapsed time advanced to now.

        Returns None when not playing, since nothing moves then.
        """
        last = self._last_status
        if not last.is_playing:
            return None
        elapsed = last.elapsed_time + int(self._clock() - self._resync_time)
        if last.track_length > 0:
            elapsed = min(elapsed, last.track_length)
        return last.with_elapsed(elapsed)

    # -------------------------------------------------------------------------
    # Resync
    # -------------------------------------------------------------------------

    def _track_changed(self, status: CurrentStatus) -> bool:
        if not self._synced:
            return True
        last = self._last_status
        return (
            status.current_song_index != last.current_song_index
            or status.current_song_id != last.current_song_id
            or status.playlist_version != last.playlist_version
        )

    async def _resync(self) -> None:
        self._cancel_timers()
        self._state = MonitorState.RESYNCING
        try:
            while True:
                self._resync_again = False
                try:
                    status: CurrentStatus = await self._dispatcher.execute(
                        commands.STATUS, parse_status
                    )
                    fetch_track = self._track_changed(status)
                    track = self._last_track
                    if fetch_track:
                        track = await self._dispatcher.execute(
                            commands.CURRENT_SONG, parse_current_song
                        )
                except MpdError as e:
                    logger.warning("Status resync failed: %s", e)
                    return

                self._last_status = status
                self._resync_time = self._clock()
                self._synced = True
                if fetch_track:
                    self._last_track = track
                    self._publish("on_new_track", track)
                self._publish("on_new_status", status)

                if not self._resync_again:
                    break
        finally:
            if self._state is MonitorState.RESYNCING:
                self._state = self._resting_state()
