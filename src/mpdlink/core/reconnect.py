"""Automatic reconnection after unexpected disconnects."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from mpdlink.api.mpd.connection import MpdAuthError

logger = logging.getLogger(__name__)

SHORT_RECONNECT_DELAY = 10.0
LONG_RECONNECT_DELAY = 60.0
SHORT_RECONNECT_TRIES = 5


class ReconnectState(Enum):
    """Supervisor state."""

    IDLE = "idle"
    CONNECTED = "connected"
    DISCONNECTED_WAITING = "disconnected_waiting"
    RECONNECTING = "reconnecting"


class ReconnectSupervisor:
    """Backoff state machine driving reconnect attempts.

    The first ``short_tries`` attempts after a disconnect are spaced
    ``short_delay`` seconds apart, later ones ``long_delay`` seconds, with no
    upper limit on attempts. All methods must be called on the event loop.

    Example:
        supervisor = ReconnectSupervisor(reconnect=lambda: loop.create_task(client.reconnect()))
        supervisor.on_disconnected(error)  # schedules the first attempt
    """

    def __init__(
        self,
        reconnect: Callable[[], None],
        short_delay: float = SHORT_RECONNECT_DELAY,
        long_delay: float = LONG_RECONNECT_DELAY,
        short_tries: int = SHORT_RECONNECT_TRIES,
    ) -> None:
        """Initialize the supervisor.

        Args:
            reconnect: Starts one reconnect attempt; its outcome must be
                reported back via on_connected() or on_connect_failed().
            short_delay: Delay for the first attempts.
            long_delay: Delay once the short attempts are used up.
            short_tries: Number of attempts using the short delay.
        """
        self._reconnect = reconnect
        self.short_delay = short_delay
        self.long_delay = long_delay
        self.short_tries = short_tries

        self._state = ReconnectState.IDLE
        self._failures = 0
        self._suppressed = False
        self._enabled = True
        self._timer: asyncio.TimerHandle | None = None
        self.last_delay: float | None = None

    @property
    def state(self) -> ReconnectState:
        """Return the supervisor state."""
        return self._state

    @property
    def failures(self) -> int:
        """Return the number of consecutive failed attempts."""
        return self._failures

    @property
    def suppressed(self) -> bool:
        """Return True if an explicit disconnect blocks reconnects."""
        return self._suppressed

    @property
    def is_scheduled(self) -> bool:
        """Return True if a reconnect timer is pending."""
        return self._timer is not None

    @property
    def enabled(self) -> bool:
        """Return True if automatic reconnects are on."""
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value
        if not value:
            self._cancel()
            if self._state is ReconnectState.DISCONNECTED_WAITING:
                self._state = ReconnectState.IDLE

    def next_delay(self) -> float:
        """Return the delay before the next attempt."""
        if self._failures < self.short_tries:
            return self.short_delay
        return self.long_delay

    def on_connected(self) -> None:
        """Reset after a successful connect."""
        self._cancel()
        self._failures = 0
        self._state = ReconnectState.CONNECTED

    def on_disconnected(self, error: BaseException | None = None) -> None:
        """Handle a lost connection; schedules a reconnect unless suppressed."""
        if self._suppressed or not self._enabled:
            logger.debug(
                "Not reconnecting (suppressed=%s, enabled=%s)", self._suppressed, self._enabled
            )
            self._state = ReconnectState.IDLE
            return
        if isinstance(error, MpdAuthError):
            logger.warning("Not reconnecting after authentication failure")
            self._state = ReconnectState.IDLE
            return
        self._schedule()

    def on_connect_failed(self, error: BaseException | None = None) -> None:
        """Count a failed attempt and schedule the next one."""
        self._failures += 1
        self.on_disconnected(error)

    def request_disconnect(self) -> None:
        """Suppress reconnects until the next explicit connect."""
        self._suppressed = True
        self._cancel()
        self._state = ReconnectState.IDLE

    def request_connect(self) -> None:
        """Clear the suppression set by request_disconnect()."""
        self._suppressed = False
        self._cancel()

    def cancel(self) -> None:
        """Drop any pending reconnect."""
        self._cancel()
        if self._state is ReconnectState.DISCONNECTED_WAITING:
            self._state = ReconnectState.IDLE

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self) -> None:
        self._cancel()
        delay = self.next_delay()
        self.last_delay = delay
        self._state = ReconnectState.DISCONNECTED_WAITING
        logger.info("Reconnecting in %.0fs (attempt %d)", delay, self._failures + 1)
        self._timer = asyncio.get_running_loop().call_later(delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._suppressed or not self._enabled:
            self._state = ReconnectState.IDLE
            return
        self._state = ReconnectState.RECONNECTING
        self._reconnect()
