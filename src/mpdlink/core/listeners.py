"""Listener contracts and the delivery thread.

Listener callbacks and command result callbacks never run on the event loop
that owns the socket. They are posted to a ListenerRelay, whose single
daemon thread invokes them in FIFO order, so a slow consumer delays other
consumers but never protocol I/O.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from mpdlink.api.mpd.protocol import MpdError
    from mpdlink.api.mpd.types import CurrentStatus, ServerVersion, Track

logger = logging.getLogger(__name__)

_Job = tuple[Callable[..., Any], tuple[Any, ...]]


class StatusListener(Protocol):
    """Receives player state updates."""

    def on_new_status(self, status: CurrentStatus) -> None:
        """Called with a fresh or interpolated status."""
        ...

    def on_new_track(self, track: Track | None) -> None:
        """Called with the current track, None when nothing is loaded."""
        ...


class ConnectionListener(Protocol):
    """Receives connection lifecycle events."""

    def on_connected(self, version: ServerVersion) -> None:
        """Called after a successful connect."""
        ...

    def on_disconnected(self, error: MpdError | None) -> None:
        """Called after the connection closed or a connect attempt failed.

        error is None when the close was requested.
        """
        ...


class ListenerRelay:
    """Runs posted callables on a dedicated thread, one at a time.

    Example:
        relay = ListenerRelay()
        relay.start()
        relay.post(listener.on_new_status, status)
        relay.stop()
    """

    def __init__(self, name: str = "mpd-listener-relay") -> None:
        self._name = name
        self._queue: queue.Queue[_Job | None] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def is_running(self) -> bool:
        """Return True if the delivery thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def in_relay_thread(self) -> bool:
        """Return True when called from the delivery thread."""
        return self._thread is not None and threading.current_thread() is self._thread

    def start(self) -> None:
        """Start the delivery thread if it is not running."""
        with self._lock:
            self._stopped = False
            self._ensure_thread()

    def _ensure_thread(self) -> None:
        if not self.is_running:
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()

    def stop(self, timeout: float = 3.0) -> None:
        """Deliver what is queued, then stop the thread."""
        with self._lock:
            self._stopped = True
            thread = self._thread
            if thread is None:
                return
            self._queue.put(None)
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
        with self._lock:
            if self._thread is thread:
                self._thread = None

    def post(self, func: Callable[..., Any], *args: Any) -> None:
        """Queue ``func(*args)`` for delivery. Safe from any thread.

        The thread starts on the first post. Once stop() was called, posts
        are dropped until start() is called again.
        """
        with self._lock:
            if self._stopped:
                logger.debug("Relay stopped, dropping %r", func)
                return
            self._ensure_thread()
            self._queue.put((func, args))

    def wait_idle(self) -> None:
        """Block until everything posted so far has been delivered."""
        self._queue.join()

    async def drain(self) -> None:
        """Await delivery of everything posted so far without blocking the loop."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._queue.join)

    def _run(self) -> None:
        """Delivery thread body."""
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                func, args = job
                try:
                    func(*args)
                except Exception:
                    logger.exception("Listener callback %r failed", func)
            finally:
                self._queue.task_done()
