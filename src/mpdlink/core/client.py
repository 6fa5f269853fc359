"""MPD client facade.

MpdClient wires the transport, the dispatcher, the idle monitor, the
reconnect supervisor and the listener relay together and exposes the API
collaborators use. It is constructed explicitly; there is no shared instance.
All coroutines and ``submit`` must run on the event loop that owns the
client. Listener and result callbacks run on the relay thread.

Example:
    client = MpdClient()
    client.register_status_listener(my_listener)
    await client.connect("192.168.1.100")
    albums = await client.albums("Pink Floyd")
    await client.disconnect()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from functools import partial
from typing import Any

from mpdlink.api.mpd import commands
from mpdlink.api.mpd.connection import DEFAULT_PORT, MpdConnection, MpdConnectionError
from mpdlink.api.mpd.dispatcher import CommandDispatcher
from mpdlink.api.mpd.parsers import (
    FileEntry,
    parse_albums,
    parse_artists,
    parse_current_song,
    parse_file_entries,
    parse_ok,
    parse_outputs,
    parse_playlists,
    parse_statistics,
    parse_status,
    parse_tracks,
)
from mpdlink.api.mpd.protocol import MpdError
from mpdlink.api.mpd.types import (
    Album,
    Artist,
    CommandResult,
    ConnectionState,
    CurrentStatus,
    Output,
    Playlist,
    ResponseParser,
    ResultCallback,
    ServerCapabilities,
    ServerVersion,
    Statistics,
    Track,
)
from mpdlink.core.config import ClientSettings
from mpdlink.core.idle_monitor import IdleMonitor
from mpdlink.core.listeners import ConnectionListener, ListenerRelay, StatusListener
from mpdlink.core.reconnect import ReconnectSupervisor
from mpdlink.models.profile import ServerProfile

logger = logging.getLogger(__name__)


class MpdClient:
    """Persistent, self-healing connection to one MPD server at a time.

    Attributes:
        settings: Tunables used for new connections.
        connection: The transport.
        dispatcher: The command queue.
        monitor: Player state tracker.
        supervisor: Reconnect state machine.
        relay: Listener delivery thread.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        relay: ListenerRelay | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Tunables; defaults when None.
            relay: Delivery thread to use; a private one when None.
        """
        self.settings = settings or ClientSettings()
        self.relay = relay or ListenerRelay()

        self.connection = MpdConnection(
            connect_timeout=self.settings.connect_timeout,
            command_timeout=self.settings.command_timeout,
        )
        self.dispatcher = CommandDispatcher(
            self.connection,
            deliver=self.relay.post,
            idle_delay=self.settings.idle_delay,
            noidle_timeout=self.settings.noidle_timeout,
            idle_subsystems=self.settings.idle_subsystems,
        )
        self.monitor = IdleMonitor(
            self.dispatcher,
            deliver=self.relay.post,
            resync_interval=self.settings.resync_interval,
            interpolation_interval=self.settings.interpolation_interval,
        )
        self.supervisor = ReconnectSupervisor(
            reconnect=self._schedule_reconnect,
            short_delay=self.settings.short_reconnect_delay,
            long_delay=self.settings.long_reconnect_delay,
            short_tries=self.settings.short_reconnect_tries,
        )
        self.supervisor.enabled = self.settings.reconnect_enabled

        self.dispatcher.idle_hook = self.monitor
        self.dispatcher.on_connection_lost = self._on_connection_lost

        self._host = ""
        self._port = DEFAULT_PORT
        self._password = ""
        self._connection_listeners: list[ConnectionListener] = []
        self._listeners_lock = threading.Lock()
        self._connect_lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def host(self) -> str:
        """Return the host of the current or last connection."""
        return self._host

    @property
    def port(self) -> int:
        """Return the port of the current or last connection."""
        return self._port

    @property
    def state(self) -> ConnectionState:
        """Return the transport state."""
        return self.connection.state

    @property
    def is_connected(self) -> bool:
        """Return True if commands can be executed."""
        return self.connection.is_connected and self.dispatcher.is_running

    @property
    def version(self) -> ServerVersion:
        """Return the server's protocol version."""
        return self.connection.version

    @property
    def capabilities(self) -> ServerCapabilities:
        """Return the features of the connected server."""
        return self.connection.capabilities

    @property
    def last_status(self) -> CurrentStatus:
        """Return the last status known to the monitor."""
        return self.monitor.last_status

    @property
    def last_track(self) -> Track | None:
        """Return the last track known to the monitor."""
        return self.monitor.last_track

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def register_status_listener(self, listener: StatusListener) -> None:
        """Subscribe to status and track updates. Safe from any thread."""
        self.monitor.register_listener(listener)

    def unregister_status_listener(self, listener: StatusListener) -> None:
        """Unsubscribe from status and track updates."""
        self.monitor.unregister_listener(listener)

    def register_connection_listener(self, listener: ConnectionListener) -> None:
        """Subscribe to connect and disconnect events. Safe from any thread."""
        with self._listeners_lock:
            if listener not in self._connection_listeners:
                self._connection_listeners.append(listener)

    def unregister_connection_listener(self, listener: ConnectionListener) -> None:
        """Unsubscribe from connect and disconnect events."""
        with self._listeners_lock:
            if listener in self._connection_listeners:
                self._connection_listeners.remove(listener)

    def _notify_connected(self) -> None:
        with self._listeners_lock:
            listeners = list(self._connection_listeners)
        for listener in listeners:
            self.relay.post(listener.on_connected, self.connection.version)

    def _notify_disconnected(self, error: MpdError | None) -> None:
        with self._listeners_lock:
            listeners = list(self._connection_listeners)
        for listener in listeners:
            self.relay.post(listener.on_disconnected, error)

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, host: str, password: str = "", port: int = DEFAULT_PORT) -> None:
        """Connect to a server, replacing any current connection.

        A failed attempt, like every failed background reconnect, is reported
        to connection listeners through on_disconnected() and retried
        automatically unless the password was rejected or reconnects are
        disabled.

        Raises:
            MpdConnectionError: If this attempt fails.
            MpdAuthError: If the password is rejected.
        """
        self.relay.start()
        self.supervisor.request_connect()
        self._cancel_reconnect_task()
        self._host = host
        self._port = port
        self._password = password
        await self._open()

    async def connect_profile(self, profile: ServerProfile) -> None:
        """Connect using a saved server profile."""
        await self.connect(profile.host, profile.password, profile.port)

    async def disconnect(self) -> None:
        """Close the connection and suppress reconnects until connect()."""
        self.supervisor.request_disconnect()
        self._cancel_reconnect_task()
        async with self._connect_lock:
            was_connected = await self._teardown()
        if was_connected:
            self._notify_disconnected(None)

    async def close(self) -> None:
        """Disconnect and stop the relay thread once pending deliveries ran.

        Listener events raised after this are dropped; connect() resumes
        delivery.
        """
        await self.disconnect()
        await self.relay.drain()
        self.relay.stop()

    async def _open(self) -> None:
        async with self._connect_lock:
            was_connected = await self._teardown()
            if was_connected:
                self._notify_disconnected(None)
            try:
                await self.connection.connect(self._host, self._password, self._port)
            except MpdConnectionError as e:
                logger.warning("Connect to %s:%d failed: %s", self._host, self._port, e)
                self.supervisor.on_connect_failed(e)
                self._notify_disconnected(e)
                raise

            self.dispatcher.start()
            self.supervisor.on_connected()
            self._notify_connected()
            self.monitor.start()

    async def _teardown(self) -> bool:
        """Stop everything bound to the current connection.

        Returns:
            True if a connection was open.
        """
        was_connected = self.connection.is_connected
        self.monitor.stop()
        await self.dispatcher.stop()
        await self.connection.close()
        return was_connected

    def _on_connection_lost(self, error: MpdConnectionError) -> None:
        logger.warning("Lost connection to %s:%d: %s", self._host, self._port, error)
        self.monitor.stop()
        self._notify_disconnected(error)
        self.supervisor.on_disconnected(error)

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect_task()
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect(), name="mpd-reconnect"
        )

    def _cancel_reconnect_task(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _reconnect(self) -> None:
        logger.info("Reconnecting to %s:%d", self._host, self._port)
        try:
            await self._open()
        except MpdConnectionError:
            # Already counted by the supervisor, which scheduled the next try
            pass

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def submit(
        self,
        command: str,
        parser: ResponseParser,
        callback: ResultCallback | None = None,
    ) -> asyncio.Future[CommandResult[Any]]:
        """Queue a raw command; see CommandDispatcher.submit()."""
        return self.dispatcher.submit(command, parser, callback)

    async def execute(self, command: str, parser: ResponseParser = parse_ok) -> Any:
        """Run a raw command and return the parsed value."""
        return await self.dispatcher.execute(command, parser)

    def update_status(self) -> None:
        """Ask the monitor to resync with the server now."""
        self.monitor.update_status()

    async def status(self) -> CurrentStatus:
        """Get current player status."""
        return await self.execute(commands.STATUS, parse_status)

    async def current_song(self) -> Track | None:
        """Get the current song, None if nothing is loaded."""
        return await self.execute(commands.CURRENT_SONG, parse_current_song)

    async def statistics(self) -> Statistics:
        """Get database statistics."""
        return await self.execute(commands.STATISTICS, parse_statistics)

    async def outputs(self) -> list[Output]:
        """Get the audio outputs."""
        return await self.execute(commands.OUTPUTS, parse_outputs)

    async def albums(self, artist: str = "") -> list[Album]:
        """List albums, optionally only those of one artist."""
        caps = self.capabilities
        parser = partial(parse_albums, artist=artist, group_headers=caps.group_headers)
        return await self.execute(commands.list_albums(artist, group=caps.list_group), parser)

    async def album_artist_albums(self, album_artist: str) -> list[Album]:
        """List albums tagged with an album artist."""
        caps = self.capabilities
        parser = partial(parse_albums, artist=album_artist, group_headers=caps.group_headers)
        command = commands.list_albumartist_albums(album_artist, group=caps.list_group)
        return await self.execute(command, parser)

    async def artists(self) -> list[Artist]:
        """List all artists, with MusicBrainz IDs where the server groups by them."""
        caps = self.capabilities
        parser = partial(parse_artists, group_headers=caps.group_headers)
        return await self.execute(commands.list_artists(group=caps.list_group), parser)

    async def all_tracks(self, artist: str = "", album_mbid: str = "") -> list[Track]:
        """List every track in the database, optionally filtered.

        Args:
            artist: Keep tracks whose artist or album artist equals this.
            album_mbid: Keep tracks with this MusicBrainz album ID.
        """
        parser = partial(parse_tracks, filter_artist=artist, filter_album_mbid=album_mbid)
        return await self.execute(commands.LIST_ALL_INFO, parser)

    async def album_tracks(self, album: str, artist: str = "") -> list[Track]:
        """List the tracks of one album."""
        parser = partial(parse_tracks, filter_artist=artist)
        return await self.execute(commands.find_album(album), parser)

    async def files(self, path: str = "") -> list[FileEntry]:
        """List a music directory: tracks, directories and playlists."""
        return await self.execute(commands.files_info(path), parse_file_entries)

    async def playlist(self, start: int | None = None, end: int | None = None) -> list[Track]:
        """Get the current playlist, or the window [start, end).

        Servers without ranged ``playlistinfo`` send the whole playlist and
        the window is cut out locally.
        """
        if start is None or end is None:
            return await self.execute(commands.CURRENT_PLAYLIST, parse_tracks)
        if self.capabilities.ranged_playlist:
            return await self.execute(commands.playlist_window(start, end), parse_tracks)
        tracks = await self.execute(commands.CURRENT_PLAYLIST, parse_tracks)
        return tracks[start:end]

    async def saved_playlists(self) -> list[Playlist]:
        """List stored playlists."""
        return await self.execute(commands.SAVED_PLAYLISTS, parse_playlists)

    async def saved_playlist_tracks(self, name: str) -> list[Track]:
        """Get the tracks of a stored playlist."""
        return await self.execute(commands.saved_playlist(name), parse_tracks)

    async def pause(self, paused: bool = True) -> None:
        """Pause (True) or resume (False) playback."""
        await self.execute(commands.pause(paused))

    async def play(self, index: int = -1) -> None:
        """Start playback, optionally at a playlist position."""
        await self.execute(commands.play(index))

    async def next(self) -> None:
        """Skip to next track."""
        await self.execute(commands.NEXT)

    async def previous(self) -> None:
        """Skip to previous track."""
        await self.execute(commands.PREVIOUS)

    async def stop(self) -> None:
        """Stop playback."""
        await self.execute(commands.STOP)

    async def seek(self, seconds: float) -> None:
        """Seek to a position in the current track."""
        await self.execute(commands.seek_current(seconds))

    async def set_volume(self, volume: int) -> None:
        """Set volume (clamped to 0-100)."""
        await self.execute(commands.set_volume(volume))

    async def set_random(self, enabled: bool) -> None:
        """Turn random mode on or off."""
        await self.execute(commands.set_random(enabled))

    async def set_repeat(self, enabled: bool) -> None:
        """Turn repeat mode on or off."""
        await self.execute(commands.set_repeat(enabled))

    async def set_single(self, enabled: bool) -> None:
        """Turn single mode on or off."""
        await self.execute(commands.set_single(enabled))

    async def set_consume(self, enabled: bool) -> None:
        """Turn consume mode on or off."""
        await self.execute(commands.set_consume(enabled))

    async def enable_output(self, output_id: int, enabled: bool = True) -> None:
        """Enable or disable an audio output."""
        await self.execute(commands.enable_output(output_id, enabled))

    async def add(self, uri: str) -> None:
        """Append a file or directory to the current playlist."""
        await self.execute(commands.add_file(uri))

    async def update_database(self, path: str = "") -> None:
        """Start a database update."""
        await self.execute(commands.update_database(path))

    async def ping(self) -> None:
        """Ping the server."""
        await self.execute(commands.PING)
