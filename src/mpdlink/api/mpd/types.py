"""MPD protocol data types.

This module defines frozen dataclasses for the records produced by the
response parsers, plus the enums shared by the connection, the dispatcher
and the state monitor.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ConnectionState(Enum):
    """Connection lifecycle. IDLING implies an open connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    IDLING = "idling"

    @property
    def is_connected(self) -> bool:
        """Return True if commands can be sent (possibly after noidle)."""
        return self in (ConnectionState.CONNECTED, ConnectionState.IDLING)


class PlaybackState(Enum):
    """Player state as reported by the ``state`` status field."""

    PLAYING = "play"
    PAUSING = "pause"
    STOPPED = "stop"


@dataclass(frozen=True)
class ServerVersion:
    """Protocol version from the ``OK MPD x.y.z`` greeting."""

    major: int = 0
    minor: int = 0
    patch: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def at_least(self, major: int, minor: int = 0, patch: int = 0) -> bool:
        """Return True if this version is >= the given one."""
        return (self.major, self.minor, self.patch) >= (major, minor, patch)


@dataclass(frozen=True)
class ServerCapabilities:
    """Protocol features the server supports, derived from its version.

    Attributes:
        ranged_playlist: ``playlistinfo`` accepts a ``start:end`` range (0.15).
        list_group: ``list`` accepts ``group`` clauses (0.19).
        group_headers: Grouped ``list`` output prints the group tags before
            the values they apply to rather than after them (0.21).
    """

    ranged_playlist: bool = False
    list_group: bool = False
    group_headers: bool = False

    @classmethod
    def from_version(cls, version: ServerVersion) -> ServerCapabilities:
        """Derive capabilities from a greeting version."""
        return cls(
            ranged_playlist=version.at_least(0, 15),
            list_group=version.at_least(0, 19),
            group_headers=version.at_least(0, 21),
        )


@dataclass(frozen=True)
class CurrentStatus:
    """Snapshot of the ``status`` response.

    Attributes:
        volume: Volume level (0-100). Out-of-range values are stored as 0.
        repeat: Repeat mode (0 or 1).
        random: Random mode (0 or 1).
        single: Single mode (0 or 1).
        consume: Consume mode (0 or 1).
        playlist_version: Version of the current playlist.
        playlist_length: Number of entries in the current playlist.
        current_song_index: Playlist position of the current song, -1 if none.
        current_song_id: Song ID of the current song, -1 if none.
        next_song_index: Playlist position of the next song, -1 if none.
        next_song_id: Song ID of the next song, -1 if none.
        samplerate: Output sample rate in Hz.
        bit_depth: Sample format; text because MPD reports e.g. "f" for float.
        channel_count: Number of output channels.
        bitrate: Current bitrate in kbps.
        elapsed_time: Elapsed seconds in the current song.
        track_length: Length of the current song in seconds.
        update_db_job: Running database update job ID, 0 if none.
        playback_state: Play/pause/stop.
        error: Server error message, if any.
    """

    volume: int = 0
    repeat: int = 0
    random: int = 0
    single: int = 0
    consume: int = 0
    playlist_version: int = 0
    playlist_length: int = 0
    current_song_index: int = -1
    current_song_id: int = -1
    next_song_index: int = -1
    next_song_id: int = -1
    samplerate: int = 0
    bit_depth: str = ""
    channel_count: int = 0
    bitrate: int = 0
    elapsed_time: int = 0
    track_length: int = 0
    update_db_job: int = 0
    playback_state: PlaybackState = PlaybackState.STOPPED
    error: str = ""

    @property
    def is_playing(self) -> bool:
        """Return True if currently playing."""
        return self.playback_state is PlaybackState.PLAYING

    @property
    def is_paused(self) -> bool:
        """Return True if paused."""
        return self.playback_state is PlaybackState.PAUSING

    @property
    def is_stopped(self) -> bool:
        """Return True if stopped."""
        return self.playback_state is PlaybackState.STOPPED

    @property
    def progress(self) -> float:
        """Return playback progress as a fraction (0.0 to 1.0)."""
        if self.track_length <= 0:
            return 0.0
        return min(1.0, self.elapsed_time / self.track_length)

    def with_elapsed(self, elapsed_time: int) -> CurrentStatus:
        """Return a copy with a different elapsed time."""
        return replace(self, elapsed_time=elapsed_time)


@dataclass(frozen=True)
class Track:
    """A song entry from a file listing, playlist or ``currentsong``.

    Attributes:
        path: Path of the file relative to MPD's music directory.
        title: Title tag.
        name: Name tag (used by streams instead of a title).
        artist: Artist tag.
        album_artist: AlbumArtist tag.
        album: Album tag.
        date: Date tag, as sent by the server.
        artist_mbid: MusicBrainz artist ID.
        album_artist_mbid: MusicBrainz album artist ID.
        album_mbid: MusicBrainz album ID.
        track_mbid: MusicBrainz track ID.
        length: Duration in seconds.
        track_number: Track number on the disc.
        album_track_count: Number of tracks on the album ("of N"), 0 if unknown.
        disc_number: Disc number.
        album_disc_count: Number of discs ("of N"), 0 if unknown.
        song_id: Song ID in the current playlist, -1 if not queued.
        song_position: Position in the current playlist, -1 if not queued.
        last_modified: Last-Modified timestamp string.
    """

    path: str = ""
    title: str = ""
    name: str = ""
    artist: str = ""
    album_artist: str = ""
    album: str = ""
    date: str = ""
    artist_mbid: str = ""
    album_artist_mbid: str = ""
    album_mbid: str = ""
    track_mbid: str = ""
    length: int = 0
    track_number: int = 0
    album_track_count: int = 0
    disc_number: int = 0
    album_disc_count: int = 0
    song_id: int = -1
    song_position: int = -1
    last_modified: str = ""

    @property
    def display_title(self) -> str:
        """Return title for display, with name and filename fallbacks."""
        if self.title:
            return self.title
        if self.name:
            return self.name
        name = self.path.rsplit("/", 1)[-1]
        if "." in name:
            name = name.rsplit(".", 1)[0]
        return name

    @property
    def display_artist(self) -> str:
        """Return artist for display, falling back to album_artist if empty."""
        return self.artist or self.album_artist or ""


@dataclass(frozen=True)
class Album:
    """An album entry from ``list album``."""

    name: str
    mbid: str = ""
    artist: str = ""
    date: str = ""


@dataclass(frozen=True)
class Artist:
    """An artist entry from ``list artist``; may carry several MBIDs."""

    name: str
    mbids: tuple[str, ...] = ()


@dataclass(frozen=True)
class Playlist:
    """A stored playlist."""

    path: str
    last_modified: str = ""


@dataclass(frozen=True)
class Directory:
    """A directory entry from a file listing."""

    path: str
    last_modified: str = ""


@dataclass(frozen=True)
class Output:
    """An audio output from ``outputs``."""

    output_id: int
    name: str = ""
    enabled: bool = False


@dataclass(frozen=True)
class Statistics:
    """Database statistics from ``stats``."""

    artists: int = 0
    albums: int = 0
    songs: int = 0
    uptime: int = 0
    playtime: int = 0
    db_playtime: int = 0
    db_update: int = 0


@dataclass(frozen=True)
class CommandResult(Generic[T]):
    """Outcome of one submitted command: a parsed value or an error.

    Attributes:
        command: The command line that was sent.
        value: Parser output, None on error.
        error: The failure, None on success.
    """

    command: str
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        """Return True if the command succeeded."""
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


ResponseParser = Callable[[list[str]], Any]
ResultCallback = Callable[[CommandResult[Any]], None]


@dataclass
class PendingCommand:
    """A queued command owned by the dispatcher until it completes.

    Attributes:
        command: Command line without newline.
        parser: Turns response lines into the result value.
        callback: Optional consumer notified once with the result.
        sequence: Submission order.
        future: Resolved with the CommandResult on completion.
    """

    command: str
    parser: ResponseParser
    callback: ResultCallback | None
    sequence: int
    future: asyncio.Future[CommandResult[Any]] = field(repr=False)
