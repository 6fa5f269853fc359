"""MPD protocol: transport, command queue, parsers and records."""

from mpdlink.api.mpd.connection import MpdAuthError, MpdConnection, MpdConnectionError
from mpdlink.api.mpd.dispatcher import CommandDispatcher
from mpdlink.api.mpd.protocol import MpdError, MpdIdleViolation, MpdParseError, MpdServerError
from mpdlink.api.mpd.types import (
    Album,
    Artist,
    CommandResult,
    ConnectionState,
    CurrentStatus,
    Directory,
    Output,
    PlaybackState,
    Playlist,
    ServerCapabilities,
    ServerVersion,
    Statistics,
    Track,
)

__all__ = [
    "Album",
    "Artist",
    "CommandDispatcher",
    "CommandResult",
    "ConnectionState",
    "CurrentStatus",
    "Directory",
    "MpdAuthError",
    "MpdConnection",
    "MpdConnectionError",
    "MpdError",
    "MpdIdleViolation",
    "MpdParseError",
    "MpdServerError",
    "Output",
    "PlaybackState",
    "Playlist",
    "ServerCapabilities",
    "ServerVersion",
    "Statistics",
    "Track",
]
