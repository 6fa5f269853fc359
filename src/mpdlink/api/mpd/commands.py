"""Builders for the MPD command lines used by the client."""

from mpdlink.api.mpd.protocol import format_command

IDLE = "idle"
NOIDLE = "noidle"
STATUS = "status"
CURRENT_SONG = "currentsong"
STATISTICS = "stats"
OUTPUTS = "outputs"
LIST_ALL_INFO = "listallinfo"
CURRENT_PLAYLIST = "playlistinfo"
SAVED_PLAYLISTS = "listplaylists"
NEXT = "next"
PREVIOUS = "previous"
STOP = "stop"
PING = "ping"

# Subsystems the state monitor cares about
DEFAULT_IDLE_SUBSYSTEMS: tuple[str, ...] = ("player", "mixer", "options", "playlist", "database")

# Tags albums are grouped by when the server supports list grouping
ALBUM_GROUP_TAGS: tuple[str, ...] = ("albumartist", "musicbrainz_albumid", "date")
ARTIST_GROUP_TAG = "MUSICBRAINZ_ARTISTID"


def password(secret: str) -> str:
    """Return the authentication command."""
    return format_command("password", secret)


def idle(*subsystems: str) -> str:
    """Return an idle command restricted to ``subsystems`` (all if empty)."""
    return format_command(IDLE, *subsystems)


def _group_args(tags: tuple[str, ...]) -> list[str]:
    args: list[str] = []
    for tag in tags:
        args += ["group", tag]
    return args


def list_albums(artist: str = "", group: bool = False) -> str:
    """Return ``list album``, optionally restricted to one artist.

    Args:
        artist: Artist to restrict the listing to, empty for all albums.
        group: Group by album artist, MusicBrainz ID and date so the
            response carries those tags. Needs a 0.19+ server.
    """
    if not group:
        if artist:
            return format_command("list", "album", artist)
        return format_command("list", "album")
    filter_args = ["artist", artist] if artist else []
    return format_command("list", "album", *filter_args, *_group_args(ALBUM_GROUP_TAGS))


def list_albumartist_albums(album_artist: str, group: bool = False) -> str:
    """Return ``list album albumartist <name>``, grouped like list_albums()."""
    group_args = _group_args(ALBUM_GROUP_TAGS) if group else []
    return format_command("list", "album", "albumartist", album_artist, *group_args)


def list_artists(group: bool = False) -> str:
    """Return ``list artist``, grouped by MusicBrainz artist ID if asked."""
    if group:
        return format_command("list", "artist", *_group_args((ARTIST_GROUP_TAG,)))
    return format_command("list", "artist")


def find_album(album: str) -> str:
    """Return the command listing all tracks of an album."""
    return format_command("find", "album", album)


def files_info(path: str) -> str:
    """Return ``lsinfo <path>``."""
    return format_command("lsinfo", path)


def playlist_window(start: int, end: int) -> str:
    """Return ``playlistinfo <start>:<end>`` for a slice of the queue."""
    return f"{CURRENT_PLAYLIST} {start}:{end}"


def saved_playlist(name: str) -> str:
    """Return ``listplaylistinfo <name>``."""
    return format_command("listplaylistinfo", name)


def pause(paused: bool) -> str:
    """Return ``pause 1`` to pause or ``pause 0`` to resume."""
    return f"pause {1 if paused else 0}"


def play(index: int = -1) -> str:
    """Return ``play``, optionally at a playlist position."""
    if index >= 0:
        return f"play {index}"
    return "play"


def seek_current(seconds: float) -> str:
    """Return ``seekcur <seconds>``."""
    return f"seekcur {seconds:g}"


def set_volume(volume: int) -> str:
    """Return ``setvol`` with the volume clamped to 0-100."""
    return f"setvol {max(0, min(100, volume))}"


def _toggle(name: str, enabled: bool) -> str:
    return f"{name} {1 if enabled else 0}"


def set_random(enabled: bool) -> str:
    """Return ``random 0|1``."""
    return _toggle("random", enabled)


def set_repeat(enabled: bool) -> str:
    """Return ``repeat 0|1``."""
    return _toggle("repeat", enabled)


def set_single(enabled: bool) -> str:
    """Return ``single 0|1``."""
    return _toggle("single", enabled)


def set_consume(enabled: bool) -> str:
    """Return ``consume 0|1``."""
    return _toggle("consume", enabled)


def enable_output(output_id: int, enabled: bool) -> str:
    """Return ``enableoutput``/``disableoutput`` for an output ID."""
    return f"{'enableoutput' if enabled else 'disableoutput'} {output_id}"


def add_file(uri: str) -> str:
    """Return ``add <uri>``."""
    return format_command("add", uri)


def update_database(path: str = "") -> str:
    """Return ``update``, optionally for a sub-path."""
    if path:
        return format_command("update", path)
    return "update"
