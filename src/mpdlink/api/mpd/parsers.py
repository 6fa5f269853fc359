"""Stateless response parsers.

Each parser takes the lines of one response (without the final OK) and
returns a domain record or a list of them. Parsers are lenient: a field whose
value cannot be converted is logged and skipped, so a damaged response still
yields a partial result.
"""

import logging
from dataclasses import replace
from typing import Any

from mpdlink.api.mpd.protocol import split_pair
from mpdlink.api.mpd.types import (
    Album,
    Artist,
    CurrentStatus,
    Directory,
    Output,
    PlaybackState,
    Playlist,
    Statistics,
    Track,
)

logger = logging.getLogger(__name__)

FileEntry = Track | Directory | Playlist

_PLAYBACK_STATES: dict[str, PlaybackState] = {state.value: state for state in PlaybackState}

_ALBUM_TAG_FIELDS: dict[str, str] = {
    "MUSICBRAINZ_ALBUMID": "mbid",
    "AlbumArtist": "artist",
    "Date": "date",
}

# Tag name -> Track field for plain string tags
_TRACK_TEXT_TAGS: dict[str, str] = {
    "Title": "title",
    "Name": "name",
    "Artist": "artist",
    "AlbumArtist": "album_artist",
    "Album": "album",
    "Date": "date",
    "MUSICBRAINZ_ARTISTID": "artist_mbid",
    "MUSICBRAINZ_ALBUMARTISTID": "album_artist_mbid",
    "MUSICBRAINZ_ALBUMID": "album_mbid",
    "MUSICBRAINZ_TRACKID": "track_mbid",
    "Last-Modified": "last_modified",
}

# Tag name -> Track field for integer tags
_TRACK_INT_TAGS: dict[str, str] = {
    "Id": "song_id",
    "Pos": "song_position",
}

# status key -> CurrentStatus field for integer values
_STATUS_INT_KEYS: dict[str, str] = {
    "repeat": "repeat",
    "random": "random",
    "single": "single",
    "consume": "consume",
    "playlist": "playlist_version",
    "playlistlength": "playlist_length",
    "song": "current_song_index",
    "songid": "current_song_id",
    "nextsong": "next_song_index",
    "nextsongid": "next_song_id",
    "bitrate": "bitrate",
    "updating_db": "update_db_job",
}

_STATS_KEYS: dict[str, str] = {
    "artists": "artists",
    "albums": "albums",
    "songs": "songs",
    "uptime": "uptime",
    "playtime": "playtime",
    "db_playtime": "db_playtime",
    "db_update": "db_update",
}


def _to_int(value: str, key: str) -> int | None:
    try:
        return int(value.strip())
    except ValueError:
        logger.debug("Ignoring non-numeric %s: %r", key, value)
        return None


def _to_rounded(value: str, key: str) -> int | None:
    try:
        return round(float(value.strip()))
    except ValueError:
        logger.debug("Ignoring non-numeric %s: %r", key, value)
        return None


def split_count(value: str) -> tuple[int | None, int | None]:
    """Split "n" or "n/total" into (number, count).

    Whitespace is ignored. Parts that are not integers come back as None.
    """
    parts = value.replace(" ", "").split("/")
    number = _to_int(parts[0], "number") if parts[0] else None
    count = None
    if len(parts) > 1 and parts[1]:
        count = _to_int(parts[1], "count")
    return number, count


def parse_ok(lines: list[str]) -> None:
    """Parser for commands whose only meaningful answer is OK."""
    return None


def parse_key_values(lines: list[str]) -> dict[str, str]:
    """Parse lines into a dict; later duplicates win."""
    result: dict[str, str] = {}
    for line in lines:
        pair = split_pair(line)
        if pair:
            result[pair[0]] = pair[1]
    return result


def _split_tag(line: str) -> tuple[str, str] | None:
    pair = split_pair(line)
    # A tag with an empty value arrives without the trailing space
    if pair is None and line.endswith(":") and " " not in line:
        return line[:-1], ""
    return pair


def parse_albums(lines: list[str], artist: str = "", group_headers: bool = False) -> list[Album]:
    """Parse the response to ``list album``.

    A new album starts at each ``Album:`` line, including albums whose name
    is empty. ``MUSICBRAINZ_ALBUMID``, ``AlbumArtist`` and ``Date`` lines
    attach to the album that precedes them, or with ``group_headers`` to
    every album that follows them until the next value of the same tag.

    Args:
        lines: Response lines.
        artist: Artist the listing was requested for, used when the stream
            carries no album artist.
        group_headers: The server prints group tags before the albums.

    Returns:
        Albums in server order.
    """
    albums: list[Album] = []
    current: Album | None = None
    headers: dict[str, str] = {}

    for line in lines:
        pair = _split_tag(line)
        if pair is None:
            continue
        key, value = pair
        field_name = _ALBUM_TAG_FIELDS.get(key)

        if key == "Album":
            if current is not None:
                albums.append(current)
            current = Album(name=value, artist=artist)
            if group_headers:
                current = replace(current, **headers)
        elif field_name is None:
            continue
        elif group_headers:
            if field_name == "artist" and not value:
                headers.pop(field_name, None)
            else:
                headers[field_name] = value
        elif current is not None:
            current = replace(current, **{field_name: value})

    if current is not None:
        albums.append(current)
    return albums


def parse_artists(lines: list[str], group_headers: bool = False) -> list[Artist]:
    """Parse the response to ``list artist`` / ``list albumartist``.

    Adjacent entries with the same name (grouped by MBID on newer servers)
    are merged into one artist carrying all MBIDs. With ``group_headers`` the
    MBID line precedes the artists it applies to; since the server then
    orders by MBID first, entries are merged by name across the whole
    response and returned sorted by name.
    """
    if group_headers:
        return _parse_artists_grouped(lines)

    artists: list[Artist] = []
    current: Artist | None = None

    for line in lines:
        pair = split_pair(line)
        if pair is None:
            continue
        key, value = pair

        if key in ("Artist", "AlbumArtist"):
            if current is not None and current.name == value:
                continue
            if current is not None:
                artists.append(current)
            current = Artist(name=value)
        elif key == "MUSICBRAINZ_ARTISTID" and current is not None:
            if value and value not in current.mbids:
                current = replace(current, mbids=(*current.mbids, value))

    if current is not None:
        artists.append(current)
    return artists


def _parse_artists_grouped(lines: list[str]) -> list[Artist]:
    mbids_by_name: dict[str, list[str]] = {}
    mbid = ""

    for line in lines:
        pair = _split_tag(line)
        if pair is None:
            continue
        key, value = pair

        if key == "MUSICBRAINZ_ARTISTID":
            mbid = value
        elif key in ("Artist", "AlbumArtist"):
            mbids = mbids_by_name.setdefault(value, [])
            if mbid and mbid not in mbids:
                mbids.append(mbid)

    return [
        Artist(name=name, mbids=tuple(mbids))
        for name, mbids in sorted(mbids_by_name.items(), key=lambda item: item[0].casefold())
    ]


def _apply_track_field(fields: dict[str, Any], key: str, value: str) -> None:
    if key in _TRACK_TEXT_TAGS:
        fields[_TRACK_TEXT_TAGS[key]] = value
    elif key in _TRACK_INT_TAGS:
        number = _to_int(value, key)
        if number is not None:
            fields[_TRACK_INT_TAGS[key]] = number
    elif key in ("Time", "duration"):
        # "duration" is the precise float variant of "Time"
        length = _to_rounded(value, key)
        if length is not None:
            fields["length"] = length
    elif key == "Track":
        number, count = split_count(value)
        if number is not None:
            fields["track_number"] = number
        if count is not None:
            fields["album_track_count"] = count
    elif key == "Disc":
        number, count = split_count(value)
        if number is not None:
            fields["disc_number"] = number
        if count is not None:
            fields["album_disc_count"] = count


def _matches(track: Track, filter_artist: str, filter_album_mbid: str) -> bool:
    if filter_artist and filter_artist not in (track.artist, track.album_artist):
        return False
    if filter_album_mbid and filter_album_mbid != track.album_mbid:
        return False
    return True


def parse_file_entries(
    lines: list[str],
    filter_artist: str = "",
    filter_album_mbid: str = "",
) -> list[FileEntry]:
    """Parse a file listing into tracks, directories and playlists.

    A new entry starts at each ``file:``, ``directory:`` or ``playlist:``
    line; following tag lines populate the current track.

    Args:
        lines: Response lines.
        filter_artist: Keep only tracks whose artist or album artist equals
            this value. Empty keeps everything.
        filter_album_mbid: Keep only tracks with this album MBID.

    Returns:
        Entries in server order.
    """
    entries: list[FileEntry] = []
    kind: str | None = None
    fields: dict[str, Any] = {}

    def flush() -> None:
        if kind == "file":
            track = Track(**fields)
            if _matches(track, filter_artist, filter_album_mbid):
                entries.append(track)
        elif kind == "directory":
            entries.append(Directory(**fields))
        elif kind == "playlist":
            entries.append(Playlist(**fields))

    for line in lines:
        pair = split_pair(line)
        if pair is None:
            continue
        key, value = pair

        if key in ("file", "directory", "playlist"):
            flush()
            kind = key
            fields = {"path": value}
        elif kind == "file":
            _apply_track_field(fields, key, value)
        elif kind is not None and key == "Last-Modified":
            fields["last_modified"] = value

    flush()
    return entries


def parse_tracks(
    lines: list[str],
    filter_artist: str = "",
    filter_album_mbid: str = "",
) -> list[Track]:
    """Parse a song listing, dropping directory and playlist entries."""
    return [
        entry
        for entry in parse_file_entries(lines, filter_artist, filter_album_mbid)
        if isinstance(entry, Track)
    ]


def parse_current_song(lines: list[str]) -> Track | None:
    """Parse the response to ``currentsong``; None when nothing is loaded."""
    tracks = parse_tracks(lines)
    return tracks[0] if tracks else None


def parse_playlists(lines: list[str]) -> list[Playlist]:
    """Parse the response to ``listplaylists``."""
    return [entry for entry in parse_file_entries(lines) if isinstance(entry, Playlist)]


def parse_status(lines: list[str]) -> CurrentStatus:
    """Parse the response to ``status``.

    ``audio`` is split into samplerate, bit depth (kept as text, e.g. "f"
    for floating point) and channel count. ``time`` ("elapsed:total") is the
    legacy form of ``elapsed``/``duration``. Volumes outside 0-100 are stored
    as 0 (MPD reports -1 when no mixer is available).
    """
    fields: dict[str, Any] = {}

    for line in lines:
        pair = split_pair(line)
        if pair is None:
            continue
        key, value = pair

        if key in _STATUS_INT_KEYS:
            number = _to_int(value, key)
            if number is not None:
                fields[_STATUS_INT_KEYS[key]] = number
        elif key == "volume":
            volume = _to_int(value, key)
            if volume is not None:
                fields["volume"] = volume if 0 <= volume <= 100 else 0
        elif key == "state":
            state = _PLAYBACK_STATES.get(value.strip())
            if state is not None:
                fields["playback_state"] = state
            else:
                logger.debug("Unknown playback state: %r", value)
        elif key == "time":
            parts = value.split(":")
            if len(parts) == 2:
                elapsed = _to_int(parts[0], "time elapsed")
                total = _to_int(parts[1], "time total")
                if elapsed is not None:
                    fields["elapsed_time"] = elapsed
                if total is not None:
                    fields["track_length"] = total
        elif key == "elapsed":
            elapsed = _to_rounded(value, key)
            if elapsed is not None:
                fields["elapsed_time"] = elapsed
        elif key == "duration":
            length = _to_rounded(value, key)
            if length is not None:
                fields["track_length"] = length
        elif key == "audio":
            parts = value.split(":")
            if len(parts) == 3:
                samplerate = _to_int(parts[0], "samplerate")
                channels = _to_int(parts[2], "channels")
                if samplerate is not None:
                    fields["samplerate"] = samplerate
                fields["bit_depth"] = parts[1]
                if channels is not None:
                    fields["channel_count"] = channels
        elif key == "error":
            fields["error"] = value

    return CurrentStatus(**fields)


def parse_statistics(lines: list[str]) -> Statistics:
    """Parse the response to ``stats``."""
    fields: dict[str, int] = {}
    for key, value in parse_key_values(lines).items():
        if key in _STATS_KEYS:
            number = _to_int(value, key)
            if number is not None:
                fields[_STATS_KEYS[key]] = number
    return Statistics(**fields)


def parse_outputs(lines: list[str]) -> list[Output]:
    """Parse the response to ``outputs``; each ``outputid`` starts an entry."""
    outputs: list[Output] = []
    current: Output | None = None

    for line in lines:
        pair = split_pair(line)
        if pair is None:
            continue
        key, value = pair

        if key == "outputid":
            output_id = _to_int(value, key)
            if current is not None:
                outputs.append(current)
            current = Output(output_id=output_id if output_id is not None else -1)
        elif current is None:
            continue
        elif key == "outputname":
            current = replace(current, name=value)
        elif key == "outputenabled":
            current = replace(current, enabled=value.strip() == "1")

    if current is not None:
        outputs.append(current)
    return outputs


def parse_changed(lines: list[str]) -> list[str]:
    """Return the subsystems listed in an idle response."""
    changed: list[str] = []
    for line in lines:
        pair = split_pair(line)
        if pair and pair[0] == "changed":
            changed.append(pair[1])
    return changed
