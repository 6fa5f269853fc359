"""Command-line entry point: watch an MPD server's player state."""

import argparse
import asyncio
import logging
import sys

from mpdlink.api.mpd.connection import DEFAULT_PORT
from mpdlink.api.mpd.protocol import MpdError
from mpdlink.api.mpd.types import CurrentStatus, ServerVersion, Track
from mpdlink.core.client import MpdClient
from mpdlink.core.config import ConfigManager

logger = logging.getLogger(__name__)


class ConsolePrinter:
    """Prints connection, track and status changes to stdout."""

    def __init__(self) -> None:
        self._last_line = ""

    def on_connected(self, version: ServerVersion) -> None:
        """Print the protocol version of the new connection."""
        print(f"Connected (MPD protocol {version})")

    def on_disconnected(self, error: MpdError | None) -> None:
        """Print a closed connection or a failed connect attempt."""
        print(f"Disconnected: {error}" if error else "Disconnected")

    def on_new_track(self, track: Track | None) -> None:
        """Print the new track as artist, title and album."""
        if track is None:
            print("No current track")
            return
        artist = track.display_artist or "Unknown artist"
        album = f" [{track.album}]" if track.album else ""
        print(f"Track: {artist} - {track.display_title}{album}")

    def on_new_status(self, status: CurrentStatus) -> None:
        """Print state, position and volume when the line changed."""
        line = (
            f"{status.playback_state.value:>5} "
            f"{status.elapsed_time // 60}:{status.elapsed_time % 60:02d}"
            f"/{status.track_length // 60}:{status.track_length % 60:02d} "
            f"vol {status.volume}%"
        )
        # Interpolation ticks repeat identical lines while paused
        if line != self._last_line:
            self._last_line = line
            print(line)


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="mpdlink",
        description="Watch the player state of an MPD server",
    )
    parser.add_argument("host", nargs="?", default=None, help="server hostname or IP")
    parser.add_argument(
        "port", nargs="?", type=int, default=DEFAULT_PORT, help="TCP port (default: 6600)"
    )
    parser.add_argument("--password", default="", help="MPD password")
    parser.add_argument("--profile", default=None, help="ID of a saved server profile")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


async def watch(host: str, port: int, password: str) -> None:
    """Connect and print state changes until cancelled."""
    config = ConfigManager()
    client = MpdClient(config.get_client_settings())
    printer = ConsolePrinter()
    client.register_connection_listener(printer)
    client.register_status_listener(printer)

    try:
        try:
            await client.connect(host, password, port)
        except MpdError as e:
            logger.error("Could not connect to %s:%d: %s", host, port, e)
            if not client.supervisor.is_scheduled:
                return
        await asyncio.Event().wait()
    finally:
        await client.close()


def main() -> int:
    """Run the watcher.

    Returns:
        Exit code (0 for success).
    """
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    host, port, password = args.host, args.port, args.password
    if host is None:
        config = ConfigManager()
        profile = (
            config.get_profile(args.profile) if args.profile else config.get_auto_connect_profile()
        )
        if profile is None:
            logger.error("No host given and no saved profile found")
            return 2
        logger.info("Using profile %s (%s)", profile.name, profile.address)
        host, port, password = profile.host, profile.port, password or profile.password

    try:
        asyncio.run(watch(host, port, password))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
