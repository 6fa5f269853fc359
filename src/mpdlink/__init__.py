"""Client core for the MPD (Music Player Daemon) text protocol."""

__version__ = "0.1.0"
