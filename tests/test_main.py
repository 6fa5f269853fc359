"""Tests for the command-line watcher."""

import pytest

from conftest import CURRENT_SONG_LINES
from mpdlink.__main__ import ConsolePrinter, build_parser
from mpdlink.api.mpd.connection import MpdConnectionError
from mpdlink.api.mpd.parsers import parse_current_song, parse_status


class TestBuildParser:
    """Tests for argument parsing."""

    def test_host_and_port(self) -> None:
        """Test positional host and port."""
        args = build_parser().parse_args(["mpd.local", "6601", "--password", "pw"])
        assert args.host == "mpd.local"
        assert args.port == 6601
        assert args.password == "pw"

    def test_defaults(self) -> None:
        """Test that host is optional and the port defaults to 6600."""
        args = build_parser().parse_args([])
        assert args.host is None
        assert args.port == 6600
        assert args.profile is None
        assert not args.verbose


class TestConsolePrinter:
    """Tests for console output."""

    def test_track_line(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test the track line format."""
        ConsolePrinter().on_new_track(parse_current_song(CURRENT_SONG_LINES))
        out = capsys.readouterr().out
        assert out == "Track: Pink Floyd - Have a Cigar [Wish You Were Here]\n"

    def test_repeated_status_printed_once(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that identical status lines are collapsed."""
        printer = ConsolePrinter()
        status = parse_status(["state: pause", "time: 65:200", "volume: 40"])
        printer.on_new_status(status)
        printer.on_new_status(status)

        out = capsys.readouterr().out.splitlines()
        assert out == ["pause 1:05/3:20 vol 40%"]

    def test_disconnected_lines(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test requested and failed disconnect lines."""
        printer = ConsolePrinter()
        printer.on_disconnected(None)
        printer.on_disconnected(MpdConnectionError("Connection refused"))

        out = capsys.readouterr().out.splitlines()
        assert out == ["Disconnected", "Disconnected: Connection refused"]

    def test_listener_methods_documented(self) -> None:
        """Test that every listener callback carries a docstring."""
        for name in ("on_connected", "on_disconnected", "on_new_track", "on_new_status"):
            assert getattr(ConsolePrinter, name).__doc__
