"""Wire-level API for talking to MPD servers."""
