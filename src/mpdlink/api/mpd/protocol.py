"""MPD protocol framing utilities.

MPD uses a simple line-based text protocol:
- Commands are sent as plain text lines
- Responses are key-value pairs: "key: value"
- Responses end with "OK" or "ACK [error@command_listNum] {command} message"
- The server greets each new connection with "OK MPD <version>"

Reference: https://mpd.readthedocs.io/en/stable/protocol.html
"""

import re

from mpdlink.api.mpd.types import ServerVersion

GREETING_PREFIX = "OK MPD "
OK_LINE = "OK"
ACK_PREFIX = "ACK"

# Pattern for ACK responses: ACK [error@command_listNum] {current_command} message_text
ACK_PATTERN = re.compile(r"ACK \[(-?\d+)@(-?\d+)\] \{([^}]*)\} ?(.*)")


class MpdError(Exception):
    """Base class for all MPD client errors."""


class MpdServerError(MpdError):
    """The server answered a command with an ACK line.

    Attributes:
        code: MPD error code (e.g. 5 for "no such song", 50 for "no exist").
        index: Position of the failing command in a command list.
        command: Name of the failing command.
        message: Human-readable message from the server.
    """

    def __init__(self, code: int, index: int, command: str, message: str) -> None:
        self.code = code
        self.index = index
        self.command = command
        self.message = message
        super().__init__(f"MPD error {code}@{index} in {command or '?'}: {message}")


class MpdParseError(MpdError):
    """A response did not match the grammar its parser expects."""

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"Could not parse response to {command!r}: {reason}")


class MpdIdleViolation(MpdError):
    """A command write was attempted while the connection was idling."""


def is_terminator(line: str) -> bool:
    """Return True if ``line`` ends a response (OK or ACK)."""
    return line == OK_LINE or line.startswith(ACK_PREFIX)


def parse_ack(line: str) -> MpdServerError:
    """Turn an ACK line into a structured server error.

    Args:
        line: The full ACK line.

    Returns:
        MpdServerError describing the failure. Lines that do not follow the
        ACK grammar keep their text as the message with code -1.
    """
    match = ACK_PATTERN.match(line)
    if match:
        return MpdServerError(
            code=int(match.group(1)),
            index=int(match.group(2)),
            command=match.group(3),
            message=match.group(4),
        )
    return MpdServerError(code=-1, index=-1, command="", message=line)


def _version_part(parts: list[str], index: int) -> int:
    """Return an integer version segment, 0 when missing or malformed."""
    if index >= len(parts):
        return 0
    digits = re.match(r"\d+", parts[index].strip())
    return int(digits.group(0)) if digits else 0


def parse_greeting(line: str) -> ServerVersion | None:
    """Parse the server greeting.

    Args:
        line: First line sent by the server.

    Returns:
        ServerVersion, or None if the line is not an MPD greeting.
        Missing or malformed minor/patch segments default to 0.
    """
    if not line.startswith(GREETING_PREFIX):
        return None
    parts = line[len(GREETING_PREFIX) :].split(".")
    return ServerVersion(
        major=_version_part(parts, 0),
        minor=_version_part(parts, 1),
        patch=_version_part(parts, 2),
    )


def split_pair(line: str) -> tuple[str, str] | None:
    """Split a "key: value" line; None if the line has no separator."""
    if ": " not in line:
        return None
    key, value = line.split(": ", 1)
    return key, value


def escape_arg(arg: str) -> str:
    """Escape an argument for MPD command.

    MPD requires arguments with spaces or special chars to be quoted.
    Inside quotes, backslash and double-quote must be escaped.

    Args:
        arg: The argument to escape.

    Returns:
        Escaped argument, quoted if necessary.
    """
    # If no special characters, return as-is
    if arg and not any(c in arg for c in " \"'\t\n\\"):
        return arg

    escaped = arg.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_command(command: str, *args: str) -> str:
    """Format an MPD command with arguments.

    Args:
        command: The MPD command name.
        *args: Command arguments.

    Returns:
        Formatted command string (without newline).
    """
    if not args:
        return command
    escaped_args = [escape_arg(arg) for arg in args]
    return f"{command} {' '.join(escaped_args)}"
