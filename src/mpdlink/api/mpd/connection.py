"""MPD transport connection.

Owns one TCP stream to an MPD server: the greeting handshake, optional
password authentication, line I/O and OK/ACK response framing. Any I/O
failure is reported as MpdConnectionError and closes the stream, so callers
only ever see MpdConnectionError, MpdAuthError or MpdServerError.

Example:
    connection = MpdConnection()
    await connection.connect("192.168.1.100")
    lines = await connection.command("status")
    await connection.close()
"""

import asyncio
import logging

from mpdlink.api.mpd.commands import password as password_command
from mpdlink.api.mpd.protocol import (
    GREETING_PREFIX,
    OK_LINE,
    MpdError,
    MpdIdleViolation,
    MpdServerError,
    is_terminator,
    parse_ack,
    parse_greeting,
)
from mpdlink.api.mpd.types import ConnectionState, ServerCapabilities, ServerVersion

logger = logging.getLogger(__name__)

DEFAULT_PORT = 6600
CONNECT_TIMEOUT = 5.0
COMMAND_TIMEOUT = 10.0
# Longest accepted response line; listings with huge tags can exceed the asyncio default
READ_LIMIT = 1024 * 1024


class MpdConnectionError(MpdError):
    """The connection to the MPD server failed or was lost."""


class MpdAuthError(MpdConnectionError):
    """The server rejected the password."""

    def __init__(self, server_error: MpdServerError) -> None:
        self.server_error = server_error
        super().__init__(f"Authentication failed: {server_error.message}")


class MpdConnection:
    """One TCP connection speaking the MPD text protocol.

    Attributes:
        host: Server host of the current or last connection.
        port: Server port of the current or last connection.
        connect_timeout: Seconds allowed for opening the stream and greeting.
        command_timeout: Seconds allowed for an ordinary response.
        read_limit: Longest line in bytes; a longer one fails the connection.
    """

    def __init__(
        self,
        connect_timeout: float = CONNECT_TIMEOUT,
        command_timeout: float = COMMAND_TIMEOUT,
        read_limit: int = READ_LIMIT,
    ) -> None:
        self.host = ""
        self.port = DEFAULT_PORT
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.read_limit = read_limit

        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._state = ConnectionState.DISCONNECTED
        self._version = ServerVersion()

    @property
    def state(self) -> ConnectionState:
        """Return the current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Return True if the stream is open (connected or idling)."""
        return self._state.is_connected

    @property
    def version(self) -> ServerVersion:
        """Return the protocol version from the greeting."""
        return self._version

    @property
    def capabilities(self) -> ServerCapabilities:
        """Return the features implied by the greeting version."""
        return ServerCapabilities.from_version(self._version)

    async def connect(self, host: str, password: str = "", port: int = DEFAULT_PORT) -> None:
        """Open the stream, read the greeting and authenticate.

        Args:
            host: Server hostname or IP.
            password: Password to send, empty for none.
            port: Server port.

        Raises:
            MpdConnectionError: If the server is unreachable, times out or
                does not greet like MPD.
            MpdAuthError: If the password is rejected.
        """
        if self._writer is not None:
            await self.close()

        self.host = host
        self.port = port
        self._state = ConnectionState.CONNECTING
        logger.debug("Connecting to MPD at %s:%d", host, port)

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, limit=self.read_limit),
                timeout=self.connect_timeout,
            )
            greeting = await asyncio.wait_for(self._read_raw_line(), timeout=self.connect_timeout)
        except TimeoutError as e:
            await self.close()
            raise MpdConnectionError(f"Connection to {host}:{port} timed out") from e
        except (OSError, EOFError, ValueError) as e:
            await self.close()
            raise MpdConnectionError(f"Failed to connect to {host}:{port}: {e}") from e

        version = parse_greeting(greeting)
        if version is None:
            await self.close()
            raise MpdConnectionError(f"Invalid MPD greeting: {greeting!r}")
        self._version = version
        self._state = ConnectionState.CONNECTED

        if password:
            try:
                await self.command(password_command(password))
            except MpdServerError as e:
                await self.close()
                raise MpdAuthError(e) from e

        logger.info("Connected to MPD %s at %s:%d", self._version, host, port)

    async def close(self) -> None:
        """Close the stream. Safe to call in any state."""
        writer = self._writer
        self._writer = None
        self._reader = None
        was_open = self._state is not ConnectionState.DISCONNECTED
        self._state = ConnectionState.DISCONNECTED

        if writer is not None:
            try:
                writer.close()
                await writer.wait_closed()
            except (OSError, TimeoutError, asyncio.CancelledError) as e:
                logger.debug("Expected error during MPD disconnect: %s", e)
            except Exception as e:  # noqa: BLE001
                logger.warning("Unexpected error during MPD disconnect: %s", e)
        if was_open:
            logger.info("Disconnected from MPD")

    def mark_idling(self) -> None:
        """Record that an idle command was sent."""
        if self._state is ConnectionState.CONNECTED:
            self._state = ConnectionState.IDLING

    def mark_connected(self) -> None:
        """Record that the idle wait has ended."""
        if self._state is ConnectionState.IDLING:
            self._state = ConnectionState.CONNECTED

    async def _read_raw_line(self) -> str:
        if self._reader is None:
            raise MpdConnectionError("Not connected")
        line = await self._reader.readline()
        if not line:
            raise EOFError("Connection closed by server")
        return line.decode("utf-8").rstrip("\r\n")

    async def _fail(self, reason: str) -> MpdConnectionError:
        logger.warning("MPD connection to %s:%d lost: %s", self.host, self.port, reason)
        await self.close()
        return MpdConnectionError(reason)

    async def read_line(self) -> str:
        """Read one line without its newline.

        Raises:
            MpdConnectionError: On EOF or I/O failure.
        """
        try:
            return await self._read_raw_line()
        except MpdConnectionError:
            raise
        # ValueError covers undecodable bytes and lines over read_limit
        except (OSError, EOFError, ValueError) as e:
            raise await self._fail(str(e) or type(e).__name__) from e

    async def send_line(self, text: str, *, allow_idle: bool = False) -> None:
        """Write one command line.

        Args:
            text: Command without newline.
            allow_idle: Permit the write while idling; only ``noidle`` may
                use this.

        Raises:
            MpdIdleViolation: If the connection is idling and the write is
                not allowed.
            MpdConnectionError: If not connected or the write fails.
        """
        if self._writer is None or not self.is_connected:
            raise MpdConnectionError("Not connected")
        if self._state is ConnectionState.IDLING and not allow_idle:
            raise MpdIdleViolation(f"Cannot send {text!r} while idling")

        logger.debug("MPD >> %s", text)
        try:
            self._writer.write(f"{text}\n".encode())
            await self._writer.drain()
        except OSError as e:
            raise await self._fail(f"Write failed: {e}") from e

    async def read_response(self, timeout: float | None = None) -> list[str]:
        """Read lines until OK or ACK.

        Args:
            timeout: Seconds to wait for the whole response, None for no limit.

        Returns:
            Response lines without the terminator.

        Raises:
            MpdServerError: If the response ends with ACK.
            MpdConnectionError: On I/O failure or timeout.
        """
        try:
            if timeout is None:
                lines, terminator = await self._read_until_terminator()
            else:
                lines, terminator = await asyncio.wait_for(
                    self._read_until_terminator(), timeout=timeout
                )
        except TimeoutError as e:
            raise await self._fail(f"No response within {timeout}s") from e

        if terminator != OK_LINE:
            logger.debug("MPD << %s", terminator)
            raise parse_ack(terminator)
        return lines

    async def _read_until_terminator(self) -> tuple[list[str], str]:
        lines: list[str] = []
        while True:
            line = await self.read_line()
            if is_terminator(line):
                return lines, line
            if line.startswith(GREETING_PREFIX):
                logger.debug("Ignoring stray greeting: %s", line)
                continue
            lines.append(line)

    async def command(self, text: str) -> list[str]:
        """Send a command and return its response lines.

        Raises:
            MpdServerError: If the server answers with ACK.
            MpdConnectionError: On I/O failure or timeout.
        """
        await self.send_line(text)
        lines = await self.read_response(self.command_timeout)
        logger.debug("MPD << %d lines for %s", len(lines), text.split(" ", 1)[0])
        return lines
