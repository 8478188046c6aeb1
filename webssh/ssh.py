"""
SSH client side of a session, built on asyncssh.

``open_shell_session`` authenticates over an already connected socket using
password credentials only. The returned ``ShellSession`` hands out the
remote shell's pipes before the shell is requested so no output is lost.
"""

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable, Sequence

import asyncssh

from webssh.config import WebSSHConfig
from webssh.errors import AuthenticationError

LOG = logging.getLogger(__name__)

# RFC 4254 section 8 terminal mode opcodes
ECHO = 53
TTY_OP_ISPEED = 128
TTY_OP_OSPEED = 129

# Failures the SSH layer reports for connection, channel and write problems
SSH_ERRORS = (asyncssh.Error, OSError, TimeoutError)


class PasswordClient(asyncssh.SSHClient):
    """Offers each accumulated password in turn, then gives up."""

    def __init__(self, passwords: Sequence[str]) -> None:
        self.passwords = iter(list(passwords))

    def password_auth_requested(self) -> str | None:
        return next(self.passwords, None)


class ShellClientSession(asyncssh.SSHClientSession[bytes]):
    """Feeds channel output into one stream reader per remote stream."""

    def __init__(self) -> None:
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()

    def data_received(self, data: bytes, datatype: int | None) -> None:
        if datatype == asyncssh.EXTENDED_DATA_STDERR:
            self.stderr.feed_data(data)
        else:
            self.stdout.feed_data(data)

    def eof_received(self) -> bool:
        self.feed_eof()
        return False

    def connection_lost(self, exc: Exception | None) -> None:
        self.feed_eof()

    def feed_eof(self) -> None:
        for reader in (self.stdout, self.stderr):
            if not reader.at_eof():
                reader.feed_eof()


class StdinPipe:
    """Writable handle to the remote shell's standard input."""

    def __init__(self, session: "ShellSession") -> None:
        self.session = session

    def write(self, data: bytes) -> None:
        channel = self.session.channel
        if channel is None or channel.is_closing():
            raise BrokenPipeError("remote shell is not running")
        channel.write(data)


class ShellSession:
    """An authenticated SSH connection that runs one interactive shell."""

    def __init__(self, conn: asyncssh.SSHClientConnection) -> None:
        self.conn = conn
        self.client_session = ShellClientSession()
        self.channel: asyncssh.SSHClientChannel[bytes] | None = None
        self.term_type: str | None = None
        self.term_size: tuple[int, int] = (0, 0)
        self.term_modes: dict[int, int] = {}

    def request_pty(self, term_type: str, rows: int, cols: int, modes: dict[int, int]) -> None:
        """Ask for a pseudo-terminal; it is allocated together with the shell."""
        self.term_type = term_type
        self.term_size = (cols, rows)
        self.term_modes = dict(modes)

    def stdin_pipe(self) -> StdinPipe:
        return StdinPipe(self)

    def stdout_pipe(self) -> asyncio.StreamReader:
        return self.client_session.stdout

    def stderr_pipe(self) -> asyncio.StreamReader:
        return self.client_session.stderr

    async def shell(self) -> None:
        self.channel, _ = await self.conn.create_session(
            lambda: self.client_session,
            term_type=self.term_type,
            term_size=self.term_size,
            term_modes=self.term_modes,
            encoding=None,
        )

    def window_change(self, rows: int, cols: int) -> None:
        if self.channel is None:
            raise BrokenPipeError("remote shell is not running")
        self.channel.change_terminal_size(cols, rows)

    async def close(self) -> None:
        if self.channel is not None:
            self.channel.close()
        self.conn.close()
        await self.conn.wait_closed()


async def open_shell_session(
    sock: socket.socket,
    username: str,
    passwords: Sequence[str],
    config: WebSSHConfig,
) -> ShellSession:
    """
    Open an SSH connection over ``sock`` and authenticate with passwords.

    Host keys are not verified. Public keys, agents and ssh_config files are
    never consulted.

    Raises:
        AuthenticationError: If the connection cannot be established
    """
    try:
        peer = sock.getpeername()
    except OSError:
        peer = None
    host = peer[0] if isinstance(peer, tuple) else ""

    LOG.debug("Opening SSH connection to %s as %s", host or "<socket>", username)
    try:
        conn = await asyncssh.connect(
            host,
            sock=sock,
            username=username,
            client_factory=lambda: PasswordClient(passwords),
            known_hosts=None,
            client_keys=None,
            agent_path=None,
            config=None,
            preferred_auth="password",
            login_timeout=config.login_timeout_seconds,
        )
    except SSH_ERRORS as exc:
        raise AuthenticationError(username) from exc

    return ShellSession(conn)


def xterm_modes(config: WebSSHConfig) -> dict[int, int]:
    return {ECHO: 1, TTY_OP_ISPEED: config.term_speed, TTY_OP_OSPEED: config.term_speed}


Connector = Callable[[socket.socket, str, Sequence[str], WebSSHConfig], Awaitable[ShellSession]]
