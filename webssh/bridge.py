"""
Session bridge.

Runs the per-session protocol: reads envelopes from the client in order,
drives password authentication and shell setup, forwards keystrokes and
resizes, and starts the output relay once the shell is live.

The protocol is an explicit state machine. ``TRANSITIONS`` maps a
``(state, message type)`` pair to its handler; pairs without an entry are
logged and dropped.
"""

import logging
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum

from webssh.config import WebSSHConfig
from webssh.errors import (
    AuthenticationError,
    RemoteWriteError,
    SetupError,
    UnsupportedMethod,
    WebSSHError,
)
from webssh.models import MessageEnvelope, MessageType
from webssh.relay import OutputRelay
from webssh.ssh import SSH_ERRORS, Connector, ShellSession, StdinPipe, open_shell_session, xterm_modes
from webssh.transport import MessageTransport

LOG = logging.getLogger(__name__)


class SessionState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    SHELL_STARTING = "shell_starting"
    ACTIVE = "active"
    TERMINATED = "terminated"


@dataclass
class SessionBridge:
    """
    Bridge one client transport with one SSH host connection.

    Usage:
        bridge = SessionBridge("abc", transport, sock)
        await bridge.run()  # returns or raises once the session is over

    ``run`` always tears the session down before it exits, whatever ended it.
    """

    session_id: str
    transport: MessageTransport
    network: socket.socket
    config: WebSSHConfig = field(default_factory=WebSSHConfig)
    connector: Connector = field(default=open_shell_session, kw_only=True)
    logger: logging.Logger = field(default=LOG, kw_only=True)

    state: SessionState = field(default=SessionState.UNAUTHENTICATED, init=False)
    username: str = field(default="", init=False)
    passwords: list[str] = field(default_factory=list, init=False, repr=False)
    session: ShellSession | None = field(default=None, init=False)
    stdin: StdinPipe | None = field(default=None, init=False)
    relay: OutputRelay | None = field(default=None, init=False)

    async def run(self) -> None:
        """
        Process client messages until the session ends.

        Raises:
            TransportError: If the client disconnects or sends a bad frame
            AuthenticationError: If SSH login fails
            UnsupportedMethod: If the client asks for public key auth
            SetupError: If the remote shell cannot be started
            RemoteWriteError: If input or a resize cannot be forwarded
        """
        try:
            while True:
                envelope = await self.transport.read_envelope()
                self.logger.debug("(%s) new message %s", self.session_id, envelope.type)
                await self.dispatch(envelope)
        finally:
            await self.terminate()

    async def dispatch(self, envelope: MessageEnvelope) -> None:
        handler = TRANSITIONS.get((self.state, envelope.type))
        if handler is None:
            self.logger.debug(
                "(%s) dropping %s message in state %s",
                self.session_id,
                envelope.type,
                self.state,
            )
            return
        await handler(self, envelope)

    async def on_login(self, envelope: MessageEnvelope) -> None:
        self.username = envelope.text
        self.logger.info("(%s) login %s", self.session_id, self.username)

    async def on_password(self, envelope: MessageEnvelope) -> None:
        self.passwords.append(envelope.text)
        try:
            self.session = await self.connector(self.network, self.username, self.passwords, self.config)
        except WebSSHError:
            raise
        except SSH_ERRORS as exc:
            raise AuthenticationError(self.username) from exc

        self.session.request_pty(
            self.config.term_type,
            self.config.term_rows,
            self.config.term_cols,
            xterm_modes(self.config),
        )
        self.state = SessionState.SHELL_STARTING
        await self.start_shell(self.session)

    async def start_shell(self, session: ShellSession) -> None:
        """Bind the shell's pipes, start the relay, then run the shell."""
        try:
            self.stdin = session.stdin_pipe()
        except SSH_ERRORS as exc:
            raise SetupError("stdin") from exc

        try:
            stdout, stderr = session.stdout_pipe(), session.stderr_pipe()
        except SSH_ERRORS as exc:
            raise SetupError("stdout & stderr") from exc

        self.relay = OutputRelay(
            self.session_id,
            self.transport,
            buff_size=self.config.buff_size,
            logger=self.logger,
        )
        self.relay.start(stdout, stderr)

        try:
            await session.shell()
        except SSH_ERRORS as exc:
            raise SetupError("shell") from exc

        self.state = SessionState.ACTIVE
        self.logger.info("(%s) shell started for %s", self.session_id, self.username)

    async def on_stdin(self, envelope: MessageEnvelope) -> None:
        assert self.stdin is not None
        try:
            self.stdin.write(envelope.data)
        except SSH_ERRORS as exc:
            raise RemoteWriteError("stdin") from exc

    async def on_resize(self, envelope: MessageEnvelope) -> None:
        assert self.session is not None
        try:
            self.session.window_change(envelope.rows, envelope.cols)
        except SSH_ERRORS as exc:
            raise RemoteWriteError("resize") from exc

    async def wait_login(self, envelope: MessageEnvelope) -> None:
        if envelope.type is MessageType.STDIN:
            self.logger.info("(%s) stdin wait login", self.session_id)
        else:
            self.logger.info("(%s) resize wait session", self.session_id)

    async def already_authenticated(self, envelope: MessageEnvelope) -> None:
        self.logger.debug("(%s) already authenticated, ignoring %s", self.session_id, envelope.type)

    async def reject_publickey(self, envelope: MessageEnvelope) -> None:
        raise UnsupportedMethod(MessageType.PUBLICKEY)

    async def terminate(self) -> None:
        """Release the relay, the SSH session and both endpoints, once."""
        if self.state is SessionState.TERMINATED:
            return
        self.state = SessionState.TERMINATED

        try:
            if self.relay is not None:
                try:
                    await self.relay.stop()
                except Exception:
                    self.logger.debug("(%s) error stopping relay", self.session_id, exc_info=True)

            if self.session is not None:
                try:
                    await self.session.close()
                except Exception:
                    self.logger.debug("(%s) error closing SSH session", self.session_id, exc_info=True)
        finally:
            try:
                self.network.close()
            except OSError:
                self.logger.debug("(%s) error closing network endpoint", self.session_id, exc_info=True)

            await self.transport.close()
            self.logger.info("(%s) session closed", self.session_id)


Handler = Callable[[SessionBridge, MessageEnvelope], Awaitable[None]]

_UNAUTH = SessionState.UNAUTHENTICATED
_ACTIVE = SessionState.ACTIVE

TRANSITIONS: dict[tuple[SessionState, MessageType | str], Handler] = {
    (_UNAUTH, MessageType.LOGIN): SessionBridge.on_login,
    (_UNAUTH, MessageType.PASSWORD): SessionBridge.on_password,
    (_UNAUTH, MessageType.PUBLICKEY): SessionBridge.reject_publickey,
    (_UNAUTH, MessageType.STDIN): SessionBridge.wait_login,
    (_UNAUTH, MessageType.RESIZE): SessionBridge.wait_login,
    (_ACTIVE, MessageType.LOGIN): SessionBridge.already_authenticated,
    (_ACTIVE, MessageType.PASSWORD): SessionBridge.already_authenticated,
    (_ACTIVE, MessageType.PUBLICKEY): SessionBridge.reject_publickey,
    (_ACTIVE, MessageType.STDIN): SessionBridge.on_stdin,
    (_ACTIVE, MessageType.RESIZE): SessionBridge.on_resize,
}
