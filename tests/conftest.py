"""Fakes standing in for the client transport and the SSH layer."""

import asyncio
import socket
from collections.abc import Callable, Iterator, Sequence

import pytest

from webssh.config import WebSSHConfig
from webssh.errors import AuthenticationError, TransportError
from webssh.models import MessageEnvelope, MessageType, decode_envelope, encode_envelope
from webssh.transport import MessageTransport


class FakeTransport(MessageTransport):
    def __init__(self) -> None:
        super().__init__()
        self.inbound: asyncio.Queue[str | None] = asyncio.Queue()
        self.sent: list[MessageEnvelope] = []
        self.fail_writes = False
        self.close_calls = 0

    def feed(self, message_type: MessageType, data: bytes = b"", **kwargs: int) -> None:
        envelope = MessageEnvelope(type=message_type, data=data, **kwargs)
        self.inbound.put_nowait(encode_envelope(envelope))

    def feed_raw(self, frame: str) -> None:
        self.inbound.put_nowait(frame)

    def disconnect(self) -> None:
        self.inbound.put_nowait(None)

    async def recv_frame(self) -> str:
        frame = await self.inbound.get()
        if frame is None:
            raise TransportError("client went away")
        return frame

    async def send_frame(self, frame: str) -> None:
        if self.fail_writes:
            raise TransportError("send failed")
        self.sent.append(decode_envelope(frame))

    async def close_connection(self) -> None:
        self.close_calls += 1


class FakeStream:
    """Output stream returning exactly the chunks pushed into it."""

    def __init__(self, chunks: Sequence[bytes] = ()) -> None:
        self.chunks: asyncio.Queue[bytes] = asyncio.Queue()
        for chunk in chunks:
            self.chunks.put_nowait(chunk)

    def push(self, chunk: bytes) -> None:
        self.chunks.put_nowait(chunk)

    def end(self) -> None:
        self.chunks.put_nowait(b"")

    async def read(self, n: int = -1) -> bytes:
        return await self.chunks.get()


class FakeStdin:
    def __init__(self) -> None:
        self.writes: list[bytes] = []
        self.broken = False

    def write(self, data: bytes) -> None:
        if self.broken:
            raise BrokenPipeError("remote shell is not running")
        self.writes.append(data)


class FakeShellSession:
    def __init__(
        self,
        stdout_chunks: Sequence[bytes] = (),
        stderr_chunks: Sequence[bytes] = (),
        fail_step: str | None = None,
    ) -> None:
        self.stdin = FakeStdin()
        self.stdout = FakeStream(stdout_chunks)
        self.stderr = FakeStream(stderr_chunks)
        self.fail_step = fail_step
        self.pty: tuple[str, int, int, dict[int, int]] | None = None
        self.shell_started = False
        self.resizes: list[tuple[int, int]] = []
        self.fail_resize = False
        self.close_calls = 0

    def request_pty(self, term_type: str, rows: int, cols: int, modes: dict[int, int]) -> None:
        self.pty = (term_type, rows, cols, modes)

    def stdin_pipe(self) -> FakeStdin:
        if self.fail_step == "stdin":
            raise OSError("no stdin")
        return self.stdin

    def stdout_pipe(self) -> FakeStream:
        if self.fail_step == "stdout":
            raise OSError("no stdout")
        return self.stdout

    def stderr_pipe(self) -> FakeStream:
        return self.stderr

    async def shell(self) -> None:
        if self.fail_step == "shell":
            raise OSError("shell refused")
        self.shell_started = True

    def window_change(self, rows: int, cols: int) -> None:
        if self.fail_resize:
            raise OSError("window change refused")
        self.resizes.append((rows, cols))

    async def close(self) -> None:
        self.close_calls += 1


class FakeConnector:
    """Accepts one password and hands out a FakeShellSession."""

    def __init__(
        self,
        password: str = "right",
        session_factory: Callable[[], FakeShellSession] = FakeShellSession,
    ) -> None:
        self.password = password
        self.session_factory = session_factory
        self.calls: list[tuple[str, list[str]]] = []
        self.session: FakeShellSession | None = None

    async def __call__(
        self,
        sock: socket.socket,
        username: str,
        passwords: Sequence[str],
        config: WebSSHConfig,
    ) -> FakeShellSession:
        self.calls.append((username, list(passwords)))
        if passwords[-1] != self.password:
            raise AuthenticationError(username)
        self.session = self.session_factory()
        return self.session


async def eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate`` holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def is_closed(sock: socket.socket) -> bool:
    return sock.fileno() == -1


@pytest.fixture
def network() -> Iterator[socket.socket]:
    near, far = socket.socketpair()
    yield near
    near.close()
    far.close()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()
