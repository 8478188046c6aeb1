"""
Output relay.

Copies the remote shell's stdout and stderr into ``stdout``/``stderr``
envelopes, one envelope per chunk read. Each stream runs in its own task.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Protocol

from webssh.errors import WebSSHError
from webssh.models import MessageEnvelope, MessageType
from webssh.transport import MessageTransport

LOG = logging.getLogger(__name__)


class OutputStream(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


@dataclass
class OutputRelay:
    """
    Relay remote output to the client.

    A copier stops on end of stream or on the first read or send failure and
    only logs why; tearing down the session is the bridge's job. ``stop``
    cancels whatever copiers are still running.
    """

    session_id: str
    transport: MessageTransport
    buff_size: int = 512
    logger: logging.Logger = field(default=LOG)
    tasks: list[asyncio.Task[None]] = field(default_factory=list, init=False)

    def start(self, stdout: OutputStream, stderr: OutputStream) -> None:
        self.logger.debug("(%s) transfer", self.session_id)
        for message_type, stream in ((MessageType.STDOUT, stdout), (MessageType.STDERR, stderr)):
            task = asyncio.create_task(
                self.copy_to_envelopes(message_type, stream),
                name=f"webssh-{self.session_id}-{message_type}",
            )
            self.tasks.append(task)

    async def copy_to_envelopes(self, message_type: MessageType, stream: OutputStream) -> None:
        self.logger.debug("(%s) copy to %s", self.session_id, message_type)
        while True:
            try:
                chunk = await stream.read(self.buff_size)
            except (OSError, WebSSHError) as exc:
                self.logger.debug("(%s) %s read fail: %s", self.session_id, message_type, exc)
                return
            if not chunk:
                self.logger.debug("(%s) %s reached end of stream", self.session_id, message_type)
                return

            try:
                await self.transport.write_envelope(MessageEnvelope(type=message_type, data=chunk))
            except (OSError, WebSSHError) as exc:
                self.logger.debug("(%s) %s write fail: %s", self.session_id, message_type, exc)
                return

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self.tasks)

    async def stop(self) -> None:
        for task in self.tasks:
            task.cancel()
        for task in self.tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
