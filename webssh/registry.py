"""
Session registry.

Pairs the two halves of a session, the client transport and the network
connection to the SSH host, which arrive independently and in any order.
Exactly one registration per session id completes the pair.
"""

import logging
import socket
import threading
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from webssh.transport import MessageTransport

LOG = logging.getLogger(__name__)


class EndpointKind(StrEnum):
    TRANSPORT = "transport"
    NETWORK = "network"


@dataclass
class EndpointPair:
    transport: "MessageTransport | None" = None
    network: socket.socket | None = None
    claimed: bool = field(default=False, init=False)
    lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def get(self, kind: EndpointKind) -> "MessageTransport | socket.socket | None":
        if kind is EndpointKind.TRANSPORT:
            return self.transport
        return self.network

    def put(self, kind: EndpointKind, endpoint: "MessageTransport | socket.socket") -> None:
        if kind is EndpointKind.TRANSPORT:
            self.transport = endpoint  # type: ignore[assignment]
        else:
            self.network = endpoint  # type: ignore[assignment]

    @property
    def complete(self) -> bool:
        return self.transport is not None and self.network is not None


@dataclass
class SessionRegistry:
    """
    Load-or-store map from session id to its endpoint pair.

    ``dict.setdefault`` is atomic, so the first caller for an id always
    stores. Completing a pair only takes that pair's lock, so unrelated
    sessions never wait on each other.
    """

    logger: logging.Logger = field(default=LOG)
    pairs: dict[str, EndpointPair] = field(default_factory=dict, init=False)

    def register(
        self,
        session_id: str,
        kind: EndpointKind,
        endpoint: "MessageTransport | socket.socket",
    ) -> EndpointPair | None:
        """
        Store ``endpoint`` as the ``kind`` half of ``session_id``.

        Returns the complete pair if and only if this call completed it.
        The caller that receives the pair owns launching the bridge.
        """
        fresh = EndpointPair()
        fresh.put(kind, endpoint)
        pair = self.pairs.setdefault(session_id, fresh)
        if pair is fresh:
            self.logger.debug("(%s) stored %s endpoint, waiting for its pair", session_id, kind)
            return None

        with pair.lock:
            if pair.claimed:
                self.logger.warning("(%s) session already started, ignoring %s endpoint", session_id, kind)
                return None
            if pair.get(kind) is not None:
                self.logger.warning("(%s) duplicate %s endpoint before pairing, ignoring", session_id, kind)
                return None
            pair.put(kind, endpoint)
            pair.claimed = True

        self.logger.debug("(%s) pair completed by %s endpoint", session_id, kind)
        return pair

    def release(self, session_id: str) -> None:
        """Forget the endpoints of a finished session but keep its id claimed."""
        pair = self.pairs.get(session_id)
        if pair is None:
            return
        with pair.lock:
            pair.transport = None
            pair.network = None
            pair.claimed = True

    def __contains__(self, session_id: object) -> bool:
        return session_id in self.pairs

    def __len__(self) -> int:
        return len(self.pairs)
