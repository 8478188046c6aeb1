"""Errors raised by webssh components.

Every error is fatal to the one session it is raised in and never to any
other session.
"""


class WebSSHError(Exception):
    """Base class for all webssh errors."""


class TransportError(WebSSHError):
    """Reading from or writing to the message transport failed."""


class MalformedEnvelope(TransportError):
    """A frame received from the transport is not a valid envelope."""


class AuthenticationError(WebSSHError):
    """The SSH connection or session could not be established."""

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"SSH authentication failed for user {username!r}")


class UnsupportedMethod(WebSSHError):
    """The client asked for an authentication method the gateway refuses."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"no support {method}")


class SetupError(WebSSHError):
    """Preparing the remote shell failed at the named step."""

    def __init__(self, step: str) -> None:
        self.step = step
        super().__init__(f"shell setup failed: {step}")


class RemoteWriteError(WebSSHError):
    """Forwarding input or a resize to the remote shell failed."""

    def __init__(self, what: str) -> None:
        self.what = what
        super().__init__(f"forwarding {what} to remote shell failed")
