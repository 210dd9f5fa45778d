"""Error taxonomy for the codeintel daemon layer.

Every failure carries ``dont_retry``: when True the request bridge must
not discard the daemon and respawn it to recover.
"""

from typing import Optional

MISSING_PACKAGE_SIGNATURE = "No module named codeintel"


class DaemonError(RuntimeError):
    """Base class for all daemon-layer failures."""

    dont_retry = False

    def __init__(self, message: str, dont_retry: Optional[bool] = None):
        super().__init__(message)
        if dont_retry is not None:
            self.dont_retry = dont_retry

    @property
    def is_missing_package(self) -> bool:
        return MISSING_PACKAGE_SIGNATURE in str(self)


class DaemonStartingError(DaemonError):
    """The daemon was spawned but has not reported listening yet."""

    def __init__(self, message: str = "Still starting codeintel daemon, try again shortly"):
        super().__init__(message)


class DaemonSpawnError(DaemonError):
    """The launch command itself could not be started."""

    dont_retry = True


class DaemonCrashedError(DaemonError):
    """The daemon exited non-zero without ever listening.

    The message carries the captured diagnostic output verbatim.
    """

    dont_retry = True

    def __init__(self, output: str, returncode: Optional[int] = None):
        super().__init__(f"codeintel daemon failed: {output}")
        self.output = output
        self.returncode = returncode


class DaemonExitedError(DaemonError):
    """The daemon exited cleanly before it started listening."""


class DaemonNoServerError(DaemonError):
    """Nothing accepted the connection on the daemon port."""


class DaemonNotRespondingError(DaemonError):
    """The request exchange failed after readiness was confirmed."""

    def __init__(self, message: str = "codeintel daemon failed or not responding"):
        super().__init__(message)


class DaemonParseError(DaemonError):
    """The daemon answered with a body that is not JSON."""

    def __init__(self, body: str):
        super().__init__(f"Couldn't parse codeintel output: {body}")
        self.body = body
