"""
Typed termination errors for the dashboard session.

The session never logs-and-swallows a state-machine failure; every way a
session can end is surfaced to the external caller as one of these:
- SessionQuitError: the operator asked to exit (not a failure)
- SessionClosedError: the message loop ended without a terminal event
- RuntimeDisconnectedError: the data plane dropped, session is reusable
- ConfiguratorUserExitError: the configurator was closed by the operator
- ConfiguratorError: the configurator collaborator failed to initialize
"""


class SessionQuitError(Exception):
    """Raised when the operator exits the session (ctrl+c, q, dismiss)."""

    def __init__(self, message: str = "session closed by user") -> None:
        super().__init__(message)


class SessionClosedError(Exception):
    """
    Raised when the session loop terminated without an explicit event.

    Attributes:
        cause: Error the loop itself terminated with, if any
    """

    def __init__(self, cause: BaseException | None = None) -> None:
        self.cause = cause
        message = "session closed"
        if cause is not None:
            message = f"session closed: {cause}"
        super().__init__(message)


class RuntimeDisconnectedError(Exception):
    """
    Raised when the runtime context ended while the dashboard was live.

    The session has returned to the waiting phase and accepts a fresh
    runtime activation. Retrying is the caller's decision.
    """

    def __init__(self, message: str = "runtime disconnected") -> None:
        super().__init__(message)


class ConfiguratorUserExitError(Exception):
    """Raised inside the configurator when the operator leaves it."""

    def __init__(self) -> None:
        super().__init__("configurator closed by user")


class ConfiguratorError(Exception):
    """
    Raised when the configurator cannot be built or rebuilt.

    Attributes:
        cause: Underlying collaborator error, if any
    """

    def __init__(self, reason: str, cause: BaseException | None = None) -> None:
        self.reason = reason
        self.cause = cause
        message = f"configurator unavailable: {reason}"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)
