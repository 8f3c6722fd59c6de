"""Exception hierarchy for the update orchestration engine."""

from __future__ import annotations


class UpdaterError(Exception):
    """Base exception for update engine errors."""
    pass


class DiscoveryError(UpdaterError):
    """Components or their migration steps could not be enumerated.

    Raised before any step runs, so no partial state exists when it
    reaches the caller.
    """

    def __init__(self, message: str, component: str | None = None):
        self.component = component
        if component:
            super().__init__(f"{component}: {message}")
        else:
            super().__init__(message)


class StepExecutionError(UpdaterError):
    """A migration step failed and the component cannot continue.

    Steps raise this to stop their component. ``fatal`` tells the engine
    whether the component must be deactivated (non-core components only);
    a non-fatal error is still reported as an error but leaves the
    component active.
    """

    def __init__(self, message: str, fatal: bool = True):
        self.fatal = fatal
        super().__init__(message)


class StepExecutionWarning(UpdaterError):
    """A migration step completed with a recoverable anomaly.

    The step counts as applied and the runner moves on to the next step.
    """
    pass


class NoUpdatesFoundError(UpdaterError):
    """Everything is already up to date."""

    def __init__(self, message: str = "Everything is already up to date."):
        super().__init__(message)


AlreadyUpToDateError = NoUpdatesFoundError


class ConcurrentRunError(UpdaterError):
    """Another update session holds the run lock."""

    def __init__(self, lock_path: str, holder: str | None = None):
        self.lock_path = lock_path
        self.holder = holder
        detail = f" (held by {holder})" if holder else ""
        super().__init__(
            f"Another update is already in progress{detail}. "
            f"Wait for it to finish or remove {lock_path} if it is stale."
        )
