"""
Error types for rollout waits.
"""


class RolloutError(Exception):
    """Base class for all rollout waiter errors."""


class AdapterError(RolloutError):
    """Querying the cluster failed (transport, auth, server error)."""


class WaitTimeoutError(RolloutError):
    """A target was observed but never reached the wanted state in time."""

    def __init__(self, message: str, outcome=None):
        super().__init__(message)
        self.outcome = outcome


class WaitCancelledError(RolloutError):
    """A wait was aborted from outside before it finished."""

    def __init__(self, message: str, outcome=None):
        super().__init__(message)
        self.outcome = outcome


class ConfigError(RolloutError):
    """A wait spec or rollout plan is malformed."""
