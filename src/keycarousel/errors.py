"""Exceptions raised while acquiring a credential.

All of them derive from RotationError so callers can catch the family at once.
ExhaustedError and StoreUnavailableError are transient; MisconfiguredError
needs operator action.
"""

from typing import Union


class RotationError(Exception):
    """Base class for keycarousel failures."""


class MisconfiguredError(RotationError):
    """The credential pool is empty or otherwise unusable."""


class ExhaustedError(RotationError):
    """Every credential in the pool is over quota for the current window."""

    def __init__(self, window: str, examined: int, retry_after: float = 0.0):
        self.window = window
        self.examined = examined
        self.retry_after = retry_after
        super().__init__(
            f"all {examined} credentials are rate limited in window {window}; "
            f"retry in ~{retry_after:.1f}s"
        )


class StoreUnavailableError(RotationError):
    """The shared counter store failed or could not be reached."""

    def __init__(self, operation: str, key: Union[str, None] = None, reason: str = ""):
        self.operation = operation
        self.key = key
        self.reason = reason
        msg = f"counter store {operation} failed"
        if key is not None:
            msg += f" for key={key}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
