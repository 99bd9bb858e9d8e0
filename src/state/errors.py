from __future__ import annotations


class MissingKeyError(KeyError):
    """Raised by `get()` when nothing has been stored under the key."""


class OptimisticLockError(Exception):
    """Raised when a version precondition fails during a conditional write."""
    pass
