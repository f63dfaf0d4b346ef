"""
Exception types raised by a garbage collection pass.

Malformed input and collaborator failures both abort the pass; they are kept
apart so that callers can alert on them differently. A path that merely failed
to delete is not an exception, see ``DeleteResult``.
"""

from typing import Optional


class GarbageCollectionError(Exception):
    """Base exception for all garbage collection errors."""

    pass


class MalformedPathError(GarbageCollectionError, ValueError):
    """Raised when a candidate, blip or reference cannot be decomposed."""

    def __init__(self, path: str, reason: str = "cannot decompose into table id and tablet directory"):
        self.path = path
        self.reason = reason
        super().__init__(f"Malformed path {path!r}: {reason}")


class CollaboratorError(GarbageCollectionError):
    """Raised when an environment operation fails during a pass."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        msg = f"Garbage collection environment failed during {operation}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)
