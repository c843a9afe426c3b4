"""
Error taxonomy shared by both plugins.

Every error carries a ``kind``, a human readable message and an optional
underlying cause, so the HTTP layer can render the same shape whichever store
raised it.
"""
from typing import Any, Optional


class CurateError(Exception):
    kind = "error"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "cause": str(self.cause) if self.cause is not None else None,
        }


class StoreError(CurateError):
    """Connectivity or constraint failure reported by a backing store."""

    kind = "store_error"


class TrackerError(StoreError):
    kind = "tracker_error"


class NotFoundError(CurateError):
    kind = "not_found"


class ValidationError(CurateError):
    """Input rejected before it reached the store."""

    kind = "validation_error"
