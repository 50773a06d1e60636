"""Error types for coview."""

from __future__ import annotations


class CoviewError(Exception):
    """Base exception for coview errors."""

    pass


class MalformedRowError(CoviewError):
    """Raised when a raw viewing row cannot be turned into a session.

    Caught inside the session store: the row is dropped, the batch goes on.
    """

    def __init__(self, index: int, reason: str) -> None:
        self.index = index
        self.reason = reason
        super().__init__(f"row {index}: {reason}")


class EmptyDatasetError(CoviewError):
    """Raised when the session store holds no sessions."""

    def __init__(self) -> None:
        super().__init__("No sessions to analyze.")


class CapacityExceededWarning(UserWarning):
    """Title pairs went over the cap and were sampled; results are approximate."""
