"""Common exceptions for slotpack library."""
from __future__ import annotations

from typing import Iterable


class SlotpackError(Exception):
    """Base error; ``names`` lists the offending field names, if any."""

    kind = "SlotpackError"

    def __init__(self, message: str, names: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.names: tuple[str, ...] = tuple(names)

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": str(self), "names": list(self.names)}


class InvalidField(SlotpackError):
    kind = "InvalidField"


class DuplicateName(SlotpackError):
    kind = "DuplicateName"


class EmptySchema(SlotpackError):
    kind = "EmptySchema"


class UnsatisfiableConstraints(SlotpackError):
    kind = "UnsatisfiableConstraints"


class SearchBudgetExceeded(SlotpackError):
    """Non-fatal: the layout came from the heuristic, not the exact search."""

    kind = "SearchBudgetExceeded"

    def __init__(self, message: str, names: Iterable[str] = (), reason: str = "budget", expanded: int = 0) -> None:
        super().__init__(message, names)
        self.reason = reason
        self.expanded = expanded

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["reason"] = self.reason
        out["expanded"] = self.expanded
        return out
