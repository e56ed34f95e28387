"""
Engine errors. Two kinds only:
- BadInputError: the caller handed us something we cannot normalize (wrong types, missing keys).
- InvariantViolation: an internal bug (impact arithmetic, budget conservation). Never swallowed.
Partial data is not an error; absent dimensions simply produce no findings.
"""
from __future__ import annotations

from typing import Any, Optional


class BadInputError(ValueError):
    """Malformed caller input. `field` points at the offending record/key when known."""

    def __init__(self, message: str, field: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.field = field
        self.details = details

    def to_detail(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": "BAD_INPUT", "message": str(self)}
        if self.field:
            out["field"] = self.field
        if self.details is not None:
            out["details"] = self.details
        return out


class InvariantViolation(AssertionError):
    """Internal invariant broken. Fail loudly."""
