"""Minimal success/failure container for fail-open read paths."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of an operation that may fail without raising.

    Callers decide at the boundary whether a failure propagates
    (``unwrap``) or collapses to a default (``unwrap_or``).
    """

    value: T | None = None
    error: Exception | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> Result[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or re-raise the captured error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def unwrap_or(self, default: T) -> T:
        """Return the value, or ``default`` when the operation failed."""
        if self.error is not None:
            return default
        return self.value  # type: ignore[return-value]
