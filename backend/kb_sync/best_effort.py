"""Result wrapper for side channels whose failure must never fail a sync."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class BestEffortResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "BestEffortResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "BestEffortResult[T]":
        return cls(error=error)

    def value_or_log(self, logger: logging.Logger, action: str, default: T) -> T:
        """Return the value, or log the failure of ``action`` and return ``default``."""
        if self.error is not None:
            logger.warning("%s failed (ignored): %s", action, self.error)
            return default
        return self.value if self.value is not None else default


__all__ = ["BestEffortResult"]
