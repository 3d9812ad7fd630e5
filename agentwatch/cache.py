"""Small TTL cache used for OS-call results."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass
class TtlCache(Generic[T]):
    """Holds one value together with the time it was stored.

    The clock is injectable so expiry can be tested without sleeping.
    """
    ttl: float
    clock: Callable[[], float] = time.monotonic
    value: T | None = None
    stored_at: float | None = field(default=None)

    def is_fresh(self) -> bool:
        return self.stored_at is not None and self.clock() - self.stored_at < self.ttl

    def set(self, value: T) -> T:
        self.value = value
        self.stored_at = self.clock()
        return value

    def clear(self) -> None:
        self.value = None
        self.stored_at = None
