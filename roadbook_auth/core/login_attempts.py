"""
Login-attempt tracking for brute-force lockout.

After ``max_attempts`` consecutive failures for one identifier, further logins
are refused until ``lockout_seconds`` have passed since the *last* failure.
Any failure recorded while locked pushes the window forward. Once the window
elapses the entry is dropped entirely.

The in-memory implementation is per process. With several backend instances
each keeps its own counters; back ``LoginAttemptTracker`` with a shared store
(e.g. Redis INCR + EXPIRE) for fleet-wide lockout.
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Tuple

logger = logging.getLogger(__name__)


class LoginAttemptTracker(ABC):
    """Interface used by the auth service; swap implementations freely."""

    @abstractmethod
    def begin_attempt(self, identifier: str) -> Tuple[bool, int]:
        """Atomically check the lock and count this attempt as a failure.

        Returns ``(allowed, retry_after_seconds)``. An allowed attempt that
        turns out to succeed is cleared with ``record_success``.
        """

    @abstractmethod
    def record_failure(self, identifier: str) -> int:
        """Record a failed attempt. Returns the current consecutive count."""

    @abstractmethod
    def record_success(self, identifier: str) -> None:
        """Clear the counter for ``identifier``."""

    @abstractmethod
    def is_locked(self, identifier: str) -> Tuple[bool, int]:
        """Return ``(locked, retry_after_seconds)``."""


@dataclass
class AttemptCounter:
    count: int
    last_attempt_at: float


class InMemoryLoginAttemptTracker(LoginAttemptTracker):
    """
    Thread-safe in-memory tracker.

    Construct once per process and hand the instance to ``AuthService``.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        lockout_seconds: int = 900,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self._clock = clock
        self._attempts: Dict[str, AttemptCounter] = {}
        self._lock = Lock()

    def _expire(self, identifier: str, now: float) -> None:
        """Drop the entry once the window since the last failure has elapsed."""
        entry = self._attempts.get(identifier)
        if entry and now - entry.last_attempt_at >= self.lockout_seconds:
            del self._attempts[identifier]

    def _record(self, identifier: str, now: float) -> AttemptCounter:
        entry = self._attempts.get(identifier)
        if entry is None:
            entry = AttemptCounter(count=0, last_attempt_at=now)
            self._attempts[identifier] = entry
        entry.count += 1
        entry.last_attempt_at = now

        if entry.count == self.max_attempts:
            logger.warning(f"Login locked for {identifier[:3]}*** after {entry.count} failed attempts")
        return entry

    def begin_attempt(self, identifier: str) -> Tuple[bool, int]:
        with self._lock:
            now = self._clock()
            self._expire(identifier, now)

            entry = self._attempts.get(identifier)
            locked = entry is not None and entry.count >= self.max_attempts
            self._record(identifier, now)
            if locked:
                return False, self.lockout_seconds
            return True, 0

    def record_failure(self, identifier: str) -> int:
        with self._lock:
            now = self._clock()
            self._expire(identifier, now)
            return self._record(identifier, now).count

    def record_success(self, identifier: str) -> None:
        with self._lock:
            self._attempts.pop(identifier, None)

    def is_locked(self, identifier: str) -> Tuple[bool, int]:
        with self._lock:
            now = self._clock()
            self._expire(identifier, now)

            entry = self._attempts.get(identifier)
            if entry is None or entry.count < self.max_attempts:
                return False, 0

            retry_after = math.ceil(entry.last_attempt_at + self.lockout_seconds - now)
            return True, max(retry_after, 1)

    def get_failures(self, identifier: str) -> int:
        """Current consecutive failure count (0 when absent)."""
        with self._lock:
            self._expire(identifier, self._clock())
            entry = self._attempts.get(identifier)
            return entry.count if entry else 0

    def cleanup_all(self) -> int:
        """Remove all expired entries. Call periodically."""
        with self._lock:
            now = self._clock()
            stale = [
                key for key, entry in self._attempts.items()
                if now - entry.last_attempt_at >= self.lockout_seconds
            ]
            for key in stale:
                del self._attempts[key]
            return len(stale)
