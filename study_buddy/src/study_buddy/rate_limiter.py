"""
In-process rate limiting

LoginRateLimiter: sliding window of failed login attempts per key, promoted to
a hard block once the threshold is reached.
RequestRateLimiter: fixed window request counter (used for tutor chat).

Both keep their state in the current process only. A horizontally scaled
deployment gets one independent limiter per instance; a shared store can be
plugged in by implementing RateLimitStore.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from study_buddy import config


@dataclass
class RateLimitRecord:
    """Failed-attempt bookkeeping for one key."""
    count: int
    last_attempt: float
    blocked_until: float = 0.0


@dataclass
class RateLimitDecision:
    allowed: bool
    wait_seconds: Optional[int] = None


class RateLimitStore:
    """Storage interface for login rate-limit records."""

    def get(self, key: str) -> Optional[RateLimitRecord]:
        raise NotImplementedError

    def set(self, key: str, record: RateLimitRecord) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def prune(self, expired: Callable[[RateLimitRecord], bool]) -> int:
        """Drop records for which `expired` is true. Stores with native expiry can leave this as is."""
        return 0


class InMemoryRateLimitStore(RateLimitStore):
    """Plain dict store. Lost on restart, not shared across processes."""

    def __init__(self):
        self._records: Dict[str, RateLimitRecord] = {}

    def get(self, key: str) -> Optional[RateLimitRecord]:
        return self._records.get(key)

    def set(self, key: str, record: RateLimitRecord) -> None:
        self._records[key] = record

    def delete(self, key: str) -> None:
        self._records.pop(key, None)

    def prune(self, expired: Callable[[RateLimitRecord], bool]) -> int:
        stale = [key for key, record in self._records.items() if expired(record)]
        for key in stale:
            del self._records[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._records)


class LoginRateLimiter:
    """
    Per-identifier login limiter.

    - `window_seconds` after the last failed attempt the record expires
    - `max_attempts` failures inside the window trigger a block
    - the block lasts `block_seconds` from the moment it is triggered and is
      never extended by later checks
    - a successful login deletes the record
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        window_seconds: int = config.LOGIN_WINDOW_SECONDS,
        max_attempts: int = config.LOGIN_MAX_ATTEMPTS,
        block_seconds: int = config.LOGIN_BLOCK_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.window_seconds = window_seconds
        self.max_attempts = max_attempts
        self.block_seconds = block_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def check(self, key: str) -> RateLimitDecision:
        """Return whether `key` may attempt a login right now."""
        with self._lock:
            now = self._clock()
            self._sweep(now)
            record = self.store.get(key)

            if record is None:
                return RateLimitDecision(allowed=True)

            if record.blocked_until > now:
                return RateLimitDecision(
                    allowed=False,
                    wait_seconds=math.ceil(record.blocked_until - now),
                )

            # Block served, or window elapsed since the last failure
            if record.blocked_until or now - record.last_attempt > self.window_seconds:
                self.store.delete(key)
                return RateLimitDecision(allowed=True)

            if record.count >= self.max_attempts:
                record.blocked_until = now + self.block_seconds
                self.store.set(key, record)
                return RateLimitDecision(allowed=False, wait_seconds=math.ceil(self.block_seconds))

            return RateLimitDecision(allowed=True)

    def record(self, key: str, success: bool) -> None:
        """Record the outcome of a login attempt for `key`."""
        with self._lock:
            if success:
                self.store.delete(key)
                return

            now = self._clock()
            self._sweep(now)
            record = self.store.get(key)
            if record is None:
                self.store.set(key, RateLimitRecord(count=1, last_attempt=now))
            else:
                record.count += 1
                record.last_attempt = now
                self.store.set(key, record)

    def _expired(self, record: RateLimitRecord, now: float) -> bool:
        if record.blocked_until:
            return record.blocked_until <= now
        return now - record.last_attempt > self.window_seconds

    def _sweep(self, now: float) -> None:
        """Drop served blocks and stale windows, at most once per window. Caller holds the lock."""
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        self.store.prune(lambda record: self._expired(record, now))


class RequestRateLimiter:
    """Fixed window counter: at most `max_requests` per `window_seconds` per key."""

    def __init__(
        self,
        max_requests: int = config.CHAT_MAX_REQUESTS,
        window_seconds: int = config.CHAT_WINDOW_SECONDS,
        prefix: str = "chat",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix
        self._clock = clock
        self._windows: Dict[str, Dict[str, float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def allow(self, identifier: str) -> bool:
        key = f"{self.prefix}:{identifier}"
        with self._lock:
            now = self._clock()
            self._sweep(now)
            window = self._windows.get(key)

            if window is None or now > window["reset_at"]:
                self._windows[key] = {"count": 1, "reset_at": now + self.window_seconds}
                return True

            if window["count"] >= self.max_requests:
                return False

            window["count"] += 1
            return True

    def _sweep(self, now: float) -> None:
        """Drop finished windows, at most once per window. Caller holds the lock."""
        if now - self._last_sweep < self.window_seconds:
            return
        self._last_sweep = now
        for key in [k for k, w in self._windows.items() if now > w["reset_at"]]:
            del self._windows[key]
