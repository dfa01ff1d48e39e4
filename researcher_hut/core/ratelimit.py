import threading
from collections import deque
from collections.abc import Callable, Hashable
from datetime import datetime, timedelta, timezone

from slowapi import Limiter
from slowapi.util import get_remote_address

from researcher_hut.core.config import settings

# coarse per-IP throttle over the whole API surface
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.API_RATE_LIMIT])


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class SlidingWindowRateLimiter:
    """
    Admits at most ``max_requests`` hits per key inside a sliding ``window``.
    In-memory and per-process; counters are lost on restart.
    """

    def __init__(
        self,
        max_requests: int,
        window: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._hits: dict[Hashable, deque[datetime]] = {}
        self._next_sweep: datetime | None = None
        self._lock = threading.Lock()

    def hit(self, key: Hashable) -> bool:
        """Records a request for ``key``; returns False when it is over the limit."""
        now = self._clock()
        cutoff = now - self.window
        with self._lock:
            if self._next_sweep is None or now >= self._next_sweep:
                self._sweep(cutoff)
                self._next_sweep = now + self.window
            hits = self._hits.setdefault(key, deque())
            _trim(hits, cutoff)
            if len(hits) >= self.max_requests:
                return False
            hits.append(now)
            return True

    def _sweep(self, cutoff: datetime) -> None:
        # drops keys whose hits have all left the window
        for key in list(self._hits):
            hits = self._hits[key]
            _trim(hits, cutoff)
            if not hits:
                del self._hits[key]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._next_sweep = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)


def _trim(hits: deque[datetime], cutoff: datetime) -> None:
    while hits and hits[0] <= cutoff:
        hits.popleft()


def build_otp_limiter(clock: Callable[[], datetime] = utcnow) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        max_requests=settings.OTP_RATE_LIMIT,
        window=timedelta(minutes=settings.OTP_RATE_WINDOW_MINUTES),
        clock=clock,
    )
