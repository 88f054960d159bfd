"""Per-address admission control for submissions.

Each source address gets a token bucket. Buckets live in a registry
guarded by one lock; entries idle for longer than the TTL are removed
by a periodic background sweep.
"""

import asyncio
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Collection, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from intake.app.core.logging import get_log_context, get_logger
from intake.app.exceptions import RateLimitedError

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 10 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 2 * 60


@dataclass
class TokenBucket:
    """Token bucket state for a single address."""
    tokens: float
    last_update: float


@dataclass
class ClientEntry:
    """Registry entry: the address's bucket plus when it was last seen."""
    bucket: TokenBucket
    last_seen: float = field(default=0.0)


class IPRateLimiter:
    """In-memory token bucket limiter keyed by source address.

    All reads and writes of the registry, including the refill and
    decrement of a bucket, happen under ``_lock``. Nothing inside the
    critical section performs I/O, so a plain ``threading.Lock`` is safe
    to take from request handlers and the sweep task alike.

    Usage:
        limiter = IPRateLimiter(rate=1.0, burst=5)
        await limiter.start()          # periodic eviction sweep
        if not limiter.allow("203.0.113.5"):
            ...                        # reject with 429
        await limiter.stop()
    """

    def __init__(
        self,
        rate: float = 1.0,
        burst: int = 5,
        ttl: float = DEFAULT_TTL_SECONDS,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the limiter.

        Args:
            rate: Tokens added per second
            burst: Bucket capacity
            ttl: Seconds an address may stay idle before eviction
            sweep_interval: Seconds between eviction sweeps
            clock: Monotonic time source, injectable for tests

        Raises:
            ValueError: If rate, burst, ttl or sweep_interval is not positive
        """
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst <= 0:
            raise ValueError("burst must be positive")
        if ttl <= 0 or sweep_interval <= 0:
            raise ValueError("ttl and sweep_interval must be positive")

        self.rate = float(rate)
        self.burst = int(burst)
        self.ttl = float(ttl)
        self.sweep_interval = float(sweep_interval)
        self._clock = clock

        self._clients: Dict[str, ClientEntry] = {}
        self._lock = threading.Lock()

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    def allow(self, address: str) -> bool:
        """Spend one token for ``address`` if one is available.

        The bucket is refilled for the time elapsed since its last update
        (capped at ``burst``) before the check. First contact starts with
        a full bucket.
        """
        with self._lock:
            now = self._clock()
            entry = self._clients.get(address)
            if entry is None:
                entry = ClientEntry(bucket=TokenBucket(tokens=float(self.burst), last_update=now))
                self._clients[address] = entry

            entry.last_seen = now
            bucket = entry.bucket

            elapsed = max(0.0, now - bucket.last_update)
            bucket.tokens = min(float(self.burst), bucket.tokens + elapsed * self.rate)
            bucket.last_update = now

            if bucket.tokens >= 1.0:
                bucket.tokens -= 1.0
                return True
            return False

    def retry_after(self, address: str) -> int:
        """Whole seconds until ``address`` will have a token again."""
        with self._lock:
            entry = self._clients.get(address)
            if entry is None:
                return 0
            missing = 1.0 - entry.bucket.tokens
        if missing <= 0:
            return 0
        return max(1, math.ceil(missing / self.rate))

    def tokens(self, address: str) -> Optional[float]:
        """Current token count for ``address`` (without refilling)."""
        with self._lock:
            entry = self._clients.get(address)
            return entry.bucket.tokens if entry is not None else None

    def cleanup(self) -> int:
        """Evict entries idle for longer than the TTL.

        Returns:
            Number of evicted entries
        """
        with self._lock:
            cutoff = self._clock() - self.ttl
            expired = [
                address for address, entry in self._clients.items()
                if entry.last_seen < cutoff
            ]
            for address in expired:
                del self._clients[address]
        if expired:
            logger.debug(f"Evicted {len(expired)} idle rate limit entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def __contains__(self, address: object) -> bool:
        with self._lock:
            return address in self._clients

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        """Start the background eviction sweep."""
        if self._task is not None:
            logger.debug("Rate limit sweep already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_sweeps(self._stop_event))
        logger.info(f"Started rate limit sweep (interval: {self.sweep_interval}s, ttl: {self.ttl}s)")

    async def stop(self) -> None:
        """Stop the background sweep. No final sweep is performed."""
        if self._task is None:
            return

        self._stop_event.set()

        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Rate limit sweep did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            self._stop_event = None
            logger.info("Stopped rate limit sweep")

    async def _run_sweeps(self, stop_event: asyncio.Event) -> None:
        """Sweep every interval until the stop event fires."""
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.sweep_interval)
            except asyncio.TimeoutError:
                # Interval elapsed
                self.cleanup()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Gate POST requests to the submission paths through the limiter.

    The key is the transport peer host. Forwarded headers are supplied by
    the caller and are not trusted for admission. Pre-flight and other
    non-POST requests pass through ungated; the route answers them.
    """

    def __init__(
        self,
        app,
        limiter: IPRateLimiter,
        paths: Collection[str] = ("/submit", "/submib"),
        methods: Collection[str] = ("POST",),
    ):
        super().__init__(app)
        self.limiter = limiter
        self.paths = frozenset(paths)
        self.methods = frozenset(m.upper() for m in methods)

    @staticmethod
    def _get_client_key(request: Request) -> str:
        return request.client.host if request.client else ""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with admission control."""
        if request.method not in self.methods or request.url.path not in self.paths:
            return await call_next(request)

        key = self._get_client_key(request)
        if not self.limiter.allow(key):
            exc = RateLimitedError(retry_after=self.limiter.retry_after(key) or 1)
            logger.warning(
                "Rate limit exceeded",
                extra=get_log_context(
                    request_id=getattr(request.state, "request_id", None),
                    client_ip=key,
                    path=request.url.path,
                ),
            )
            return PlainTextResponse(
                exc.message,
                status_code=exc.status_code,
                headers={"Retry-After": str(exc.retry_after)},
            )

        return await call_next(request)
