import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict

from fastapi import HTTPException, Request, Response, status

TOO_MANY_ATTEMPTS_MESSAGE = "Terlalu banyak percubaan. Sila cuba sebentar lagi."


@dataclass
class RateDecision:
    allowed: bool
    remaining: int
    retry_after: float = 0.0


class SlidingWindowLimiter:
    """In-process sliding window counter keyed by scope and client address.

    Counts live in this process only; a multi-worker deployment limits per worker.
    """

    def __init__(self) -> None:
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = asyncio.Lock()

    async def hit(self, key: str, limit: int, window: int) -> RateDecision:
        now = time.monotonic()
        async with self._lock:
            bucket = self._hits.setdefault(key, deque())
            while bucket and now - bucket[0] > window:
                bucket.popleft()
            if len(bucket) >= limit:
                return RateDecision(False, 0, max(0.0, window - (now - bucket[0])))
            bucket.append(now)
            return RateDecision(True, limit - len(bucket))

    def reset(self) -> None:
        self._hits.clear()


limiter = SlidingWindowLimiter()


def rate_limit_dependency(scope: str, limit: int, window_seconds: int) -> Callable[..., None]:
    async def dependency(request: Request, response: Response) -> None:
        client_ip = request.client.host if request.client else "anonymous"
        decision = await limiter.hit(f"{scope}:{client_ip}", limit, window_seconds)
        if not decision.allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=TOO_MANY_ATTEMPTS_MESSAGE,
                headers={"Retry-After": str(int(decision.retry_after) or window_seconds)},
            )
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)

    return dependency
