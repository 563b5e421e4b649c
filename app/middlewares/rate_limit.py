# app/middlewares/rate_limit.py
import math
import time
from typing import Dict, Optional, Tuple

from fastapi import Request
from redis.asyncio import Redis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger(__name__)

Rule = Tuple[int, int]  # (max requests, window seconds)

EXEMPT_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

# expired in-memory windows are swept at most this often
PRUNE_INTERVAL_SECONDS = 60


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window limiter keyed on client (IP + user agent) and path.

    Paths listed in the rules get their own window, everything else falls under "*".
    Counts live in Redis when REDIS_URL is set, otherwise in process memory.
    """

    def __init__(self, app, rules: Optional[Dict[str, Rule]] = None, use_memory: Optional[bool] = None):
        super().__init__(app)
        self.rules = rules if rules is not None else settings.rate_limit_rules
        if use_memory is None:
            use_memory = settings.FORCE_IN_MEMORY_RATE_LIMITER or not settings.REDIS_URL
        self.use_memory = use_memory
        self.redis: Optional[Redis] = None
        self.memory_store: Dict[str, Tuple[int, float]] = {}
        self._next_prune = 0.0

    @staticmethod
    def client_key(request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
        else:
            ip = request.client.host if request.client else "testclient"
        return f"{ip}-{request.headers.get('user-agent', '')}"

    def rule_for(self, path: str) -> Tuple[str, Optional[Rule]]:
        if path in self.rules:
            return path, self.rules[path]
        return "*", self.rules.get("*")

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "testclient"
        if client_ip in settings.WHITELIST_IPS:
            return await call_next(request)

        scope, rule = self.rule_for(path)
        if rule is None:
            return await call_next(request)

        limit, window = rule
        key = f"rl:{self.client_key(request)}:{scope}"

        if self.use_memory:
            retry_after = self._hit_memory(key, limit, window)
        else:
            retry_after = await self._hit_redis(key, limit, window)

        if retry_after is not None:
            logger.warning(f"Rate limit exceeded - key: {key}, limit: {limit}/{window}s")
            return JSONResponse(
                status_code=429,
                content={
                    "status_code": 429,
                    "status": "error",
                    "message": f"Rate limit exceeded, retry in {retry_after} seconds.",
                    "data": {"expires_in": retry_after},
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)

    def _prune_memory(self, now: float) -> None:
        if now < self._next_prune:
            return
        expired = [key for key, (_, expiry) in self.memory_store.items() if expiry < now]
        for key in expired:
            del self.memory_store[key]
        self._next_prune = now + PRUNE_INTERVAL_SECONDS

    def _hit_memory(self, key: str, limit: int, window: int) -> Optional[int]:
        now = time.time()
        self._prune_memory(now)
        count, expiry = self.memory_store.get(key, (0, now + window))

        if now > expiry:
            count = 0
            expiry = now + window

        if count >= limit:
            return max(1, math.ceil(expiry - now))

        self.memory_store[key] = (count + 1, expiry)
        return None

    async def _hit_redis(self, key: str, limit: int, window: int) -> Optional[int]:
        if self.redis is None:
            self.redis = Redis.from_url(settings.REDIS_URL, decode_responses=True)

        try:
            current = await self.redis.incr(key)
            if current == 1:
                await self.redis.expire(key, window)
            if current > limit:
                ttl = await self.redis.ttl(key)
                return max(1, ttl)
        except Exception as e:
            # skip limiting while the backend is unavailable
            logger.error(f"Rate limiter backend error, allowing request: {e}")
        return None
