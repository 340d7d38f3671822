"""
Fixed-window rate limiting
==========================

Counters are keyed by ``ratelimit:<policy>:<client-key>``. The first request
from a key starts a window of ``window_seconds``; requests are allowed while
the window's count stays within ``max_requests``. Rejections carry a
retry-after equal to the time left in the window.

Policies:
- general: ``rate_limit_max_requests`` per ``rate_limit_window_ms``
- auth: 5 per 15 min
- tracking: ``max_events_per_minute`` per minute
- admin: 200 per 15 min
- password_reset: 3 per hour
- upload: 10 per 15 min

Usage:
    from visitrack.tracking_server.services.ratelimit import rate_limit

    @router.post("/login", dependencies=[Depends(rate_limit("auth"))])
    async def login(...):
        ...
"""

import json
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Request

from visitrack.tracking_server.config import Settings
from visitrack.tracking_server.services.counters import CounterStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Limits for one traffic class."""

    name: str
    window_seconds: float
    max_requests: int
    message: str


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one counted request."""

    allowed: bool
    count: int
    limit: int
    retry_after: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class RateLimitExceeded(Exception):
    """Raised by the rate-limit dependency; rendered as a 429."""

    def __init__(self, policy: RateLimitPolicy, retry_after: int) -> None:
        super().__init__(policy.message)
        self.policy = policy
        self.retry_after = retry_after


def build_policies(settings: Settings) -> dict[str, RateLimitPolicy]:
    """Build the policy table, with configurable general and tracking limits."""
    policies = [
        RateLimitPolicy(
            name="general",
            window_seconds=settings.rate_limit_window_ms / 1000,
            max_requests=settings.rate_limit_max_requests,
            message="Too many requests from this IP, please try again later.",
        ),
        RateLimitPolicy(
            name="auth",
            window_seconds=15 * 60,
            max_requests=5,
            message="Too many authentication attempts, please try again later.",
        ),
        RateLimitPolicy(
            name="tracking",
            window_seconds=60,
            max_requests=settings.max_events_per_minute,
            message="Too many tracking events, please slow down.",
        ),
        RateLimitPolicy(
            name="admin",
            window_seconds=15 * 60,
            max_requests=200,
            message="Too many admin requests, please try again later.",
        ),
        RateLimitPolicy(
            name="password_reset",
            window_seconds=60 * 60,
            max_requests=3,
            message="Too many password reset attempts, please try again later.",
        ),
        RateLimitPolicy(
            name="upload",
            window_seconds=15 * 60,
            max_requests=10,
            message="Too many file uploads, please try again later.",
        ),
    ]
    return {policy.name: policy for policy in policies}


class RateLimiter:
    """Applies policies against a shared counter store."""

    def __init__(self, store: CounterStore, policies: dict[str, RateLimitPolicy]) -> None:
        self.store = store
        self.policies = policies

    def policy(self, name: str) -> RateLimitPolicy:
        return self.policies[name]

    async def hit(self, policy: RateLimitPolicy, client_key: str) -> RateLimitDecision:
        """Count one request from ``client_key`` and decide whether to allow it.

        Every hit increments, so a window never admits more than
        ``max_requests`` no matter how many requests race on the same key.
        """
        key = f"ratelimit:{policy.name}:{client_key}"
        count = await self.store.incr(key, policy.window_seconds)
        if count <= policy.max_requests:
            return RateLimitDecision(True, count, policy.max_requests, 0)

        remaining = await self.store.ttl(key)
        retry_after = min(
            math.ceil(policy.window_seconds),
            max(1, math.ceil(remaining)),
        )
        return RateLimitDecision(False, count, policy.max_requests, retry_after)


def client_key(request: Request, trust_forwarded_for: bool = False) -> str:
    """Network identity of the caller."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client is None:
        return "unknown"
    return request.client.host


async def _tracking_id(request: Request) -> str | None:
    try:
        body = await request.json()
    except (ValueError, UnicodeDecodeError):
        return None
    if isinstance(body, dict):
        value = body.get("trackingId")
        return value if isinstance(value, str) else None
    return None


def rate_limit(policy_name: str) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency enforcing the named policy.

    The limiter and settings are read from ``request.app.state``.
    """

    async def dependency(request: Request) -> None:
        limiter: RateLimiter = request.app.state.rate_limiter
        settings: Settings = request.app.state.settings
        policy = limiter.policy(policy_name)
        ip = client_key(request, settings.trust_forwarded_for)

        decision = await limiter.hit(policy, ip)
        if decision.allowed:
            return

        extra = {
            "ip": ip,
            "user_agent": request.headers.get("user-agent", ""),
            "path": request.url.path,
        }
        if policy_name == "tracking" and request.method == "POST":
            extra["tracking_id"] = await _tracking_id(request)
        logger.warning(
            "Rate limit %r exceeded for IP %s: %s",
            policy.name,
            ip,
            json.dumps(extra),
        )
        raise RateLimitExceeded(policy, decision.retry_after)

    return dependency
