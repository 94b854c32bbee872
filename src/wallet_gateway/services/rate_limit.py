"""Fixed-window rate limiting per operation category."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from wallet_gateway.core.errors import FailurePolicy, RateLimited, StoreUnavailable
from wallet_gateway.core.settings import settings
from wallet_gateway.core.time import Clock, system_clock, to_ms
from wallet_gateway.stores import BackingStore, get_store

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "rl:"


def wallet_identifier(address: str) -> str:
    """Return the limiter identity shared by every wallet-scoped caller."""
    return f"wallet:{address.lower()}"


@dataclass(frozen=True)
class RateLimitConfig:
    """Allowance for one category: ``max_attempts`` per ``window_ms``."""

    max_attempts: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate-limit check."""

    allowed: bool
    remaining: int
    reset_at: int
    limit: int


class FixedWindowRateLimiter:
    """Counts operations per identifier in fixed, non-sliding windows.

    The counter increment and the capacity comparison happen in one store
    call, so concurrent callers can never both take the last slot.
    """

    def __init__(
        self,
        category: str,
        config: RateLimitConfig,
        store: BackingStore,
        *,
        policy: FailurePolicy = FailurePolicy.FAIL_OPEN,
        clock: Clock = system_clock,
    ) -> None:
        self.category = category
        self.config = config
        self._store = store
        self._policy = policy
        self._clock = clock

    def _key(self, identifier: str) -> str:
        return f"{RATE_LIMIT_PREFIX}{self.category}:{identifier}"

    def _degraded(self, identifier: str, err: StoreUnavailable, now_ms: int) -> RateLimitResult:
        if self._policy is FailurePolicy.FAIL_OPEN:
            logger.warning(
                "Rate limiter %s failing open for %s: %s", self.category, identifier, err
            )
            return RateLimitResult(
                allowed=True,
                remaining=self.config.max_attempts,
                reset_at=now_ms + self.config.window_ms,
                limit=self.config.max_attempts,
            )
        logger.error("Rate limiter %s failing closed for %s: %s", self.category, identifier, err)
        return RateLimitResult(
            allowed=False,
            remaining=0,
            reset_at=now_ms + self.config.window_ms,
            limit=self.config.max_attempts,
        )

    async def allow(self, identifier: str) -> RateLimitResult:
        """Record one attempt for ``identifier`` and report whether it may proceed."""
        now_ms = to_ms(self._clock())
        try:
            count, ttl_ms = await self._store.hit(self._key(identifier), self.config.window_ms)
        except StoreUnavailable as err:
            return self._degraded(identifier, err, now_ms)

        return RateLimitResult(
            allowed=count <= self.config.max_attempts,
            remaining=max(0, self.config.max_attempts - count),
            reset_at=now_ms + ttl_ms,
            limit=self.config.max_attempts,
        )

    async def status(self, identifier: str) -> RateLimitResult:
        """Report the current window for ``identifier`` without consuming it."""
        now_ms = to_ms(self._clock())
        try:
            count, ttl_ms = await self._store.window(self._key(identifier))
        except StoreUnavailable as err:
            return self._degraded(identifier, err, now_ms)

        reset_at = now_ms + ttl_ms if count else now_ms + self.config.window_ms
        return RateLimitResult(
            allowed=count < self.config.max_attempts,
            remaining=max(0, self.config.max_attempts - count),
            reset_at=reset_at,
            limit=self.config.max_attempts,
        )

    async def reset(self, identifier: str) -> None:
        """Forget the window for ``identifier``."""
        await self._store.delete(self._key(identifier))


class RateLimitRegistry:
    """Owns one limiter per configured category."""

    def __init__(
        self,
        store: BackingStore,
        limits: dict[str, tuple[int, int]] | None = None,
        *,
        policy: FailurePolicy = FailurePolicy.FAIL_OPEN,
        clock: Clock = system_clock,
    ) -> None:
        self._clock = clock
        configured = limits if limits is not None else settings.rate_limits
        self._limiters = {
            category: FixedWindowRateLimiter(
                category,
                RateLimitConfig(max_attempts=max_attempts, window_ms=window_ms),
                store,
                policy=policy,
                clock=clock,
            )
            for category, (max_attempts, window_ms) in configured.items()
        }

    @property
    def categories(self) -> list[str]:
        return sorted(self._limiters)

    def get(self, category: str) -> FixedWindowRateLimiter:
        """Return the limiter for ``category``.

        Raises:
            KeyError: If the category is not configured
        """
        try:
            return self._limiters[category]
        except KeyError:
            raise KeyError(f"Unknown rate limit category: {category}") from None

    async def check(self, category: str, identifier: str) -> RateLimitResult:
        """Consume one attempt, raising when the category allowance is exhausted.

        Raises:
            RateLimited: If the attempt exceeds the window's capacity
        """
        result = await self.get(category).allow(identifier)
        if not result.allowed:
            logger.info("Rate limit %s exceeded for %s", category, identifier)
            raise RateLimited(
                category,
                limit=result.limit,
                remaining=result.remaining,
                reset_at=result.reset_at,
                now_ms=to_ms(self._clock()),
            )
        return result

    async def status(self, category: str, identifier: str) -> RateLimitResult:
        return await self.get(category).status(identifier)


def get_rate_limit_registry() -> RateLimitRegistry:
    """Return a registry bound to the process-wide store."""
    return RateLimitRegistry(get_store())
