"""
Tiered fallback executor.

Degrades gracefully across three quality levels:
advanced (primary external call) -> basic (cheaper external call) -> template
(local deterministic computation). Core functionality never blocks on an
upstream outage; callers receive a downgraded but successful result instead.

Each external tier carries a TierHealth record. Five consecutive failures mark
a tier unhealthy and it is skipped until its cooldown has passed. Recovery is
evaluated lazily on the next call, so no background timer is ever scheduled.
"""

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

from campaign_resilience.types.error_types import FatalFallbackError
from campaign_resilience.types.resilience_models import FallbackConfig, FallbackResult, TierHealth
from campaign_resilience.types.resilience_types import MONITORED_TIERS, FallbackTier


class TieredFallbackExecutor:
    """Run an operation at the best tier currently able to serve it."""

    def __init__(
        self,
        config: Optional[FallbackConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or FallbackConfig()
        self._clock = clock
        self._sleep = sleep
        self._health: Dict[FallbackTier, TierHealth] = {}
        self.reset_health()

    async def execute_with_fallback(
        self,
        advanced_fn: Callable[[], Any],
        basic_fn: Callable[[], Any],
        template_fn: Callable[[], Any],
    ) -> FallbackResult:
        """
        Execute with automatic fallback through tiers.

        Args:
            advanced_fn: Primary, highest-quality external call
            basic_fn: Secondary, cheaper external call
            template_fn: Deterministic local fallback; expected never to fail

        Returns:
            FallbackResult naming the tier that produced ``data``

        Raises:
            FatalFallbackError: If the template tier fails or no tier is enabled
        """
        last_error: Optional[Exception] = None

        for tier, fn in ((FallbackTier.ADVANCED, advanced_fn), (FallbackTier.BASIC, basic_fn)):
            if not self._is_eligible(tier):
                logger.debug(f"Skipping {tier.value} tier (disabled or unhealthy)")
                continue

            try:
                data = await self._run_with_retries(fn)
            except Exception as e:
                last_error = e
                self._record_failure(tier)
                logger.warning(f"{tier.value} tier failed, falling back: {e}")
                continue

            self._record_success(tier)
            return FallbackResult(
                data=data,
                tier=tier,
                was_downgraded=tier is not FallbackTier.ADVANCED,
                original_error=str(last_error) if last_error else None,
            )

        if FallbackTier.TEMPLATE not in self.config.enabled_tiers:
            raise FatalFallbackError("No enabled fallback tiers available", last_error=last_error)

        try:
            data = template_fn()
            if inspect.isawaitable(data):
                data = await data
        except Exception as e:
            # Nothing is left to degrade to
            logger.error(f"Template tier failed: {e}")
            raise FatalFallbackError(
                f"All fallback tiers failed. Last error: {last_error or 'Unknown'}",
                last_error=last_error,
            ) from e

        return FallbackResult(
            data=data,
            tier=FallbackTier.TEMPLATE,
            was_downgraded=True,
            original_error=str(last_error) if last_error else None,
        )

    async def _run_with_retries(self, fn: Callable[[], Any]) -> Any:
        """Run ``fn`` up to ``max_retries + 1`` times, each attempt raced against the timeout."""
        last_error: Optional[Exception] = None

        for attempt in range(self.config.max_retries + 1):
            try:
                result = fn()
                if inspect.isawaitable(result):
                    result = await asyncio.wait_for(result, self.config.timeout)
                return result
            except asyncio.TimeoutError:
                last_error = TimeoutError(f"Operation timed out after {self.config.timeout}s")
            except Exception as e:
                last_error = e

            if attempt < self.config.max_retries:
                await self._sleep(self.config.backoff_base * (2 ** attempt))

        raise last_error

    def _is_eligible(self, tier: FallbackTier) -> bool:
        if tier not in self.config.enabled_tiers:
            return False
        return self._health[tier].is_available(self._clock())

    def _record_success(self, tier: FallbackTier) -> None:
        self._health[tier].record_success(self._clock())

    def _record_failure(self, tier: FallbackTier) -> None:
        health = self._health[tier]
        if health.record_failure(self._clock(), self.config.failure_threshold, self.config.cooldown):
            logger.warning(
                f"{tier.value} tier marked unhealthy after {health.consecutive_failures} "
                f"consecutive failures; cooling down for {self.config.cooldown}s"
            )

    def get_health_status(self) -> Dict[str, Dict[str, Any]]:
        """Get current health status of the external tiers."""
        now = self._clock()
        status = {}
        for tier, health in self._health.items():
            health.is_available(now)
            status[tier.value] = health.model_dump()
        return status

    def reset_health(self) -> None:
        """Mark every tier healthy with zero failures (admin override)."""
        self._health = {tier: TierHealth() for tier in MONITORED_TIERS}
        logger.info("Fallback tier health reset")

    def disable_tier(self, tier: FallbackTier) -> None:
        """Force disable a tier until enable_tier() is called (maintenance)."""
        health = self._health[self._monitored(tier)]
        health.healthy = False
        health.unhealthy_until = None
        logger.info(f"{tier.value} tier disabled")

    def enable_tier(self, tier: FallbackTier) -> None:
        """Force enable a tier and clear its failure count."""
        health = self._health[self._monitored(tier)]
        health.healthy = True
        health.consecutive_failures = 0
        health.unhealthy_until = None
        logger.info(f"{tier.value} tier enabled")

    @staticmethod
    def _monitored(tier: Any) -> FallbackTier:
        tier = FallbackTier(tier)
        if tier not in MONITORED_TIERS:
            raise ValueError(f"Tier '{tier.value}' has no health state to change")
        return tier
