"""Unit tests for TieredFallbackExecutor."""

import asyncio

import pytest

from campaign_resilience.resilience import TieredFallbackExecutor
from campaign_resilience.types import FallbackConfig, FallbackTier, FatalFallbackError


class Tier:
    """Configurable tier function that counts its calls."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def template():
    return "template-result"


@pytest.fixture
def config():
    return FallbackConfig(max_retries=2, timeout=1.0, backoff_base=1.0, failure_threshold=5, cooldown=60.0)


@pytest.fixture
def executor(config, clock, recording_sleep):
    return TieredFallbackExecutor(config, clock=clock, sleep=recording_sleep)


class TestTierSelection:
    """Test advanced -> basic -> template ordering."""

    @pytest.mark.asyncio
    async def test_advanced_success(self, executor):
        result = await executor.execute_with_fallback(Tier("adv"), Tier("basic"), template)

        assert result.data == "adv"
        assert result.tier is FallbackTier.ADVANCED
        assert result.was_downgraded is False
        assert result.original_error is None

    @pytest.mark.asyncio
    async def test_downgrade_to_basic(self, executor, recording_sleep):
        advanced = Tier(error=RuntimeError("quota exceeded"))
        result = await executor.execute_with_fallback(advanced, Tier("basic"), template)

        assert result.data == "basic"
        assert result.tier is FallbackTier.BASIC
        assert result.was_downgraded is True
        assert result.original_error == "quota exceeded"
        assert advanced.calls == 3
        assert recording_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_downgrade_to_template(self, executor):
        result = await executor.execute_with_fallback(
            Tier(error=RuntimeError("adv down")),
            Tier(error=RuntimeError("basic down")),
            template,
        )

        assert result.data == "template-result"
        assert result.tier is FallbackTier.TEMPLATE
        assert result.was_downgraded is True
        assert result.original_error == "basic down"

    @pytest.mark.asyncio
    async def test_async_template_is_awaited(self, executor):
        async def async_template():
            return "async-template"

        result = await executor.execute_with_fallback(
            Tier(error=RuntimeError("x")), Tier(error=RuntimeError("y")), async_template
        )
        assert result.data == "async-template"

    @pytest.mark.asyncio
    async def test_template_failure_is_fatal(self, executor):
        def broken_template():
            raise ValueError("template bug")

        with pytest.raises(FatalFallbackError) as exc_info:
            await executor.execute_with_fallback(
                Tier(error=RuntimeError("adv down")),
                Tier(error=RuntimeError("basic down")),
                broken_template,
            )

        assert "basic down" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, clock, recording_sleep):
        executor = TieredFallbackExecutor(
            FallbackConfig(max_retries=0, timeout=0.01), clock=clock, sleep=recording_sleep
        )

        async def hangs():
            await asyncio.sleep(1.0)

        result = await executor.execute_with_fallback(hangs, Tier("basic"), template)
        assert result.tier is FallbackTier.BASIC
        assert "timed out" in result.original_error


class TestEnabledTiers:
    """Test enabled_tiers configuration."""

    @pytest.mark.asyncio
    async def test_disabled_tier_is_skipped(self, clock, recording_sleep):
        executor = TieredFallbackExecutor(
            FallbackConfig(enabled_tiers=[FallbackTier.BASIC, FallbackTier.TEMPLATE]),
            clock=clock,
            sleep=recording_sleep,
        )
        advanced = Tier("adv")

        result = await executor.execute_with_fallback(advanced, Tier("basic"), template)
        assert result.tier is FallbackTier.BASIC
        assert advanced.calls == 0

    @pytest.mark.asyncio
    async def test_no_enabled_tiers_available(self, clock, recording_sleep):
        executor = TieredFallbackExecutor(
            FallbackConfig(max_retries=0, enabled_tiers=[FallbackTier.ADVANCED]),
            clock=clock,
            sleep=recording_sleep,
        )

        with pytest.raises(FatalFallbackError, match="No enabled fallback tiers available"):
            await executor.execute_with_fallback(Tier(error=RuntimeError("down")), Tier("basic"), template)


class TestTierHealth:
    """Test unhealthy marking, cooldown and self-healing."""

    async def _fail_advanced(self, executor, times):
        for _ in range(times):
            await executor.execute_with_fallback(Tier(error=RuntimeError("down")), Tier("basic"), template)

    @pytest.mark.asyncio
    async def test_tier_marked_unhealthy_after_threshold(self, executor, clock):
        await self._fail_advanced(executor, 5)

        status = executor.get_health_status()["advanced"]
        assert status["healthy"] is False
        assert status["consecutive_failures"] == 5
        assert status["unhealthy_until"] == clock.now + 60.0

    @pytest.mark.asyncio
    async def test_unhealthy_tier_skipped_until_cooldown(self, executor, clock):
        await self._fail_advanced(executor, 5)
        advanced = Tier("adv")

        clock.advance(30)
        result = await executor.execute_with_fallback(advanced, Tier("basic"), template)
        assert result.tier is FallbackTier.BASIC
        assert advanced.calls == 0

        clock.advance(30)
        result = await executor.execute_with_fallback(advanced, Tier("basic"), template)
        assert result.tier is FallbackTier.ADVANCED
        assert advanced.calls == 1
        assert executor.get_health_status()["advanced"]["consecutive_failures"] == 0

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, executor):
        await self._fail_advanced(executor, 4)
        await executor.execute_with_fallback(Tier("adv"), Tier("basic"), template)

        status = executor.get_health_status()["advanced"]
        assert status["healthy"] is True
        assert status["consecutive_failures"] == 0

    def test_template_has_no_health_state(self, executor):
        assert set(executor.get_health_status()) == {"advanced", "basic"}


class TestAdminOverrides:
    """Test disable/enable/reset."""

    @pytest.mark.asyncio
    async def test_disabled_tier_never_self_heals(self, executor, clock):
        executor.disable_tier(FallbackTier.ADVANCED)
        clock.advance(10_000)
        advanced = Tier("adv")

        result = await executor.execute_with_fallback(advanced, Tier("basic"), template)
        assert result.tier is FallbackTier.BASIC
        assert advanced.calls == 0

    @pytest.mark.asyncio
    async def test_enable_tier_restores(self, executor):
        executor.disable_tier(FallbackTier.ADVANCED)
        executor.enable_tier(FallbackTier.ADVANCED)

        result = await executor.execute_with_fallback(Tier("adv"), Tier("basic"), template)
        assert result.tier is FallbackTier.ADVANCED

    @pytest.mark.asyncio
    async def test_reset_health(self, executor):
        await TestTierHealth()._fail_advanced(executor, 5)
        executor.reset_health()

        assert executor.get_health_status()["advanced"]["healthy"] is True

    def test_template_tier_cannot_be_toggled(self, executor):
        with pytest.raises(ValueError):
            executor.disable_tier(FallbackTier.TEMPLATE)
        with pytest.raises(ValueError):
            executor.enable_tier("template")
