"""
Circuit breaker implementation for per-dependency failure protection.

Prevents cascading failures by rejecting calls to a dependency that keeps
failing, then probing it with a single trial call once a recovery timeout has
passed.
"""

import inspect
import time
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from loguru import logger

from campaign_resilience.logging_config import dependency_scope
from campaign_resilience.types.resilience_models import CircuitBreakerConfig
from campaign_resilience.types.resilience_types import CircuitOpenError, CircuitState


class CircuitBreaker:
    """
    Circuit breaker for one logical dependency.

    Implements three states:
    - CLOSED: Normal operation, counting consecutive failures
    - OPEN: Rejecting calls until the recovery timeout elapses
    - HALF_OPEN: Admitting exactly one trial call

    The OPEN -> HALF_OPEN check happens lazily when a call arrives. Admission
    of the trial is a check-and-set on ``_trial_in_flight`` with no await in
    between, so under cooperative scheduling only one concurrent caller can
    become the trial; the others fail fast as if the circuit were OPEN.

    Every open, close and reset starts a new generation. A call only affects
    the breaker if it finishes in the generation it was admitted under, so a
    slow CLOSED-era call cannot decide the outcome of a HALF_OPEN trial, and
    only the trial can move the breaker out of HALF_OPEN.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker with configuration."""
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        self._generation = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def opened_at(self) -> Optional[float]:
        return self._opened_at

    def _recovery_elapsed(self, now: float) -> bool:
        return self._opened_at is not None and now - self._opened_at >= self.config.recovery_timeout

    def _transition_to(self, new_state: CircuitState) -> None:
        if new_state is self._state:
            return
        logger.info(f"Circuit '{self.name}' {self._state.value} -> {new_state.value}")
        self._state = new_state

    def _reject(self, now: float) -> CircuitOpenError:
        retry_after = None
        if self._opened_at is not None:
            retry_after = max(0.0, self.config.recovery_timeout - (now - self._opened_at))
        return CircuitOpenError(
            f"Circuit breaker '{self.name}' is open",
            dependency=self.name,
            retry_after=retry_after,
        )

    def _admit(self) -> Tuple[int, bool]:
        """Decide whether this call may proceed.

        Returns:
            The generation the call was admitted under, and whether it is the HALF_OPEN trial
        """
        now = self._clock()

        if self._state is CircuitState.OPEN:
            if not self._recovery_elapsed(now):
                raise self._reject(now)
            self._transition_to(CircuitState.HALF_OPEN)

        if self._state is CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise self._reject(now)
            self._trial_in_flight = True
            return self._generation, True

        return self._generation, False

    async def execute(self, operation: Callable[[], Any]) -> Any:
        """
        Execute ``operation`` with circuit breaker protection.

        Args:
            operation: Zero-argument callable returning a value or an awaitable

        Returns:
            Result of the operation

        Raises:
            CircuitOpenError: If the circuit is open, or a trial is already in flight
            Exception: Original exception if the operation fails
        """
        generation, is_trial = self._admit()
        try:
            with dependency_scope(self.name):
                result = operation()
                if inspect.isawaitable(result):
                    result = await result
        except CircuitOpenError:
            # A nested breaker rejected the call; our dependency was never reached
            raise
        except Exception as e:
            self._record_failure(e, generation, is_trial)
            raise
        else:
            self._record_success(generation, is_trial)
            return result
        finally:
            if is_trial and generation == self._generation:
                self._trial_in_flight = False

    def _owns_trial(self, generation: int) -> bool:
        return self._state is CircuitState.HALF_OPEN and generation == self._generation

    def _is_current(self, generation: int) -> bool:
        # Outcomes of calls admitted before the last open/close/reset are dropped
        return self._state is CircuitState.CLOSED and generation == self._generation

    def _record_success(self, generation: int, is_trial: bool) -> None:
        if is_trial:
            if self._owns_trial(generation):
                self._close()
            return
        if self._is_current(generation):
            self._failure_count = 0

    def _record_failure(self, error: Exception, generation: int, is_trial: bool) -> None:
        if is_trial:
            if self._owns_trial(generation):
                self._open()
                logger.warning(f"Circuit '{self.name}' trial failed: {error}")
            return

        if not self._is_current(generation):
            logger.debug(f"Circuit '{self.name}' ignoring outcome of call admitted earlier: {error}")
            return

        self._failure_count += 1
        logger.debug(
            f"Circuit '{self.name}' failure {self._failure_count}/"
            f"{self.config.failure_threshold}: {error}"
        )
        if self._failure_count >= self.config.failure_threshold:
            self._open()
            logger.warning(
                f"Circuit '{self.name}' opened after {self.config.failure_threshold} "
                f"consecutive failures"
            )

    def _open(self) -> None:
        self._transition_to(CircuitState.OPEN)
        self._opened_at = self._clock()
        self._failure_count = 0
        self._trial_in_flight = False
        self._generation += 1

    def _close(self) -> None:
        self._transition_to(CircuitState.CLOSED)
        self._opened_at = None
        self._failure_count = 0
        self._trial_in_flight = False
        self._generation += 1

    def get_status(self) -> Dict[str, Any]:
        """Get current circuit breaker status."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "opened_at": self._opened_at,
            "trial_in_flight": self._trial_in_flight,
            "failure_threshold": self.config.failure_threshold,
            "recovery_timeout": self.config.recovery_timeout,
        }

    def reset(self) -> None:
        """Manually reset circuit breaker to CLOSED state."""
        self._transition_to(CircuitState.CLOSED)
        self._failure_count = 0
        self._opened_at = None
        self._trial_in_flight = False
        self._generation += 1


class CircuitBreakerRegistry:
    """One circuit breaker per dependency name, owned by whoever composes the service graph."""

    def __init__(
        self,
        default_config: Optional[CircuitBreakerConfig] = None,
        dependencies: Iterable[str] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self._default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        for name in dependencies:
            self.get_breaker(name)

    def get_breaker(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
    ) -> CircuitBreaker:
        """Get or create the circuit breaker for a dependency."""
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(
                name, config or self._default_config, clock=self._clock
            )
        return self._breakers[name]

    async def call_with_breaker(self, name: str, operation: Callable[[], Any]) -> Any:
        """Execute ``operation`` through the named dependency's breaker."""
        return await self.get_breaker(name).execute(operation)

    def get_all_status(self) -> Dict[str, Dict[str, Any]]:
        """Get status of all circuit breakers."""
        return {name: breaker.get_status() for name, breaker in self._breakers.items()}

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        for breaker in self._breakers.values():
            breaker.reset()

    def __contains__(self, name: str) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)
