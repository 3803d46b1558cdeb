"""
Decorators for retry and circuit breaker protection.

Wraps async feature-code functions without changing their signatures. Unlike a
global registry lookup, each decorator is handed the explicit executor or
breaker it should use, so tests and separate service graphs stay isolated.
"""

import inspect
import functools
from typing import Any, Callable, Optional, TypeVar

from campaign_resilience.resilience.circuit_breaker import CircuitBreaker
from campaign_resilience.resilience.retry_executor import RetryExecutor
from campaign_resilience.types.resilience_models import RetryPolicy

F = TypeVar('F', bound=Callable[..., Any])


def _require_coroutine(func: Callable[..., Any], decorator_name: str) -> None:
    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"@{decorator_name} only supports async functions, got {func.__name__}")


def with_retry(
    policy: Optional[RetryPolicy] = None,
    executor: Optional[RetryExecutor] = None,
) -> Callable[[F], F]:
    """
    Decorator to add retry logic with exponential backoff to async functions.

    Args:
        policy: Retry policy applied to every call
        executor: Executor to run under; a fresh one is created if omitted

    Returns:
        Decorated function with retry capability
    """
    retry_executor = executor or RetryExecutor()

    def decorator(func: F) -> F:
        _require_coroutine(func, "with_retry")

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            return await retry_executor.execute(lambda: func(*args, **kwargs), policy)

        return async_wrapper

    return decorator


def with_circuit_breaker(breaker: CircuitBreaker) -> Callable[[F], F]:
    """
    Decorator to add circuit breaker protection to async functions.

    Args:
        breaker: Breaker guarding the dependency the function calls

    Returns:
        Decorated function with circuit breaker protection
    """

    def decorator(func: F) -> F:
        _require_coroutine(func, "with_circuit_breaker")

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            return await breaker.execute(lambda: func(*args, **kwargs))

        return async_wrapper

    return decorator


def with_dependency_resilience(
    breaker: CircuitBreaker,
    policy: Optional[RetryPolicy] = None,
    executor: Optional[RetryExecutor] = None,
) -> Callable[[F], F]:
    """
    Decorator combining retry policy and circuit breaker.

    Retry is applied inside the breaker, so the breaker sees one outcome per
    logical call rather than one per attempt.
    """

    def decorator(func: F) -> F:
        retry_protected = with_retry(policy=policy, executor=executor)(func)
        return with_circuit_breaker(breaker)(retry_protected)

    return decorator
