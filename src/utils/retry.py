"""Bounded retry helpers for flaky external API calls."""

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """How many times to try an async call and how long to wait in between.

    With ``backoff_factor=1.0`` every wait is ``base_delay`` (fixed backoff).
    Larger factors grow the delay geometrically, capped at ``max_delay``.
    """

    max_attempts: int = 3
    base_delay: float = 3.0
    backoff_factor: float = 1.0
    max_delay: float = 60.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    @classmethod
    def from_config(cls, config: dict) -> "RetryPolicy":
        return cls(
            max_attempts=int(config.get("generation_max_attempts", 3)),
            base_delay=float(config.get("generation_retry_delay", 3.0)),
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""
        delay = self.base_delay * (self.backoff_factor ** (attempt - 1))
        return min(delay, self.max_delay)

    async def call(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        description: str = "",
        **kwargs: Any,
    ) -> T:
        """Await ``fn(*args, **kwargs)`` until it succeeds or attempts run out.

        Raises:
            The last exception raised by ``fn`` once every attempt has failed.
        """
        label = description or getattr(fn, "__name__", "call")
        last_error: BaseException | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await fn(*args, **kwargs)
            except self.retry_on as e:
                last_error = e
                if attempt >= self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    f"{label} failed (attempt {attempt}/{self.max_attempts}): {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        logger.error(f"{label} failed after {self.max_attempts} attempts: {last_error}")
        assert last_error is not None
        raise last_error


def retry_api_call(
    max_retries: int = 3,
    base_delay: float = 2.0,
    backoff_factor: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
):
    """Decorator that retries an async function with a :class:`RetryPolicy`.

    Args:
        max_retries: Total attempts including the first call
        base_delay: Seconds between attempts
        backoff_factor: Multiplier applied to the delay after each failure
        retry_on: Exception types that trigger a retry
    """
    policy = RetryPolicy(
        max_attempts=max_retries,
        base_delay=base_delay,
        backoff_factor=backoff_factor,
        retry_on=retry_on,
    )

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs):
            return await policy.call(fn, *args, description=fn.__qualname__, **kwargs)

        wrapper.retry_policy = policy
        return wrapper

    return decorator
