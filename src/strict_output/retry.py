from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar, Union

from .exceptions import RecoverableOutputError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for the attempt loop."""

    max_attempts: int = 3
    retry_on: tuple[type[Exception], ...] = field(default=(RecoverableOutputError,))

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {self.max_attempts}")


@dataclass(frozen=True)
class Succeeded(Generic[T]):
    """Terminal outcome: one attempt produced a valid result."""

    attempt: int
    value: T


@dataclass(frozen=True)
class RecoverableFailure:
    """Outcome of one attempt that failed in a way worth retrying."""

    attempt: int
    error: Exception


@dataclass(frozen=True)
class Exhausted:
    """Terminal outcome: every attempt failed recoverably."""

    attempts: int
    failures: tuple[RecoverableFailure, ...] = ()

    @property
    def last_error(self) -> Exception | None:
        return self.failures[-1].error if self.failures else None


Outcome = Union[Succeeded[Any], Exhausted]


def _record_failure(attempt: int, error: Exception, config: RetryConfig) -> RecoverableFailure:
    logger.warning(
        "Attempt %d/%d failed: %s: %s",
        attempt + 1,
        config.max_attempts,
        type(error).__name__,
        error,
    )
    raw = getattr(error, "raw", None)
    if raw is not None:
        logger.debug("Invalid response for attempt %d: %s", attempt + 1, raw)
    return RecoverableFailure(attempt=attempt, error=error)


def _exhausted(failures: list[RecoverableFailure], config: RetryConfig) -> Exhausted:
    logger.warning("All %d attempts failed, returning empty result", config.max_attempts)
    return Exhausted(attempts=config.max_attempts, failures=tuple(failures))


def run_attempts(fn: Callable[[int], T], config: RetryConfig) -> Succeeded[T] | Exhausted:
    """Call ``fn(attempt)`` until it succeeds or the attempts run out.

    Exceptions matching ``config.retry_on`` start a fresh attempt right away;
    anything else is fatal and propagates.
    """
    failures: list[RecoverableFailure] = []

    for attempt in range(config.max_attempts):
        try:
            return Succeeded(attempt=attempt, value=fn(attempt))
        except config.retry_on as e:
            failures.append(_record_failure(attempt, e, config))

    return _exhausted(failures, config)


async def arun_attempts(
    fn: Callable[[int], Awaitable[T]],
    config: RetryConfig,
) -> Succeeded[T] | Exhausted:
    """Async version of run_attempts. Attempts are awaited one after another."""
    failures: list[RecoverableFailure] = []

    for attempt in range(config.max_attempts):
        try:
            return Succeeded(attempt=attempt, value=await fn(attempt))
        except config.retry_on as e:
            failures.append(_record_failure(attempt, e, config))

    return _exhausted(failures, config)
