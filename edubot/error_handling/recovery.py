"""
Retry logic for step execution.

A step is re-run a fixed number of times with a fixed pause in between.
Errors marked non-retryable abort the loop on the first failure.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from .exceptions import NonRetryableError, RecoveryError, RunStoppedError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RecoveryAction(Enum):
    """Available recovery actions."""
    RETRY = auto()
    ABORT = auto()


@dataclass
class RecoveryContext:
    """Context information for recovery decisions."""
    error: Exception
    operation_name: str
    attempt_number: int = 0
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    previous_errors: List[Exception] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_time(self) -> timedelta:
        """Get elapsed time since operation started."""
        return datetime.now(timezone.utc) - self.start_time

    @property
    def is_retryable(self) -> bool:
        """Check if the error is retryable."""
        return not isinstance(self.error, (NonRetryableError, RunStoppedError))

    def add_attempt(self, error: Exception) -> None:
        """Add a new attempt with its error."""
        self.attempt_number += 1
        self.previous_errors.append(error)
        self.error = error


class RetryStrategy(ABC):
    """Abstract base class for retry strategies."""

    @abstractmethod
    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay in milliseconds for the given attempt."""
        pass

    @abstractmethod
    def should_retry(self, context: RecoveryContext) -> bool:
        """Determine if operation should be retried."""
        pass


class FixedDelayStrategy(RetryStrategy):
    """Constant delay between a bounded number of attempts."""

    def __init__(self, delay_ms: int = 1000, max_attempts: int = 1):
        self.delay_ms = delay_ms
        self.max_attempts = max(1, max_attempts)

    def get_delay_ms(self, attempt: int) -> int:
        return self.delay_ms

    def should_retry(self, context: RecoveryContext) -> bool:
        """Check if retry should be attempted."""
        return (
            context.is_retryable and
            context.attempt_number < self.max_attempts
        )


class RecoveryManager:
    """Manages error recovery and retry logic."""

    def __init__(self, default_strategy: Optional[RetryStrategy] = None):
        self.default_strategy = default_strategy or FixedDelayStrategy()
        self._recovery_stats: Dict[str, Dict[str, Any]] = {}

    async def execute_with_recovery(
        self,
        operation: Callable[..., Awaitable[T]],
        operation_name: str,
        *args,
        retry_strategy: Optional[RetryStrategy] = None,
        **kwargs
    ) -> T:
        """
        Execute an operation with automatic retry.

        Args:
            operation: Async function to execute
            operation_name: Name for logging/tracking
            retry_strategy: Custom retry strategy (uses default if None)
            *args, **kwargs: Arguments for the operation

        Returns:
            Result from the first successful attempt

        Raises:
            RunStoppedError: Propagated untouched
            RecoveryError: If every attempt failed
        """
        strategy = retry_strategy or self.default_strategy
        context = RecoveryContext(
            error=Exception("Not started"),
            operation_name=operation_name
        )

        while True:
            try:
                result = await operation(*args, **kwargs)
                self._record_success(context)
                return result

            except RunStoppedError:
                raise

            except Exception as e:
                context.add_attempt(e)
                action = self._determine_recovery_action(context, strategy)

                if action == RecoveryAction.RETRY:
                    delay_ms = strategy.get_delay_ms(context.attempt_number)
                    logger.info(
                        f"Retrying {operation_name} after {delay_ms}ms",
                        extra={
                            "operation": operation_name,
                            "attempt": context.attempt_number + 1,
                            "error": str(e),
                        }
                    )
                    await asyncio.sleep(delay_ms / 1000)
                    continue

                self._record_failure(context)
                raise RecoveryError(
                    f"All recovery attempts failed for {operation_name}",
                    recovery_strategy=strategy.__class__.__name__,
                    attempts=context.attempt_number,
                    original_error=e
                ) from e

    def _determine_recovery_action(
        self,
        context: RecoveryContext,
        strategy: RetryStrategy
    ) -> RecoveryAction:
        if strategy.should_retry(context):
            return RecoveryAction.RETRY
        return RecoveryAction.ABORT

    def _record_success(self, context: RecoveryContext) -> None:
        """Record successful operation statistics."""
        stats = self._recovery_stats.setdefault(
            context.operation_name,
            {"successes": 0, "failures": 0, "retries": 0}
        )
        stats["successes"] += 1
        stats["retries"] += context.attempt_number

    def _record_failure(self, context: RecoveryContext) -> None:
        """Record failed operation statistics."""
        stats = self._recovery_stats.setdefault(
            context.operation_name,
            {"successes": 0, "failures": 0, "retries": 0}
        )
        stats["failures"] += 1
        stats["retries"] += context.attempt_number - 1

    def get_statistics(self) -> Dict[str, Dict[str, Any]]:
        """Get recovery statistics for all operations."""
        return self._recovery_stats.copy()

    def reset_statistics(self) -> None:
        """Reset all recovery statistics."""
        self._recovery_stats.clear()
