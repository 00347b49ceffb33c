"""
Retry strategies for step execution.

Steps are retried in place by the story runner; these strategies only decide
whether another attempt is allowed and how long to wait before it.
"""

from abc import ABC, abstractmethod


class RetryStrategy(ABC):
    """Abstract base class for retry strategies."""

    @abstractmethod
    def get_delay_ms(self, attempt: int) -> int:
        """Calculate delay in milliseconds before the attempt after `attempt`."""
        pass

    @abstractmethod
    def should_retry(self, attempt: int) -> bool:
        """Return True if another attempt may follow attempt number `attempt`."""
        pass

    @property
    @abstractmethod
    def max_attempts(self) -> int:
        pass


class FixedBackoffStrategy(RetryStrategy):
    """Constant delay between attempts, bounded number of retries."""

    def __init__(self, retries: int = 3, delay_ms: int = 1000):
        if retries < 0:
            raise ValueError("retries must be >= 0")
        self.retries = retries
        self.delay_ms = delay_ms

    @property
    def max_attempts(self) -> int:
        return self.retries + 1

    def get_delay_ms(self, attempt: int) -> int:
        return self.delay_ms

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

