"""
Exponential backoff for interactive login retries.

Computes delays as: min(base * multiplier^attempt, max_delay) + jitter.
Call reset() after a successful operation to zero the attempt counter.
"""

import random


class ExponentialBackoff:
    """
    Exponential backoff with optional jitter.

    With ``jitter_range=0`` the sequence is non-decreasing, which is what the
    login retry loop relies on.

    Usage:
        backoff = ExponentialBackoff(base_delay=1.0, multiplier=1.5)
        for attempt in range(max_attempts):
            try:
                return await exchange()
            except ExchangeRejectedError:
                await asyncio.sleep(backoff.next_delay())
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.0,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self._attempt = 0

    @property
    def attempt(self) -> int:
        """Current attempt count."""
        return self._attempt

    def next_delay(self) -> float:
        """Calculate and return the next backoff delay, incrementing the attempt counter."""
        delay = min(
            self.base_delay * (self.multiplier ** self._attempt),
            self.max_delay,
        )
        if self.jitter_range:
            jitter = delay * random.uniform(-self.jitter_range, self.jitter_range)
            delay = max(0.0, delay + jitter)
        self._attempt += 1
        return delay

    def reset(self) -> None:
        """Reset the attempt counter after a successful operation."""
        self._attempt = 0
