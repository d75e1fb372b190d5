"""
Reconnect delay policy for the streaming channel.

The exponential and fixed schedules are expressed with tenacity's wait
strategies, evaluated for a given attempt number.  Jitter is applied on
top as a multiplicative factor in ``[0.8, 1.2]``.  All values are in
milliseconds unless the method name says otherwise.
"""

from __future__ import annotations

import math
import random
from typing import Optional

from tenacity import RetryCallState, wait_exponential, wait_fixed

JITTER_LOW = 0.8
JITTER_HIGH = 1.2


class ReconnectBackoff:
    """Compute the delay before reconnect attempt ``n`` (1-based)."""

    def __init__(
        self,
        reconnect_interval: float = 5000,
        backoff_base: float = 0,
        backoff_max: float = 30000,
        jitter: bool = True,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.reconnect_interval = reconnect_interval
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.jitter = jitter
        self._rng = rng or random.Random()
        if backoff_base > 0:
            if backoff_max > 0:
                self._wait = wait_exponential(multiplier=backoff_base, max=backoff_max)
            else:
                self._wait = wait_exponential(multiplier=backoff_base)
        else:
            self._wait = wait_fixed(reconnect_interval)

    def _base_delay(self, attempt: int) -> float:
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
        state.attempt_number = max(1, attempt)
        return float(self._wait(state))

    def delay_ms(self, attempt: int) -> float:
        delay = self._base_delay(attempt)
        if self.jitter:
            delay = math.floor(delay * self._rng.uniform(JITTER_LOW, JITTER_HIGH))
        return delay

    def delay_seconds(self, attempt: int) -> float:
        return self.delay_ms(attempt) / 1000.0
