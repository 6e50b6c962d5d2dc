"""
Bounded exponential backoff with jitter for spooler and directory calls.
"""

from __future__ import annotations

import dataclasses
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable

from printer_manager.observability import RETRIES_TOTAL

logger = logging.getLogger("printer-manager")


# =============================================================================
# Retry Strategy
# =============================================================================

@dataclass(frozen=True)
class RetryStrategy:
    """Retry executor.

    - ``func`` is invoked until it returns without raising.
    - After ``max_retries`` failed invocations the last error is re-raised.
    - If ``should_retry`` returns False for an error, it is re-raised at once.
    - Between attempts the strategy sleeps ``backoff + jitter`` where
      ``backoff`` starts at ``initial``, doubles each attempt and is capped at
      ``max_backoff``, and ``jitter`` is uniform in ``[0, max_jitter)``.
    """

    initial: float = 1.0
    max_retries: int = 5
    max_backoff: float = 10.0
    max_jitter: float = 1.0
    should_retry: Callable[[BaseException], bool] | None = None
    name: str = "default"

    def with_classifier(
        self, should_retry: Callable[[BaseException], bool] | None, name: str | None = None
    ) -> RetryStrategy:
        """Return a copy using a different error classifier (and metrics name)."""
        return dataclasses.replace(self, should_retry=should_retry, name=name or self.name)

    def call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Execute *func* with retries and return its result."""
        attempts = max(1, self.max_retries)
        backoff = self.initial
        tries = 0
        while True:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                tries += 1
                if tries >= attempts:
                    raise
                if self.should_retry is not None and not self.should_retry(e):
                    raise

                backoff = min(backoff, self.max_backoff)
                delay = backoff + self._jitter()
                logger.debug(
                    f"Retrying {self.name} call in {delay:.2f}s "
                    f"(attempt {tries}/{attempts}): {e}"
                )
                RETRIES_TOTAL.labels(name=self.name).inc()
                time.sleep(delay)
                backoff *= 2

    def _jitter(self) -> float:
        if self.max_jitter <= 0:
            return 0.0
        return random.random() * self.max_jitter


DEFAULT_STRATEGY = RetryStrategy(initial=1.0, max_retries=5, max_backoff=10.0, max_jitter=1.0)
