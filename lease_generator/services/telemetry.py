"""Token usage logging and daily spend bookkeeping.

The daily total is informational only; nothing refuses a request because
of it.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from lease_generator.models.usage import DailyUsage, TokenUsage

logger = logging.getLogger(__name__)


def _utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class DailyCostTracker:
    """Accumulates usage for the current UTC day, resetting at rollover"""

    def __init__(self, today: Callable[[], str] = _utc_today):
        self._today = today
        self._lock = threading.Lock()
        self._usage = DailyUsage(day=today())

    def _roll(self) -> None:
        """Start a new day if the date changed (called under lock)"""
        day = self._today()
        if day != self._usage.day:
            logger.info(
                f"Daily usage for {self._usage.day}: {self._usage.requests} requests, "
                f"${self._usage.estimated_cost:.4f}"
            )
            self._usage = DailyUsage(day=day)

    def add_cost(self, cost: float) -> float:
        """Add ``cost`` and return today's running total"""
        with self._lock:
            self._roll()
            self._usage.requests += 1
            self._usage.estimated_cost += cost
            return self._usage.estimated_cost

    def add_tokens(self, usage: TokenUsage) -> None:
        with self._lock:
            self._roll()
            self._usage.prompt_tokens += usage.prompt_tokens
            self._usage.completion_tokens += usage.completion_tokens

    def snapshot(self) -> DailyUsage:
        with self._lock:
            self._roll()
            return self._usage.model_copy()


class UsageTelemetry:
    """Records token consumption and estimated spend per request"""

    def __init__(self, tracker: Optional[DailyCostTracker] = None):
        self.tracker = tracker or DailyCostTracker()

    def log_token_usage(self, usage: TokenUsage) -> None:
        logger.info(
            f"Token usage [{usage.provider}/{usage.model}]: "
            f"prompt={usage.prompt_tokens} completion={usage.completion_tokens} "
            f"total={usage.total_tokens}"
        )
        self.tracker.add_tokens(usage)

    def track_daily_cost(self, cost: float) -> float:
        total = self.tracker.add_cost(cost)
        logger.info(f"Estimated cost ${cost:.4f} (today ${total:.4f})")
        return total

    def snapshot(self) -> DailyUsage:
        return self.tracker.snapshot()
