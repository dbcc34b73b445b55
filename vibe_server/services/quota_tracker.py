"""
Quota tracker for the rate-limited upstream provider.

An explicitly constructed object (no module singleton) holding the consumed-cost counter,
the epoch anchor and the cost table, with an injectable clock. Process-local only:
several processes sharing one upstream key each keep their own count.

Contract: callers check can_afford() before calling upstream and record() afterwards.
record() does not enforce the budget itself.
"""

import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class QuotaOperation(str, Enum):
    SEARCH = "search"
    DETAIL = "detail"
    TRENDING = "trending"


class PriorityLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class QuotaConfig(BaseModel):
    daily_budget: int = 10_000
    costs: Dict[QuotaOperation, int] = Field(
        default_factory=lambda: {
            QuotaOperation.SEARCH: 100,
            QuotaOperation.DETAIL: 1,
            QuotaOperation.TRENDING: 1,
        }
    )
    # The provider resets its daily quota at midnight in this timezone.
    reset_timezone: str = "America/Los_Angeles"
    medium_threshold: float = 0.50
    high_threshold: float = 0.80
    critical_threshold: float = 0.95
    # Multiplier applied to requested result sizes in each band; 0 means skip upstream.
    band_factors: Dict[PriorityLevel, float] = Field(
        default_factory=lambda: {
            PriorityLevel.LOW: 1.0,
            PriorityLevel.MEDIUM: 0.5,
            PriorityLevel.HIGH: 0.25,
            PriorityLevel.CRITICAL: 0.0,
        }
    )


class QuotaSnapshot(BaseModel):
    consumed: int
    budget: int
    remaining: int
    percent_used: float
    operations: Dict[str, int]
    epoch_date: date
    priority: PriorityLevel


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuotaTracker:
    """Consumed-cost counter with a daily epoch in the provider's reference timezone."""

    def __init__(
        self,
        config: Optional[QuotaConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or QuotaConfig()
        self._clock = clock or _utc_now
        self._tz = ZoneInfo(self.config.reset_timezone)
        self._consumed = 0
        self._operations: Dict[QuotaOperation, int] = {op: 0 for op in QuotaOperation}
        self._epoch = self._current_epoch()

    def _current_epoch(self) -> date:
        return self._clock().astimezone(self._tz).date()

    def _effective_consumed(self) -> int:
        """Consumed units as of now; 0 if the epoch has rolled over but not yet been reset."""
        return 0 if self._current_epoch() != self._epoch else self._consumed

    def _roll_epoch(self) -> None:
        current = self._current_epoch()
        if current != self._epoch:
            logger.info("[quota] new epoch %s (previous %s used %d units)",
                        current, self._epoch, self._consumed)
            self._epoch = current
            self._consumed = 0
            self._operations = {op: 0 for op in QuotaOperation}

    def cost(self, op: QuotaOperation, count: int = 1) -> int:
        return self.config.costs[QuotaOperation(op)] * count

    def can_afford(self, op: QuotaOperation, count: int = 1) -> bool:
        """Pure check: would recording op x count stay within the daily budget?"""
        return self._effective_consumed() + self.cost(op, count) <= self.config.daily_budget

    def record(self, op: QuotaOperation, count: int = 1) -> int:
        """Add the cost of op x count; returns consumed units after recording."""
        if count < 0:
            raise ValueError("count must be non-negative")
        self._roll_epoch()
        op = QuotaOperation(op)
        self._consumed += self.cost(op, count)
        self._operations[op] += count
        logger.debug("[quota] %s x%d recorded, %d/%d units used",
                     op.value, count, self._consumed, self.config.daily_budget)
        return self._consumed

    @property
    def consumed(self) -> int:
        return self._effective_consumed()

    def fraction_used(self) -> float:
        return self._effective_consumed() / self.config.daily_budget

    def priority_level(self) -> PriorityLevel:
        used = self.fraction_used()
        if used < self.config.medium_threshold:
            return PriorityLevel.LOW
        if used < self.config.high_threshold:
            return PriorityLevel.MEDIUM
        if used < self.config.critical_threshold:
            return PriorityLevel.HIGH
        return PriorityLevel.CRITICAL

    def scaled_limit(self, requested: int) -> int:
        """Shrink a requested result size for the current band; 0 means skip upstream."""
        factor = self.config.band_factors[self.priority_level()]
        if factor <= 0:
            return 0
        return max(1, int(requested * factor))

    def snapshot(self) -> QuotaSnapshot:
        consumed = self._effective_consumed()
        rolled = self._current_epoch() != self._epoch
        return QuotaSnapshot(
            consumed=consumed,
            budget=self.config.daily_budget,
            remaining=self.config.daily_budget - consumed,
            percent_used=round(consumed / self.config.daily_budget * 100, 2),
            operations={
                op.value: (0 if rolled else n) for op, n in self._operations.items()
            },
            epoch_date=self._current_epoch(),
            priority=self.priority_level(),
        )
