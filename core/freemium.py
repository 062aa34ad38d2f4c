"""Daily freemium quotas."""

import logging
from datetime import date
from typing import Callable

from .config import FREEMIUM_LIMITS
from .errors import UsageConfigError
from .interfaces import Storage

logger = logging.getLogger(__name__)


def empty_usage(today: date, limits: dict = FREEMIUM_LIMITS) -> dict:
    """Fresh counters for a day."""
    return {'date': today.isoformat(), 'counters': {key: 0 for key in limits}}


class UsageGovernor:
    """Tracks per-day counters for one user against fixed quotas.

    Checking and incrementing are separate calls; callers check
    has_reached_limit() before increment(). Every operation rolls the
    counters over first if the stored day is not today.
    """

    def __init__(self, storage: Storage, user_id: str, limits: dict = None,
                 today: Callable[[], date] = date.today):
        self.storage = storage
        self.user_id = user_id
        self.limits = FREEMIUM_LIMITS if limits is None else limits
        self._today = today

    def reset_if_new_day(self) -> dict:
        """Load counters, zeroing them if they belong to another day."""
        today = self._today()
        usage = self.storage.load_usage(self.user_id)
        if not usage or usage.get('date') != today.isoformat():
            if usage:
                logger.info(f"New day for {self.user_id}: resetting usage from {usage.get('date')}")
            usage = empty_usage(today, self.limits)
            self.storage.save_usage(self.user_id, usage)
        usage.setdefault('counters', {})
        return usage

    def has_reached_limit(self, key: str, is_premium: bool = False) -> bool:
        """Premium users are never limited. Unknown keys are always limited."""
        usage = self.reset_if_new_day()
        if is_premium:
            return False
        limit = self.limits.get(key)
        if limit is None:
            logger.error(f"Limit key '{key}' not found in FREEMIUM_LIMITS")
            return True
        return usage['counters'].get(key, 0) >= limit

    def increment(self, key: str) -> int:
        """Count one use of key. Returns the new count."""
        if key not in self.limits:
            logger.error(f"Refusing to count unknown usage key '{key}'")
            raise UsageConfigError(key)
        usage = self.reset_if_new_day()
        counters = usage['counters']
        counters[key] = counters.get(key, 0) + 1
        self.storage.save_usage(self.user_id, usage)
        return counters[key]

    def snapshot(self, is_premium: bool = False) -> dict:
        """Today's counters with their limits, for display."""
        usage = self.reset_if_new_day()
        return {
            'date': usage['date'],
            'is_premium': is_premium,
            'counters': {key: usage['counters'].get(key, 0) for key in self.limits},
            'limits': dict(self.limits),
        }
