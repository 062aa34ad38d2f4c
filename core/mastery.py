"""Per-user, per-word mastery scores."""

import logging

from .config import MASTERY_CORRECT_DELTA, MASTERY_INCORRECT_DELTA
from .interfaces import Storage

logger = logging.getLogger(__name__)


class MasteryStore:
    """Bounded integer scores persisted through Storage.

    adjust() is a read-modify-write with no version check; two sessions
    adjusting the same item concurrently are last-write-wins.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    def get(self, user_id: str, item_id: str) -> int:
        """Get the score, 0 if none is recorded."""
        return self.storage.get_mastery(user_id, item_id) or 0

    def adjust(self, user_id: str, item_id: str, delta: int) -> int:
        """Apply delta, clamp at 0, persist immediately. Returns the new score."""
        score = max(0, self.get(user_id, item_id) + delta)
        self.storage.set_mastery(user_id, item_id, score)
        logger.debug(f"Mastery for {user_id}/{item_id}: {delta:+d} -> {score}")
        return score

    def record_result(self, user_id: str, item_id: str, correct: bool) -> int:
        """Apply the fixed delta for a study-round outcome."""
        delta = MASTERY_CORRECT_DELTA if correct else MASTERY_INCORRECT_DELTA
        return self.adjust(user_id, item_id, delta)
