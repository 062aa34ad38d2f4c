"""XP, level and streak derived from a user's word bank.

Nothing here is stored: stats are recomputed from the item collection on
every read, so the same items and the same day always give the same result.
"""

from datetime import date, timedelta

from .config import XP_PER_WORD, XP_PER_LEVEL
from .utils import local_day


def _created_at(item):
    if isinstance(item, dict):
        return item.get('created_at')
    return getattr(item, 'created_at', None)


def active_days(items) -> set[date]:
    """Distinct local calendar days on which items were created."""
    days = set()
    for item in items:
        day = local_day(_created_at(item))
        if day is not None:
            days.add(day)
    return days


def calculate_streak(items, today: date = None) -> int:
    """Consecutive active days ending today, or yesterday if today has no activity yet."""
    days = active_days(items)
    if not days:
        return 0
    check = today or date.today()
    if check not in days:
        check -= timedelta(days=1)
        if check not in days:
            return 0

    streak = 0
    while check in days:
        streak += 1
        check -= timedelta(days=1)
    return streak


def calculate_stats(items, today: date = None) -> dict:
    """Level, XP and streak for a collection of vocabulary items.

    Items may be VocabularyItem objects or their dict form. Items without a
    creation timestamp earn XP but never count towards the streak.
    """
    items = list(items)
    total_xp = len(items) * XP_PER_WORD
    current_level_xp = total_xp % XP_PER_LEVEL
    return {
        'level': total_xp // XP_PER_LEVEL + 1,
        'total_xp': total_xp,
        'current_level_xp': current_level_xp,
        'xp_for_next_level': XP_PER_LEVEL,
        'progress_percent': round(current_level_xp * 100 / XP_PER_LEVEL),
        'streak_days': calculate_streak(items, today),
    }
