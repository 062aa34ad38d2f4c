"""Smart review: pick the words that need the most practice."""

from typing import Callable

from .config import SMART_REVIEW_LIMIT, ALL_CATEGORIES


def _field(item, name):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def select_review_items(items, score_of: Callable = None, category: str = None,
                        smart: bool = True, limit: int = SMART_REVIEW_LIMIT) -> list:
    """Filter items by category and, in smart mode, order them by mastery.

    score_of maps an item to its mastery score (default: the item's own
    mastery_score). Missing scores count as 0. sorted() is stable, so items
    with equal scores keep their input order; truncation happens after sorting.
    Without smart mode the filtered items come back untouched and uncapped.
    """
    if category and category != ALL_CATEGORIES:
        items = [item for item in items if _field(item, 'category') == category]
    else:
        items = list(items)

    if not smart:
        return items

    if score_of is None:
        def score_of(item):
            return _field(item, 'mastery_score')

    return sorted(items, key=lambda item: score_of(item) or 0)[:limit]
