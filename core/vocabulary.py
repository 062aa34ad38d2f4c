"""Word bank service: the operations behind every vocabulary action."""

import logging
from datetime import date
from typing import Callable

from .config import DEFAULT_CATEGORY, ALL_CATEGORIES
from .enrichment import EnrichmentTracker, IDLE, DONE, FAILED
from .errors import ItemNotFoundError, LimitReachedError, PermissionDeniedError, StorageError
from .freemium import UsageGovernor
from .gamification import calculate_stats
from .interfaces import Storage
from .mastery import MasteryStore
from .models import VocabularyItem, WordInfo, PARTS_OF_SPEECH
from .normalizer import WordEntryNormalizer
from .review import select_review_items
from .utils import normalize_term

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('term', 'primary_definition', 'category', 'part_of_speech')


class VocabularyBank:
    """Word bank operations for owners and their assigned tutors.

    Additive writes are reported from the data we just wrote; destructive
    ones (delete) only succeed once storage confirms them.
    """

    def __init__(self, storage: Storage, normalizer: WordEntryNormalizer = None,
                 tracker: EnrichmentTracker = None, today: Callable[[], date] = date.today):
        self.storage = storage
        self.normalizer = normalizer or WordEntryNormalizer()
        self.mastery = MasteryStore(storage)
        self.tracker = tracker or EnrichmentTracker()
        self._today = today

    def usage(self, user_id: str) -> UsageGovernor:
        return UsageGovernor(self.storage, user_id, today=self._today)

    def check_access(self, actor_id: str, owner_id: str) -> None:
        """Owner or assigned tutor only."""
        if actor_id == owner_id or actor_id in self.storage.get_tutor_ids(owner_id):
            return
        raise PermissionDeniedError(f"{actor_id} may not access the word bank of {owner_id}")

    def list_items(self, actor_id: str, owner_id: str) -> list[VocabularyItem]:
        self.check_access(actor_id, owner_id)
        return [VocabularyItem.from_dict(d) for d in self.storage.list_items(owner_id)]

    def get_item(self, owner_id: str, item_id: str) -> VocabularyItem:
        data = self.storage.get_item(owner_id, item_id)
        if data is None:
            raise ItemNotFoundError(owner_id, item_id)
        return VocabularyItem.from_dict(data)

    def categories(self, actor_id: str, owner_id: str) -> list[str]:
        """Distinct categories, sorted."""
        return sorted({item.category for item in self.list_items(actor_id, owner_id)})

    def add_word(self, actor_id: str, owner_id: str, term: str, primary_definition: str = '',
                 category: str = DEFAULT_CATEGORY, part_of_speech: str = 'unknown') -> dict:
        """Add a word. Returns {item, stats, level_up}.

        Only the owner's own additions count against the words_added quota.
        """
        self.check_access(actor_id, owner_id)
        term = normalize_term(term)
        if not term:
            raise ValueError("Term must not be empty")
        if part_of_speech not in PARTS_OF_SPEECH:
            raise ValueError(f"Unknown part of speech: {part_of_speech}")
        if category == ALL_CATEGORIES:
            raise ValueError(f"'{ALL_CATEGORIES}' is reserved")

        quota_bound = actor_id == owner_id
        governor = self.usage(owner_id)
        if quota_bound and governor.has_reached_limit('words_added', self.storage.is_premium(owner_id)):
            self._log_event('limit_reached', owner_id, key='words_added')
            raise LimitReachedError('words_added')

        existing = self.storage.list_items(owner_id)
        item = VocabularyItem(term, (primary_definition or '').strip(), category, part_of_speech)
        self.storage.create_item(owner_id, item.to_dict())
        if quota_bound:
            governor.increment('words_added')

        today = self._today()
        before = calculate_stats(existing, today)
        after = calculate_stats(existing + [item.to_dict()], today)
        logger.info(f"{actor_id} added '{term}' to {owner_id}'s word bank ({category})")
        self._log_event('word_added', owner_id, term=term, actor_id=actor_id)
        return {'item': item, 'stats': after, 'level_up': after['level'] > before['level']}

    def edit_item(self, actor_id: str, owner_id: str, item_id: str, fields: dict) -> VocabularyItem:
        """Merge editable fields into an item. Changing the term drops its enrichment."""
        self.check_access(actor_id, owner_id)
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")
        changes = dict(fields)
        if 'term' in changes:
            changes['term'] = normalize_term(changes['term'])
            if not changes['term']:
                raise ValueError("Term must not be empty")
        if 'part_of_speech' in changes and changes['part_of_speech'] not in PARTS_OF_SPEECH:
            raise ValueError(f"Unknown part of speech: {changes['part_of_speech']}")

        current = self.get_item(owner_id, item_id)
        if 'term' in changes and changes['term'] != current.term:
            changes['enrichment'] = None
            self.tracker.reset((owner_id, item_id))
        return VocabularyItem.from_dict(self.storage.update_item(owner_id, item_id, changes))

    def delete_item(self, actor_id: str, owner_id: str, item_id: str) -> None:
        self.check_access(actor_id, owner_id)
        if not self.storage.delete_item(owner_id, item_id):
            raise ItemNotFoundError(owner_id, item_id)
        self.tracker.reset((owner_id, item_id))
        logger.info(f"{actor_id} deleted {item_id} from {owner_id}'s word bank")
        self._log_event('word_deleted', owner_id, item_id=item_id, actor_id=actor_id)

    def record_study_result(self, actor_id: str, owner_id: str, item_id: str, correct: bool) -> int:
        """Apply a study-round outcome to the item's mastery. Returns the new score."""
        self.check_access(actor_id, owner_id)
        self.get_item(owner_id, item_id)
        score = self.mastery.record_result(owner_id, item_id, correct)
        self._log_event('study_result', owner_id, item_id=item_id, correct=correct, score=score)
        return score

    def review_session(self, actor_id: str, owner_id: str, category: str = None,
                       smart: bool = True) -> list[VocabularyItem]:
        items = self.list_items(actor_id, owner_id)
        return select_review_items(items, category=category, smart=smart)

    def stats(self, actor_id: str, owner_id: str) -> dict:
        self.check_access(actor_id, owner_id)
        return calculate_stats(self.storage.list_items(owner_id), self._today())

    def consume(self, owner_id: str, key: str) -> dict:
        """Check-then-count one quota-bound action. Raises LimitReachedError."""
        governor = self.usage(owner_id)
        premium = self.storage.is_premium(owner_id)
        if governor.has_reached_limit(key, premium):
            self._log_event('limit_reached', owner_id, key=key)
            raise LimitReachedError(key)
        governor.increment(key)
        return governor.snapshot(premium)

    def usage_snapshot(self, owner_id: str) -> dict:
        return self.usage(owner_id).snapshot(self.storage.is_premium(owner_id))

    async def lookup_word(self, term: str) -> WordInfo:
        """Look a word up, serving successful results from the shared cache."""
        term = normalize_term(term)
        try:
            cached = self.storage.get_word_info(term)
        except StorageError as e:
            logger.warning(f"Word cache read failed for '{term}': {e}")
            cached = None
        if cached:
            return WordInfo.from_dict(cached)

        info = await self.normalizer.lookup(term)
        if info.lookup_failed:
            logger.info(f"Not caching '{term}': dictionary lookup failed")
        elif info.success:
            try:
                self.storage.save_word_info(term, info.to_dict())
            except StorageError as e:
                logger.warning(f"Word cache write failed for '{term}': {e}")
        return info

    async def enrich_item(self, actor_id: str, owner_id: str, item_id: str) -> dict:
        """Attach a looked-up WordEntry to an item. Returns {state, item}.

        A second call while a lookup is pending is a no-op, and a result for a
        lookup superseded by an edit or delete is discarded.
        """
        self.check_access(actor_id, owner_id)
        item = self.get_item(owner_id, item_id)
        key = (owner_id, item_id)
        if item.enrichment is not None and self.tracker.state(key) == IDLE:
            return {'state': DONE, 'item': item}

        token = self.tracker.begin(key)
        if token is None:
            return {'state': self.tracker.state(key), 'item': item}

        info = await self.lookup_word(item.term)
        success = info.success and bool(info.entries)
        if not self.tracker.finish(key, token, success):
            logger.info(f"Discarding stale lookup for {owner_id}/{item_id}")
            return {'state': self.tracker.state(key), 'item': item}
        if not success:
            logger.info(f"Enrichment failed for '{item.term}'")
            return {'state': FAILED, 'item': item}

        entry = info.entries[0]
        fields = {'enrichment': entry.to_dict()}
        if item.part_of_speech == 'unknown':
            fields['part_of_speech'] = entry.part_of_speech
        if not item.primary_definition:
            fields['primary_definition'] = entry.primary_definition
        try:
            updated = self.storage.update_item(owner_id, item_id, fields)
        except StorageError:
            self.tracker.reset(key)
            raise
        return {'state': DONE, 'item': VocabularyItem.from_dict(updated)}

    async def retry_enrichment(self, actor_id: str, owner_id: str, item_id: str) -> dict:
        """User-triggered retry of a failed lookup."""
        self.check_access(actor_id, owner_id)
        self.tracker.retry((owner_id, item_id))
        return await self.enrich_item(actor_id, owner_id, item_id)

    def subscribe(self, actor_id: str, owner_id: str, callback: Callable) -> Callable:
        """Live updates of a word bank. Returns an unsubscribe function."""
        self.check_access(actor_id, owner_id)
        return self.storage.subscribe(owner_id, callback)

    def _log_event(self, event: str, user_id: str, **data) -> None:
        if hasattr(self.storage, 'log_event'):
            try:
                self.storage.log_event(event, user_id, **data)
            except StorageError as e:
                logger.warning(f"Could not log event {event}: {e}")
