"""Abstract base classes for dependency injection."""

import logging
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)


class LexicalSource(ABC):
    """Dictionary lookup collaborator."""

    @abstractmethod
    def lookup(self, term: str) -> dict | None:
        """Look up a term. Returns a raw record with a 'senses' or 'entries'
        list, or None if the term has no entry. May raise on network errors."""
        pass


class Conjugator(ABC):
    """Verb conjugation collaborator."""

    @abstractmethod
    def conjugate(self, infinitive: str, tense: str, person: int) -> str | None:
        """Conjugate an infinitive for a tense id and person index 0..5.
        Returns the surface form, or None if it cannot be derived."""
        pass


class AIProvider(ABC):
    """Abstract base class for AI/LLM provider."""

    @abstractmethod
    def generate(self, prompt: str) -> tuple[str, int]:
        """Free-form completion. Returns (text, generation_time_ms)."""
        pass

    @abstractmethod
    def summarize(self, text: str) -> str:
        """Summarize text as a handful of bullet points."""
        pass

    @abstractmethod
    def extract_vocabulary(self, text: str) -> list[dict]:
        """Extract vocabulary. Returns [{term, translation, definition}]."""
        pass

    @abstractmethod
    def translate(self, text: str, target_language: str) -> str:
        """Translate text into the target language."""
        pass

    @abstractmethod
    def conjugate_verb(self, infinitive: str) -> dict | None:
        """Conjugate a verb in every tense.

        Returns {'is_verb': bool, 'tenses': {tense_id: [six forms]}} with
        tense ids from config.TENSES, or None if the reply was unusable.
        """
        pass

    @abstractmethod
    def generate_sentence(self, words: list[str], difficulty: str) -> dict | None:
        """Write a practice sentence using some of the given words.
        Returns {'sentence', 'translation', 'words_used'} or None if the reply
        was unusable."""
        pass

    @abstractmethod
    def grade_translation(self, sentence: str, reference: str, answer: str) -> dict:
        """Grade a learner's English translation of a sentence.
        Returns {'score': 0-100, 'correct', 'feedback', 'corrected'}."""
        pass


class Storage(ABC):
    """Abstract base class for vocabulary, mastery and usage storage.

    Item dicts use the keys produced by VocabularyItem.to_dict(). Writes
    raise StorageError on failure; there are no transactions across calls,
    so concurrent writers to the same item are last-write-wins.
    """

    def __init__(self):
        self._subscribers: dict[str, list[Callable]] = {}

    @abstractmethod
    def load_config(self) -> dict:
        """Load configuration. Returns config dict."""
        pass

    @abstractmethod
    def list_items(self, user_id: str) -> list[dict]:
        """List a user's vocabulary items in insertion order."""
        pass

    @abstractmethod
    def get_item(self, user_id: str, item_id: str) -> dict | None:
        """Get one vocabulary item or None."""
        pass

    @abstractmethod
    def create_item(self, user_id: str, item: dict) -> None:
        """Store a new vocabulary item."""
        pass

    @abstractmethod
    def update_item(self, user_id: str, item_id: str, fields: dict) -> dict:
        """Merge fields into an item. Returns the updated item.
        Raises ItemNotFoundError if the item does not exist."""
        pass

    @abstractmethod
    def delete_item(self, user_id: str, item_id: str) -> bool:
        """Delete an item. Returns True if something was deleted."""
        pass

    @abstractmethod
    def get_mastery(self, user_id: str, item_id: str) -> int | None:
        """Get an item's mastery score, or None if none is recorded."""
        pass

    @abstractmethod
    def set_mastery(self, user_id: str, item_id: str, score: int) -> None:
        """Persist an item's mastery score."""
        pass

    @abstractmethod
    def load_usage(self, user_id: str) -> dict | None:
        """Load daily usage counters {date, counters}, or None."""
        pass

    @abstractmethod
    def save_usage(self, user_id: str, usage: dict) -> None:
        """Save daily usage counters."""
        pass

    @abstractmethod
    def get_tutor_ids(self, user_id: str) -> list[str]:
        """Get the tutors allowed to edit a user's word bank."""
        pass

    @abstractmethod
    def assign_tutor(self, user_id: str, tutor_id: str) -> None:
        """Allow a tutor to edit a user's word bank."""
        pass

    @abstractmethod
    def is_premium(self, user_id: str) -> bool:
        """Check whether a user has an active premium subscription."""
        pass

    @abstractmethod
    def set_premium(self, user_id: str, premium: bool) -> None:
        """Record a user's premium status."""
        pass

    @abstractmethod
    def get_word_info(self, word: str) -> dict | None:
        """Get a cached lookup envelope for a word."""
        pass

    @abstractmethod
    def save_word_info(self, word: str, info: dict) -> None:
        """Cache a lookup envelope for a word."""
        pass

    @abstractmethod
    def get_verb_conjugation(self, infinitive: str) -> dict | None:
        """Get a cached conjugation table for an infinitive."""
        pass

    @abstractmethod
    def save_verb_conjugation(self, infinitive: str, table: dict) -> None:
        """Cache a conjugation table for an infinitive."""
        pass

    def subscribe(self, user_id: str, callback: Callable[[list[dict]], None]) -> Callable[[], None]:
        """Register a callback that receives the full item list after every
        change to a user's collection. Returns an unsubscribe function."""
        self._subscribers.setdefault(user_id, []).append(callback)

        def unsubscribe():
            callbacks = self._subscribers.get(user_id, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _notify(self, user_id: str) -> None:
        callbacks = list(self._subscribers.get(user_id, []))
        if not callbacks:
            return
        items = self.list_items(user_id)
        for callback in callbacks:
            try:
                callback(items)
            except Exception as e:
                logger.error(f"Subscriber for {user_id} failed: {e}")
