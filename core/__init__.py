from .models import (
    ExamplePair, Definition, TenseExample, WordEntry, WordInfo, VocabularyItem,
    PARTS_OF_SPEECH
)
from .interfaces import LexicalSource, Conjugator, AIProvider, Storage
from .errors import (
    LinguaError, StorageError, ItemNotFoundError, PermissionDeniedError,
    LimitReachedError, UsageConfigError
)
from .normalizer import WordEntryNormalizer
from .gamification import calculate_stats, calculate_streak
from .review import select_review_items
from .mastery import MasteryStore
from .freemium import UsageGovernor
from .enrichment import EnrichmentTracker
from .vocabulary import VocabularyBank
from .config import (
    XP_PER_WORD, XP_PER_LEVEL, SMART_REVIEW_LIMIT, FREEMIUM_LIMITS,
    TENSES, PERSONS, PLACEHOLDER_FORM, DEFAULT_LANGUAGE
)

__all__ = [
    'ExamplePair', 'Definition', 'TenseExample', 'WordEntry', 'WordInfo', 'VocabularyItem',
    'PARTS_OF_SPEECH',
    'LexicalSource', 'Conjugator', 'AIProvider', 'Storage',
    'LinguaError', 'StorageError', 'ItemNotFoundError', 'PermissionDeniedError',
    'LimitReachedError', 'UsageConfigError',
    'WordEntryNormalizer', 'calculate_stats', 'calculate_streak', 'select_review_items',
    'MasteryStore', 'UsageGovernor', 'EnrichmentTracker', 'VocabularyBank',
    'XP_PER_WORD', 'XP_PER_LEVEL', 'SMART_REVIEW_LIMIT', 'FREEMIUM_LIMITS',
    'TENSES', 'PERSONS', 'PLACEHOLDER_FORM', 'DEFAULT_LANGUAGE'
]
