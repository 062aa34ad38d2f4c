"""Domain models for linguahub."""

import uuid
from datetime import datetime, timezone

from .config import DEFAULT_CATEGORY, TENSE_LABELS

PARTS_OF_SPEECH = (
    'verb', 'noun', 'adjective', 'adverb', 'pronoun', 'preposition',
    'conjunction', 'interjection', 'phrase', 'unknown'
)


def tense_row(conjugations: dict | None, tense_id: str) -> list[tuple[str, str]] | None:
    """Row of a conjugation table by tense id, or None."""
    if not conjugations:
        return None
    return conjugations.get(TENSE_LABELS[tense_id])


class ExamplePair:
    """A usage example and its translation."""

    def __init__(self, source_text: str, translated_text: str = ''):
        self.source_text = source_text
        self.translated_text = translated_text

    def to_dict(self) -> dict:
        return {'sourceText': self.source_text, 'translatedText': self.translated_text}

    @classmethod
    def from_dict(cls, data: dict) -> 'ExamplePair':
        return cls(data.get('sourceText', ''), data.get('translatedText', ''))

    def __eq__(self, other):
        return (isinstance(other, ExamplePair)
                and self.source_text == other.source_text
                and self.translated_text == other.translated_text)


class Definition:
    """One definition of a sense with its examples, in source order."""

    def __init__(self, text: str, examples: list[ExamplePair] = None):
        self.text = text
        self.examples = examples or []

    def to_dict(self) -> dict:
        return {'text': self.text, 'examples': [e.to_dict() for e in self.examples]}

    @classmethod
    def from_dict(cls, data: dict) -> 'Definition':
        return cls(data['text'], [ExamplePair.from_dict(e) for e in data.get('examples', [])])


class TenseExample:
    """An example sentence tagged with the tense it illustrates."""

    def __init__(self, tense: str, source_text: str, translated_text: str):
        self.tense = tense
        self.source_text = source_text
        self.translated_text = translated_text

    def to_dict(self) -> dict:
        return {
            'tense': self.tense,
            'sourceText': self.source_text,
            'translatedText': self.translated_text
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'TenseExample':
        return cls(data['tense'], data.get('sourceText', ''), data.get('translatedText', ''))


class WordEntry:
    """Canonical normalized record for one lexical sense of a term.

    conjugations maps a tense label to six (person, form) pairs, one per
    grammatical person in PERSONS order. gender/article only appear on
    nouns; an 'unknown' entry carries neither conjugations nor examples.
    """

    def __init__(self, word: str, part_of_speech: str, definitions: list[Definition]):
        if part_of_speech not in PARTS_OF_SPEECH:
            raise ValueError(f"Unknown part of speech: {part_of_speech}")
        self.word = word
        self.part_of_speech = part_of_speech
        self.definitions = definitions
        self.conjugations = None
        self.tense_examples = []
        self.gender = None
        self.article = None
        self.is_irregular = None
        self.infinitive = None

    @property
    def primary_definition(self) -> str:
        return self.definitions[0].text if self.definitions else ''

    def to_dict(self) -> dict:
        data = {
            'word': self.word,
            'partOfSpeech': self.part_of_speech,
            'definitions': [d.to_dict() for d in self.definitions],
            'conjugations': None,
            'tenseExamples': [t.to_dict() for t in self.tense_examples],
            'gender': self.gender,
            'article': self.article,
            'isIrregular': self.is_irregular,
        }
        if self.conjugations is not None:
            data['conjugations'] = {
                tense: [{'person': person, 'form': form} for person, form in rows]
                for tense, rows in self.conjugations.items()
            }
        if self.infinitive:
            data['infinitive'] = self.infinitive
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'WordEntry':
        entry = cls(
            data['word'],
            data.get('partOfSpeech', 'unknown'),
            [Definition.from_dict(d) for d in data.get('definitions', [])]
        )
        conjugations = data.get('conjugations')
        if conjugations:
            entry.conjugations = {
                tense: [(cell['person'], cell['form']) for cell in rows]
                for tense, rows in conjugations.items()
            }
        entry.tense_examples = [TenseExample.from_dict(t) for t in data.get('tenseExamples', [])]
        entry.gender = data.get('gender')
        entry.article = data.get('article')
        entry.is_irregular = data.get('isIrregular')
        entry.infinitive = data.get('infinitive')
        return entry

    def conjugation_row(self, tense_id: str) -> list[tuple[str, str]] | None:
        """Get a tense row by tense id (e.g. 'present')."""
        return tense_row(self.conjugations, tense_id)


class WordInfo:
    """Lookup envelope: {word, success, entries}.

    lookup_failed marks a result built while the dictionary was unreachable.
    It stays off the wire and keeps the result out of the shared cache.
    """

    def __init__(self, word: str, success: bool, entries: list[WordEntry],
                 lookup_failed: bool = False):
        self.word = word
        self.success = success
        self.entries = entries
        self.lookup_failed = lookup_failed

    def to_dict(self) -> dict:
        return {
            'word': self.word,
            'success': self.success,
            'entries': [e.to_dict() for e in self.entries]
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'WordInfo':
        return cls(
            data['word'],
            data.get('success', False),
            [WordEntry.from_dict(e) for e in data.get('entries', [])]
        )


class VocabularyItem:
    """A user-owned word bank entry."""

    def __init__(self, term: str, primary_definition: str = '',
                 category: str = DEFAULT_CATEGORY, part_of_speech: str = 'unknown',
                 item_id: str = None, created_at: datetime = None):
        self.id = item_id or uuid.uuid4().hex
        self.term = term
        self.category = category or DEFAULT_CATEGORY
        self.primary_definition = primary_definition
        self.part_of_speech = part_of_speech
        self.created_at = created_at or datetime.now(timezone.utc)
        self.mastery_score = 0
        self.enrichment = None  # WordEntry once looked up

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'term': self.term,
            'category': self.category,
            'primary_definition': self.primary_definition,
            'part_of_speech': self.part_of_speech,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'mastery_score': self.mastery_score,
            'enrichment': self.enrichment.to_dict() if self.enrichment else None
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'VocabularyItem':
        created_at = data.get('created_at')
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        item = cls(
            data['term'],
            data.get('primary_definition', ''),
            data.get('category', DEFAULT_CATEGORY),
            data.get('part_of_speech', 'unknown'),
            item_id=data.get('id'),
            created_at=created_at
        )
        # Items saved before creation timestamps existed have none
        if data.get('created_at') is None and 'created_at' in data:
            item.created_at = None
        item.mastery_score = max(0, int(data.get('mastery_score') or 0))
        if data.get('enrichment'):
            item.enrichment = WordEntry.from_dict(data['enrichment'])
        return item

