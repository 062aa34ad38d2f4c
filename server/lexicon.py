"""Built-in starter lexicon and source chaining."""

import logging

from core.interfaces import LexicalSource

logger = logging.getLogger(__name__)

# Common words served without a network round trip.
# Format: word -> (part of speech, definition, gender)
STARTER_WORDS = {
    # -ar verbs
    'hablar': ('verb', 'to speak, to talk', None),
    'confiar': ('verb', 'to trust, to confide', None),
    'trabajar': ('verb', 'to work', None),
    # -er verbs
    'comer': ('verb', 'to eat', None),
    'beber': ('verb', 'to drink', None),
    # -ir verbs
    'vivir': ('verb', 'to live', None),
    'escribir': ('verb', 'to write', None),
    # Irregular
    'ser': ('verb', 'to be (permanent state/identity)', None),
    'estar': ('verb', 'to be (location/condition)', None),
    'tener': ('verb', 'to have', None),
    'ir': ('verb', 'to go', None),
    'hacer': ('verb', 'to do, to make', None),
    # Nouns
    'casa': ('noun', 'house', 'feminine'),
    'libro': ('noun', 'book', 'masculine'),
    'mesa': ('noun', 'table', 'feminine'),
    'gato': ('noun', 'cat', 'masculine'),
    'escuela': ('noun', 'school', 'feminine'),
}


class BuiltinLexicon(LexicalSource):
    """Dictionary backed by an in-memory word table."""

    def __init__(self, words: dict = None):
        self.words = STARTER_WORDS if words is None else words

    def lookup(self, term: str) -> dict | None:
        data = self.words.get(term.strip().lower())
        if data is None:
            return None
        part_of_speech, definition, gender = data
        sense = {
            'partOfSpeech': part_of_speech,
            'definitions': [{'text': definition}],
        }
        if gender:
            sense['genders'] = [gender]
        return {'word': term, 'senses': [sense]}


class ChainedLexicalSource(LexicalSource):
    """Tries each source in order and returns the first hit.

    A source that raises is skipped as long as a later one answers; if no
    source answers and one of them raised, the last error propagates so
    the caller can report a failed lookup rather than a missing word.
    """

    def __init__(self, sources: list[LexicalSource]):
        self.sources = sources

    def lookup(self, term: str) -> dict | None:
        error = None
        for source in self.sources:
            try:
                record = source.lookup(term)
            except Exception as e:
                logger.warning(f"{type(source).__name__} failed for '{term}': {e}")
                error = e
                continue
            if record is not None:
                logger.info(f"Found '{term}' in {type(source).__name__}")
                return record
        if error is not None:
            raise error
        return None
