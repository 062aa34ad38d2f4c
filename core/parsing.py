"""Parse raw dictionary records into a strict intermediate form.

Two raw shapes are accepted:

- Lingua Robot: {"entries": [{"entry": ..., "lexemes": [{"partOfSpeech": ...,
  "senses": [{"definition": "<html>", "usageExamples": [...]}],
  "grammaticalFeatures": [...]}]}]}
- Flat lexicon: {"senses": [{"partOfSpeech": ..., "definitions": [{"text": ...}],
  "genders": [...]}]}

Everything downstream of parse_record() works on RawSense objects only.
"""

from .models import ExamplePair, PARTS_OF_SPEECH
from .utils import strip_markup

POS_ALIASES = {
    'proper noun': 'noun',
    'proper-noun': 'noun',
    'substantive': 'noun',
    'adj': 'adjective',
    'adv': 'adverb',
    'prep': 'preposition',
    'conj': 'conjunction',
    'interj': 'interjection',
    'idiom': 'phrase',
    'prepositional phrase': 'phrase',
    'verb phrase': 'phrase',
    'proverb': 'phrase',
}

FORM_OF_KEYS = ('inflectionOf', 'formOf', 'alternativeOf')
GRAMMAR_WORDS = {
    'first', 'second', 'third', 'person', 'first-person', 'second-person',
    'third-person', 'singular', 'plural', 'masculine', 'feminine', 'present',
    'past', 'preterite', 'imperfect', 'future', 'conditional', 'indicative',
    'subjunctive', 'imperative', 'affirmative', 'negative', 'informal', 'formal',
    'participle', 'gerund', 'inflection', 'form', 'alternative', 'spelling',
    'diminutive', 'augmentative', 'conjugation', 'combined', 'with',
}
FORM_OF_HEADS = {
    'inflection', 'form', 'plural', 'singular', 'feminine', 'masculine',
    'participle', 'gerund', 'spelling', 'diminutive', 'augmentative', 'conjugation',
}
GENDER_VALUES = {
    'feminine': 'feminine', 'f': 'feminine', 'fem': 'feminine',
    'masculine': 'masculine', 'm': 'masculine', 'masc': 'masculine',
}


class RawDefinition:
    """A single dictionary definition before normalization."""

    def __init__(self, html: str, is_form_of: bool = False, examples: list[ExamplePair] = None):
        self.html = html
        self.text = strip_markup(html)
        self.is_form_of = is_form_of or looks_like_form_of(self.text)
        self.examples = examples or []


class RawSense:
    """A dictionary sense (lexeme) with a validated part of speech."""

    def __init__(self, part_of_speech: str, definitions: list[RawDefinition], gender: str = None):
        if part_of_speech not in PARTS_OF_SPEECH:
            raise ValueError(f"Unknown part of speech: {part_of_speech}")
        self.part_of_speech = part_of_speech
        self.definitions = definitions
        self.gender = gender


def looks_like_form_of(text: str) -> bool:
    """True for glosses like 'plural of casa' or
    'first-person singular present indicative of hablar'."""
    words = text.lower().replace(',', ' ').split()
    if 'of' not in words:
        return False
    prefix = words[:words.index('of')]
    if not prefix or len(prefix) > 8:
        return False
    return all(w in GRAMMAR_WORDS for w in prefix) and any(w in FORM_OF_HEADS for w in prefix)


def map_part_of_speech(value) -> str:
    """Map a free-form part-of-speech tag onto PARTS_OF_SPEECH."""
    if not isinstance(value, str):
        return 'unknown'
    tag = value.strip().lower()
    tag = POS_ALIASES.get(tag, tag)
    return tag if tag in PARTS_OF_SPEECH else 'unknown'


def _parse_gender(raw: dict) -> str | None:
    candidates = []
    if isinstance(raw.get('gender'), str):
        candidates.append(raw['gender'])
    for g in raw.get('genders') or []:
        if isinstance(g, str):
            candidates.append(g)
    for feature in raw.get('grammaticalFeatures') or []:
        if isinstance(feature, dict) and feature.get('type') == 'gender':
            candidates.append(str(feature.get('value', '')))
    for candidate in candidates:
        gender = GENDER_VALUES.get(candidate.strip().lower())
        if gender:
            return gender
    return None


def _parse_example(raw) -> ExamplePair | None:
    if isinstance(raw, str):
        text = strip_markup(raw)
        return ExamplePair(text) if text else None
    if isinstance(raw, dict):
        source = strip_markup(raw.get('sourceText') or raw.get('text') or raw.get('example') or '')
        translated = strip_markup(raw.get('translatedText') or raw.get('translation') or '')
        return ExamplePair(source, translated) if source else None
    return None


def _parse_definition(raw) -> RawDefinition | None:
    if isinstance(raw, str):
        return RawDefinition(raw)
    if not isinstance(raw, dict):
        return None
    html = raw.get('definition') or raw.get('text') or ''
    if not isinstance(html, str):
        return None
    is_form_of = any(raw.get(key) for key in FORM_OF_KEYS) or 'form-of' in html
    examples = []
    for ex in raw.get('usageExamples') or raw.get('examples') or []:
        pair = _parse_example(ex)
        if pair:
            examples.append(pair)
    return RawDefinition(html, is_form_of, examples)


def _parse_sense(raw: dict) -> RawSense | None:
    if not isinstance(raw, dict):
        return None
    part_of_speech = map_part_of_speech(raw.get('partOfSpeech'))
    definitions = []
    for d in raw.get('senses') or raw.get('definitions') or []:
        parsed = _parse_definition(d)
        if parsed:
            definitions.append(parsed)
    return RawSense(part_of_speech, definitions, _parse_gender(raw))


def parse_record(record: dict | None) -> list[RawSense]:
    """Parse a raw lookup record into senses, in source order."""
    if not isinstance(record, dict):
        return []
    raw_senses = []
    for entry in record.get('entries') or []:
        if isinstance(entry, dict):
            raw_senses.extend(entry.get('lexemes') or [])
    raw_senses.extend(record.get('senses') or [])

    senses = []
    for raw in raw_senses:
        sense = _parse_sense(raw)
        if sense:
            senses.append(sense)
    return senses
