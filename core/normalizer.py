"""Turn raw dictionary records and conjugations into WordEntry records."""

import asyncio
import logging

from .config import (
    DEFAULT_LANGUAGE, TENSES, TENSE_LABELS, PERSONS, PLACEHOLDER_FORM,
    REFLEXIVE_SUFFIX, CARRIER_SENTENCES, EXAMPLE_LABEL,
    MAX_SYNTHESIZED_EXAMPLES, MAX_COPIED_EXAMPLES,
    CONJUGATION_TIMEOUT_SECONDS, CONJUGATION_CONCURRENCY, LOOKUP_TIMEOUT_SECONDS
)
from .interfaces import LexicalSource, Conjugator
from .models import Definition, TenseExample, WordEntry, WordInfo, tense_row
from .parsing import RawSense, parse_record
from .utils import english_gloss, normalize_term, settle_all

logger = logging.getLogger(__name__)

VERB_ENDINGS = ('ar', 'er', 'ir')
# Surface-form heuristic only; explicit gender metadata always wins.
FEMININE_ENDINGS = ('a', 'ión', 'dad', 'tud')
MASCULINE_ENDINGS = ('o', 'or', 'aje')
ARTICLES = {'feminine': 'la', 'masculine': 'el'}
SYNTHESIZED_TENSES = ('present', 'preterite', 'future')


def infer_gender(term: str, explicit: str = None) -> tuple[str | None, str | None]:
    """Return (gender, article) for a noun."""
    gender = explicit if explicit in ARTICLES else None
    if gender is None:
        lowered = term.lower()
        if lowered.endswith(FEMININE_ENDINGS):
            gender = 'feminine'
        elif lowered.endswith(MASCULINE_ENDINGS):
            gender = 'masculine'
    return gender, ARTICLES.get(gender)


def infinitive_of(term: str) -> str:
    """Strip a reflexive suffix: 'lavarse' -> 'lavar'."""
    if term.endswith(REFLEXIVE_SUFFIX):
        stem = term[:-len(REFLEXIVE_SUFFIX)]
        if stem.endswith(VERB_ENDINGS) or stem.endswith('ír'):
            return stem
    return term


def expected_regular_form(infinitive: str) -> str | None:
    """First-person present of a regular verb: 'hablar' -> 'hablo'."""
    if len(infinitive) > 2 and infinitive.endswith(VERB_ENDINGS):
        return infinitive[:-2] + 'o'
    return None


def is_irregular(infinitive: str, conjugations: dict | None) -> bool | None:
    """Compare the looked-up 'yo' present form against the regular one.
    None when either side is unknown."""
    row = tense_row(conjugations, 'present')
    if not row or row[0][1] == PLACEHOLDER_FORM:
        return None
    expected = expected_regular_form(infinitive)
    if expected is None:
        return None
    return row[0][1] != expected


class WordEntryNormalizer:
    """Builds WordEntry records for a term.

    Never raises: lookup errors, missing entries and individual conjugation
    failures all come back as data in the WordInfo envelope.
    """

    def __init__(self, source: LexicalSource = None, conjugator: Conjugator = None,
                 language: str = DEFAULT_LANGUAGE,
                 lookup_timeout: float = LOOKUP_TIMEOUT_SECONDS,
                 conjugation_timeout: float = CONJUGATION_TIMEOUT_SECONDS,
                 concurrency: int = CONJUGATION_CONCURRENCY):
        self.source = source
        self.conjugator = conjugator
        self.language = language
        self.lookup_timeout = lookup_timeout
        self.conjugation_timeout = conjugation_timeout
        self.concurrency = concurrency

    async def lookup(self, term: str) -> WordInfo:
        """Fetch a term from the lexical source and normalize it."""
        term = normalize_term(term)
        record = None
        lookup_failed = False
        if self.source is not None:
            try:
                record = await asyncio.wait_for(
                    asyncio.to_thread(self.source.lookup, term), self.lookup_timeout
                )
            except Exception as e:
                logger.warning(f"Lexical lookup failed for '{term}': {type(e).__name__}: {e}")
                lookup_failed = True
        return await self.normalize(term, record, lookup_failed)

    async def normalize(self, term: str, record: dict | None, lookup_failed: bool = False) -> WordInfo:
        """Normalize a raw record for term. record=None means no entry."""
        term = normalize_term(term)
        try:
            tables = {}
            entries = []
            for sense in parse_record(record):
                entry = await self._build_entry(term, sense, tables)
                if entry is not None:
                    entries.append(entry)
            if entries:
                return WordInfo(term, True, entries)
            if record is not None:
                logger.info(f"No usable senses for '{term}', falling back to conjugations")
            return await self._fallback(term, lookup_failed, tables)
        except Exception as e:
            logger.error(f"Normalization failed for '{term}': {type(e).__name__}: {e}")
            return WordInfo(term, False, [self._unknown_entry(term, failed=True)])

    async def _build_entry(self, term: str, sense: RawSense, tables: dict) -> WordEntry | None:
        definitions = sense.definitions
        if (sense.part_of_speech == 'verb' and 0 < len(definitions) <= 2
                and all(d.is_form_of for d in definitions)):
            logger.debug(f"Dropping form-of verb sense for '{term}'")
            return None

        kept = [Definition(d.text, d.examples) for d in definitions
                if d.text and not d.is_form_of]
        if not kept:
            return None

        entry = WordEntry(term, sense.part_of_speech, kept)
        if sense.part_of_speech == 'noun':
            entry.gender, entry.article = infer_gender(term, sense.gender)
        elif sense.part_of_speech == 'verb':
            copied = [ex for d in kept for ex in d.examples]
            await self._add_verb_details(entry, tables, copied, english_gloss(entry.primary_definition))
        return entry

    async def _add_verb_details(self, entry: WordEntry, tables: dict, copied: list,
                                gloss: str | None) -> None:
        infinitive = infinitive_of(entry.word)
        if infinitive not in tables:
            tables[infinitive] = await self.build_conjugations(infinitive)
        conjugations = tables[infinitive]

        entry.infinitive = infinitive
        entry.conjugations = conjugations
        entry.is_irregular = is_irregular(infinitive, conjugations)
        if conjugations is None:
            return
        examples = self.synthesize_examples(conjugations, gloss)
        for ex in copied[:MAX_COPIED_EXAMPLES]:
            examples.append(TenseExample(EXAMPLE_LABEL, ex.source_text, ex.translated_text))
        entry.tense_examples = examples

    async def build_conjugations(self, infinitive: str) -> dict | None:
        """Fan out one conjugation request per (tense, person) cell.

        A failed or timed-out cell becomes PLACEHOLDER_FORM. Rows with no
        real form are left out; None if no row survives.
        """
        if self.conjugator is None or not infinitive:
            return None

        cells = [(tense_id, person) for tense_id, _ in TENSES for person in range(len(PERSONS))]
        results = await settle_all(
            [asyncio.to_thread(self.conjugator.conjugate, infinitive, tense_id, person)
             for tense_id, person in cells],
            self.concurrency, self.conjugation_timeout
        )

        table = {}
        failures = 0
        for t, (tense_id, label) in enumerate(TENSES):
            row = []
            for p, person in enumerate(PERSONS):
                result = results[t * len(PERSONS) + p]
                if isinstance(result, str) and result.strip():
                    row.append((person, result.strip()))
                else:
                    failures += 1
                    row.append((person, PLACEHOLDER_FORM))
            if any(form != PLACEHOLDER_FORM for _, form in row):
                table[label] = row
        if failures:
            logger.debug(f"{failures}/{len(cells)} conjugation cells failed for '{infinitive}'")
        return table or None

    def synthesize_examples(self, conjugations: dict, gloss: str | None) -> list[TenseExample]:
        """Slot first-person present/preterite/future forms into carrier sentences."""
        carriers = CARRIER_SENTENCES.get(self.language) or CARRIER_SENTENCES[DEFAULT_LANGUAGE]
        examples = []
        for tense_id in SYNTHESIZED_TENSES[:MAX_SYNTHESIZED_EXAMPLES]:
            row = tense_row(conjugations, tense_id)
            if not row or row[0][1] == PLACEHOLDER_FORM:
                continue
            form = row[0][1]
            source, translated = carriers[tense_id]
            examples.append(TenseExample(
                TENSE_LABELS[tense_id],
                source.format(form=form),
                translated.format(gloss=gloss or f'[{form}]')
            ))
        return examples

    async def _fallback(self, term: str, lookup_failed: bool, tables: dict) -> WordInfo:
        """No usable dictionary sense: try the term as a bare infinitive."""
        entry = WordEntry(term, 'verb', [
            Definition(f"No dictionary entry found for '{term}'; showing conjugations only.")
        ])
        await self._add_verb_details(entry, tables, [], None)
        if entry.conjugations is not None:
            logger.info(f"Conjugation-only entry for '{term}'")
            return WordInfo(term, True, [entry], lookup_failed=lookup_failed)

        logger.info(f"Word not found: '{term}'")
        return WordInfo(term, False, [self._unknown_entry(term, lookup_failed)],
                        lookup_failed=lookup_failed)

    @staticmethod
    def _unknown_entry(term: str, failed: bool) -> WordEntry:
        if failed:
            message = f"Error looking up '{term}'"
        else:
            message = f"Definition not available for '{term}'"
        return WordEntry(term, 'unknown', [Definition(message)])
