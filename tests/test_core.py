"""Unit tests for linguahub core module."""

import asyncio
import time
import unittest
from datetime import date, datetime, time as dt_time, timedelta, timezone

from core.models import (
    ExamplePair, Definition, TenseExample, WordEntry, WordInfo, VocabularyItem, tense_row
)
from core.interfaces import LexicalSource, Conjugator, Storage
from core.errors import (
    ItemNotFoundError, PermissionDeniedError, LimitReachedError,
    UsageConfigError, StorageError
)
from core.utils import strip_markup, normalize_term, local_day, english_gloss, settle_all
from core.parsing import parse_record, looks_like_form_of, map_part_of_speech
from core.normalizer import WordEntryNormalizer, infer_gender, infinitive_of, is_irregular
from core.gamification import calculate_stats, calculate_streak
from core.review import select_review_items
from core.mastery import MasteryStore
from core.freemium import UsageGovernor
from core.enrichment import EnrichmentTracker, IDLE, PENDING, DONE, FAILED
from core.vocabulary import VocabularyBank
from core.config import FREEMIUM_LIMITS, PLACEHOLDER_FORM, TENSE_LABELS, PERSONS


# ============================================================================
# Mock Implementations
# ============================================================================

class MockLexicalSource(LexicalSource):
    """Mock dictionary returning canned records."""

    def __init__(self, records: dict = None, error: Exception = None):
        self.records = records or {}
        self.error = error
        self.lookup_calls = []

    def lookup(self, term: str) -> dict | None:
        self.lookup_calls.append(term)
        if self.error:
            raise self.error
        return self.records.get(term)


class MockConjugator(Conjugator):
    """Mock conjugator: known cells return a form, everything else fails."""

    def __init__(self, forms: dict = None, slow: dict = None):
        self.forms = forms or {}
        self.slow = slow or {}
        self.calls = []

    def conjugate(self, infinitive: str, tense: str, person: int) -> str | None:
        self.calls.append((infinitive, tense, person))
        key = (infinitive, tense, person)
        if key in self.slow:
            time.sleep(self.slow[key])
        if key in self.forms:
            return self.forms[key]
        raise RuntimeError(f"No form for {key}")


def regular_ar_forms(infinitive: str) -> dict:
    """yo forms for present/preterite/future of a regular -ar verb."""
    stem = infinitive[:-2]
    return {
        (infinitive, 'present', 0): stem + 'o',
        (infinitive, 'preterite', 0): stem + 'é',
        (infinitive, 'future', 0): infinitive + 'é',
    }


class MockStorage(Storage):
    """Mock storage for testing."""

    def __init__(self):
        super().__init__()
        self.config = {'gemini_api_key': 'test-api-key'}
        self.items = {}
        self.usage = {}
        self.tutors = {}
        self.premium = set()
        self.word_cache = {}
        self.conjugation_cache = {}
        self.events = []
        self.fail_writes = False

    def _check_write(self):
        if self.fail_writes:
            raise StorageError("write failed")

    def load_config(self) -> dict:
        return self.config

    def list_items(self, user_id: str) -> list[dict]:
        return [dict(item) for item in self.items.get(user_id, [])]

    def get_item(self, user_id: str, item_id: str) -> dict | None:
        for item in self.items.get(user_id, []):
            if item['id'] == item_id:
                return dict(item)
        return None

    def create_item(self, user_id: str, item: dict) -> None:
        self._check_write()
        self.items.setdefault(user_id, []).append(dict(item))
        self._notify(user_id)

    def update_item(self, user_id: str, item_id: str, fields: dict) -> dict:
        self._check_write()
        for item in self.items.get(user_id, []):
            if item['id'] == item_id:
                item.update(fields)
                self._notify(user_id)
                return dict(item)
        raise ItemNotFoundError(user_id, item_id)

    def delete_item(self, user_id: str, item_id: str) -> bool:
        self._check_write()
        items = self.items.get(user_id, [])
        remaining = [item for item in items if item['id'] != item_id]
        self.items[user_id] = remaining
        if len(remaining) == len(items):
            return False
        self._notify(user_id)
        return True

    def get_mastery(self, user_id: str, item_id: str) -> int | None:
        item = self.get_item(user_id, item_id)
        return item.get('mastery_score') if item else None

    def set_mastery(self, user_id: str, item_id: str, score: int) -> None:
        self.update_item(user_id, item_id, {'mastery_score': score})

    def load_usage(self, user_id: str) -> dict | None:
        return self.usage.get(user_id)

    def save_usage(self, user_id: str, usage: dict) -> None:
        self.usage[user_id] = usage

    def get_tutor_ids(self, user_id: str) -> list[str]:
        return self.tutors.get(user_id, [])

    def assign_tutor(self, user_id: str, tutor_id: str) -> None:
        self.tutors.setdefault(user_id, []).append(tutor_id)

    def is_premium(self, user_id: str) -> bool:
        return user_id in self.premium

    def set_premium(self, user_id: str, premium: bool) -> None:
        if premium:
            self.premium.add(user_id)
        else:
            self.premium.discard(user_id)

    def get_word_info(self, word: str) -> dict | None:
        return self.word_cache.get(word)

    def save_word_info(self, word: str, info: dict) -> None:
        self.word_cache[word] = info

    def get_verb_conjugation(self, infinitive: str) -> dict | None:
        return self.conjugation_cache.get(infinitive)

    def save_verb_conjugation(self, infinitive: str, table: dict) -> None:
        self._check_write()
        self.conjugation_cache[infinitive] = table

    def log_event(self, event: str, user_id: str, **data) -> None:
        self.events.append((event, user_id, data))


class FakeNormalizer:
    """Normalizer stand-in whose lookups can be held open."""

    def __init__(self, results: dict = None):
        self.results = results or {}
        self.lookup_calls = []
        self.release = asyncio.Event()
        self.hold = False

    async def lookup(self, term: str) -> WordInfo:
        self.lookup_calls.append(term)
        if self.hold:
            await self.release.wait()
        info = self.results.get(term)
        if info is None:
            return WordInfo(term, False, [WordEntry(term, 'unknown', [Definition('not found')])])
        return info


def verb_info(term: str, definition: str) -> WordInfo:
    return WordInfo(term, True, [WordEntry(term, 'verb', [Definition(definition)])])


def item_on(day: date, term: str = 'palabra') -> dict:
    """Item dict created at local noon on the given day."""
    return VocabularyItem(term, created_at=datetime.combine(day, dt_time(12))).to_dict()


# ============================================================================
# Utils and parsing
# ============================================================================

class TestUtils(unittest.TestCase):
    """Tests for utility functions."""

    def test_strip_markup(self):
        self.assertEqual(strip_markup('<b>to  speak</b>, to&nbsp;talk'), 'to speak , to talk')

    def test_strip_markup_empty(self):
        self.assertEqual(strip_markup(None), '')
        self.assertEqual(strip_markup('<i></i>'), '')

    def test_normalize_term(self):
        self.assertEqual(normalize_term('  Hablar  '), 'hablar')
        self.assertEqual(normalize_term('Buenos   Días'), 'buenos días')
        self.assertEqual(normalize_term(None), '')

    def test_local_day_naive_and_iso(self):
        self.assertEqual(local_day(datetime(2024, 3, 5, 23, 59)), date(2024, 3, 5))
        self.assertEqual(local_day('2024-03-05T08:00:00'), date(2024, 3, 5))
        self.assertEqual(local_day(date(2024, 3, 5)), date(2024, 3, 5))
        self.assertIsNone(local_day(None))

    def test_local_day_aware_uses_local_zone(self):
        stamp = datetime(2024, 3, 5, 12, tzinfo=timezone.utc)
        self.assertEqual(local_day(stamp), stamp.astimezone().date())

    def test_english_gloss(self):
        self.assertEqual(english_gloss('to speak, to talk'), 'speak')
        self.assertEqual(english_gloss('to be (permanent state/identity)'), 'be')
        self.assertEqual(english_gloss('house'), 'house')
        self.assertIsNone(english_gloss(''))


class TestSettleAll(unittest.IsolatedAsyncioTestCase):
    """Tests for the bounded fan-out combinator."""

    async def test_collects_values_and_failures_in_order(self):
        async def ok(value):
            return value

        async def fail():
            raise ValueError("boom")

        results = await settle_all([ok(1), fail(), ok(3)], limit=2, timeout=1.0)
        self.assertEqual(results[0], 1)
        self.assertIsInstance(results[1], ValueError)
        self.assertEqual(results[2], 3)

    async def test_timeout_becomes_failure(self):
        async def slow():
            await asyncio.sleep(1)

        async def fast():
            return 'done'

        results = await settle_all([slow(), fast()], limit=2, timeout=0.01)
        self.assertIsInstance(results[0], asyncio.TimeoutError)
        self.assertEqual(results[1], 'done')

    async def test_concurrency_is_bounded(self):
        running = 0
        peak = 0

        async def task():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await settle_all([task() for _ in range(10)], limit=3, timeout=1.0)
        self.assertLessEqual(peak, 3)


class TestParsing(unittest.TestCase):
    """Tests for raw record parsing."""

    def test_looks_like_form_of(self):
        self.assertTrue(looks_like_form_of('plural of casa'))
        self.assertTrue(looks_like_form_of('first-person singular present indicative of hablar'))
        self.assertTrue(looks_like_form_of('feminine singular of bonito'))
        self.assertFalse(looks_like_form_of('to speak, to talk'))
        self.assertFalse(looks_like_form_of('a piece of furniture'))
        self.assertFalse(looks_like_form_of('of course'))

    def test_map_part_of_speech(self):
        self.assertEqual(map_part_of_speech('Verb'), 'verb')
        self.assertEqual(map_part_of_speech('proper noun'), 'noun')
        self.assertEqual(map_part_of_speech('idiom'), 'phrase')
        self.assertEqual(map_part_of_speech('article'), 'unknown')
        self.assertEqual(map_part_of_speech(None), 'unknown')

    def test_parse_flat_record(self):
        record = {'senses': [{
            'partOfSpeech': 'noun',
            'definitions': [{'text': 'house'}],
            'genders': ['feminine'],
        }]}
        senses = parse_record(record)
        self.assertEqual(len(senses), 1)
        self.assertEqual(senses[0].part_of_speech, 'noun')
        self.assertEqual(senses[0].gender, 'feminine')
        self.assertEqual(senses[0].definitions[0].text, 'house')

    def test_parse_lingua_robot_record(self):
        record = {'entries': [{'entry': 'hablo', 'lexemes': [
            {
                'partOfSpeech': 'verb',
                'senses': [{
                    'definition': '<span class="form-of">first-person singular present indicative of '
                                  '<a>hablar</a></span>',
                    'inflectionOf': [{'lemma': 'hablar'}],
                }],
            },
            {
                'partOfSpeech': 'noun',
                'grammaticalFeatures': [{'type': 'gender', 'value': 'masculine'}],
                'senses': [{
                    'definition': '<b>speech</b>',
                    'usageExamples': [{'text': 'un hablo', 'translation': 'a speech'}, 'sin traducción'],
                }],
            },
        ]}]}
        senses = parse_record(record)
        self.assertEqual([s.part_of_speech for s in senses], ['verb', 'noun'])
        self.assertTrue(senses[0].definitions[0].is_form_of)
        noun = senses[1]
        self.assertEqual(noun.gender, 'masculine')
        self.assertEqual(noun.definitions[0].text, 'speech')
        self.assertEqual(noun.definitions[0].examples, [
            ExamplePair('un hablo', 'a speech'), ExamplePair('sin traducción', '')
        ])

    def test_parse_record_tolerates_junk(self):
        self.assertEqual(parse_record(None), [])
        self.assertEqual(parse_record({'entries': [None, {'lexemes': None}]}), [])
        senses = parse_record({'senses': ['junk', {'partOfSpeech': 'adverb', 'definitions': [42]}]})
        self.assertEqual(len(senses), 1)
        self.assertEqual(senses[0].definitions, [])


# ============================================================================
# Models
# ============================================================================

class TestModels(unittest.TestCase):
    """Tests for domain models."""

    def test_word_entry_rejects_unknown_part_of_speech(self):
        with self.assertRaises(ValueError):
            WordEntry('casa', 'article', [])

    def test_word_entry_to_dict_uses_wire_names(self):
        entry = WordEntry('hablar', 'verb', [Definition('to speak', [ExamplePair('Hablo.', 'I speak.')])])
        entry.conjugations = {'Presente': [('yo', 'hablo')]}
        entry.tense_examples = [TenseExample('Presente', 'Yo hablo.', 'I speak.')]
        entry.is_irregular = False
        data = entry.to_dict()
        self.assertEqual(data['partOfSpeech'], 'verb')
        self.assertEqual(data['conjugations'], {'Presente': [{'person': 'yo', 'form': 'hablo'}]})
        self.assertEqual(data['tenseExamples'][0]['sourceText'], 'Yo hablo.')
        self.assertFalse(data['isIrregular'])
        self.assertEqual(data['definitions'][0]['examples'][0]['translatedText'], 'I speak.')

    def test_word_entry_from_dict(self):
        data = {
            'word': 'hablar', 'partOfSpeech': 'verb',
            'definitions': [{'text': 'to speak'}],
            'conjugations': {'Presente': [{'person': 'yo', 'form': 'hablo'}]},
            'isIrregular': False,
        }
        entry = WordEntry.from_dict(data)
        self.assertEqual(entry.conjugation_row('present'), [('yo', 'hablo')])
        self.assertEqual(entry.primary_definition, 'to speak')
        self.assertIsNone(entry.conjugation_row('future'))

    def test_tense_row(self):
        table = {TENSE_LABELS['present']: [('yo', 'pienso')]}
        self.assertEqual(tense_row(table, 'present'), [('yo', 'pienso')])
        self.assertIsNone(tense_row(table, 'future'))
        self.assertIsNone(tense_row(None, 'present'))

    def test_vocabulary_item_defaults(self):
        item = VocabularyItem('casa', 'house')
        self.assertEqual(item.category, 'General')
        self.assertEqual(item.mastery_score, 0)
        self.assertIsNone(item.enrichment)
        self.assertIsNotNone(item.created_at.tzinfo)

    def test_vocabulary_item_from_dict(self):
        item = VocabularyItem.from_dict({
            'id': 'abc', 'term': 'casa', 'category': 'Home', 'primary_definition': 'house',
            'part_of_speech': 'noun', 'created_at': '2024-01-02T10:00:00+00:00',
            'mastery_score': -4,
            'enrichment': {'word': 'casa', 'partOfSpeech': 'noun', 'definitions': [{'text': 'house'}]},
        })
        self.assertEqual(item.id, 'abc')
        self.assertEqual(item.created_at, datetime(2024, 1, 2, 10, tzinfo=timezone.utc))
        self.assertEqual(item.mastery_score, 0)
        self.assertEqual(item.enrichment.part_of_speech, 'noun')

    def test_vocabulary_item_without_timestamp(self):
        item = VocabularyItem.from_dict({'id': 'x', 'term': 'mesa', 'created_at': None})
        self.assertIsNone(item.created_at)


# ============================================================================
# Word Entry Normalizer
# ============================================================================

class TestNormalizerHelpers(unittest.TestCase):
    """Tests for gender, infinitive and irregularity helpers."""

    def test_gender_heuristic_feminine_a(self):
        self.assertEqual(infer_gender('mesa'), ('feminine', 'la'))

    def test_gender_heuristic_endings(self):
        self.assertEqual(infer_gender('canción'), ('feminine', 'la'))
        self.assertEqual(infer_gender('ciudad'), ('feminine', 'la'))
        self.assertEqual(infer_gender('libro'), ('masculine', 'el'))
        self.assertEqual(infer_gender('viaje'), ('masculine', 'el'))
        self.assertEqual(infer_gender('lápiz'), (None, None))

    def test_explicit_gender_wins(self):
        self.assertEqual(infer_gender('mapa', 'masculine'), ('masculine', 'el'))
        self.assertEqual(infer_gender('mano', 'feminine'), ('feminine', 'la'))

    def test_infinitive_of_reflexive(self):
        self.assertEqual(infinitive_of('lavarse'), 'lavar')
        self.assertEqual(infinitive_of('reírse'), 'reír')
        self.assertEqual(infinitive_of('clase'), 'clase')
        self.assertEqual(infinitive_of('hablar'), 'hablar')

    def test_is_irregular(self):
        regular = {TENSE_LABELS['present']: [('yo', 'hablo')]}
        irregular = {TENSE_LABELS['present']: [('yo', 'tengo')]}
        missing = {TENSE_LABELS['present']: [('yo', PLACEHOLDER_FORM)]}
        self.assertFalse(is_irregular('hablar', regular))
        self.assertTrue(is_irregular('tener', irregular))
        self.assertIsNone(is_irregular('hablar', missing))
        self.assertIsNone(is_irregular('hablar', None))
        self.assertIsNone(is_irregular('hablar', {TENSE_LABELS['future']: [('yo', 'hablaré')]}))
        self.assertTrue(is_irregular('pensar', {TENSE_LABELS['present']: [('yo', 'pienso')]}))


class TestWordEntryNormalizer(unittest.IsolatedAsyncioTestCase):
    """Tests for WordEntryNormalizer."""

    async def test_hablar_end_to_end(self):
        source = MockLexicalSource({'hablar': {'senses': [
            {'partOfSpeech': 'verb', 'definitions': [{'text': 'to speak, to talk'}]}
        ]}})
        conjugator = MockConjugator({('hablar', 'present', 0): 'hablo'})
        normalizer = WordEntryNormalizer(source, conjugator)

        info = await normalizer.lookup('hablar')

        self.assertTrue(info.success)
        self.assertEqual(len(info.entries), 1)
        entry = info.entries[0]
        self.assertEqual(entry.part_of_speech, 'verb')
        self.assertEqual(list(entry.conjugations), ['Presente'])
        row = entry.conjugations['Presente']
        self.assertEqual(row[0], ('yo', 'hablo'))
        self.assertEqual([form for _, form in row[1:]], [PLACEHOLDER_FORM] * 5)
        self.assertEqual([person for person, _ in row], PERSONS)
        self.assertIs(entry.is_irregular, False)
        self.assertEqual(len(entry.tense_examples), 1)
        example = entry.tense_examples[0]
        self.assertEqual(example.tense, 'Presente')
        self.assertIn('hablo', example.source_text)
        self.assertEqual(example.translated_text, 'I speak every day.')
        self.assertIsNone(entry.gender)
        self.assertEqual(len(conjugator.calls), 36)

    async def test_single_form_of_verb_sense_is_dropped(self):
        record = {'senses': [
            {'partOfSpeech': 'verb', 'definitions': [
                {'text': 'first-person singular present indicative of hablar'}
            ]},
            {'partOfSpeech': 'noun', 'definitions': [{'text': 'speech'}]},
        ]}
        info = await WordEntryNormalizer().normalize('hablo', record)
        self.assertTrue(info.success)
        self.assertEqual([e.part_of_speech for e in info.entries], ['noun'])

    async def test_partial_form_of_sense_keeps_real_definition(self):
        record = {'senses': [{'partOfSpeech': 'verb', 'definitions': [
            {'text': 'to cut', 'formOf': None},
            {'text': 'lemma', 'inflectionOf': [{'lemma': 'cortar'}]},
        ]}]}
        info = await WordEntryNormalizer().normalize('cortar', record)
        self.assertEqual(len(info.entries), 1)
        self.assertEqual([d.text for d in info.entries[0].definitions], ['to cut'])

    async def test_empty_definitions_drop_sense(self):
        record = {'senses': [
            {'partOfSpeech': 'adjective', 'definitions': [{'text': '<span></span>'}]},
            {'partOfSpeech': 'noun', 'definitions': [{'text': 'table'}]},
        ]}
        info = await WordEntryNormalizer().normalize('mesa', record)
        self.assertEqual(len(info.entries), 1)
        entry = info.entries[0]
        self.assertEqual(entry.part_of_speech, 'noun')
        self.assertEqual((entry.gender, entry.article), ('feminine', 'la'))
        self.assertIsNone(entry.conjugations)

    async def test_explicit_gender_metadata(self):
        record = {'senses': [{'partOfSpeech': 'noun', 'definitions': [{'text': 'map'}],
                              'genders': ['masculine']}]}
        info = await WordEntryNormalizer().normalize('mapa', record)
        self.assertEqual((info.entries[0].gender, info.entries[0].article), ('masculine', 'el'))

    async def test_senses_keep_source_order(self):
        record = {'senses': [
            {'partOfSpeech': 'noun', 'definitions': [{'text': 'dinner'}, {'text': 'supper'}]},
            {'partOfSpeech': 'verb', 'definitions': [{'text': 'to dine'}]},
        ]}
        info = await WordEntryNormalizer().normalize('cena', record)
        self.assertEqual([e.part_of_speech for e in info.entries], ['noun', 'verb'])
        self.assertEqual([d.text for d in info.entries[0].definitions], ['dinner', 'supper'])

    async def test_conjugation_only_fallback(self):
        forms = {('trabajar', tense, p): f'trabaj-{tense}-{p}'
                 for tense in TENSE_LABELS for p in range(6)}
        normalizer = WordEntryNormalizer(MockLexicalSource(), MockConjugator(forms))
        info = await normalizer.lookup('trabajar')
        self.assertTrue(info.success)
        self.assertEqual(len(info.entries), 1)
        entry = info.entries[0]
        self.assertEqual(entry.part_of_speech, 'verb')
        self.assertIn("No dictionary entry found for 'trabajar'", entry.primary_definition)
        self.assertEqual(len(entry.conjugations), 6)
        self.assertEqual(len(entry.tense_examples), 3)
        self.assertEqual(entry.tense_examples[0].translated_text, 'I [trabaj-present-0] every day.')

    async def test_not_found_anywhere(self):
        normalizer = WordEntryNormalizer(MockLexicalSource(), MockConjugator())
        info = await normalizer.lookup('Qwxz')
        self.assertFalse(info.success)
        self.assertEqual(info.word, 'qwxz')
        entry = info.entries[0]
        self.assertEqual(entry.part_of_speech, 'unknown')
        self.assertEqual(entry.primary_definition, "Definition not available for 'qwxz'")
        self.assertIsNone(entry.conjugations)
        self.assertIsNone(entry.gender)
        self.assertEqual(entry.tense_examples, [])

    async def test_lookup_failure_is_reported_as_data(self):
        normalizer = WordEntryNormalizer(MockLexicalSource(error=ConnectionError("down")))
        with self.assertLogs('core.normalizer', level='WARNING'):
            info = await normalizer.lookup('casa')
        self.assertFalse(info.success)
        self.assertEqual(info.entries[0].primary_definition, "Error looking up 'casa'")

    async def test_reflexive_verb_uses_infinitive(self):
        conjugator = MockConjugator(regular_ar_forms('lavar'))
        record = {'senses': [{'partOfSpeech': 'verb', 'definitions': [{'text': 'to wash oneself'}]}]}
        info = await WordEntryNormalizer(conjugator=conjugator).normalize('lavarse', record)
        entry = info.entries[0]
        self.assertEqual(entry.infinitive, 'lavar')
        self.assertTrue(all(call[0] == 'lavar' for call in conjugator.calls))
        self.assertFalse(entry.is_irregular)

    async def test_irregular_verb_flag(self):
        conjugator = MockConjugator({('tener', 'present', 0): 'tengo'})
        record = {'senses': [{'partOfSpeech': 'verb', 'definitions': [{'text': 'to have'}]}]}
        info = await WordEntryNormalizer(conjugator=conjugator).normalize('tener', record)
        self.assertTrue(info.entries[0].is_irregular)

    async def test_failed_present_leaves_irregular_unknown(self):
        conjugator = MockConjugator({('hablar', 'future', 0): 'hablaré'})
        record = {'senses': [{'partOfSpeech': 'verb', 'definitions': [{'text': 'to speak'}]}]}
        info = await WordEntryNormalizer(conjugator=conjugator).normalize('hablar', record)
        entry = info.entries[0]
        self.assertIsNone(entry.is_irregular)
        self.assertEqual([e.tense for e in entry.tense_examples], ['Futuro'])

    async def test_synthesized_examples_precede_copied(self):
        examples = [{'text': f'Ejemplo {i}', 'translation': f'Example {i}'} for i in range(4)]
        record = {'senses': [{'partOfSpeech': 'verb', 'definitions': [
            {'text': 'to speak', 'examples': examples[:2]},
            {'text': 'to talk', 'examples': examples[2:]},
        ]}]}
        conjugator = MockConjugator(regular_ar_forms('hablar'))
        info = await WordEntryNormalizer(conjugator=conjugator).normalize('hablar', record)
        tense_examples = info.entries[0].tense_examples
        self.assertEqual(len(tense_examples), 6)
        self.assertEqual([e.tense for e in tense_examples[:3]], ['Presente', 'Pretérito', 'Futuro'])
        self.assertEqual([e.source_text for e in tense_examples[3:]], ['Ejemplo 0', 'Ejemplo 1', 'Ejemplo 2'])
        self.assertTrue(all(e.tense == 'Ejemplo' for e in tense_examples[3:]))
        self.assertEqual(tense_examples[1].translated_text, 'I did speak yesterday.')

    async def test_slow_conjugation_cell_becomes_placeholder(self):
        forms = regular_ar_forms('hablar')
        conjugator = MockConjugator(forms, slow={('hablar', 'preterite', 0): 0.3})
        record = {'senses': [{'partOfSpeech': 'verb', 'definitions': [{'text': 'to speak'}]}]}
        normalizer = WordEntryNormalizer(conjugator=conjugator, conjugation_timeout=0.05)
        info = await normalizer.normalize('hablar', record)
        conjugations = info.entries[0].conjugations
        self.assertNotIn('Pretérito', conjugations)
        self.assertEqual(conjugations['Presente'][0], ('yo', 'hablo'))

    async def test_verb_senses_share_one_table(self):
        conjugator = MockConjugator(regular_ar_forms('hablar'))
        record = {'senses': [
            {'partOfSpeech': 'verb', 'definitions': [{'text': 'to speak'}]},
            {'partOfSpeech': 'verb', 'definitions': [{'text': 'to talk'}]},
        ]}
        info = await WordEntryNormalizer(conjugator=conjugator).normalize('hablar', record)
        self.assertEqual(len(info.entries), 2)
        self.assertEqual(len(conjugator.calls), 36)


# ============================================================================
# Gamification, review and mastery
# ============================================================================

class TestGamification(unittest.TestCase):
    """Tests for level, XP and streak."""

    def setUp(self):
        self.today = date(2024, 6, 15)

    def test_empty_collection(self):
        stats = calculate_stats([], self.today)
        self.assertEqual(stats['level'], 1)
        self.assertEqual(stats['total_xp'], 0)
        self.assertEqual(stats['current_level_xp'], 0)
        self.assertEqual(stats['xp_for_next_level'], 100)
        self.assertEqual(stats['streak_days'], 0)

    def test_level_and_xp(self):
        items = [item_on(self.today) for _ in range(23)]
        stats = calculate_stats(items, self.today)
        self.assertEqual(stats['total_xp'], 230)
        self.assertEqual(stats['level'], 3)
        self.assertEqual(stats['current_level_xp'], 30)
        self.assertEqual(stats['progress_percent'], 30)

    def test_idempotent(self):
        items = [item_on(self.today - timedelta(days=i)) for i in range(5)]
        self.assertEqual(calculate_stats(items, self.today), calculate_stats(items, self.today))

    def test_adding_item_adds_exactly_ten_xp(self):
        items = [item_on(self.today) for _ in range(9)]
        before = calculate_stats(items, self.today)
        after = calculate_stats(items + [item_on(self.today)], self.today)
        self.assertEqual(after['total_xp'], before['total_xp'] + 10)
        self.assertGreaterEqual(after['level'], before['level'])

    def test_streak_only_two_days_ago(self):
        items = [item_on(self.today - timedelta(days=2))]
        self.assertEqual(calculate_streak(items, self.today), 0)

    def test_streak_three_consecutive_days(self):
        items = [item_on(self.today - timedelta(days=i)) for i in range(3)]
        self.assertEqual(calculate_streak(items, self.today), 3)

    def test_streak_today_with_gap(self):
        items = [item_on(self.today), item_on(self.today - timedelta(days=3))]
        self.assertEqual(calculate_streak(items, self.today), 1)

    def test_streak_from_yesterday(self):
        items = [item_on(self.today - timedelta(days=1)), item_on(self.today - timedelta(days=2))]
        self.assertEqual(calculate_streak(items, self.today), 2)

    def test_items_without_timestamp_earn_xp_only(self):
        item = VocabularyItem('casa')
        item.created_at = None
        stats = calculate_stats([item], self.today)
        self.assertEqual(stats['total_xp'], 10)
        self.assertEqual(stats['streak_days'], 0)


class TestSmartReview(unittest.TestCase):
    """Tests for review ordering."""

    def make_items(self, scores, category='General'):
        items = []
        for i, score in enumerate(scores, 1):
            item = VocabularyItem(f'word{i}', category=category, item_id=f'item{i}')
            item.mastery_score = score
            items.append(item)
        return items

    def test_stable_ascending_order(self):
        items = self.make_items([5, 0, 3, 0])
        result = select_review_items(items)
        self.assertEqual([i.id for i in result], ['item2', 'item4', 'item3', 'item1'])

    def test_cap_applies_after_sorting(self):
        items = self.make_items([9] * 20 + [0])
        result = select_review_items(items)
        self.assertEqual(len(result), 20)
        self.assertEqual(result[0].id, 'item21')

    def test_non_smart_keeps_order_and_size(self):
        items = self.make_items([5] * 25)
        result = select_review_items(items, smart=False)
        self.assertEqual(result, items)

    def test_category_filter(self):
        items = self.make_items([1, 0], 'Food') + self.make_items([0], 'Travel')
        self.assertEqual(len(select_review_items(items, category='Food')), 2)
        self.assertEqual(len(select_review_items(items, category='All')), 3)

    def test_score_lookup_and_missing_scores(self):
        items = self.make_items([0, 0, 0])
        scores = {'item1': 4, 'item3': 2}
        result = select_review_items(items, score_of=lambda item: scores.get(item.id))
        self.assertEqual([i.id for i in result], ['item2', 'item3', 'item1'])


class TestMasteryStore(unittest.TestCase):
    """Tests for MasteryStore."""

    def setUp(self):
        self.storage = MockStorage()
        self.item = VocabularyItem('casa', item_id='i1')
        self.item.mastery_score = 3
        self.storage.create_item('u1', self.item.to_dict())
        self.mastery = MasteryStore(self.storage)

    def test_get_defaults_to_zero(self):
        self.assertEqual(self.mastery.get('u1', 'missing'), 0)

    def test_adjust_clamps_at_zero(self):
        self.assertEqual(self.mastery.adjust('u1', 'i1', -1000), 0)
        self.assertEqual(self.storage.get_mastery('u1', 'i1'), 0)

    def test_record_result(self):
        self.assertEqual(self.mastery.record_result('u1', 'i1', True), 4)
        self.assertEqual(self.mastery.record_result('u1', 'i1', False), 3)


# ============================================================================
# Freemium and enrichment state
# ============================================================================

class TestUsageGovernor(unittest.TestCase):
    """Tests for UsageGovernor."""

    def setUp(self):
        self.storage = MockStorage()
        self.today = date(2024, 6, 15)
        self.governor = UsageGovernor(self.storage, 'u1', today=lambda: self.today)

    def test_fresh_user_has_zero_counters(self):
        usage = self.governor.reset_if_new_day()
        self.assertEqual(usage['date'], '2024-06-15')
        self.assertEqual(usage['counters'], {key: 0 for key in FREEMIUM_LIMITS})

    def test_limit_reached_after_quota(self):
        for _ in range(FREEMIUM_LIMITS['words_added']):
            self.assertFalse(self.governor.has_reached_limit('words_added'))
            self.governor.increment('words_added')
        self.assertTrue(self.governor.has_reached_limit('words_added'))

    def test_premium_never_limited(self):
        for _ in range(10):
            self.governor.increment('quizzes_played')
        self.assertFalse(self.governor.has_reached_limit('quizzes_played', is_premium=True))

    def test_day_rollover_resets_everything(self):
        self.storage.usage['u1'] = {
            'date': '2024-06-14',
            'counters': {key: 99 for key in FREEMIUM_LIMITS},
        }
        self.assertFalse(self.governor.has_reached_limit('words_added'))
        self.assertEqual(self.storage.usage['u1']['date'], '2024-06-15')
        self.assertEqual(set(self.storage.usage['u1']['counters'].values()), {0})

    def test_unknown_key_fails_closed(self):
        with self.assertLogs('core.freemium', level='ERROR'):
            self.assertTrue(self.governor.has_reached_limit('wordsAdded'))

    def test_unknown_key_cannot_be_counted(self):
        with self.assertLogs('core.freemium', level='ERROR'):
            with self.assertRaises(UsageConfigError):
                self.governor.increment('bogus')

    def test_snapshot(self):
        self.governor.increment('ai_requests')
        snapshot = self.governor.snapshot()
        self.assertEqual(snapshot['counters']['ai_requests'], 1)
        self.assertEqual(snapshot['limits']['ai_requests'], FREEMIUM_LIMITS['ai_requests'])
        self.assertFalse(snapshot['is_premium'])


class TestEnrichmentTracker(unittest.TestCase):
    """Tests for the per-item request state machine."""

    def setUp(self):
        self.tracker = EnrichmentTracker()
        self.key = ('u1', 'i1')

    def test_lifecycle(self):
        self.assertEqual(self.tracker.state(self.key), IDLE)
        token = self.tracker.begin(self.key)
        self.assertEqual(self.tracker.state(self.key), PENDING)
        self.assertIsNone(self.tracker.begin(self.key))
        self.assertTrue(self.tracker.finish(self.key, token, True))
        self.assertEqual(self.tracker.state(self.key), IDLE)

    def test_success_forgets_key(self):
        for n in range(50):
            key = ('u1', f'i{n}')
            self.tracker.finish(key, self.tracker.begin(key), True)
        self.assertEqual(self.tracker._states, {})
        self.assertEqual(self.tracker._tokens, {})

    def test_tokens_not_reused_after_success(self):
        stale = self.tracker.begin(self.key)
        self.tracker.reset(self.key)
        current = self.tracker.begin(self.key)
        self.assertTrue(self.tracker.finish(self.key, current, True))
        self.tracker.begin(self.key)
        self.assertFalse(self.tracker.finish(self.key, stale, True))

    def test_failed_needs_retry(self):
        token = self.tracker.begin(self.key)
        self.tracker.finish(self.key, token, False)
        self.assertEqual(self.tracker.state(self.key), FAILED)
        self.assertIsNone(self.tracker.begin(self.key))
        self.assertTrue(self.tracker.retry(self.key))
        self.assertIsNotNone(self.tracker.begin(self.key))

    def test_retry_only_from_failed(self):
        self.assertFalse(self.tracker.retry(self.key))

    def test_reset_invalidates_pending_token(self):
        token = self.tracker.begin(self.key)
        self.tracker.reset(self.key)
        self.assertFalse(self.tracker.finish(self.key, token, True))
        self.assertEqual(self.tracker.state(self.key), IDLE)


# ============================================================================
# Vocabulary bank
# ============================================================================

class TestVocabularyBank(unittest.TestCase):
    """Tests for VocabularyBank word operations."""

    def setUp(self):
        self.storage = MockStorage()
        self.today = date(2024, 6, 15)
        self.bank = VocabularyBank(self.storage, FakeNormalizer(), today=lambda: self.today)

    def test_add_word_normalizes_term(self):
        result = self.bank.add_word('u1', 'u1', '  Casa ', 'house', 'Home')
        item = result['item']
        self.assertEqual(item.term, 'casa')
        self.assertEqual(item.mastery_score, 0)
        self.assertEqual(self.storage.list_items('u1')[0]['term'], 'casa')
        self.assertEqual(result['stats']['total_xp'], 10)
        self.assertFalse(result['level_up'])
        self.assertEqual(self.storage.events[0][0], 'word_added')

    def test_add_word_rejects_bad_input(self):
        with self.assertRaises(ValueError):
            self.bank.add_word('u1', 'u1', '   ')
        with self.assertRaises(ValueError):
            self.bank.add_word('u1', 'u1', 'casa', part_of_speech='article')
        with self.assertRaises(ValueError):
            self.bank.add_word('u1', 'u1', 'casa', category='All')

    def test_add_word_quota(self):
        for i in range(FREEMIUM_LIMITS['words_added']):
            self.bank.add_word('u1', 'u1', f'palabra{i}')
        with self.assertRaises(LimitReachedError) as ctx:
            self.bank.add_word('u1', 'u1', 'una más')
        self.assertEqual(ctx.exception.key, 'words_added')
        self.assertEqual(len(self.storage.list_items('u1')), FREEMIUM_LIMITS['words_added'])

    def test_tutor_additions_are_not_quota_bound(self):
        self.storage.assign_tutor('u1', 't1')
        for i in range(FREEMIUM_LIMITS['words_added'] + 2):
            self.bank.add_word('t1', 'u1', f'palabra{i}')
        self.assertEqual(self.bank.usage_snapshot('u1')['counters']['words_added'], 0)

    def test_strangers_are_denied(self):
        with self.assertRaises(PermissionDeniedError):
            self.bank.add_word('intruder', 'u1', 'casa')
        with self.assertRaises(PermissionDeniedError):
            self.bank.list_items('intruder', 'u1')

    def test_level_up_reported(self):
        self.storage.set_premium('u1', True)
        for i in range(9):
            self.bank.add_word('u1', 'u1', f'palabra{i}')
        result = self.bank.add_word('u1', 'u1', 'décima')
        self.assertTrue(result['level_up'])
        self.assertEqual(result['stats']['level'], 2)

    def test_edit_item(self):
        item = self.bank.add_word('u1', 'u1', 'casa')['item']
        updated = self.bank.edit_item('u1', 'u1', item.id, {'primary_definition': 'house', 'category': 'Home'})
        self.assertEqual(updated.primary_definition, 'house')
        self.assertEqual(updated.category, 'Home')
        with self.assertRaises(ValueError):
            self.bank.edit_item('u1', 'u1', item.id, {'mastery_score': 50})

    def test_edit_term_clears_enrichment(self):
        item = self.bank.add_word('u1', 'u1', 'casa')['item']
        self.storage.update_item('u1', item.id, {
            'enrichment': WordEntry('casa', 'noun', [Definition('house')]).to_dict()
        })
        updated = self.bank.edit_item('u1', 'u1', item.id, {'term': 'Mesa'})
        self.assertEqual(updated.term, 'mesa')
        self.assertIsNone(updated.enrichment)

    def test_delete_item(self):
        item = self.bank.add_word('u1', 'u1', 'casa')['item']
        self.bank.delete_item('u1', 'u1', item.id)
        self.assertEqual(self.storage.list_items('u1'), [])
        with self.assertRaises(ItemNotFoundError):
            self.bank.delete_item('u1', 'u1', item.id)

    def test_failed_delete_is_not_assumed(self):
        item = self.bank.add_word('u1', 'u1', 'casa')['item']
        self.storage.fail_writes = True
        with self.assertRaises(StorageError):
            self.bank.delete_item('u1', 'u1', item.id)
        self.storage.fail_writes = False
        self.assertEqual(len(self.storage.list_items('u1')), 1)

    def test_record_study_result(self):
        item = self.bank.add_word('u1', 'u1', 'casa')['item']
        self.assertEqual(self.bank.record_study_result('u1', 'u1', item.id, True), 1)
        self.assertEqual(self.bank.record_study_result('u1', 'u1', item.id, False), 0)
        self.assertEqual(self.bank.record_study_result('u1', 'u1', item.id, False), 0)
        with self.assertRaises(ItemNotFoundError):
            self.bank.record_study_result('u1', 'u1', 'missing', True)

    def test_review_session_orders_by_mastery(self):
        self.storage.set_premium('u1', True)
        ids = [self.bank.add_word('u1', 'u1', term)['item'].id for term in ('uno', 'dos', 'tres')]
        self.bank.record_study_result('u1', 'u1', ids[0], True)
        self.bank.record_study_result('u1', 'u1', ids[0], True)
        self.bank.record_study_result('u1', 'u1', ids[2], True)
        review = self.bank.review_session('u1', 'u1')
        self.assertEqual([item.term for item in review], ['dos', 'tres', 'uno'])
        unordered = self.bank.review_session('u1', 'u1', smart=False)
        self.assertEqual([item.term for item in unordered], ['uno', 'dos', 'tres'])

    def test_categories(self):
        self.bank.add_word('u1', 'u1', 'casa', category='Home')
        self.bank.add_word('u1', 'u1', 'pan', category='Food')
        self.bank.add_word('u1', 'u1', 'mesa', category='Home')
        self.assertEqual(self.bank.categories('u1', 'u1'), ['Food', 'Home'])

    def test_consume(self):
        snapshot = self.bank.consume('u1', 'quizzes_played')
        self.assertEqual(snapshot['counters']['quizzes_played'], 1)
        with self.assertRaises(LimitReachedError):
            self.bank.consume('u1', 'quizzes_played')
        self.assertEqual(self.storage.events[-1][0], 'limit_reached')

    def test_subscribe_receives_full_list(self):
        received = []
        unsubscribe = self.bank.subscribe('u1', 'u1', received.append)
        self.bank.add_word('u1', 'u1', 'casa')
        self.assertEqual([item['term'] for item in received[-1]], ['casa'])
        unsubscribe()
        self.bank.add_word('u1', 'u1', 'mesa')
        self.assertEqual(len(received), 1)

    def test_failing_subscriber_does_not_break_writes(self):
        def broken(items):
            raise RuntimeError("subscriber down")

        self.storage.subscribe('u1', broken)
        with self.assertLogs('core.interfaces', level='ERROR'):
            self.bank.add_word('u1', 'u1', 'casa')
        self.assertEqual(len(self.storage.list_items('u1')), 1)


class TestVocabularyBankLookups(unittest.IsolatedAsyncioTestCase):
    """Tests for lookups and enrichment."""

    def setUp(self):
        self.storage = MockStorage()
        self.storage.set_premium('u1', True)
        self.normalizer = FakeNormalizer({'hablar': verb_info('hablar', 'to speak')})
        self.bank = VocabularyBank(self.storage, self.normalizer)

    async def test_successful_lookups_are_cached(self):
        await self.bank.lookup_word('hablar')
        info = await self.bank.lookup_word('Hablar')
        self.assertTrue(info.success)
        self.assertEqual(self.normalizer.lookup_calls, ['hablar'])
        self.assertIn('hablar', self.storage.word_cache)

    async def test_failed_lookups_are_not_cached(self):
        await self.bank.lookup_word('qwxz')
        await self.bank.lookup_word('qwxz')
        self.assertEqual(self.normalizer.lookup_calls, ['qwxz', 'qwxz'])
        self.assertNotIn('qwxz', self.storage.word_cache)

    async def test_outage_results_are_not_cached(self):
        normalizer = WordEntryNormalizer(
            MockLexicalSource(error=ConnectionError("dictionary down")),
            MockConjugator(regular_ar_forms('hablar'))
        )
        bank = VocabularyBank(self.storage, normalizer)
        info = await bank.lookup_word('hablar')
        self.assertTrue(info.success)
        self.assertTrue(info.lookup_failed)
        self.assertEqual(self.storage.word_cache, {})

        await bank.lookup_word('hablar')
        self.assertEqual(normalizer.source.lookup_calls, ['hablar', 'hablar'])

    async def test_enrich_item(self):
        item = self.bank.add_word('u1', 'u1', 'hablar')['item']
        result = await self.bank.enrich_item('u1', 'u1', item.id)
        self.assertEqual(result['state'], DONE)
        enriched = result['item']
        self.assertEqual(enriched.enrichment.part_of_speech, 'verb')
        self.assertEqual(enriched.part_of_speech, 'verb')
        self.assertEqual(enriched.primary_definition, 'to speak')

    async def test_enriched_item_leaves_no_tracker_state(self):
        item = self.bank.add_word('u1', 'u1', 'hablar')['item']
        await self.bank.enrich_item('u1', 'u1', item.id)
        self.assertEqual(self.bank.tracker._states, {})
        again = await self.bank.enrich_item('u1', 'u1', item.id)
        self.assertEqual(again['state'], DONE)
        self.assertEqual(self.normalizer.lookup_calls, ['hablar'])

    async def test_enrich_keeps_user_definition(self):
        item = self.bank.add_word('u1', 'u1', 'hablar', 'to chat')['item']
        result = await self.bank.enrich_item('u1', 'u1', item.id)
        self.assertEqual(result['item'].primary_definition, 'to chat')

    async def test_duplicate_enrich_while_pending(self):
        item = self.bank.add_word('u1', 'u1', 'hablar')['item']
        self.normalizer.hold = True
        first = asyncio.create_task(self.bank.enrich_item('u1', 'u1', item.id))
        await asyncio.sleep(0)
        second = await self.bank.enrich_item('u1', 'u1', item.id)
        self.assertEqual(second['state'], PENDING)
        self.normalizer.release.set()
        self.assertEqual((await first)['state'], DONE)
        self.assertEqual(self.normalizer.lookup_calls, ['hablar'])

    async def test_stale_result_is_discarded(self):
        item = self.bank.add_word('u1', 'u1', 'hablar')['item']
        self.normalizer.hold = True
        task = asyncio.create_task(self.bank.enrich_item('u1', 'u1', item.id))
        await asyncio.sleep(0)
        self.bank.edit_item('u1', 'u1', item.id, {'term': 'comer'})
        self.normalizer.release.set()
        result = await task
        self.assertNotEqual(result['state'], DONE)
        stored = self.bank.get_item('u1', item.id)
        self.assertEqual(stored.term, 'comer')
        self.assertIsNone(stored.enrichment)

    async def test_failed_enrichment_needs_explicit_retry(self):
        item = self.bank.add_word('u1', 'u1', 'qwxz')['item']
        result = await self.bank.enrich_item('u1', 'u1', item.id)
        self.assertEqual(result['state'], FAILED)

        self.normalizer.results['qwxz'] = verb_info('qwxz', 'to test')
        again = await self.bank.enrich_item('u1', 'u1', item.id)
        self.assertEqual(again['state'], FAILED)
        self.assertEqual(len(self.normalizer.lookup_calls), 1)

        retried = await self.bank.retry_enrichment('u1', 'u1', item.id)
        self.assertEqual(retried['state'], DONE)
        self.assertEqual(retried['item'].enrichment.primary_definition, 'to test')

    async def test_enrich_missing_item(self):
        with self.assertRaises(ItemNotFoundError):
            await self.bank.enrich_item('u1', 'u1', 'missing')

    async def test_enrich_storage_failure_resets_state(self):
        item = self.bank.add_word('u1', 'u1', 'hablar')['item']
        self.storage.fail_writes = True
        with self.assertRaises(StorageError):
            await self.bank.enrich_item('u1', 'u1', item.id)
        self.storage.fail_writes = False
        result = await self.bank.enrich_item('u1', 'u1', item.id)
        self.assertEqual(result['state'], DONE)


if __name__ == '__main__':
    unittest.main()
