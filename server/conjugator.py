"""Spanish verb conjugation.

AIConjugator asks the AI provider for a whole table once per infinitive and
keeps it in storage. SpanishConjugator is the local fallback: it only
answers for verbs it has rules for and returns None for everything else.
"""

import logging
import threading

from core.interfaces import AIProvider, Conjugator, Storage
from core.config import TENSE_LABELS, PERSONS
from core.errors import StorageError

logger = logging.getLogger(__name__)

# Persons: yo, tú, él, nosotros, vosotros, ellos
PRESENT = {
    'ar': ['o', 'as', 'a', 'amos', 'áis', 'an'],
    'er': ['o', 'es', 'e', 'emos', 'éis', 'en'],
    'ir': ['o', 'es', 'e', 'imos', 'ís', 'en'],
}
PRETERITE = {
    'ar': ['é', 'aste', 'ó', 'amos', 'asteis', 'aron'],
    'er': ['í', 'iste', 'ió', 'imos', 'isteis', 'ieron'],
    'ir': ['í', 'iste', 'ió', 'imos', 'isteis', 'ieron'],
}
IMPERFECT = {
    'ar': ['aba', 'abas', 'aba', 'ábamos', 'abais', 'aban'],
    'er': ['ía', 'ías', 'ía', 'íamos', 'íais', 'ían'],
    'ir': ['ía', 'ías', 'ía', 'íamos', 'íais', 'ían'],
}
SUBJUNCTIVE = {
    'ar': ['e', 'es', 'e', 'emos', 'éis', 'en'],
    'er': ['a', 'as', 'a', 'amos', 'áis', 'an'],
    'ir': ['a', 'as', 'a', 'amos', 'áis', 'an'],
}
# Future and conditional attach to the whole infinitive
FUTURE = ['é', 'ás', 'á', 'emos', 'éis', 'án']
CONDITIONAL = ['ía', 'ías', 'ía', 'íamos', 'íais', 'ían']

# Only the tenses that deviate from the regular pattern are listed, plus
# every tense of 'ir', which has no stem to attach regular endings to.
IRREGULAR_VERBS = {
    'ser': {
        'present': ['soy', 'eres', 'es', 'somos', 'sois', 'son'],
        'preterite': ['fui', 'fuiste', 'fue', 'fuimos', 'fuisteis', 'fueron'],
        'imperfect': ['era', 'eras', 'era', 'éramos', 'erais', 'eran'],
        'subjunctive': ['sea', 'seas', 'sea', 'seamos', 'seáis', 'sean'],
    },
    'estar': {
        'present': ['estoy', 'estás', 'está', 'estamos', 'estáis', 'están'],
        'preterite': ['estuve', 'estuviste', 'estuvo', 'estuvimos', 'estuvisteis', 'estuvieron'],
        'subjunctive': ['esté', 'estés', 'esté', 'estemos', 'estéis', 'estén'],
    },
    'tener': {
        'present': ['tengo', 'tienes', 'tiene', 'tenemos', 'tenéis', 'tienen'],
        'preterite': ['tuve', 'tuviste', 'tuvo', 'tuvimos', 'tuvisteis', 'tuvieron'],
        'future': ['tendré', 'tendrás', 'tendrá', 'tendremos', 'tendréis', 'tendrán'],
        'conditional': ['tendría', 'tendrías', 'tendría', 'tendríamos', 'tendríais', 'tendrían'],
        'subjunctive': ['tenga', 'tengas', 'tenga', 'tengamos', 'tengáis', 'tengan'],
    },
    'ir': {
        'present': ['voy', 'vas', 'va', 'vamos', 'vais', 'van'],
        'preterite': ['fui', 'fuiste', 'fue', 'fuimos', 'fuisteis', 'fueron'],
        'imperfect': ['iba', 'ibas', 'iba', 'íbamos', 'ibais', 'iban'],
        'future': ['iré', 'irás', 'irá', 'iremos', 'iréis', 'irán'],
        'conditional': ['iría', 'irías', 'iría', 'iríamos', 'iríais', 'irían'],
        'subjunctive': ['vaya', 'vayas', 'vaya', 'vayamos', 'vayáis', 'vayan'],
    },
    'hacer': {
        'present': ['hago', 'haces', 'hace', 'hacemos', 'hacéis', 'hacen'],
        'preterite': ['hice', 'hiciste', 'hizo', 'hicimos', 'hicisteis', 'hicieron'],
        'future': ['haré', 'harás', 'hará', 'haremos', 'haréis', 'harán'],
        'conditional': ['haría', 'harías', 'haría', 'haríamos', 'haríais', 'harían'],
        'subjunctive': ['haga', 'hagas', 'haga', 'hagamos', 'hagáis', 'hagan'],
    },
    'poder': {
        'present': ['puedo', 'puedes', 'puede', 'podemos', 'podéis', 'pueden'],
        'preterite': ['pude', 'pudiste', 'pudo', 'pudimos', 'pudisteis', 'pudieron'],
        'future': ['podré', 'podrás', 'podrá', 'podremos', 'podréis', 'podrán'],
        'conditional': ['podría', 'podrías', 'podría', 'podríamos', 'podríais', 'podrían'],
        'subjunctive': ['pueda', 'puedas', 'pueda', 'podamos', 'podáis', 'puedan'],
    },
    'decir': {
        'present': ['digo', 'dices', 'dice', 'decimos', 'decís', 'dicen'],
        'preterite': ['dije', 'dijiste', 'dijo', 'dijimos', 'dijisteis', 'dijeron'],
        'future': ['diré', 'dirás', 'dirá', 'diremos', 'diréis', 'dirán'],
        'conditional': ['diría', 'dirías', 'diría', 'diríamos', 'diríais', 'dirían'],
        'subjunctive': ['diga', 'digas', 'diga', 'digamos', 'digáis', 'digan'],
    },
    'querer': {
        'present': ['quiero', 'quieres', 'quiere', 'queremos', 'queréis', 'quieren'],
        'preterite': ['quise', 'quisiste', 'quiso', 'quisimos', 'quisisteis', 'quisieron'],
        'future': ['querré', 'querrás', 'querrá', 'querremos', 'querréis', 'querrán'],
        'conditional': ['querría', 'querrías', 'querría', 'querríamos', 'querríais', 'querrían'],
        'subjunctive': ['quiera', 'quieras', 'quiera', 'queramos', 'queráis', 'quieran'],
    },
    'confiar': {
        'present': ['confío', 'confías', 'confía', 'confiamos', 'confiáis', 'confían'],
        'subjunctive': ['confíe', 'confíes', 'confíe', 'confiemos', 'confiéis', 'confíen'],
    },
}

# Verbs known to follow the regular endings in every tense listed above.
# Stem-changers and spelling-changers (pensar, buscar, leer) are left out.
REGULAR_VERBS = frozenset({
    'hablar', 'trabajar', 'estudiar', 'caminar', 'bailar', 'cantar', 'tomar',
    'llamar', 'mirar', 'escuchar', 'necesitar', 'comprar', 'ayudar', 'viajar',
    'cocinar', 'lavar', 'limpiar', 'preparar', 'esperar', 'usar', 'terminar',
    'visitar', 'comer', 'beber', 'aprender', 'comprender', 'vender', 'correr',
    'deber', 'meter', 'vivir', 'escribir', 'abrir', 'recibir', 'decidir',
    'subir', 'partir', 'compartir', 'permitir', 'describir',
})


def verb_class(infinitive: str) -> str | None:
    """'ar', 'er' or 'ir' for a plausible infinitive."""
    if len(infinitive) > 2 and infinitive.isalpha():
        ending = infinitive[-2:]
        if ending in PRESENT:
            return ending
    return None


def looks_like_infinitive(word: str) -> bool:
    return len(word) >= 2 and word.isalpha() and word.endswith(('ar', 'er', 'ir', 'ír'))


def check_cell(tense: str, person: int) -> None:
    if tense not in TENSE_LABELS or not 0 <= person < len(PERSONS):
        raise ValueError(f"Invalid tense/person: {tense}/{person}")


class SpanishConjugator(Conjugator):
    """Conjugates listed verbs only: the irregular table, then regular
    endings for REGULAR_VERBS and for the irregular verbs' regular tenses.
    Anything else comes back as None rather than a guessed form.
    """

    def __init__(self, irregular: dict = None, regular=None):
        self.irregular = IRREGULAR_VERBS if irregular is None else irregular
        self.regular = REGULAR_VERBS if regular is None else frozenset(regular)

    def conjugate(self, infinitive: str, tense: str, person: int) -> str | None:
        check_cell(tense, person)
        infinitive = (infinitive or '').strip().lower()

        forms = self.irregular.get(infinitive, {}).get(tense)
        if forms:
            return forms[person]

        ending = verb_class(infinitive)
        if ending is None or not (infinitive in self.regular or infinitive in self.irregular):
            return None
        stem = infinitive[:-2]
        if tense == 'present':
            return stem + PRESENT[ending][person]
        if tense == 'preterite':
            return stem + PRETERITE[ending][person]
        if tense == 'imperfect':
            return stem + IMPERFECT[ending][person]
        if tense == 'future':
            return infinitive + FUTURE[person]
        if tense == 'conditional':
            return infinitive + CONDITIONAL[person]
        return stem + SUBJUNCTIVE[ending][person]


class AIConjugator(Conjugator):
    """Conjugation tables from the AI provider, cached through storage.

    The normalizer asks for every cell of a verb at once, from worker
    threads. Callers for the same infinitive share a single provider
    request; the first one fetches and stores the table, the rest read it.
    When there is no provider, or the request fails, the fallback answers.
    """

    def __init__(self, provider: AIProvider | None, storage: Storage,
                 fallback: Conjugator | None = None):
        self.provider = provider
        self.storage = storage
        self.fallback = fallback
        self._lock = threading.Lock()
        self._inflight: dict[str, dict] = {}

    def conjugate(self, infinitive: str, tense: str, person: int) -> str | None:
        check_cell(tense, person)
        infinitive = (infinitive or '').strip().lower()
        if not looks_like_infinitive(infinitive):
            return None

        table = self.table(infinitive)
        if table is None:
            if self.fallback is None:
                return None
            return self.fallback.conjugate(infinitive, tense, person)
        if not table.get('is_verb'):
            return None
        forms = table.get('tenses', {}).get(tense)
        return forms[person] if forms else None

    def table(self, infinitive: str) -> dict | None:
        """The stored table for an infinitive, fetched once if missing.
        None when neither storage nor the provider has one."""
        with self._lock:
            slot = self._inflight.setdefault(
                infinitive, {'lock': threading.Lock(), 'done': False, 'table': None, 'users': 0}
            )
            slot['users'] += 1
        try:
            with slot['lock']:
                if not slot['done']:
                    slot['table'] = self._load(infinitive) or self._fetch(infinitive)
                    slot['done'] = True
                return slot['table']
        finally:
            with self._lock:
                slot['users'] -= 1
                if slot['users'] == 0:
                    self._inflight.pop(infinitive, None)

    def _load(self, infinitive: str) -> dict | None:
        try:
            return self.storage.get_verb_conjugation(infinitive)
        except StorageError as e:
            logger.warning(f"Conjugation cache read failed for '{infinitive}': {e}")
            return None

    def _fetch(self, infinitive: str) -> dict | None:
        if self.provider is None:
            return None
        try:
            result = self.provider.conjugate_verb(infinitive)
        except Exception as e:
            logger.error(f"AI conjugation failed for '{infinitive}': {type(e).__name__}: {e}")
            return None

        table = clean_table(result)
        if table is None:
            logger.warning(f"Unusable AI conjugation for '{infinitive}'")
            return None
        try:
            self.storage.save_verb_conjugation(infinitive, table)
        except StorageError as e:
            logger.warning(f"Conjugation cache write failed for '{infinitive}': {e}")
        logger.info(f"Conjugated '{infinitive}' (is_verb={table['is_verb']})")
        return table


def clean_table(result) -> dict | None:
    """Keep the tenses that have one non-empty form per person.
    None for a malformed result or a verb without a single usable tense."""
    if not isinstance(result, dict):
        return None
    if not result.get('is_verb'):
        return {'is_verb': False, 'tenses': {}}

    raw = result.get('tenses')
    tenses = {}
    if isinstance(raw, dict):
        for tense_id in TENSE_LABELS:
            forms = raw.get(tense_id)
            if not isinstance(forms, list) or len(forms) != len(PERSONS):
                continue
            forms = [str(f or '').strip() for f in forms]
            if all(forms):
                tenses[tense_id] = forms
    if not tenses:
        return None
    return {'is_verb': True, 'tenses': tenses}
