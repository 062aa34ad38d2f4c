"""Configuration constants for linguahub."""

DEFAULT_LANGUAGE = 'es'

# Gamification
XP_PER_WORD = 10
XP_PER_LEVEL = 100

# Smart review
SMART_REVIEW_LIMIT = 20       # Max items in a smart-review session
DEFAULT_CATEGORY = 'General'
ALL_CATEGORIES = 'All'

# Mastery deltas applied after a study round
MASTERY_CORRECT_DELTA = 1
MASTERY_INCORRECT_DELTA = -1

# Daily quotas for non-premium users
FREEMIUM_LIMITS = {
    'words_added': 5,
    'quizzes_played': 1,
    'matches_played': 1,
    'flashcards_viewed': 10,
    'ai_requests': 3,
}

# Conjugation tables: (tense id, display label)
TENSES = [
    ('present', 'Presente'),
    ('preterite', 'Pretérito'),
    ('imperfect', 'Imperfecto'),
    ('future', 'Futuro'),
    ('conditional', 'Condicional'),
    ('subjunctive', 'Presente de subjuntivo'),
]
TENSE_LABELS = dict(TENSES)
PERSONS = ['yo', 'tú', 'él/ella/usted', 'nosotros', 'vosotros', 'ellos/ellas/ustedes']
PLACEHOLDER_FORM = '—'
REFLEXIVE_SUFFIX = 'se'

# Network bounds (seconds)
CONJUGATION_TIMEOUT_SECONDS = 3.0
# A cell waits for the whole table when the AI provider conjugates
AI_CONJUGATION_TIMEOUT_SECONDS = 30.0
CONJUGATION_CONCURRENCY = 12
LOOKUP_TIMEOUT_SECONDS = 8.0

# Sentence practice: bank words offered to the AI per difficulty
SENTENCE_DIFFICULTIES = {'easy': 2, 'medium': 3, 'hard': 4}
PASSING_SCORE = 70

# Tense examples
MAX_SYNTHESIZED_EXAMPLES = 3
MAX_COPIED_EXAMPLES = 3
EXAMPLE_LABEL = 'Ejemplo'

# Carrier sentences for synthesized examples, per target language.
# {form} is the conjugated first-person form, {gloss} the English verb.
CARRIER_SENTENCES = {
    'es': {
        'present': ('Yo {form} todos los días.', 'I {gloss} every day.'),
        'preterite': ('Yo {form} ayer.', 'I did {gloss} yesterday.'),
        'future': ('Yo {form} mañana.', 'I will {gloss} tomorrow.'),
    },
}
