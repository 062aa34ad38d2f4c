"""Gemini AI provider implementation."""

import json
import logging
import time
import google.generativeai as genai

from core.config import TENSES, PERSONS, PASSING_SCORE
from core.interfaces import AIProvider

logger = logging.getLogger(__name__)

MAX_VOCABULARY_ITEMS = 10
MAX_SENTENCE_WORDS = 8


class GeminiProvider(AIProvider):
    """Gemini AI provider implementation."""

    def __init__(self, api_key: str, model_name: str = 'gemini-1.5-flash'):
        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model_name)
        self.model_name = model_name

    def _execute(self, prompt: str) -> tuple[str, int]:
        start_time = time.time()
        response = self.model.generate_content(prompt)
        end_time = time.time()
        ms = int((end_time - start_time) * 1000)
        return (response.text.strip(), ms)

    def _extract_json(self, text: str) -> str:
        s = text.replace('```json', '').replace('```', '')
        return s[s.find('{'):s.rfind('}')+1]

    def _parse_json(self, response: str, what: str, key: str) -> dict | None:
        """Parse a JSON object out of a reply, logging a diagnosis on failure."""
        sanitized = self._extract_json(response)
        try:
            parsed = json.loads(sanitized)
        except ValueError as e:
            logger.error(f"Failed to parse {what}: {e}")
            logger.error(f"Raw response:\n{response}")

            # Try to diagnose the issue
            if '{' not in response:
                logger.error("Diagnosis: No opening brace '{' found in response")
            elif '}' not in response:
                logger.error("Diagnosis: No closing brace '}' found in response")
            elif f'"{key}"' not in response:
                logger.error(f"Diagnosis: '{key}' key not found in response")
            else:
                logger.error("Diagnosis: Unknown parsing issue - possibly malformed JSON")
            return None
        if not isinstance(parsed, dict):
            logger.warning(f"{what.capitalize()} response is not an object: {type(parsed)}")
            return None
        return parsed

    def generate(self, prompt: str) -> tuple[str, int]:
        text, ms = self._execute(prompt)
        logger.info(f"Generated {len(text)} chars in {ms}ms")
        return (text or 'No response', ms)

    def summarize(self, text: str) -> str:
        prompt = f"""
            You are a helpful assistant. Summarize the text below in 4-6 bullet points.
            Keep it concise. No intro text.

            TEXT:
            {text}
        """
        summary, ms = self._execute(prompt)
        logger.info(f"Summary generated in {ms}ms")
        return summary or '—'

    def extract_vocabulary(self, text: str) -> list[dict]:
        prompt = f"""
            Extract useful vocabulary from the text below (assume it's Spanish unless obvious otherwise).
            Return ONLY valid JSON (no backticks, no commentary) in this exact shape:

            {{
              "items": [
                {{ "term": "SPANISH_WORD", "translation": "ENGLISH_TRANSLATION", "definition": "Short English definition / usage note" }}
              ]
            }}

            Rules:
            - 6 to 10 items
            - Prefer single words or short phrases
            - Avoid duplicates
            - Keep definition to 1 short sentence

            TEXT:
            {text}
        """
        response, ms = self._execute(prompt)
        parsed = self._parse_json(response, 'vocabulary', 'items')
        if parsed is None:
            return []

        items = parsed.get('items')
        if not isinstance(items, list):
            logger.warning(f"Vocabulary response has no item list: {type(items)}")
            return []

        vocabulary = []
        for raw in items[:MAX_VOCABULARY_ITEMS]:
            if not isinstance(raw, dict):
                continue
            item = {key: str(raw.get(key) or '').strip() for key in ('term', 'translation', 'definition')}
            if item['term']:
                vocabulary.append(item)
        logger.info(f"Extracted {len(vocabulary)} vocabulary items in {ms}ms")
        return vocabulary

    def translate(self, text: str, target_language: str) -> str:
        prompt = f"""
            Translate the text below into {target_language}.
            Return only the translation, no notes or explanations.

            TEXT:
            {text}
        """
        translation, ms = self._execute(prompt)
        logger.info(f"Translated {len(text)} chars to {target_language} in {ms}ms")
        return translation

    def conjugate_verb(self, infinitive: str) -> dict | None:
        tense_lines = ',\n'.join(f'                "{tense_id}": ["FORM", "FORM", "FORM", "FORM", "FORM", "FORM"]'
                                for tense_id, _ in TENSES)
        prompt = f"""
            You are a Spanish grammar expert. Conjugate the Spanish verb "{infinitive}".
            Return ONLY valid JSON (no backticks, no commentary) in this exact shape:

            {{
              "is_verb": true,
              "infinitive": "{infinitive}",
              "tenses": {{
{tense_lines}
              }}
            }}

            Rules:
            - If "{infinitive}" is not a Spanish verb infinitive, return {{"is_verb": false}}
            - Six forms per tense, in this order: {', '.join(PERSONS)}
            - "subjunctive" is the present subjunctive
            - Forms only, without pronouns
            - For a reflexive verb, conjugate the non-reflexive infinitive
        """
        response, ms = self._execute(prompt)
        parsed = self._parse_json(response, 'conjugation', 'is_verb')
        if parsed is None:
            return None
        logger.info(f"Conjugation for '{infinitive}' generated in {ms}ms")
        return parsed

    def generate_sentence(self, words: list[str], difficulty: str) -> dict | None:
        word_lines = '\n'.join(f'            - {w}' for w in words[:MAX_SENTENCE_WORDS])
        prompt = f"""
            You are a Spanish language tutor. Generate a Spanish sentence the student
            will translate to English.

            STUDENT'S WORD BANK (use 1-{len(words)} of these words in the sentence):
{word_lines}

            RULES:
            - Difficulty: {difficulty}
            - The sentence MUST be natural and grammatically correct
            - Use word bank words in their correct conjugated/declined forms when needed

            Return ONLY valid JSON (no backticks, no commentary) in this exact shape:

            {{ "sentence": "SPANISH_SENTENCE", "translation": "ENGLISH_TRANSLATION", "bankWordsUsed": ["WORD"] }}
        """
        response, ms = self._execute(prompt)
        parsed = self._parse_json(response, 'sentence', 'sentence')
        if parsed is None:
            return None
        sentence = str(parsed.get('sentence') or '').strip()
        translation = str(parsed.get('translation') or '').strip()
        if not sentence or not translation:
            logger.warning(f"Sentence response is missing a sentence or translation: {parsed}")
            return None
        used = parsed.get('bankWordsUsed')
        logger.info(f"Practice sentence generated in {ms}ms")
        return {
            'sentence': sentence,
            'translation': translation,
            'words_used': [str(w) for w in used] if isinstance(used, list) else [],
        }

    def grade_translation(self, sentence: str, reference: str, answer: str) -> dict:
        prompt = f"""
            You are evaluating a student's English translation of a Spanish sentence.

            Spanish Sentence: "{sentence}"
            Reference Translation: "{reference}"
            Student's Translation: "{answer}"

            EVALUATION RULES:
            1. A word is CORRECTLY translated if the student used a valid English equivalent.
               Synonyms are valid translations.
            2. A word is INCORRECTLY translated if it was left in Spanish, given a wrong
               meaning, or omitted entirely.
            3. Do NOT penalize word order that keeps the meaning, flexible use of articles,
               capitalization or punctuation.
            4. If the translation is semantically correct with all words properly translated,
               the score should be 100.

            Return ONLY valid JSON (no backticks, no commentary) in this exact shape:

            {{ "score": 0-100, "feedback": "BRIEF_EXPLANATION", "corrected": "IDEAL_ENGLISH_TRANSLATION" }}

            Be ACCURATE in the feedback: only mention actual errors.
        """
        response, ms = self._execute(prompt)
        parsed = self._parse_json(response, 'grade', 'score')
        if parsed is None:
            return {
                'score': 0,
                'correct': False,
                'feedback': 'Error parsing AI response. Please try again.',
                'corrected': reference,
            }

        missing = [k for k in ('score', 'feedback', 'corrected') if k not in parsed]
        if missing:
            logger.warning(f"AI response missing keys: {missing}")
            logger.warning(f"Raw response:\n{response}")

        score = parsed.get('score')
        if not isinstance(score, (int, float)) or isinstance(score, bool):
            logger.warning(f"Invalid score type: {type(score)} = {score}")
            score = 0
        score = max(0, min(100, int(score)))
        logger.info(f"Translation graded {score} in {ms}ms")
        return {
            'score': score,
            'correct': score >= PASSING_SCORE,
            'feedback': str(parsed.get('feedback') or 'Evaluation unavailable'),
            'corrected': str(parsed.get('corrected') or reference),
        }
