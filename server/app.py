"""FastAPI server for linguahub."""

import asyncio
import logging
import os
import random

from fastapi import FastAPI, HTTPException, BackgroundTasks, Header, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from typing import Optional

logger = logging.getLogger(__name__)

from core.config import (
    DEFAULT_CATEGORY, ALL_CATEGORIES, FREEMIUM_LIMITS, SENTENCE_DIFFICULTIES,
    AI_CONJUGATION_TIMEOUT_SECONDS
)
from core.errors import (
    StorageError, ItemNotFoundError, PermissionDeniedError,
    LimitReachedError, UsageConfigError
)
from core.normalizer import WordEntryNormalizer
from core.vocabulary import VocabularyBank

from server.conjugator import AIConjugator, SpanishConjugator
from server.file_storage import FileStorage
from server.gemini_provider import GeminiProvider
from server.lexicon import BuiltinLexicon, ChainedLexicalSource
from server.lingua_robot import LinguaRobotSource
from server.postgres_storage import PostgresStorage

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type',
}

# Quota keys the client reports itself; the others are counted server-side
CLIENT_COUNTED_KEYS = ('quizzes_played', 'matches_played', 'flashcards_viewed')


# Pydantic models for API
class GenerateRequest(BaseModel):
    prompt: Optional[str] = None


class AddWordRequest(BaseModel):
    term: str
    definition: str = ''
    category: str = DEFAULT_CATEGORY
    part_of_speech: str = 'unknown'


class EditWordRequest(BaseModel):
    term: Optional[str] = None
    primary_definition: Optional[str] = None
    category: Optional[str] = None
    part_of_speech: Optional[str] = None


class StudyRequest(BaseModel):
    correct: bool


class TextRequest(BaseModel):
    text: str


class TranslateRequest(BaseModel):
    text: str
    target_language: str = "English"


class SentenceRequest(BaseModel):
    difficulty: str = 'medium'
    category: Optional[str] = None


class GradeRequest(BaseModel):
    sentence: str
    translation: str
    answer: str


class TutorRequest(BaseModel):
    user_id: str
    tutor_id: str


class PremiumRequest(BaseModel):
    user_id: str
    premium: bool = True


# Global state (in production, use proper DI)
storage = None
ai_provider: GeminiProvider = None
bank: VocabularyBank = None
admin_token: str = None


def log_event(event: str, user_id: str, **data) -> None:
    """Log an event to the database."""
    if storage and hasattr(storage, 'log_event'):
        try:
            storage.log_event(event, user_id, **data)
        except StorageError as e:
            logger.warning(f"Could not log event {event}: {e}")


def get_setting(env_name: str, config_key: str, config: dict) -> str | None:
    """Environment variable first, then the config file."""
    return os.environ.get(env_name) or config.get(config_key)


def build_bank(storage, rapidapi_key: str = None, ai_provider=None) -> VocabularyBank:
    """Wire the lookup chain and conjugator into a VocabularyBank.

    With an AI provider, conjugation tables come from it and are cached in
    storage; the local rules only cover verbs they know.
    """
    sources = [BuiltinLexicon()]
    if rapidapi_key:
        sources.append(LinguaRobotSource(rapidapi_key))
    else:
        logger.warning("RAPIDAPI_KEY not set; lookups limited to the built-in lexicon")
    if ai_provider is not None:
        conjugator = AIConjugator(ai_provider, storage, fallback=SpanishConjugator())
        normalizer = WordEntryNormalizer(ChainedLexicalSource(sources), conjugator,
                                         conjugation_timeout=AI_CONJUGATION_TIMEOUT_SECONDS)
    else:
        logger.warning("No AI provider; conjugations limited to the built-in verb tables")
        normalizer = WordEntryNormalizer(ChainedLexicalSource(sources), SpanishConjugator())
    return VocabularyBank(storage, normalizer)


app = FastAPI(title="LinguaHub API", description="Spanish vocabulary learning API")


@app.exception_handler(ItemNotFoundError)
async def item_not_found_handler(request: Request, exc: ItemNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(LimitReachedError)
async def limit_reached_handler(request: Request, exc: LimitReachedError):
    return JSONResponse(status_code=429, content={"detail": str(exc), "key": exc.key})


@app.exception_handler(UsageConfigError)
async def usage_config_handler(request: Request, exc: UsageConfigError):
    return JSONResponse(status_code=500, content={"detail": f"Unknown usage key: {exc}"})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage error on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.on_event("startup")
async def startup():
    """Initialize storage, lookups and the AI provider on startup."""
    global storage, ai_provider, bank, admin_token

    logging.basicConfig(level=logging.INFO)

    # Use PostgreSQL by default, set LINGUAHUB_STORAGE=file to use file storage
    storage_type = os.environ.get('LINGUAHUB_STORAGE', 'postgres')
    if storage_type == 'file':
        storage = FileStorage()
        logger.info("Using file storage")
    else:
        storage = PostgresStorage()
        logger.info("Using PostgreSQL storage")

    config = storage.load_config()
    api_key = get_setting('GEMINI_API_KEY', 'gemini_api_key', config)
    if api_key:
        ai_provider = GeminiProvider(api_key)
        logger.info(f"AI provider initialized: {ai_provider.model_name}")
    else:
        logger.warning(
            "GEMINI_API_KEY environment variable not set and not in ~/.config/linguahub/config.json; "
            "AI endpoints are disabled"
        )

    bank = build_bank(storage, get_setting('RAPIDAPI_KEY', 'rapidapi_key', config), ai_provider)

    admin_token = get_setting('LINGUAHUB_ADMIN_TOKEN', 'admin_token', config)
    if not admin_token:
        logger.info("LINGUAHUB_ADMIN_TOKEN not set; admin endpoints are disabled")


async def run_blocking(func, *args):
    """Run a blocking provider call off the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, func, *args)


def require_ai_provider() -> GeminiProvider:
    if ai_provider is None:
        raise HTTPException(status_code=503, detail="AI provider not configured")
    return ai_provider


async def enrich_in_background(actor_id: str, owner_id: str, item_id: str) -> None:
    """Look up a freshly added word and attach the result to the item."""
    try:
        result = await bank.enrich_item(actor_id, owner_id, item_id)
        logger.info(f"Background enrichment for {owner_id}/{item_id}: {result['state']}")
    except Exception as e:
        logger.error(f"Background enrichment failed for {owner_id}/{item_id}: {type(e).__name__}: {e}")


# Word lookup
@app.get("/wordinfo")
@app.get("/api/wordinfo")
async def get_word_info(word: str = None, user_id: str = None):
    """Look up a Spanish word. Always 200 for a non-empty word."""
    if not word or not word.strip():
        return JSONResponse(status_code=400, content={"error": "Word parameter required"},
                            headers=CORS_HEADERS)

    logger.info(f"Looking up word: {word}")
    info = await bank.lookup_word(word)
    log_event('word_lookup', user_id or 'anonymous', word=info.word, success=info.success)
    return JSONResponse(content=info.to_dict(), headers=CORS_HEADERS)


@app.options("/wordinfo")
@app.options("/api/wordinfo")
async def word_info_options():
    """CORS preflight."""
    return Response(status_code=200, headers=CORS_HEADERS)


@app.post("/api/generate")
async def generate(request: GenerateRequest):
    """Pass-through text generation."""
    if not request.prompt or not request.prompt.strip():
        return JSONResponse(status_code=400, content={"text": "Missing prompt"})
    if ai_provider is None:
        return JSONResponse(status_code=500, content={"text": "Missing GEMINI_API_KEY"})

    try:
        text, ms = await run_blocking(ai_provider.generate, request.prompt)
    except Exception as e:
        logger.error(f"Generation failed: {type(e).__name__}: {e}")
        return JSONResponse(status_code=500, content={"text": f"Server error: {e}"})
    return {"text": text}


# Word bank
@app.get("/api/words")
async def list_words(user_id: str, actor_id: str = None, category: str = None):
    """List a user's word bank, optionally filtered by category."""
    items = bank.list_items(actor_id or user_id, user_id)
    categories = sorted({item.category for item in items})
    if category and category != ALL_CATEGORIES:
        items = [item for item in items if item.category == category]
    return {
        "total": len(items),
        "words": [item.to_dict() for item in items],
        "categories": categories
    }


@app.post("/api/words")
async def add_word(request: AddWordRequest, background_tasks: BackgroundTasks,
                   user_id: str, actor_id: str = None, enrich: bool = True):
    """Add a word; the dictionary lookup runs after the response."""
    actor_id = actor_id or user_id
    result = bank.add_word(actor_id, user_id, request.term, request.definition,
                           request.category, request.part_of_speech)
    item = result['item']
    if enrich:
        background_tasks.add_task(enrich_in_background, actor_id, user_id, item.id)
    return {
        "item": item.to_dict(),
        "stats": result['stats'],
        "level_up": result['level_up']
    }


@app.patch("/api/words/{item_id}")
async def edit_word(item_id: str, request: EditWordRequest, user_id: str, actor_id: str = None):
    fields = {key: value for key, value in request.model_dump().items() if value is not None}
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")
    item = bank.edit_item(actor_id or user_id, user_id, item_id, fields)
    return item.to_dict()


@app.delete("/api/words/{item_id}")
async def delete_word(item_id: str, user_id: str, actor_id: str = None):
    bank.delete_item(actor_id or user_id, user_id, item_id)
    return {"deleted": item_id}


@app.post("/api/words/{item_id}/study")
async def record_study(item_id: str, request: StudyRequest, user_id: str, actor_id: str = None):
    """Record one study-round outcome."""
    score = bank.record_study_result(actor_id or user_id, user_id, item_id, request.correct)
    return {"item_id": item_id, "mastery_score": score}


@app.post("/api/words/{item_id}/enrich")
async def enrich_word(item_id: str, user_id: str, actor_id: str = None, retry: bool = False):
    """Attach dictionary data to an item; retry=true re-runs a failed lookup."""
    actor_id = actor_id or user_id
    if retry:
        result = await bank.retry_enrichment(actor_id, user_id, item_id)
    else:
        result = await bank.enrich_item(actor_id, user_id, item_id)
    return {"state": result['state'], "item": result['item'].to_dict()}


@app.get("/api/review")
async def get_review(user_id: str, actor_id: str = None, category: str = None, smart: bool = True):
    """Words for a study session, weakest first in smart mode."""
    items = bank.review_session(actor_id or user_id, user_id, category, smart)
    return {
        "total": len(items),
        "words": [item.to_dict() for item in items]
    }


@app.get("/api/stats")
async def get_stats(user_id: str, actor_id: str = None):
    return bank.stats(actor_id or user_id, user_id)


# Freemium usage
@app.get("/api/usage")
async def get_usage(user_id: str):
    return bank.usage_snapshot(user_id)


@app.post("/api/usage/{key}")
async def consume_usage(key: str, user_id: str):
    """Count one quiz, match or flashcard view. 429 once today's quota is used."""
    if key in FREEMIUM_LIMITS and key not in CLIENT_COUNTED_KEYS:
        raise HTTPException(status_code=400, detail=f"'{key}' is counted by the server")
    return bank.consume(user_id, key)


# AI tools
@app.post("/api/tools/summarize")
async def summarize(request: TextRequest, user_id: str):
    provider = require_ai_provider()
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Text required")
    usage = bank.consume(user_id, 'ai_requests')
    summary = await run_blocking(provider.summarize, request.text)
    return {"summary": summary, "usage": usage}


@app.post("/api/tools/vocabulary")
async def extract_vocabulary(request: TextRequest, user_id: str):
    provider = require_ai_provider()
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Text required")
    usage = bank.consume(user_id, 'ai_requests')
    items = await run_blocking(provider.extract_vocabulary, request.text)
    return {"items": items, "usage": usage}


@app.post("/api/tools/translate")
async def translate(request: TranslateRequest, user_id: str):
    provider = require_ai_provider()
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Text required")
    usage = bank.consume(user_id, 'ai_requests')
    translation = await run_blocking(provider.translate, request.text, request.target_language)
    return {"translation": translation, "usage": usage}


@app.post("/api/tools/sentence")
async def practice_sentence(request: SentenceRequest, user_id: str, actor_id: str = None):
    """Generate a sentence from the user's own words for translation practice."""
    provider = require_ai_provider()
    count = SENTENCE_DIFFICULTIES.get(request.difficulty)
    if count is None:
        raise HTTPException(status_code=400, detail=f"Unknown difficulty: {request.difficulty}")
    items = bank.list_items(actor_id or user_id, user_id)
    if request.category and request.category != ALL_CATEGORIES:
        items = [item for item in items if item.category == request.category]
    terms = sorted({item.term for item in items})
    if not terms:
        raise HTTPException(status_code=400, detail="Add some words to your word bank first")

    usage = bank.consume(user_id, 'ai_requests')
    words = random.sample(terms, min(count, len(terms)))
    result = await run_blocking(provider.generate_sentence, words, request.difficulty)
    if result is None:
        raise HTTPException(status_code=502, detail="Could not generate a sentence. Try again.")
    log_event('sentence_generated', user_id, difficulty=request.difficulty, words=words)
    return {**result, "words": words, "usage": usage}


@app.post("/api/tools/sentence/grade")
async def grade_sentence(request: GradeRequest, user_id: str):
    """Grade a translation of a practice sentence. Part of the same exercise,
    so it does not count as another AI request."""
    provider = require_ai_provider()
    if not request.sentence.strip() or not request.answer.strip():
        raise HTTPException(status_code=400, detail="Sentence and answer required")
    result = await run_blocking(provider.grade_translation, request.sentence,
                                request.translation, request.answer.strip())
    log_event('sentence_graded', user_id, score=result['score'])
    return result


# Admin
def require_admin(token: str | None) -> None:
    if not admin_token:
        raise HTTPException(status_code=503, detail="Admin API disabled")
    if token != admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")


@app.post("/api/admin/tutors")
async def assign_tutor(request: TutorRequest, x_admin_token: str = Header(None)):
    """Let a tutor edit a user's word bank."""
    require_admin(x_admin_token)
    storage.assign_tutor(request.user_id, request.tutor_id)
    log_event('tutor_assigned', request.user_id, tutor_id=request.tutor_id)
    return {"user_id": request.user_id, "tutor_ids": storage.get_tutor_ids(request.user_id)}


@app.post("/api/admin/premium")
async def set_premium(request: PremiumRequest, x_admin_token: str = Header(None)):
    """Grant or revoke a user's premium subscription."""
    require_admin(x_admin_token)
    storage.set_premium(request.user_id, request.premium)
    log_event('premium_changed', request.user_id, premium=request.premium)
    return {"user_id": request.user_id, "is_premium": storage.is_premium(request.user_id)}


def create_app():
    """Factory function for creating the app (useful for testing)."""
    return app
