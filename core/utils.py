"""Utility functions for linguahub."""

import asyncio
import html
import re
from datetime import date, datetime

TAG_PATTERN = re.compile(r'<[^>]+>')
WHITESPACE_PATTERN = re.compile(r'\s+')


def strip_markup(text: str) -> str:
    """Remove HTML tags and entities, collapse whitespace."""
    if not text:
        return ''
    text = TAG_PATTERN.sub(' ', text)
    text = html.unescape(text)
    return WHITESPACE_PATTERN.sub(' ', text).strip()


def normalize_term(term: str) -> str:
    """Canonical form of a vocabulary term: trimmed and lowercased."""
    return WHITESPACE_PATTERN.sub(' ', (term or '').strip()).lower()


def local_day(timestamp) -> date | None:
    """Calendar day of a timestamp in local time.

    Aware datetimes are converted to the local zone first; naive ones are
    taken as already local. ISO strings are accepted.
    """
    if timestamp is None:
        return None
    if isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp)
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone()
        return timestamp.date()
    if isinstance(timestamp, date):
        return timestamp
    raise TypeError(f"Unsupported timestamp type: {type(timestamp).__name__}")


def english_gloss(definition: str) -> str | None:
    """Pull a bare English verb out of a definition like 'to speak, to talk'."""
    if not definition:
        return None
    first = re.split(r'[,;(/]', definition, maxsplit=1)[0].strip()
    if first.lower().startswith('to '):
        first = first[3:].strip()
    return first or None


async def settle_all(coroutines: list, limit: int, timeout: float) -> list:
    """Run coroutines with bounded concurrency and a per-call timeout.

    Returns one entry per coroutine, in order: its value, or the exception
    it raised (including TimeoutError). Never raises for a single failure.
    """
    semaphore = asyncio.Semaphore(limit)

    async def run(coro):
        async with semaphore:
            return await asyncio.wait_for(coro, timeout)

    return await asyncio.gather(*(run(c) for c in coroutines), return_exceptions=True)
