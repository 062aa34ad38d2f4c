"""Lingua Robot dictionary client (RapidAPI)."""

import logging
from urllib.parse import quote

import requests

from core.interfaces import LexicalSource
from core.config import DEFAULT_LANGUAGE, LOOKUP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

RAPIDAPI_HOST = 'lingua-robot.p.rapidapi.com'
BASE_URL = f'https://{RAPIDAPI_HOST}/language/v1/entries'


class LinguaRobotSource(LexicalSource):
    """Looks words up in the Lingua Robot API."""

    def __init__(self, api_key: str, language: str = DEFAULT_LANGUAGE,
                 timeout: float = LOOKUP_TIMEOUT_SECONDS, session: requests.Session = None):
        self.api_key = api_key
        self.language = language
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        return {
            'X-RapidAPI-Key': self.api_key,
            'X-RapidAPI-Host': RAPIDAPI_HOST,
            'Content-Type': 'application/json',
        }

    def lookup(self, term: str) -> dict | None:
        url = f"{BASE_URL}/{self.language}/{quote(term.strip().lower())}"
        response = self.session.get(url, headers=self._headers(), timeout=self.timeout)
        logger.info(f"Lingua Robot response for '{term}': {response.status_code}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        data = response.json()
        if not data.get('entries'):
            return None
        return data
