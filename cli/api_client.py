"""REST API client for linguahub server."""

import requests


class LinguaAPIClient:
    """Client for communicating with the linguahub REST API."""

    def __init__(self, base_url: str = "http://localhost:8000", user_id: str = "default"):
        self.base_url = base_url.rstrip('/')
        self.user_id = user_id
        self.session = requests.Session()

    def _get(self, endpoint: str, params: dict = None) -> dict:
        """Make a GET request."""
        if params is None:
            params = {}
        params['user_id'] = self.user_id
        response = self.session.get(f"{self.base_url}{endpoint}", params=params)
        response.raise_for_status()
        return response.json()

    def _post(self, endpoint: str, data: dict = None, params: dict = None) -> dict:
        """Make a POST request."""
        if params is None:
            params = {}
        params['user_id'] = self.user_id
        response = self.session.post(f"{self.base_url}{endpoint}", json=data or {}, params=params)
        response.raise_for_status()
        return response.json()

    def lookup(self, word: str) -> dict:
        """Look up a word. The envelope comes back even when nothing is found."""
        return self._get("/api/wordinfo", {'word': word})

    def add_word(self, term: str, definition: str = '', category: str = 'General') -> dict:
        return self._post("/api/words", {
            'term': term,
            'definition': definition,
            'category': category
        })

    def list_words(self, category: str = None) -> dict:
        params = {'category': category} if category else {}
        return self._get("/api/words", params)

    def get_review(self, category: str = None, smart: bool = True) -> dict:
        """Get the words for a study session."""
        params = {'smart': str(smart).lower()}
        if category:
            params['category'] = category
        return self._get("/api/review", params)

    def record_study(self, item_id: str, correct: bool) -> dict:
        return self._post(f"/api/words/{item_id}/study", {'correct': correct})

    def get_stats(self) -> dict:
        """Get level, XP and streak."""
        return self._get("/api/stats")

    def get_usage(self) -> dict:
        """Get today's freemium counters."""
        return self._get("/api/usage")
