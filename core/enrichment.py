"""Per-item lookup request state: idle -> pending -> done | failed."""

IDLE = 'idle'
PENDING = 'pending'
DONE = 'done'
FAILED = 'failed'


class EnrichmentTracker:
    """Guards against duplicate and stale enrichment lookups.

    begin() hands out a token; finish() only applies if that token is still
    current, so a lookup that was superseded by reset() cannot overwrite
    newer data. A failed item stays failed until retry() is called.
    Tokens are unique across keys, so forgetting a key is enough to make
    its in-flight lookup stale.
    """

    def __init__(self):
        self._states: dict[tuple, str] = {}
        self._tokens: dict[tuple, int] = {}
        self._counter = 0

    def state(self, key: tuple) -> str:
        return self._states.get(key, IDLE)

    def begin(self, key: tuple) -> int | None:
        """Start a lookup. Returns a token, or None if one is pending
        or failed and not yet retried."""
        if self.state(key) != IDLE:
            return None
        self._counter += 1
        token = self._counter
        self._tokens[key] = token
        self._states[key] = PENDING
        return token

    def finish(self, key: tuple, token: int, success: bool) -> bool:
        """Record the outcome. Returns False if the token is stale.

        A successful item is forgotten; the stored enrichment marks it done.
        """
        if self._tokens.get(key) != token or self.state(key) != PENDING:
            return False
        if success:
            self._states.pop(key, None)
            self._tokens.pop(key, None)
        else:
            self._states[key] = FAILED
        return True

    def retry(self, key: tuple) -> bool:
        """Allow a failed lookup to run again."""
        if self.state(key) != FAILED:
            return False
        self._states[key] = IDLE
        return True

    def reset(self, key: tuple) -> None:
        """Forget the item's state and invalidate any in-flight lookup."""
        self._tokens.pop(key, None)
        self._states.pop(key, None)
