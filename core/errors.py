"""Exception types shared by core components and storage backends."""


class LinguaError(Exception):
    """Base class for linguahub errors."""


class StorageError(LinguaError):
    """A read or write against the persistence backend failed."""


class ItemNotFoundError(StorageError):
    """The vocabulary item does not exist for that user."""

    def __init__(self, user_id: str, item_id: str):
        super().__init__(f"Item {item_id} not found for user {user_id}")
        self.user_id = user_id
        self.item_id = item_id


class PermissionDeniedError(LinguaError):
    """Actor is neither the owner nor an assigned tutor."""


class LimitReachedError(LinguaError):
    """A freemium quota is exhausted for today."""

    def __init__(self, key: str):
        super().__init__(f"Daily limit reached for '{key}'")
        self.key = key


class UsageConfigError(LinguaError, KeyError):
    """A quota key that has no configured limit."""
