"""File-based storage implementation."""

import json
import logging
import os

from core.errors import ItemNotFoundError, StorageError
from core.interfaces import Storage

logger = logging.getLogger(__name__)


def empty_user_state() -> dict:
    return {'items': [], 'usage': None, 'tutors': [], 'premium': False}


class FileStorage(Storage):
    """File-based storage implementation.

    One JSON file per user holds items (with their mastery scores), usage
    counters, tutor assignments and the premium flag. The lookup cache and
    the conjugation cache are shared across users, one file each.
    """

    def __init__(self, config_file: str = None, state_dir: str = None):
        super().__init__()
        self.config_file = config_file or os.path.expanduser('~/.config/linguahub/config.json')
        # Project root is one level up from server/
        project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        self.state_dir = state_dir or project_root

    def _get_state_file(self, user_id: str) -> str:
        """Get state file path for a user."""
        if not user_id or os.sep in user_id or user_id.startswith('.'):
            raise ValueError(f"Invalid user id: {user_id!r}")
        return os.path.join(self.state_dir, f'linguahub_state_{user_id}.json')

    def _get_words_file(self) -> str:
        return os.path.join(self.state_dir, 'linguahub_words.json')

    def _get_conjugations_file(self) -> str:
        return os.path.join(self.state_dir, 'linguahub_conjugations.json')

    def _read(self, path: str, default):
        if not os.path.exists(path):
            return default
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading {path}: {e}")
            raise StorageError(f"Could not read {path}") from e

    def _write(self, path: str, data) -> None:
        tmp_path = path + '.tmp'
        try:
            with open(tmp_path, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"Error writing {path}: {e}")
            raise StorageError(f"Could not write {path}") from e

    def _load_user(self, user_id: str) -> dict:
        state = empty_user_state()
        state.update(self._read(self._get_state_file(user_id), {}))
        return state

    def _save_user(self, user_id: str, state: dict) -> None:
        self._write(self._get_state_file(user_id), state)

    def load_config(self) -> dict:
        if not os.path.exists(self.config_file):
            return {}
        with open(self.config_file, 'r') as f:
            return json.load(f)

    def list_items(self, user_id: str) -> list[dict]:
        return self._load_user(user_id)['items']

    def get_item(self, user_id: str, item_id: str) -> dict | None:
        for item in self.list_items(user_id):
            if item.get('id') == item_id:
                return item
        return None

    def create_item(self, user_id: str, item: dict) -> None:
        state = self._load_user(user_id)
        state['items'].append(dict(item))
        self._save_user(user_id, state)
        self._notify(user_id)

    def update_item(self, user_id: str, item_id: str, fields: dict) -> dict:
        state = self._load_user(user_id)
        for item in state['items']:
            if item.get('id') == item_id:
                item.update(fields)
                self._save_user(user_id, state)
                self._notify(user_id)
                return item
        raise ItemNotFoundError(user_id, item_id)

    def delete_item(self, user_id: str, item_id: str) -> bool:
        state = self._load_user(user_id)
        remaining = [item for item in state['items'] if item.get('id') != item_id]
        if len(remaining) == len(state['items']):
            return False
        state['items'] = remaining
        self._save_user(user_id, state)
        self._notify(user_id)
        return True

    def get_mastery(self, user_id: str, item_id: str) -> int | None:
        item = self.get_item(user_id, item_id)
        return item.get('mastery_score') if item else None

    def set_mastery(self, user_id: str, item_id: str, score: int) -> None:
        self.update_item(user_id, item_id, {'mastery_score': score})

    def load_usage(self, user_id: str) -> dict | None:
        return self._load_user(user_id)['usage']

    def save_usage(self, user_id: str, usage: dict) -> None:
        state = self._load_user(user_id)
        state['usage'] = usage
        self._save_user(user_id, state)

    def get_tutor_ids(self, user_id: str) -> list[str]:
        return list(self._load_user(user_id)['tutors'])

    def assign_tutor(self, user_id: str, tutor_id: str) -> None:
        state = self._load_user(user_id)
        if tutor_id not in state['tutors']:
            state['tutors'].append(tutor_id)
            self._save_user(user_id, state)

    def is_premium(self, user_id: str) -> bool:
        return bool(self._load_user(user_id)['premium'])

    def set_premium(self, user_id: str, premium: bool) -> None:
        state = self._load_user(user_id)
        state['premium'] = bool(premium)
        self._save_user(user_id, state)

    def get_word_info(self, word: str) -> dict | None:
        return self._read(self._get_words_file(), {}).get(word)

    def save_word_info(self, word: str, info: dict) -> None:
        words = self._read(self._get_words_file(), {})
        words[word] = info
        self._write(self._get_words_file(), words)

    def get_verb_conjugation(self, infinitive: str) -> dict | None:
        return self._read(self._get_conjugations_file(), {}).get(infinitive)

    def save_verb_conjugation(self, infinitive: str, table: dict) -> None:
        tables = self._read(self._get_conjugations_file(), {})
        tables[infinitive] = table
        self._write(self._get_conjugations_file(), tables)
