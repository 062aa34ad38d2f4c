"""PostgreSQL storage implementation."""

import json
import logging
import os
import psycopg2
from psycopg2.extras import RealDictCursor

from core.errors import ItemNotFoundError, StorageError
from core.interfaces import Storage

logger = logging.getLogger(__name__)

ITEM_COLUMNS = ('term', 'category', 'primary_definition', 'part_of_speech',
                'created_at', 'mastery_score', 'enrichment')


def row_to_item(row: dict) -> dict:
    """Convert a vocabulary_items row to the VocabularyItem dict shape."""
    created_at = row.get('created_at')
    return {
        'id': row['item_id'],
        'term': row['term'],
        'category': row['category'],
        'primary_definition': row['primary_definition'],
        'part_of_speech': row['part_of_speech'],
        'created_at': created_at.isoformat() if created_at else None,
        'mastery_score': row['mastery_score'],
        'enrichment': row['enrichment'],
    }


class PostgresStorage(Storage):
    """PostgreSQL-based storage implementation."""

    def __init__(self, config_file: str = None, db_url: str = None):
        super().__init__()
        self.config_file = config_file or os.path.expanduser('~/.config/linguahub/config.json')
        self.db_url = db_url or os.environ.get(
            'DATABASE_URL',
            'postgresql://localhost:5432/linguahub'
        )
        self._conn = None
        self._initialized = False

    @property
    def conn(self):
        """Lazy connection initialization."""
        if self._conn is None or self._conn.closed:
            try:
                self._conn = psycopg2.connect(self.db_url)
            except psycopg2.Error as e:
                logger.error(f"Could not connect to database: {e}")
                raise StorageError("Database unavailable") from e
            if not self._initialized:
                self._init_db()
                self._initialized = True
        return self._conn

    def _init_db(self):
        """Create tables if they don't exist."""
        with self._conn.cursor() as cur:
            cur.execute("""
                CREATE TABLE IF NOT EXISTS vocabulary_items (
                    user_id VARCHAR(255) NOT NULL,
                    item_id VARCHAR(64) NOT NULL,
                    position SERIAL,
                    term VARCHAR(255) NOT NULL,
                    category VARCHAR(255) NOT NULL,
                    primary_definition TEXT NOT NULL DEFAULT '',
                    part_of_speech VARCHAR(50) NOT NULL DEFAULT 'unknown',
                    created_at TIMESTAMPTZ,
                    mastery_score INTEGER NOT NULL DEFAULT 0,
                    enrichment JSONB,
                    PRIMARY KEY (user_id, item_id)
                )
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_vocabulary_items_user
                ON vocabulary_items(user_id, position)
            """)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS daily_usage (
                    user_id VARCHAR(255) PRIMARY KEY,
                    usage JSONB NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS tutor_assignments (
                    user_id VARCHAR(255) NOT NULL,
                    tutor_id VARCHAR(255) NOT NULL,
                    PRIMARY KEY (user_id, tutor_id)
                )
            """)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS premium_users (
                    user_id VARCHAR(255) PRIMARY KEY,
                    is_premium BOOLEAN NOT NULL DEFAULT FALSE,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            # Lookup cache (shared across all users)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS word_info (
                    word VARCHAR(255) PRIMARY KEY,
                    info JSONB NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            # Conjugation tables (shared across all users)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS verb_conjugations (
                    infinitive VARCHAR(255) PRIMARY KEY,
                    conjugation_table JSONB NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            # Events log table
            cur.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id SERIAL PRIMARY KEY,
                    timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    event VARCHAR(50) NOT NULL,
                    user_id VARCHAR(255) NOT NULL,
                    data JSONB
                )
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_user_id ON events(user_id)
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_event ON events(event)
            """)
        self._conn.commit()

    def close(self):
        """Close the database connection."""
        if self._conn and not self._conn.closed:
            self._conn.close()

    def _fetch(self, query: str, params: tuple, many: bool = False):
        try:
            with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                return cur.fetchall() if many else cur.fetchone()
        except psycopg2.Error as e:
            logger.error(f"Error reading from database: {e}")
            self.conn.rollback()
            raise StorageError(str(e)) from e

    def _execute(self, query: str, params: tuple) -> int:
        """Run a write and commit. Returns the affected row count."""
        try:
            with self.conn.cursor() as cur:
                cur.execute(query, params)
                count = cur.rowcount
            self.conn.commit()
            return count
        except psycopg2.Error as e:
            logger.error(f"Error writing to database: {e}")
            self.conn.rollback()
            raise StorageError(str(e)) from e

    def load_config(self) -> dict:
        if not os.path.exists(self.config_file):
            return {}
        with open(self.config_file, 'r') as f:
            return json.load(f)

    def list_items(self, user_id: str) -> list[dict]:
        rows = self._fetch(
            "SELECT * FROM vocabulary_items WHERE user_id = %s ORDER BY position",
            (user_id,), many=True
        )
        return [row_to_item(row) for row in rows]

    def get_item(self, user_id: str, item_id: str) -> dict | None:
        row = self._fetch(
            "SELECT * FROM vocabulary_items WHERE user_id = %s AND item_id = %s",
            (user_id, item_id)
        )
        return row_to_item(row) if row else None

    def create_item(self, user_id: str, item: dict) -> None:
        enrichment = item.get('enrichment')
        self._execute("""
            INSERT INTO vocabulary_items (user_id, item_id, term, category, primary_definition,
                                          part_of_speech, created_at, mastery_score, enrichment)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        """, (user_id, item['id'], item['term'], item['category'], item.get('primary_definition', ''),
              item.get('part_of_speech', 'unknown'), item.get('created_at'),
              item.get('mastery_score', 0), json.dumps(enrichment) if enrichment else None))
        self._notify(user_id)

    def update_item(self, user_id: str, item_id: str, fields: dict) -> dict:
        columns = [key for key in fields if key in ITEM_COLUMNS]
        if columns:
            assignments = ', '.join(f"{column} = %s" for column in columns)
            values = []
            for column in columns:
                value = fields[column]
                if column == 'enrichment' and value is not None:
                    value = json.dumps(value)
                values.append(value)
            updated = self._execute(
                f"UPDATE vocabulary_items SET {assignments} WHERE user_id = %s AND item_id = %s",
                (*values, user_id, item_id)
            )
            if not updated:
                raise ItemNotFoundError(user_id, item_id)
        item = self.get_item(user_id, item_id)
        if item is None:
            raise ItemNotFoundError(user_id, item_id)
        if columns:
            self._notify(user_id)
        return item

    def delete_item(self, user_id: str, item_id: str) -> bool:
        deleted = self._execute(
            "DELETE FROM vocabulary_items WHERE user_id = %s AND item_id = %s",
            (user_id, item_id)
        ) > 0
        if deleted:
            self._notify(user_id)
        return deleted

    def get_mastery(self, user_id: str, item_id: str) -> int | None:
        row = self._fetch(
            "SELECT mastery_score FROM vocabulary_items WHERE user_id = %s AND item_id = %s",
            (user_id, item_id)
        )
        return row['mastery_score'] if row else None

    def set_mastery(self, user_id: str, item_id: str, score: int) -> None:
        self.update_item(user_id, item_id, {'mastery_score': score})

    def load_usage(self, user_id: str) -> dict | None:
        row = self._fetch("SELECT usage FROM daily_usage WHERE user_id = %s", (user_id,))
        return row['usage'] if row else None

    def save_usage(self, user_id: str, usage: dict) -> None:
        self._execute("""
            INSERT INTO daily_usage (user_id, usage, updated_at)
            VALUES (%s, %s, CURRENT_TIMESTAMP)
            ON CONFLICT (user_id)
            DO UPDATE SET usage = EXCLUDED.usage, updated_at = CURRENT_TIMESTAMP
        """, (user_id, json.dumps(usage)))

    def get_tutor_ids(self, user_id: str) -> list[str]:
        rows = self._fetch(
            "SELECT tutor_id FROM tutor_assignments WHERE user_id = %s ORDER BY tutor_id",
            (user_id,), many=True
        )
        return [row['tutor_id'] for row in rows]

    def assign_tutor(self, user_id: str, tutor_id: str) -> None:
        self._execute("""
            INSERT INTO tutor_assignments (user_id, tutor_id) VALUES (%s, %s)
            ON CONFLICT DO NOTHING
        """, (user_id, tutor_id))

    def is_premium(self, user_id: str) -> bool:
        row = self._fetch("SELECT is_premium FROM premium_users WHERE user_id = %s", (user_id,))
        return bool(row and row['is_premium'])

    def set_premium(self, user_id: str, premium: bool) -> None:
        self._execute("""
            INSERT INTO premium_users (user_id, is_premium, updated_at)
            VALUES (%s, %s, CURRENT_TIMESTAMP)
            ON CONFLICT (user_id)
            DO UPDATE SET is_premium = EXCLUDED.is_premium, updated_at = CURRENT_TIMESTAMP
        """, (user_id, bool(premium)))

    def get_word_info(self, word: str) -> dict | None:
        row = self._fetch("SELECT info FROM word_info WHERE word = %s", (word,))
        return row['info'] if row else None

    def save_word_info(self, word: str, info: dict) -> None:
        self._execute("""
            INSERT INTO word_info (word, info) VALUES (%s, %s)
            ON CONFLICT (word) DO UPDATE SET info = EXCLUDED.info
        """, (word, json.dumps(info)))

    def get_verb_conjugation(self, infinitive: str) -> dict | None:
        row = self._fetch(
            "SELECT conjugation_table FROM verb_conjugations WHERE infinitive = %s", (infinitive,)
        )
        return row['conjugation_table'] if row else None

    def save_verb_conjugation(self, infinitive: str, table: dict) -> None:
        self._execute("""
            INSERT INTO verb_conjugations (infinitive, conjugation_table) VALUES (%s, %s)
            ON CONFLICT (infinitive) DO UPDATE SET conjugation_table = EXCLUDED.conjugation_table
        """, (infinitive, json.dumps(table)))

    # Event logging methods
    def log_event(self, event: str, user_id: str, **data) -> None:
        """Log an event to the database."""
        try:
            with self.conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO events (event, user_id, data)
                    VALUES (%s, %s, %s)
                """, (event, user_id, json.dumps(data, default=str) if data else None))
            self.conn.commit()
        except psycopg2.Error as e:
            logger.error(f"Error logging event: {e}")
            self.conn.rollback()

