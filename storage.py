#!/usr/bin/env python3
"""
Local persistence for the news snapshot and user state.

A single SQLite connection sits behind an asyncio queue so every operation
runs on one worker in submission order. Two contracts are exposed through
``NewsStore.execute(operation_name, **params)``:

  - key-value: get_value / set_value / remove_value (JSON values), used for
    the cached snapshot, read ids, bookmarks and the image cache
  - offline articles: save_offline / get_offline_articles / remove_offline /
    is_offline_saved
"""

import json
from asyncio import CancelledError, Event, Queue, TimeoutError, create_task, wait_for
from os import R_OK, access, path
from sqlite3 import Error, Row, connect
from time import time
from typing import Any, Dict, List, Optional
from uuid import uuid4

from config import config, get_logger
from errors import StorageError
from telemetry import trace_span

logger = get_logger("storage")

NEWS_CACHE_KEY = 'news_cache'
READ_IDS_KEY = 'read_ids'
BOOKMARKS_KEY = 'bookmarks'
IMAGE_CACHE_KEY = 'image_cache'


def initialize_database(conn) -> None:
    """Create the schema from the SQL file when the database is new."""
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='kv'")
        if cursor.fetchone() is None:
            logger.info("Database is new or empty. Initializing schema.")
            cursor.executescript(_read_schema_file())
            conn.commit()
            logger.info("Database schema initialized successfully")
        else:
            logger.debug("Database already has the expected schema")
    finally:
        cursor.close()


def _read_schema_file() -> str:
    schema_path = config.SCHEMA_FILE_PATH
    if not path.isfile(schema_path):
        raise FileNotFoundError(f"Schema file not found at {schema_path}")
    if not access(schema_path, R_OK):
        raise PermissionError(f"No read permission for schema file at {schema_path}")
    file_size = path.getsize(schema_path)
    max_size = config.SCHEMA_FILE_SIZE_LIMIT_MB * 1024 * 1024
    if file_size > max_size:
        raise ValueError(f"Schema file too large: {file_size} bytes (limit: {max_size} bytes)")
    with open(schema_path, 'r', encoding='utf-8') as f:
        return f.read()


class NewsStore:
    """A queue in front of one SQLite connection."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or config.DATABASE_PATH
        self.queue = Queue()
        self.results: Dict[str, Dict] = {}
        self.events: Dict[str, Event] = {}
        self.conn = None
        self.running = False
        self.worker_task = None

    async def start(self) -> None:
        """Open the database and start the worker."""
        if self.running:
            return
        if path.isfile(self.db_path):
            logger.info(f"Using existing database at {self.db_path}")
        else:
            logger.info(f"Database file {self.db_path} does not exist. A new database will be created.")
        try:
            self.conn = connect(self.db_path)
            self.conn.row_factory = Row
            initialize_database(self.conn)
        except (Error, OSError, ValueError) as e:
            if self.conn:
                self.conn.close()
                self.conn = None
            raise StorageError(f"Could not open database {self.db_path}: {e}", operation="start") from e

        self.running = True
        self.worker_task = create_task(self._worker())
        logger.info("Database worker started")

    async def stop(self) -> None:
        """Stop the worker and close the connection."""
        if not self.running:
            return
        self.running = False
        if self.worker_task:
            self.worker_task.cancel()
            try:
                await self.worker_task
            except CancelledError:
                pass
        if self.conn:
            self.conn.close()
            self.conn = None
        for event in self.events.values():
            event.set()
        self.events.clear()
        self.results.clear()
        logger.info("Database worker stopped")

    async def __aenter__(self) -> "NewsStore":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _worker(self) -> None:
        while self.running:
            try:
                try:
                    operation_id, operation_name, params = await wait_for(self.queue.get(), timeout=1.0)
                except TimeoutError:
                    continue

                try:
                    method = getattr(self, operation_name, None)
                    if operation_name.startswith('_') or not callable(method):
                        self.results[operation_id] = {"error": f"Unknown operation: {operation_name}"}
                    else:
                        self.results[operation_id] = {"result": method(**params)}
                except Exception as e:
                    logger.error(f"Database operation error in {operation_name}: {e}")
                    self.results[operation_id] = {"error": str(e)}
                finally:
                    if operation_id in self.events:
                        self.events[operation_id].set()
                    self.queue.task_done()

            except CancelledError:
                logger.info("Database worker cancelled")
                break

    @trace_span(
        "db.execute",
        static_attrs={"db.system": "sqlite"},
        attr_from_args=lambda self, operation_name, **params: {
            "db.operation": operation_name,
            "db.params.keys": ",".join(sorted(params.keys())) if params else "",
        },
    )
    async def execute(self, operation_name: str, **params) -> Any:
        """Run a store operation on the worker and return its result.

        Raises:
            StorageError: when the store is not running or the operation failed.
        """
        if not self.running:
            raise StorageError("Store is not running", operation=operation_name)
        operation_id = str(uuid4())
        event = Event()
        self.events[operation_id] = event
        try:
            await self.queue.put((operation_id, operation_name, params))
            await event.wait()
            result = self.results.pop(operation_id, None)
            if result is None:
                raise StorageError("Store stopped before the operation completed", operation=operation_name)
            if "error" in result:
                raise StorageError(result["error"], operation=operation_name)
            return result["result"]
        finally:
            self.events.pop(operation_id, None)

    # Key-value operations
    def get_value(self, key: str) -> Any:
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM kv WHERE key = ?", (key,))
        row = cursor.fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding corrupt value for key {key}: {e}")
            return None

    def set_value(self, key: str, value: Any) -> bool:
        payload = json.dumps(value, ensure_ascii=False)
        self.conn.execute(
            """
            INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, payload, int(time())),
        )
        self.conn.commit()
        return True

    def remove_value(self, key: str) -> bool:
        cursor = self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self.conn.commit()
        return cursor.rowcount > 0

    # Offline article operations
    def save_offline(self, article: Dict[str, Any]) -> bool:
        """Store an article for offline reading, stamping ``saved_at``."""
        if not article.get('id'):
            raise ValueError("Article has no id")
        saved_at = int(time())
        payload = dict(article, saved_at=saved_at)
        self.conn.execute(
            "INSERT OR REPLACE INTO offline_articles (id, payload, saved_at) VALUES (?, ?, ?)",
            (article['id'], json.dumps(payload, ensure_ascii=False), saved_at),
        )
        self.conn.commit()
        return True

    def get_offline_articles(self) -> List[Dict[str, Any]]:
        """Saved articles, most recently saved first."""
        cursor = self.conn.execute("SELECT id, payload FROM offline_articles ORDER BY saved_at DESC, rowid DESC")
        articles = []
        for row in cursor.fetchall():
            try:
                articles.append(json.loads(row["payload"]))
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping corrupt offline article {row['id']}: {e}")
        return articles

    def remove_offline(self, article_id: str) -> bool:
        cursor = self.conn.execute("DELETE FROM offline_articles WHERE id = ?", (article_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    def is_offline_saved(self, article_id: str) -> bool:
        cursor = self.conn.execute("SELECT 1 FROM offline_articles WHERE id = ?", (article_id,))
        return cursor.fetchone() is not None
