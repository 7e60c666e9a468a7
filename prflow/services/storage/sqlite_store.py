"""
SQLite-based record store for single-instance deployments.

Stores every collection in one documents table as JSON, and gives
insert_if_absent a real uniqueness guarantee via the primary key.
"""

import asyncio
import json
import sqlite3
import uuid
from datetime import datetime, UTC
from typing import Optional

from .record_store_base import RecordStore, RecordStoreError


class SQLiteRecordStore(RecordStore):
    """
    SQLite-backed record store with persistent storage.

    Features:
    - Persistent storage across application restarts
    - Atomic create-if-absent (INSERT OR IGNORE on the primary key)
    - Safe for several processes sharing one file (SQLite's built-in locking)
    """

    def __init__(self, db_path: str = "records.db"):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (default: records.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create documents table if it doesn't exist"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (collection, id)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_collection_created
            ON documents(collection, created_at)
        """)

        conn.commit()
        conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _execute(self, sql: str, params: tuple = (), fetch: str | None = None):
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(sql, params)
            if fetch == "one":
                result = cursor.fetchone()
            elif fetch == "all":
                result = cursor.fetchall()
            else:
                result = cursor.rowcount
            conn.commit()
            return result
        except sqlite3.Error as e:
            raise RecordStoreError(f"SQLite error on {self.db_path}: {e}") from e
        finally:
            conn.close()

    async def _run(self, sql: str, params: tuple = (), fetch: str | None = None):
        # sqlite3 blocks; keep it off the event loop
        return await asyncio.to_thread(self._execute, sql, params, fetch)

    @staticmethod
    def _row_to_doc(row: sqlite3.Row) -> dict:
        return {**json.loads(row["data"]), "id": row["id"]}

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        row = await self._run(
            "SELECT id, data FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
            fetch="one",
        )
        if row is None:
            return None
        return self._row_to_doc(row)

    async def query(self, collection: str, **equals) -> list:
        rows = await self._run(
            """
            SELECT id, data FROM documents
            WHERE collection = ?
            ORDER BY created_at, rowid
            """,
            (collection,),
            fetch="all",
        )

        # Filter by field values (data is JSON)
        results = []
        for row in rows:
            doc = self._row_to_doc(row)
            if all(doc.get(field) == value for field, value in equals.items()):
                results.append(doc)
        return results

    async def add(self, collection: str, data: dict) -> str:
        doc_id = str(uuid.uuid4())
        now = datetime.now(UTC).isoformat()
        await self._run(
            """
            INSERT INTO documents (collection, id, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (collection, doc_id, json.dumps(data), now, now),
        )
        return doc_id

    async def set(self, collection: str, doc_id: str, data: dict) -> None:
        now = datetime.now(UTC).isoformat()
        await self._run(
            """
            INSERT INTO documents (collection, id, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(collection, id) DO UPDATE SET
                data = excluded.data,
                updated_at = excluded.updated_at
            """,
            (collection, doc_id, json.dumps(data), now, now),
        )

    async def update(self, collection: str, doc_id: str, fields: dict) -> bool:
        existing = await self.get(collection, doc_id)
        if existing is None:
            return False
        existing.pop("id", None)
        existing.update(fields)
        rows_affected = await self._run(
            "UPDATE documents SET data = ?, updated_at = ? WHERE collection = ? AND id = ?",
            (json.dumps(existing), datetime.now(UTC).isoformat(), collection, doc_id),
        )
        return rows_affected > 0

    async def insert_if_absent(self, collection: str, doc_id: str, data: dict) -> tuple[str, bool]:
        now = datetime.now(UTC).isoformat()
        rows_affected = await self._run(
            """
            INSERT OR IGNORE INTO documents (collection, id, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (collection, doc_id, json.dumps(data), now, now),
        )
        return doc_id, rows_affected > 0
