"""
In-memory record store (for demo purposes and tests).
In production, use SQLite or a managed document database.
"""
import copy
import uuid
from typing import Dict, Optional

from .record_store_base import RecordStore


class InMemoryRecordStore(RecordStore):
    def __init__(self):
        self._collections: Dict[str, Dict[str, dict]] = {}

    def _collection(self, name: str) -> Dict[str, dict]:
        return self._collections.setdefault(name, {})

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """Get a document by ID"""
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def query(self, collection: str, **equals) -> list:
        """List documents matching all field values"""
        return [
            copy.deepcopy(doc)
            for doc in self._collection(collection).values()
            if all(doc.get(field) == value for field, value in equals.items())
        ]

    async def add(self, collection: str, data: dict) -> str:
        """Store a new document and return its generated ID"""
        doc_id = str(uuid.uuid4())
        self._collection(collection)[doc_id] = {**copy.deepcopy(data), "id": doc_id}
        return doc_id

    async def set(self, collection: str, doc_id: str, data: dict) -> None:
        """Create or overwrite a document"""
        self._collection(collection)[doc_id] = {**copy.deepcopy(data), "id": doc_id}

    async def update(self, collection: str, doc_id: str, fields: dict) -> bool:
        """Merge fields into an existing document"""
        docs = self._collection(collection)
        if doc_id not in docs:
            return False
        docs[doc_id].update(copy.deepcopy(fields))
        return True

    async def insert_if_absent(self, collection: str, doc_id: str, data: dict) -> tuple[str, bool]:
        """Create unless present (no await between check and write)"""
        docs = self._collection(collection)
        if doc_id in docs:
            return doc_id, False
        docs[doc_id] = {**copy.deepcopy(data), "id": doc_id}
        return doc_id, True

    def clear(self) -> None:
        """Drop every collection (for tests)"""
        self._collections.clear()
