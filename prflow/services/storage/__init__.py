from .record_store_base import RecordStore, RecordStoreError, PurchaseRequestNotFound
from .memory import InMemoryRecordStore
from .sqlite_store import SQLiteRecordStore


def create_record_store(path: str | None = None) -> RecordStore:
    """SQLite store when a path is configured, in-memory otherwise"""
    from ...core.config import settings

    path = path if path is not None else settings.record_store_path
    if path:
        return SQLiteRecordStore(path)
    return InMemoryRecordStore()


__all__ = [
    "RecordStore",
    "RecordStoreError",
    "PurchaseRequestNotFound",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "create_record_store",
]
