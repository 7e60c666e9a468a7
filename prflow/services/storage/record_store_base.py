"""
Abstract base class for record store implementations.

Defines the document-store interface the engine reads and writes through,
enabling dependency injection and easy swapping of storage backends.
"""

from abc import ABC, abstractmethod
from typing import Optional


class RecordStoreError(Exception):
    """Raised by record store implementations on storage failures"""


class PurchaseRequestNotFound(RecordStoreError):
    def __init__(self, pr_id: str):
        self.pr_id = pr_id
        super().__init__(f"Purchase request not found: {pr_id}")


class RecordStore(ABC):
    """
    Abstract document store keyed by (collection, document id).

    Implementations can use:
    - In-memory storage (for testing/demo)
    - SQLite (for single-instance deployments)
    - A managed document database (Firestore, Cosmos DB) in production

    Documents are plain dicts; every returned document carries its "id".
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """
        Get a document by ID.

        Returns:
            Document dictionary, or None if not found
        """
        pass

    @abstractmethod
    async def query(self, collection: str, **equals) -> list:
        """
        List documents whose top-level fields equal the given values.

        Args:
            collection: Collection name
            **equals: Field name / value pairs, all of which must match

        Returns:
            List of document dictionaries (oldest first)
        """
        pass

    @abstractmethod
    async def add(self, collection: str, data: dict) -> str:
        """
        Store a new document under a generated ID.

        Returns:
            The generated document ID
        """
        pass

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: dict) -> None:
        """Create or overwrite a document"""
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: dict) -> bool:
        """
        Merge top-level fields into an existing document.

        Returns:
            True if successful, False if the document was not found
        """
        pass

    @abstractmethod
    async def insert_if_absent(self, collection: str, doc_id: str, data: dict) -> tuple[str, bool]:
        """
        Atomically create a document unless one with this ID exists.

        Returns:
            (document ID, created) where created is False if it already existed
        """
        pass
