"""
Repository Interface Definitions

Defines the abstract interface for collection operations.
This enables swapping implementations (Atlas, in-memory) without changing
consumer code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class WriteResult:
    """
    Result of a write operation.

    Attributes:
        matched_count: Number of documents that matched the filter
        modified_count: Number of documents actually modified
        upserted_id: ID of inserted/upserted document (if any)
        deleted_count: Number of documents deleted
    """
    matched_count: int = 0
    modified_count: int = 0
    upserted_id: Optional[str] = None
    deleted_count: int = 0


class CollectionRepositoryInterface(ABC):
    """
    Abstract interface for a single document collection.

    Implementations:
    - AtlasRepository: MongoDB Atlas via pymongo
    - MemoryRepository: in-process dictionaries (tests, local demos)

    All methods are fail-fast: errors propagate to the caller.
    """

    collection_name: str

    @abstractmethod
    def find_one(self, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Find a single document.

        Args:
            filter: MongoDB-style query filter (e.g., {"_id": doc_id})

        Returns:
            Document dict if found, None otherwise
        """
        pass

    @abstractmethod
    def find(
        self,
        filter: Dict[str, Any],
        sort: Optional[List[tuple]] = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Find multiple documents.

        Args:
            filter: MongoDB-style query filter
            sort: Sort order as list of (field, direction) tuples
            limit: Maximum documents to return (0 = no limit)

        Returns:
            List of matching documents
        """
        pass

    @abstractmethod
    def count_documents(self, filter: Dict[str, Any]) -> int:
        pass

    @abstractmethod
    def insert_one(self, document: Dict[str, Any]) -> WriteResult:
        """
        Insert a single document.

        Returns:
            WriteResult with upserted_id set to the new document's _id
        """
        pass

    @abstractmethod
    def update_one(
        self,
        filter: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
    ) -> WriteResult:
        """
        Update a single document.

        Args:
            filter: MongoDB-style query filter
            update: Update operations ({"$set": {...}} / {"$unset": {...}})
            upsert: Create document if not found
        """
        pass

    @abstractmethod
    def delete_one(self, filter: Dict[str, Any]) -> WriteResult:
        pass

    @abstractmethod
    def delete_many(self, filter: Dict[str, Any]) -> WriteResult:
        pass
