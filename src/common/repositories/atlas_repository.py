"""
Atlas Collection Repository

Wraps MongoDB Atlas operations for one collection behind the repository
interface.
"""

import logging
from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.collection import Collection

from .base import CollectionRepositoryInterface, WriteResult

logger = logging.getLogger(__name__)


class AtlasRepository(CollectionRepositoryInterface):
    """
    Atlas-backed repository for a single collection.

    Connection Management:
    - MongoClient instances are cached per URI at class level
    - Clients are created once and reused across requests
    - PyMongo handles connection pool internally

    Error Handling:
    - Fail-fast: All errors propagate to caller
    """

    _clients: Dict[str, MongoClient] = {}

    def __init__(self, mongodb_uri: str, database: str, collection: str):
        """
        Initialize Atlas repository with connection parameters.

        Args:
            mongodb_uri: MongoDB connection string (Atlas URI)
            database: Database name
            collection: Collection name
        """
        self._mongodb_uri = mongodb_uri
        self._database_name = database
        self.collection_name = collection

    def _get_collection(self) -> Collection:
        """Get the MongoDB collection, creating the shared client if needed."""
        client = AtlasRepository._clients.get(self._mongodb_uri)
        if client is None:
            client = MongoClient(self._mongodb_uri)
            AtlasRepository._clients[self._mongodb_uri] = client
            logger.info(f"Atlas repository connected: {self._database_name}")
        return client[self._database_name][self.collection_name]

    @classmethod
    def reset_connections(cls) -> None:
        """Close and forget every cached MongoClient."""
        for client in cls._clients.values():
            client.close()
        cls._clients = {}
        logger.info("Atlas repository connections reset")

    def find_one(self, filter: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._get_collection().find_one(filter)

    def find(
        self,
        filter: Dict[str, Any],
        sort: Optional[List[tuple]] = None,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        cursor = self._get_collection().find(filter)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def count_documents(self, filter: Dict[str, Any]) -> int:
        return self._get_collection().count_documents(filter)

    def insert_one(self, document: Dict[str, Any]) -> WriteResult:
        result = self._get_collection().insert_one(document)
        return WriteResult(
            matched_count=0,
            modified_count=0,
            upserted_id=str(result.inserted_id),
        )

    def update_one(
        self,
        filter: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
    ) -> WriteResult:
        result = self._get_collection().update_one(filter, update, upsert=upsert)
        return WriteResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_id=str(result.upserted_id) if result.upserted_id else None,
        )

    def delete_one(self, filter: Dict[str, Any]) -> WriteResult:
        result = self._get_collection().delete_one(filter)
        return WriteResult(deleted_count=result.deleted_count)

    def delete_many(self, filter: Dict[str, Any]) -> WriteResult:
        result = self._get_collection().delete_many(filter)
        return WriteResult(deleted_count=result.deleted_count)
