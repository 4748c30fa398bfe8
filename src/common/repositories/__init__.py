"""
Repository Pattern for document storage

Provides an abstraction layer over MongoDB so services can run against
Atlas in production and in-process dictionaries in tests.

Public API:
- get_repository(collection): Factory returning the configured implementation
- reset_repositories(): Drop cached instances (tests)
- CollectionRepositoryInterface: Abstract interface for one collection
- WriteResult: Result dataclass for write operations

Usage:
    from src.common.repositories import get_repository, DOCUMENTS

    documents = get_repository(DOCUMENTS)
    documents.update_one({"_id": doc_id}, {"$set": {"title": "이력서"}})
"""

from .base import CollectionRepositoryInterface, WriteResult
from .config import (
    COMPANY_BRIEFS,
    DOCUMENTS,
    FOLDERS,
    PRESETS,
    PROFILES,
    RepositoryConfig,
    StorageBackend,
    get_repository,
    reset_repositories,
)
from .memory_repository import MemoryRepository

__all__ = [
    "get_repository",
    "reset_repositories",
    "CollectionRepositoryInterface",
    "MemoryRepository",
    "WriteResult",
    "RepositoryConfig",
    "StorageBackend",
    "FOLDERS",
    "DOCUMENTS",
    "COMPANY_BRIEFS",
    "PRESETS",
    "PROFILES",
]
