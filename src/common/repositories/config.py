"""
Repository Configuration and Factory

Provides factory functions to get the appropriate repository implementation
based on environment configuration.
"""

import os
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict

from .base import CollectionRepositoryInterface

logger = logging.getLogger(__name__)


class StorageBackend(str, Enum):
    """Where documents are persisted."""
    ATLAS = "atlas"
    MEMORY = "memory"


# Collections used by the application
FOLDERS = "folders"
DOCUMENTS = "documents"
COMPANY_BRIEFS = "company_briefs"
PRESETS = "presets"
PROFILES = "profiles"


@dataclass
class RepositoryConfig:
    """
    Configuration for repository initialization.

    Loaded from environment variables with sensible defaults.
    """
    backend: StorageBackend = StorageBackend.ATLAS
    atlas_uri: str = ""
    database: str = "docsmith"

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - STORAGE_BACKEND: atlas (default) or memory
        - MONGODB_URI: required for the atlas backend
        - MONGO_DB_NAME: database name (default: docsmith)

        Raises:
            ValueError: If the atlas backend is selected without MONGODB_URI
        """
        backend_str = os.getenv("STORAGE_BACKEND", "atlas").lower()
        try:
            backend = StorageBackend(backend_str)
        except ValueError:
            logger.warning(f"Invalid STORAGE_BACKEND '{backend_str}', defaulting to atlas")
            backend = StorageBackend.ATLAS

        atlas_uri = os.getenv("MONGODB_URI", "")
        if backend == StorageBackend.ATLAS and not atlas_uri:
            raise ValueError("MONGODB_URI environment variable is required")

        return cls(
            backend=backend,
            atlas_uri=atlas_uri,
            database=os.getenv("MONGO_DB_NAME", "docsmith"),
        )


# Singleton repository instances, one per collection
_repository_instances: Dict[str, CollectionRepositoryInterface] = {}


def get_repository(collection: str) -> CollectionRepositoryInterface:
    """
    Get the repository for a collection.

    Uses one instance per collection so in-memory data and Atlas connection
    pools are shared across callers.

    Raises:
        ValueError: If MongoDB URI is not configured for the atlas backend
    """
    if collection not in _repository_instances:
        config = RepositoryConfig.from_env()

        if config.backend == StorageBackend.MEMORY:
            from .memory_repository import MemoryRepository
            _repository_instances[collection] = MemoryRepository(collection)
        else:
            from .atlas_repository import AtlasRepository
            _repository_instances[collection] = AtlasRepository(
                mongodb_uri=config.atlas_uri,
                database=config.database,
                collection=collection,
            )
        logger.info(f"Initialized {config.backend.value} repository for '{collection}'")

    return _repository_instances[collection]


def reset_repositories() -> None:
    """
    Reset all repository singletons.

    Useful for testing or when configuration changes.
    """
    global _repository_instances
    _repository_instances = {}
    logger.info("Repository singletons reset")
