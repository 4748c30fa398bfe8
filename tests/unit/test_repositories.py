"""
Tests for the repository pattern implementation.

Covers the collection repository factory, the in-memory backend used by
tests and demos, and the Atlas adapter with a mocked MongoClient.
"""

import pytest
from unittest.mock import MagicMock, patch

from src.common.repositories import (
    DOCUMENTS,
    FOLDERS,
    MemoryRepository,
    RepositoryConfig,
    StorageBackend,
    WriteResult,
    get_repository,
    reset_repositories,
)
from src.common.repositories.atlas_repository import AtlasRepository


class TestWriteResult:
    """Tests for WriteResult dataclass."""

    def test_write_result_defaults(self):
        result = WriteResult(matched_count=1, modified_count=1)

        assert result.upserted_id is None
        assert result.deleted_count == 0


class TestRepositoryConfig:
    """Tests for RepositoryConfig."""

    def test_config_from_env_minimal(self):
        with patch.dict("os.environ", {"MONGODB_URI": "mongodb://atlas"}, clear=True):
            config = RepositoryConfig.from_env()

            assert config.backend == StorageBackend.ATLAS
            assert config.atlas_uri == "mongodb://atlas"
            assert config.database == "docsmith"

    def test_memory_backend_needs_no_uri(self):
        with patch.dict("os.environ", {"STORAGE_BACKEND": "memory"}, clear=True):
            assert RepositoryConfig.from_env().backend == StorageBackend.MEMORY

    def test_config_from_env_missing_uri(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError, match="MONGODB_URI"):
                RepositoryConfig.from_env()

    def test_invalid_backend_defaults_to_atlas(self):
        env = {"STORAGE_BACKEND": "sqlite", "MONGODB_URI": "mongodb://atlas"}
        with patch.dict("os.environ", env, clear=True):
            assert RepositoryConfig.from_env().backend == StorageBackend.ATLAS


class TestMemoryRepository:
    """Tests for the dictionary-backed repository."""

    @pytest.fixture
    def repo(self):
        repo = MemoryRepository("documents")
        repo.insert_one({"_id": "a", "owner": "alice", "title": "A", "rank": 2})
        repo.insert_one({"_id": "b", "owner": "alice", "title": "B", "rank": 1})
        repo.insert_one({"_id": "c", "owner": "bob", "title": "C"})
        return repo

    def test_find_one_returns_copy(self, repo):
        doc = repo.find_one({"_id": "a"})
        doc["title"] = "changed"

        assert repo.find_one({"_id": "a"})["title"] == "A"

    def test_operators(self, repo):
        assert {d["_id"] for d in repo.find({"_id": {"$in": ["a", "c"]}})} == {"a", "c"}
        assert {d["_id"] for d in repo.find({"owner": {"$ne": "alice"}})} == {"c"}
        assert {d["_id"] for d in repo.find({"rank": {"$exists": False}})} == {"c"}

    def test_unsupported_operator(self, repo):
        with pytest.raises(ValueError):
            repo.find({"rank": {"$gt": 1}})

    def test_missing_key_never_equals_none(self, repo):
        assert repo.find({"rank": None}) == []

    def test_sort_and_limit(self, repo):
        results = repo.find({"owner": "alice"}, sort=[("rank", 1)], limit=1)
        assert [d["_id"] for d in results] == ["b"]

    def test_sort_puts_missing_values_last(self, repo):
        results = repo.find({}, sort=[("rank", 1)])
        assert [d["_id"] for d in results] == ["b", "a", "c"]

    def test_insert_generates_id(self):
        repo = MemoryRepository("folders")
        document = {"name": "이력서"}

        result = repo.insert_one(document)

        assert document["_id"] == result.upserted_id
        assert repo.count_documents({}) == 1

    def test_duplicate_id_rejected(self, repo):
        with pytest.raises(ValueError):
            repo.insert_one({"_id": "a"})

    def test_update_set_and_unset(self, repo):
        result = repo.update_one({"_id": "a"}, {"$set": {"title": "A2"}, "$unset": {"rank": ""}})

        assert result.matched_count == 1
        assert result.modified_count == 1
        assert repo.find_one({"_id": "a"}) == {"_id": "a", "owner": "alice", "title": "A2"}

    def test_update_without_change(self, repo):
        result = repo.update_one({"_id": "a"}, {"$set": {"title": "A"}})
        assert result.modified_count == 0

    def test_upsert_uses_filter_values(self, repo):
        result = repo.update_one({"_id": "acme::"}, {"$set": {"company": "Acme"}}, upsert=True)

        assert result.upserted_id == "acme::"
        assert repo.find_one({"_id": "acme::"}) == {"_id": "acme::", "company": "Acme"}

    def test_update_no_match_without_upsert(self, repo):
        assert repo.update_one({"_id": "zzz"}, {"$set": {"x": 1}}) == WriteResult()

    def test_delete(self, repo):
        assert repo.delete_one({"_id": "c"}).deleted_count == 1
        assert repo.delete_many({"owner": "alice"}).deleted_count == 2
        assert repo.count_documents({}) == 0


class TestAtlasRepository:
    """Tests for AtlasRepository."""

    @pytest.fixture(autouse=True)
    def reset_clients(self):
        """Reset cached clients before each test."""
        AtlasRepository._clients = {}
        yield
        AtlasRepository._clients = {}

    @pytest.fixture
    def mock_client(self):
        with patch("src.common.repositories.atlas_repository.MongoClient") as mock_client:
            yield mock_client

    @pytest.fixture
    def mock_collection(self, mock_client):
        """Create a mock MongoDB collection."""
        mock_collection = MagicMock()
        mock_db = MagicMock()
        mock_db.__getitem__.return_value = mock_collection
        mock_client.return_value.__getitem__.return_value = mock_db
        return mock_collection

    def test_find_one(self, mock_collection):
        """Should delegate find_one to MongoDB collection."""
        mock_collection.find_one.return_value = {"_id": "123", "title": "Test"}

        repo = AtlasRepository("mongodb://test", "docsmith", DOCUMENTS)
        result = repo.find_one({"_id": "123"})

        mock_collection.find_one.assert_called_once_with({"_id": "123"})
        assert result == {"_id": "123", "title": "Test"}

    def test_find_with_options(self, mock_collection):
        """Should apply sort and limit to the cursor."""
        mock_cursor = MagicMock()
        mock_cursor.sort.return_value = mock_cursor
        mock_cursor.limit.return_value = mock_cursor
        mock_cursor.__iter__ = lambda self: iter([{"_id": "1"}, {"_id": "2"}])
        mock_collection.find.return_value = mock_cursor

        repo = AtlasRepository("mongodb://test", "docsmith", DOCUMENTS)
        result = repo.find({"owner": "alice"}, sort=[("updated_at", -1)], limit=5)

        mock_collection.find.assert_called_once_with({"owner": "alice"})
        mock_cursor.sort.assert_called_once_with([("updated_at", -1)])
        mock_cursor.limit.assert_called_once_with(5)
        assert len(result) == 2

    def test_update_one_with_upsert(self, mock_collection):
        mock_collection.update_one.return_value = MagicMock(
            matched_count=0, modified_count=0, upserted_id="new"
        )

        repo = AtlasRepository("mongodb://test", "docsmith", DOCUMENTS)
        result = repo.update_one({"_id": "new"}, {"$set": {"x": 1}}, upsert=True)

        mock_collection.update_one.assert_called_once_with({"_id": "new"}, {"$set": {"x": 1}}, upsert=True)
        assert result.upserted_id == "new"

    def test_delete_many(self, mock_collection):
        mock_collection.delete_many.return_value = MagicMock(deleted_count=3)

        repo = AtlasRepository("mongodb://test", "docsmith", FOLDERS)
        assert repo.delete_many({"owner": "alice"}).deleted_count == 3

    def test_connection_reuse(self, mock_client, mock_collection):
        """One MongoClient per URI, shared across collections."""
        AtlasRepository("mongodb://test", "docsmith", DOCUMENTS).count_documents({})
        AtlasRepository("mongodb://test", "docsmith", FOLDERS).count_documents({})

        assert mock_client.call_count == 1

    def test_reset_connections_closes_clients(self, mock_client, mock_collection):
        AtlasRepository("mongodb://test", "docsmith", DOCUMENTS).count_documents({})

        AtlasRepository.reset_connections()

        mock_client.return_value.close.assert_called_once()
        assert AtlasRepository._clients == {}


class TestGetRepository:
    """Tests for the get_repository factory."""

    def test_memory_backend_from_env(self):
        reset_repositories()
        assert isinstance(get_repository(DOCUMENTS), MemoryRepository)

    def test_returns_same_instance_per_collection(self):
        assert get_repository(DOCUMENTS) is get_repository(DOCUMENTS)
        assert get_repository(DOCUMENTS) is not get_repository(FOLDERS)

    def test_reset_clears_instances(self):
        first = get_repository(DOCUMENTS)
        reset_repositories()
        assert get_repository(DOCUMENTS) is not first

    def test_atlas_backend_requires_uri(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "atlas")
        reset_repositories()

        with pytest.raises(ValueError):
            get_repository(DOCUMENTS)
