"""
Global fixtures for all unit tests.

This conftest provides autouse fixtures that prevent real external service calls:
- MongoDB connection attempts (would cause 5-30s timeout per test)
- Environment variable isolation (prevents credential leakage)
- Shared singletons (repositories, fetch guard) reset between tests

These fixtures apply automatically to ALL tests in tests/unit/.
"""

import os
import pytest
from unittest.mock import patch, MagicMock

# Set test environment BEFORE any imports so Config never sees real values
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["OPENAI_API_KEY"] = ""
os.environ["NAVER_CLIENT_ID"] = ""
os.environ["NAVER_CLIENT_SECRET"] = ""


@pytest.fixture(autouse=True)
def mock_mongodb():
    """
    Prevent MongoDB connection attempts in all unit tests.

    MongoClient("") defaults to localhost:27017, causing 5-30s timeout per test.
    """
    with patch("pymongo.MongoClient") as mock_client:
        mock_instance = MagicMock()
        mock_db = MagicMock()
        mock_collection = MagicMock()

        # Setup chain: client["db"]["collection"]
        mock_instance.__getitem__ = MagicMock(return_value=mock_db)
        mock_db.__getitem__ = MagicMock(return_value=mock_collection)
        mock_collection.find_one = MagicMock(return_value=None)
        mock_collection.find = MagicMock(return_value=[])

        mock_client.return_value = mock_instance
        yield mock_client


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """
    Isolate test environment from real credentials and configurations.

    Repositories come from the in-memory backend and every shared singleton
    starts fresh.
    """
    from src.common.repositories import reset_repositories
    from src.services.fetch_guard import reset_fetch_guard

    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-mock-key")
    monkeypatch.delenv("MONGODB_URI", raising=False)
    reset_repositories()
    reset_fetch_guard()
    yield
    reset_repositories()
    reset_fetch_guard()
