"""
Pytest fixtures for frontend/Flask tests.
"""

import os
import sys
import pytest
from pathlib import Path

# Set test environment BEFORE the app module reads it
os.environ["FLASK_SECRET_KEY"] = "test-secret-key"
os.environ["FLASK_ENV"] = "testing"
os.environ["LOGIN_PASSWORD"] = "test-password"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["OPENAI_API_KEY"] = ""
os.environ["NAVER_CLIENT_ID"] = ""
os.environ["NAVER_CLIENT_SECRET"] = ""
os.environ.pop("MONGODB_URI", None)


@pytest.fixture(scope="session", autouse=True)
def setup_frontend_imports():
    """Add frontend directory to sys.path for imports."""
    frontend_path = Path(__file__).parent.parent.parent / "frontend"
    if str(frontend_path) not in sys.path:
        sys.path.insert(0, str(frontend_path))


@pytest.fixture
def app():
    """Flask app fixture with test configuration."""
    from app import app
    app.config['TESTING'] = True
    app.config['SECRET_KEY'] = 'test-secret-key'
    return app


@pytest.fixture(autouse=True)
def fresh_services(setup_frontend_imports):
    """Every test starts with empty in-memory collections."""
    from app import reset_services
    reset_services()
    yield
    reset_services()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def authenticated_client(client):
    """Flask test client with authenticated session."""
    with client.session_transaction() as sess:
        sess['authenticated'] = True
        sess['user_id'] = 'tester'
    return client


@pytest.fixture
def root_folder_id(authenticated_client):
    """Id of the user's 이력서 root folder."""
    response = authenticated_client.get("/api/folders")
    folders = response.get_json()["folders"]
    return next(f["id"] for f in folders if f["name"] == "이력서")


@pytest.fixture
def document(authenticated_client, root_folder_id):
    """A stored document with company context."""
    response = authenticated_client.post("/api/documents", json={
        "folder_id": root_folder_id,
        "title": "지원서",
        "company": "Acme",
        "role": "PM",
    })
    return response.get_json()["document"]
