"""
Tests for the library and statistics endpoints.
"""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from pymongo.errors import PyMongoError

from api.database import LibraryStatsService
from api.main import app, get_library_service


@pytest.fixture
def mock_library_service():
    """Mock library service."""
    mock = AsyncMock(spec=LibraryStatsService)
    app.dependency_overrides[get_library_service] = lambda: mock
    yield mock
    app.dependency_overrides.clear()


@pytest.fixture
def mock_client(mock_library_service):
    return TestClient(app)


def test_root(client):
    """Test the plain text root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.text == "BookWorm server"


def test_add_to_library(client, sample_entry):
    """Test adding a book returns the write acknowledgment."""
    response = client.post("/my-library", json=sample_entry)
    assert response.status_code == 200
    data = response.json()
    assert data["acknowledged"] is True
    assert data["upsertedCount"] == 1
    assert data["upsertedId"]
    assert data["matchedCount"] == 0


def test_add_same_book_twice_updates_entry(client, sample_entry):
    """Test that re-adding a book moves it to the new shelf in place."""
    client.post("/my-library", json=sample_entry)
    first = client.get(f"/my-library/{sample_entry['userEmail']}").json()[0]

    response = client.post("/my-library", json={**sample_entry, "shelf": "Read"})
    assert response.status_code == 200
    assert response.json()["matchedCount"] == 1

    entries = client.get(f"/my-library/{sample_entry['userEmail']}").json()
    assert len(entries) == 1
    assert entries[0]["shelf"] == "Read"
    assert entries[0]["_id"] == first["_id"]
    assert entries[0]["addedAt"] == first["addedAt"]


def test_list_library_shape(client, sample_entry):
    """Test the JSON shape of a listed entry."""
    client.post("/my-library", json=sample_entry)
    response = client.get(f"/my-library/{sample_entry['userEmail']}")
    assert response.status_code == 200

    entry = response.json()[0]
    for key in ("_id", "bookId", "userEmail", "shelf", "title", "image",
                "author", "authorEmail", "totalPages", "progress", "addedAt"):
        assert key in entry
    assert entry["progress"] == 0
    assert entry["totalPages"] == 310


def test_invalid_total_pages_is_bad_request(client, sample_entry):
    """Test that a negative page count is rejected with a message."""
    response = client.post("/my-library", json={**sample_entry, "totalPages": -5})
    assert response.status_code == 400
    assert "totalPages" in response.json()["message"]


def test_numeric_book_id_is_accepted(client, sample_entry):
    """Test that a numeric bookId is stored and listed as given."""
    response = client.post("/my-library", json={**sample_entry, "bookId": 1024})
    assert response.status_code == 200

    entries = client.get(f"/my-library/{sample_entry['userEmail']}").json()
    assert entries[0]["bookId"] == 1024


def test_list_tolerates_rows_written_elsewhere(client, memory_database):
    """Test that null page counts and fractional progress do not break the listing."""
    collection = memory_database["myLibrary"]
    collection.documents.append({
        "_id": ObjectId(),
        "bookId": "book-9",
        "userEmail": "u@example.com",
        "shelf": "Currently Reading",
        "totalPages": None,
        "progress": 12.5,
        "addedAt": datetime(2025, 3, 1, 8, 30),
    })

    response = client.get("/my-library/u@example.com")

    assert response.status_code == 200
    entry = response.json()[0]
    assert entry["totalPages"] == 0
    assert entry["progress"] == 12.5
    assert entry["addedAt"] == "2025-03-01T08:30:00+00:00"


def test_remove_from_library(client, sample_entry):
    """Test removing an entry by id."""
    entry_id = client.post("/my-library", json=sample_entry).json()["upsertedId"]

    response = client.delete(f"/my-library/remove/{entry_id}")

    assert response.status_code == 200
    assert response.json() == {"acknowledged": True, "deletedCount": 1}
    assert client.get(f"/my-library/{sample_entry['userEmail']}").json() == []


def test_remove_unknown_entry_succeeds(client):
    """Test that removing an unknown id is not an error."""
    response = client.delete(f"/my-library/remove/{ObjectId()}")
    assert response.status_code == 200
    assert response.json()["deletedCount"] == 0


def test_user_stats_zero_case(client):
    """Test reader stats for a brand new user."""
    response = client.get("/user/stats/new@example.com")
    assert response.status_code == 200
    assert response.json() == {"totalRead": 0, "inProgress": 0, "avgRating": 0, "totalReviews": 0}


def test_admin_stats(client):
    """Test admin stats always report all five counts."""
    response = client.get("/admin/stats/admin@example.com")
    assert response.status_code == 200
    assert response.json() == {
        "totalBooks": 0,
        "totalUsers": 0,
        "totalCategories": 0,
        "totalReviews": 0,
        "totalTutorials": 0,
    }


def test_store_failure_returns_500(mock_client, mock_library_service):
    """Test that store errors become a generic 500 message."""
    mock_library_service.get_library.side_effect = PyMongoError("connection reset by peer")

    response = mock_client.get("/my-library/reader@example.com")

    assert response.status_code == 500
    body = response.json()
    assert set(body) == {"message"}
    assert "connection reset" not in body["message"]


def test_admin_stats_failure_returns_500(mock_client, mock_library_service):
    """Test that a failed fan-out returns no partial snapshot."""
    mock_library_service.get_admin_stats.side_effect = PyMongoError("count failed")

    response = mock_client.get("/admin/stats/admin@example.com")

    assert response.status_code == 500
    assert "totalBooks" not in response.json()


def test_add_to_library_failure_returns_500(mock_client, mock_library_service, sample_entry):
    mock_library_service.add_to_library.side_effect = PyMongoError("write failed")

    response = mock_client.post("/my-library", json=sample_entry)

    assert response.status_code == 500
    assert response.json() == {"message": "Failed to update library"}


def test_service_unavailable_without_startup():
    """Test that routes fail cleanly when the lifespan has not run."""
    response = TestClient(app).get("/my-library/reader@example.com")
    assert response.status_code == 500
    assert response.json() == {"message": "Database service not available"}


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert "status" in data
    assert "timestamp" in data
    assert "version" in data
    assert "databaseStatus" in data
