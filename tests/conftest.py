"""
Pytest configuration and shared fixtures.
"""

from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from api.database import LibraryStatsService
from api.main import app, get_library_service, get_user_service
from api.users import UserService


def _matches(document: Dict[str, Any], filter_query: Dict[str, Any]) -> bool:
    return all(document.get(key) == value for key, value in filter_query.items())


class InMemoryCursor:
    """Cursor over a snapshot of documents, supporting sort and to_list."""

    def __init__(self, documents: List[Dict[str, Any]]):
        self.documents = documents

    def sort(self, key, direction=1):
        self.documents = sorted(self.documents, key=lambda doc: doc.get(key), reverse=direction < 0)
        return self

    async def to_list(self, length=None):
        return [dict(doc) for doc in self.documents[:length]]


class InMemoryCollection:
    """
    Collection double covering the Motor calls the services make.

    Filters are equality-only; updates support $set and $setOnInsert.
    """

    def __init__(self):
        self.documents: List[Dict[str, Any]] = []

    def find(self, filter_query=None):
        filter_query = filter_query or {}
        return InMemoryCursor([doc for doc in self.documents if _matches(doc, filter_query)])

    async def find_one(self, filter_query):
        for doc in self.documents:
            if _matches(doc, filter_query):
                return dict(doc)
        return None

    async def insert_one(self, document):
        stored = dict(document)
        stored.setdefault("_id", ObjectId())
        self.documents.append(stored)
        return SimpleNamespace(acknowledged=True, inserted_id=stored["_id"])

    async def update_one(self, filter_query, update, upsert=False):
        for doc in self.documents:
            if _matches(doc, filter_query):
                before = dict(doc)
                doc.update(update.get("$set", {}))
                return SimpleNamespace(
                    acknowledged=True,
                    matched_count=1,
                    modified_count=int(doc != before),
                    upserted_id=None
                )

        if not upsert:
            return SimpleNamespace(acknowledged=True, matched_count=0, modified_count=0, upserted_id=None)

        document = {"_id": ObjectId(), **filter_query}
        document.update(update.get("$set", {}))
        document.update(update.get("$setOnInsert", {}))
        self.documents.append(document)
        return SimpleNamespace(
            acknowledged=True, matched_count=0, modified_count=0, upserted_id=document["_id"]
        )

    async def delete_one(self, filter_query):
        for index, doc in enumerate(self.documents):
            if _matches(doc, filter_query):
                del self.documents[index]
                return SimpleNamespace(acknowledged=True, deleted_count=1)
        return SimpleNamespace(acknowledged=True, deleted_count=0)

    async def count_documents(self, filter_query):
        return sum(1 for doc in self.documents if _matches(doc, filter_query))

    async def estimated_document_count(self):
        return len(self.documents)

    def aggregate(self, pipeline):
        documents = list(self.documents)
        for stage in pipeline:
            if "$match" in stage:
                documents = [doc for doc in documents if _matches(doc, stage["$match"])]
            elif "$group" in stage:
                if not documents:
                    return InMemoryCursor([])
                ratings = [doc["rating"] for doc in documents]
                documents = [{
                    "_id": None,
                    "avgRating": sum(ratings) / len(ratings),
                    "totalReviews": len(documents),
                }]
        return InMemoryCursor(documents)


class InMemoryDatabase(dict):
    """Database double: collections are created on first access."""

    def __missing__(self, name):
        collection = InMemoryCollection()
        self[name] = collection
        return collection

    async def command(self, name):
        return {"ok": 1}


@pytest.fixture
def memory_database():
    """Create an empty in-memory database."""
    return InMemoryDatabase()


@pytest.fixture
def library_service(memory_database):
    """Create a library service backed by the in-memory database."""
    return LibraryStatsService(memory_database)


@pytest.fixture
def user_service(memory_database):
    """Create a user service backed by the in-memory database."""
    return UserService(memory_database)


@pytest.fixture
def client(library_service, user_service):
    """Create a test client wired to the in-memory services."""
    app.dependency_overrides[get_library_service] = lambda: library_service
    app.dependency_overrides[get_user_service] = lambda: user_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sample_entry():
    """Library entry payload as the web client sends it."""
    return {
        "bookId": "665f1c2e9b1d4a0012a3b4c5",
        "userEmail": "reader@example.com",
        "shelf": "Want to Read",
        "title": "The Hobbit",
        "image": "https://example.com/hobbit.jpg",
        "author": "J.R.R. Tolkien",
        "authorEmail": "admin@example.com",
        "totalPages": 310,
    }
