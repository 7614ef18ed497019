"""
Database service layer for the library shelf and statistics endpoints.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from api.models import (
    AdminStats, Collections, DeleteResult, LibraryEntryCreate,
    LibraryEntryResponse, ReaderStats, Shelf, UpdateResult
)

logger = structlog.get_logger(__name__)


def format_average_rating(average: Optional[float]) -> Any:
    """
    Format a mean rating for the reader statistics.

    Returns 0 when there is no average, otherwise the value rounded half-up
    to one decimal place as a string ("4.3"). Rounding works on the exact
    binary value of the float, so 87/20 (stored as 4.3499...) gives "4.3".
    """
    if average is None:
        return 0
    rounded = Decimal(average).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return str(rounded)


def serialize_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Convert ObjectId and datetime values of a stored document to JSON-friendly strings."""
    serialized = {}
    for key, value in document.items():
        if isinstance(value, ObjectId):
            serialized[key] = str(value)
        elif isinstance(value, datetime):
            # Motor hands back naive datetimes unless the client is tz_aware
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            serialized[key] = value.isoformat()
        else:
            serialized[key] = value
    return serialized


class LibraryStatsService:
    """
    Owns the per-user library entries and the statistics derived from them.

    The database handle is supplied by the caller; the service never opens
    its own connection.
    """

    def __init__(self, database: AsyncIOMotorDatabase):
        self.database = database
        self.library_collection = database[Collections.MY_LIBRARY.value]
        self.books_collection = database[Collections.BOOKS.value]
        self.users_collection = database[Collections.USERS.value]
        self.categories_collection = database[Collections.CATEGORIES.value]
        self.reviews_collection = database[Collections.REVIEWS.value]
        self.tutorials_collection = database[Collections.TUTORIALS.value]

    async def add_to_library(self, entry: LibraryEntryCreate) -> UpdateResult:
        """
        Add a book to a user's library or move it to another shelf.

        A single upsert keyed on (bookId, userEmail). The snapshot fields are
        overwritten on every call; progress and addedAt are only written when
        the entry is created.

        Args:
            entry: Library entry payload

        Returns:
            UpdateResult with the write acknowledgment
        """
        if not entry.book_id or not entry.user_email:
            logger.warning(
                "Library upsert without a complete key",
                book_id=entry.book_id,
                user_email=entry.user_email
            )

        filter_query = {"bookId": entry.book_id, "userEmail": entry.user_email}
        update = {
            "$set": {
                "shelf": entry.shelf,
                "title": entry.title,
                "image": entry.image,
                "author": entry.author,
                "authorEmail": entry.author_email,
                "totalPages": entry.total_pages or 0,
            },
            "$setOnInsert": {
                "progress": 0,
                "addedAt": datetime.now(timezone.utc),
            },
        }

        try:
            result = await self.library_collection.update_one(filter_query, update, upsert=True)
        except Exception as e:
            logger.error(
                "Failed to update library",
                book_id=entry.book_id,
                user_email=entry.user_email,
                error=str(e)
            )
            raise

        upserted_id = result.upserted_id
        logger.info(
            "Library entry saved",
            book_id=entry.book_id,
            user_email=entry.user_email,
            shelf=entry.shelf,
            created=upserted_id is not None
        )
        return UpdateResult(
            acknowledged=result.acknowledged,
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_count=1 if upserted_id is not None else 0,
            upserted_id=str(upserted_id) if upserted_id is not None else None
        )

    async def get_library(self, user_email: str) -> List[LibraryEntryResponse]:
        """
        Get every library entry of a user, most recently added first.

        Args:
            user_email: Owner of the entries

        Returns:
            List of LibraryEntryResponse
        """
        try:
            cursor = self.library_collection.find({"userEmail": user_email}).sort("addedAt", DESCENDING)
            documents = await cursor.to_list(length=None)
        except Exception as e:
            logger.error("Failed to fetch library", user_email=user_email, error=str(e))
            raise

        return [LibraryEntryResponse(**serialize_document(doc)) for doc in documents]

    async def remove_from_library(self, entry_id: str) -> DeleteResult:
        """
        Delete a library entry by its identifier.

        Unknown or malformed identifiers delete nothing and are not an error.
        """
        try:
            object_id = ObjectId(entry_id)
        except (InvalidId, TypeError):
            logger.info("Library entry id is not an ObjectId", entry_id=entry_id)
            return DeleteResult(acknowledged=True, deleted_count=0)

        try:
            result = await self.library_collection.delete_one({"_id": object_id})
        except Exception as e:
            logger.error("Failed to remove library entry", entry_id=entry_id, error=str(e))
            raise

        logger.info("Library entry removed", entry_id=entry_id, deleted_count=result.deleted_count)
        return DeleteResult(acknowledged=result.acknowledged, deleted_count=result.deleted_count)

    async def _review_aggregate(self, reviewer_email: str) -> Dict[str, Any]:
        pipeline = [
            {"$match": {"reviewerEmail": reviewer_email}},
            {
                "$group": {
                    "_id": None,
                    "avgRating": {"$avg": "$rating"},
                    "totalReviews": {"$sum": 1},
                }
            },
        ]
        results = await self.reviews_collection.aggregate(pipeline).to_list(length=None)
        return results[0] if results else {}

    async def get_user_stats(self, user_email: str) -> ReaderStats:
        """
        Compute reading statistics for a user.

        Counts the 'Read' and 'Currently Reading' shelves and aggregates the
        reviews the user has written.

        Args:
            user_email: The reader

        Returns:
            ReaderStats with every field present
        """
        try:
            total_read, in_progress, reviews = await asyncio.gather(
                self.library_collection.count_documents(
                    {"userEmail": user_email, "shelf": Shelf.READ.value}
                ),
                self.library_collection.count_documents(
                    {"userEmail": user_email, "shelf": Shelf.CURRENTLY_READING.value}
                ),
                self._review_aggregate(user_email),
            )
        except Exception as e:
            logger.error("Failed to compute user stats", user_email=user_email, error=str(e))
            raise

        return ReaderStats(
            total_read=total_read,
            in_progress=in_progress,
            avg_rating=format_average_rating(reviews.get("avgRating")),
            total_reviews=reviews.get("totalReviews", 0)
        )

    async def get_admin_stats(self, author_email: str) -> AdminStats:
        """
        Compute dashboard counts for an author.

        The five counts run concurrently; if any of them fails the whole
        call fails and no partial snapshot is returned.

        Args:
            author_email: Owner of the books, categories, reviews and tutorials

        Returns:
            AdminStats
        """
        owned = {"authorEmail": author_email}
        try:
            books, users, categories, reviews, tutorials = await asyncio.gather(
                self.books_collection.count_documents(owned),
                self.users_collection.count_documents({}),
                self.categories_collection.count_documents(owned),
                self.reviews_collection.count_documents(owned),
                self.tutorials_collection.count_documents(owned),
            )
        except Exception as e:
            logger.error("Failed to compute admin stats", author_email=author_email, error=str(e))
            raise

        return AdminStats(
            total_books=books or 0,
            total_users=users or 0,
            total_categories=categories or 0,
            total_reviews=reviews or 0,
            total_tutorials=tutorials or 0
        )

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            library_count = await self.library_collection.estimated_document_count()

            return {
                "status": "healthy",
                "library_collection": "accessible",
                "library_count": library_count
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }


async def ensure_indexes(database: AsyncIOMotorDatabase) -> None:
    """
    Create the indexes the API relies on.

    The unique (bookId, userEmail) index backs the one-entry-per-book rule.
    """
    try:
        library = database[Collections.MY_LIBRARY.value]
        await library.create_index([("bookId", ASCENDING), ("userEmail", ASCENDING)], unique=True)
        await library.create_index([("userEmail", ASCENDING), ("addedAt", DESCENDING)])

        reviews = database[Collections.REVIEWS.value]
        await reviews.create_index("reviewerEmail")
        await reviews.create_index("authorEmail")

        for name in (Collections.BOOKS, Collections.CATEGORIES, Collections.TUTORIALS):
            await database[name.value].create_index("authorEmail")

        await database[Collections.USERS.value].create_index("email", unique=True)

        logger.info("Successfully created MongoDB indexes")

    except Exception as e:
        logger.error("Failed to create indexes", error=str(e))
        raise
