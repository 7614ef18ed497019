"""
API models and schemas for the FastAPI application.

Field names are snake_case in Python and camelCase on the wire, matching the
documents stored in MongoDB and the JSON the web client sends.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON keys."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class Shelf(str, Enum):
    """Shelf labels the statistics are computed from.

    The set is open-ended: any other string is accepted on a library entry.
    """
    WANT_TO_READ = "Want to Read"
    CURRENTLY_READING = "Currently Reading"
    READ = "Read"


class Collections(str, Enum):
    """MongoDB collection names."""
    USERS = "users"
    BOOKS = "books"
    CATEGORIES = "categories"
    REVIEWS = "reviews"
    TUTORIALS = "tutorials"
    MY_LIBRARY = "myLibrary"


# Library

class LibraryEntryCreate(CamelModel):
    """Request body for adding or re-shelving a book."""
    book_id: Optional[Union[str, int]] = Field(None, description="Book identifier")
    user_email: Optional[str] = Field(None, description="Owner of the library entry")
    shelf: Optional[str] = Field(None, description="Shelf label, e.g. 'Currently Reading'")
    title: Optional[str] = Field(None, description="Book title at the time it was shelved")
    image: Optional[str] = Field(None, description="Cover image URL")
    author: Optional[str] = Field(None, description="Book author")
    author_email: Optional[str] = Field(None, description="Email of the book's owner")
    total_pages: Optional[int] = Field(None, ge=0, description="Total number of pages")


class LibraryEntryResponse(CamelModel):
    """A stored library entry."""
    id: str = Field(..., alias="_id", description="Entry identifier")
    book_id: Optional[Union[str, int]] = None
    user_email: Optional[str] = None
    shelf: Optional[str] = None
    title: Optional[str] = None
    image: Optional[str] = None
    author: Optional[str] = None
    author_email: Optional[str] = None
    total_pages: Union[int, float] = 0
    progress: Union[int, float] = 0
    added_at: Optional[str] = Field(None, description="When the entry was first created")

    @field_validator("total_pages", "progress", mode="before")
    @classmethod
    def default_missing_numbers(cls, v):
        """Stored rows may carry null counters; report them as 0."""
        return 0 if v is None else v


class UpdateResult(CamelModel):
    """Acknowledgment of an upsert."""
    acknowledged: bool = True
    matched_count: int = 0
    modified_count: int = 0
    upserted_count: int = 0
    upserted_id: Optional[str] = None


class DeleteResult(CamelModel):
    """Acknowledgment of a delete."""
    acknowledged: bool = True
    deleted_count: int = 0


# Statistics

class ReaderStats(CamelModel):
    """Reading statistics for a single user."""
    total_read: int = Field(0, description="Entries on the 'Read' shelf")
    in_progress: int = Field(0, description="Entries on the 'Currently Reading' shelf")
    avg_rating: Union[int, str] = Field(0, description="Mean rating given, one decimal, or 0")
    total_reviews: int = Field(0, description="Reviews written by the user")


class AdminStats(CamelModel):
    """Dashboard counts for an author, plus the global user count."""
    total_books: int = 0
    total_users: int = 0
    total_categories: int = 0
    total_reviews: int = 0
    total_tutorials: int = 0


# Users

class RegisterRequest(CamelModel):
    """Registration payload."""
    name: str
    email: str
    password: str
    image: Optional[str] = None


class LoginRequest(CamelModel):
    """Login payload."""
    email: str
    password: str


class UpdateNameRequest(CamelModel):
    email: Optional[str] = None
    name: Optional[str] = None


class UpdatePhotoRequest(CamelModel):
    email: Optional[str] = None
    image: Optional[str] = None


class UserResponse(CamelModel):
    """Public user profile. The password is never included."""
    id: str = Field(..., alias="_id")
    name: Optional[str] = None
    email: str
    image: str = ""
    role: str = "user"
    created_at: Optional[str] = None


class UserMessageResponse(BaseModel):
    """Message with the affected user."""
    message: str
    user: UserResponse


class MessageResponse(BaseModel):
    """Plain confirmation message."""
    message: str


class ErrorResponse(BaseModel):
    """Error response model."""
    message: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")


class HealthResponse(CamelModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
