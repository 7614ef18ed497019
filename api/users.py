"""
User account operations: registration, login and profile updates.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorDatabase

from api.database import serialize_document
from api.models import Collections, RegisterRequest, UserResponse

logger = structlog.get_logger(__name__)


class UserExistsError(Exception):
    """Raised when registering an email that is already taken."""


class UserNotFoundError(Exception):
    """Raised when no user matches the given email."""


class WrongPasswordError(Exception):
    """Raised when the supplied password does not match."""


def to_user_response(document: Dict[str, Any]) -> UserResponse:
    """Build the public profile of a stored user, dropping the password."""
    document = {k: v for k, v in document.items() if k != "password"}
    return UserResponse(**serialize_document(document))


class UserService:
    """Account operations on the users collection."""

    def __init__(self, database: AsyncIOMotorDatabase):
        self.users_collection = database[Collections.USERS.value]

    async def _find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.users_collection.find_one({"email": email})
        except Exception as e:
            logger.error("Failed to look up user", email=email, error=str(e))
            raise

    async def register(self, payload: RegisterRequest) -> UserResponse:
        """
        Register a new user.

        Raises:
            UserExistsError: if the email is already registered
        """
        existing = await self._find_by_email(payload.email)
        if existing:
            raise UserExistsError(payload.email)

        new_user = {
            "name": payload.name,
            "email": payload.email,
            "password": payload.password,
            "image": payload.image or "",
            "role": "user",
            "createdAt": datetime.now(timezone.utc),
        }
        try:
            result = await self.users_collection.insert_one(new_user)
        except Exception as e:
            logger.error("Failed to register user", email=payload.email, error=str(e))
            raise
        new_user["_id"] = result.inserted_id

        logger.info("User registered", email=payload.email)
        return to_user_response(new_user)

    async def login(self, email: str, password: str) -> UserResponse:
        """
        Check a user's credentials.

        Raises:
            UserNotFoundError: if no user has this email
            WrongPasswordError: if the password does not match
        """
        user = await self._find_by_email(email)
        if not user:
            raise UserNotFoundError(email)
        if user.get("password") != password:
            logger.info("Login rejected", email=email)
            raise WrongPasswordError(email)

        return to_user_response(user)

    async def get_user(self, email: str) -> Optional[UserResponse]:
        user = await self._find_by_email(email)
        if not user:
            return None
        return to_user_response(user)

    async def update_field(self, email: str, field: str, value: str) -> bool:
        """
        Set a single profile field.

        Returns:
            True if a document was modified, False if the user does not exist
            or already had this value
        """
        try:
            result = await self.users_collection.update_one({"email": email}, {"$set": {field: value}})
        except Exception as e:
            logger.error("Failed to update user", email=email, field=field, error=str(e))
            raise

        logger.info("User profile updated", email=email, field=field, modified=result.modified_count)
        return result.modified_count > 0
