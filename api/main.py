"""
FastAPI main application for the BookWorm API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from motor.motor_asyncio import AsyncIOMotorClient
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.config import config
from api.database import LibraryStatsService, ensure_indexes
from api.models import (
    AdminStats, DeleteResult, ErrorResponse, HealthResponse,
    LibraryEntryCreate, LibraryEntryResponse, LoginRequest, MessageResponse,
    ReaderStats, RegisterRequest, UpdateNameRequest, UpdatePhotoRequest,
    UpdateResult, UserMessageResponse, UserResponse
)
from api.users import (
    UserExistsError, UserNotFoundError, UserService, WrongPasswordError
)
from utilities.logger import setup_logging

# Setup logging
logger = structlog.get_logger(__name__)

SERVER_ERROR = "Server error"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )
    logger.info("Starting BookWorm API")

    client = AsyncIOMotorClient(config.get_mongodb_url(), tz_aware=True)
    try:
        database = client[config.mongodb_database]

        # Test connection
        await database.command("ping")
        logger.info("Database connection established", database=config.mongodb_database)

        if config.create_indexes:
            await ensure_indexes(database)

    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        client.close()
        raise

    app.state.library_service = LibraryStatsService(database)
    app.state.user_service = UserService(database)

    yield

    # Shutdown
    logger.info("Shutting down BookWorm API")
    client.close()


def get_library_service(request: Request) -> LibraryStatsService:
    """Resolve the library service created at startup."""
    service = getattr(request.app.state, "library_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return service


def get_user_service(request: Request) -> UserService:
    """Resolve the user service created at startup."""
    service = getattr(request.app.state, "user_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return service


# Create FastAPI application
app = FastAPI(
    title=config.api_title,
    description="""
    REST backend for the BookWorm reading tracker.

    ## Features

    * **My Library**: shelve books and track what you are reading
    * **Statistics**: reader statistics and author dashboards
    * **Accounts**: registration, login and profile updates
    """,
    version=config.api_version,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=config.cors_allow_credentials,
    allow_methods=config.cors_allow_methods,
    allow_headers=config.cors_allow_headers,
)


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=str(exc.detail)).model_dump(exclude_none=True),
        headers=exc.headers
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as 400."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg", message)
    logger.info("Request validation failed", path=request.url.path, error=message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(message=message).model_dump(exclude_none=True)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            message=SERVER_ERROR,
            detail=str(exc) if config.debug else None
        ).model_dump(exclude_none=True)
    )


@app.get("/", response_class=PlainTextResponse, tags=["Health"])
async def root():
    return "BookWorm server"


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint."""
    db_status = "unavailable"
    service = getattr(request.app.state, "library_service", None)
    if service:
        health_info = await service.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=config.api_version,
        database_status=db_status
    )


# Library endpoints
@app.post("/my-library", response_model=UpdateResult, tags=["Library"])
async def add_to_library(
    entry: LibraryEntryCreate,
    service: LibraryStatsService = Depends(get_library_service)
):
    """
    Add a book to a user's library, or move it to another shelf.

    Re-adding the same book for the same user updates the existing entry.
    """
    try:
        return await service.add_to_library(entry)
    except Exception as e:
        logger.error("Failed to update library", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update library"
        )


@app.get("/my-library/{email}", response_model=List[LibraryEntryResponse], tags=["Library"])
async def get_library(
    email: str,
    service: LibraryStatsService = Depends(get_library_service)
):
    """Get a user's library, most recently added first."""
    try:
        return await service.get_library(email)
    except Exception as e:
        logger.error("Failed to fetch library", email=email, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch library"
        )


@app.delete("/my-library/remove/{entry_id}", response_model=DeleteResult, tags=["Library"])
async def remove_from_library(
    entry_id: str,
    service: LibraryStatsService = Depends(get_library_service)
):
    """Remove a library entry by its id. Unknown ids delete nothing."""
    try:
        return await service.remove_from_library(entry_id)
    except Exception as e:
        logger.error("Failed to remove library entry", entry_id=entry_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to remove book"
        )


# Statistics endpoints
@app.get("/user/stats/{email}", response_model=ReaderStats, tags=["Statistics"])
async def get_user_stats(
    email: str,
    service: LibraryStatsService = Depends(get_library_service)
):
    """Reading statistics for a user."""
    try:
        return await service.get_user_stats(email)
    except Exception as e:
        logger.error("Failed to get user stats", email=email, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch user stats"
        )


@app.get("/admin/stats/{email}", response_model=AdminStats, tags=["Statistics"])
async def get_admin_stats(
    email: str,
    service: LibraryStatsService = Depends(get_library_service)
):
    """Dashboard counts for an author."""
    try:
        return await service.get_admin_stats(email)
    except Exception as e:
        logger.error("Failed to get admin stats", email=email, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch admin stats"
        )


# User endpoints
@app.post("/register", response_model=UserMessageResponse, tags=["Users"])
async def register(
    payload: RegisterRequest,
    service: UserService = Depends(get_user_service)
):
    try:
        user = await service.register(payload)
    except UserExistsError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")
    except Exception as e:
        logger.error("Failed to register user", email=payload.email, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=SERVER_ERROR)

    return UserMessageResponse(message="Registered successfully", user=user)


@app.post("/login", response_model=UserMessageResponse, tags=["Users"])
async def login(
    payload: LoginRequest,
    service: UserService = Depends(get_user_service)
):
    try:
        user = await service.login(payload.email, payload.password)
    except UserNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    except WrongPasswordError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Wrong password")
    except Exception as e:
        logger.error("Failed to log in", email=payload.email, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=SERVER_ERROR)

    return UserMessageResponse(message="Login success", user=user)


@app.get("/user/{email}", response_model=UserResponse, tags=["Users"])
async def get_user(
    email: str,
    service: UserService = Depends(get_user_service)
):
    try:
        user = await service.get_user(email)
    except Exception as e:
        logger.error("Failed to get user", email=email, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=SERVER_ERROR)

    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


async def _update_profile_field(
    service: UserService, email: str, field: str, value: str, label: str
) -> MessageResponse:
    try:
        modified = await service.update_field(email, field, value)
    except Exception as e:
        logger.error("Failed to update user", email=email, field=field, error=str(e))
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=SERVER_ERROR)

    if not modified:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User not found or {field} unchanged"
        )
    return MessageResponse(message=f"{label} updated successfully")


@app.put("/update-name", response_model=MessageResponse, tags=["Users"])
async def update_name(
    payload: UpdateNameRequest,
    service: UserService = Depends(get_user_service)
):
    if not payload.email or not payload.name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and Name are required")
    return await _update_profile_field(service, payload.email, "name", payload.name, "Name")


@app.put("/update-photo", response_model=MessageResponse, tags=["Users"])
async def update_photo(
    payload: UpdatePhotoRequest,
    service: UserService = Depends(get_user_service)
):
    if not payload.email or not payload.image:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and Image URL are required")
    return await _update_profile_field(service, payload.email, "image", payload.image, "Photo")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )
