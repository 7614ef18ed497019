"""
API configuration settings.
"""

from typing import List, Optional
from urllib.parse import quote_plus

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "BookWorm API"
    api_version: str = "1.0.0"
    api_description: str = "REST backend for the BookWorm reading tracker"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 3030
    debug: bool = False

    # Database Settings
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = Field(
        default="bookworm",
        validation_alias=AliasChoices("mongodb_database", "db_name"),
    )
    create_indexes: bool = True

    # Atlas credentials, used instead of mongodb_url when both are set
    db_user: Optional[str] = None
    db_access: Optional[str] = None
    db_cluster_host: str = "cluster0.bfqzn.mongodb.net"
    db_app_name: str = "Cluster0"

    # CORS Settings
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
        "https://mrirakib-ph-associate-instructor-task-web.vercel.app",
    ]
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = ["*"]
    cors_allow_headers: List[str] = ["*"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",  # Ignore extra fields from .env
    }

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    def get_mongodb_url(self) -> str:
        """
        Get the MongoDB connection URL.

        Builds an Atlas SRV URI when DB_USER and DB_ACCESS are provided,
        otherwise falls back to MONGODB_URL.
        """
        if self.db_user and self.db_access:
            return (
                f"mongodb+srv://{quote_plus(self.db_user)}:{quote_plus(self.db_access)}"
                f"@{self.db_cluster_host}/?retryWrites=true&w=majority"
                f"&appName={self.db_app_name}"
            )
        return self.mongodb_url


# Global config instance
config = APIConfig()
