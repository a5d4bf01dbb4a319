"""
Runtime configuration for the Match Fee Allocation Engine.

Values come from the process environment, optionally seeded from a `.env`
file in the working directory.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .constants import (
    DEFAULT_DATABASE_URL, DEFAULT_HOST, DEFAULT_PORT,
    SETTINGS_CACHE_TTL_SECONDS, TRANSACTION_TIMEOUT_SECONDS
)


@dataclass
class AppConfig:
    """
    Application configuration.

    Attributes:
        database_url: SQLAlchemy URL of the relational store
        transaction_timeout_seconds: Upper bound for the attendance save transaction
        settings_cache_ttl_seconds: How long cached system settings stay fresh
        log_level: Root logging level name
        log_file: Optional log file path
        host: Web server bind address
        port: Web server port
    """
    database_url: str = DEFAULT_DATABASE_URL
    transaction_timeout_seconds: float = TRANSACTION_TIMEOUT_SECONDS
    settings_cache_ttl_seconds: float = SETTINGS_CACHE_TTL_SECONDS
    log_level: str = "INFO"
    log_file: Optional[str] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "AppConfig":
        """
        Build configuration from environment variables.

        Args:
            dotenv_path: Optional explicit `.env` file; existing variables win

        Returns:
            AppConfig populated from MATCHFEES_* variables
        """
        load_dotenv(dotenv_path, override=False)
        return cls(
            database_url=os.getenv("MATCHFEES_DATABASE_URL", DEFAULT_DATABASE_URL),
            transaction_timeout_seconds=float(
                os.getenv("MATCHFEES_TRANSACTION_TIMEOUT", TRANSACTION_TIMEOUT_SECONDS)
            ),
            settings_cache_ttl_seconds=float(
                os.getenv("MATCHFEES_SETTINGS_TTL", SETTINGS_CACHE_TTL_SECONDS)
            ),
            log_level=os.getenv("MATCHFEES_LOG_LEVEL", "INFO"),
            log_file=os.getenv("MATCHFEES_LOG_FILE") or None,
            host=os.getenv("MATCHFEES_HOST", DEFAULT_HOST),
            port=int(os.getenv("MATCHFEES_PORT", DEFAULT_PORT)),
        )
