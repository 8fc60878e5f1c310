"""
Application configuration management.

Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file from package directory
_PACKAGE_DIR = Path(__file__).parent
_PROJECT_ROOT = _PACKAGE_DIR.parent

# Try loading .env from multiple locations
for env_path in [_PACKAGE_DIR / ".env", _PROJECT_ROOT / ".env"]:
    if env_path.exists():
        load_dotenv(env_path)
        break


class Config:
    """Application configuration loaded from environment variables."""

    # ========================================
    # Paths
    # ========================================
    BASE_DIR: Path = _PACKAGE_DIR
    PROJECT_ROOT: Path = _PROJECT_ROOT

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        f"sqlite:///{_PROJECT_ROOT / 'professor_connect.db'}"
    )

    # ========================================
    # Authentication
    # ========================================
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_HOURS: int = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))
    OAUTH_STATE_MINUTES: int = int(os.getenv("OAUTH_STATE_MINUTES", "10"))

    # ========================================
    # Google (identity + Gmail delegation)
    # ========================================
    GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
    GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "")
    GOOGLE_REDIRECT_URI: str = os.getenv(
        "GOOGLE_REDIRECT_URI",
        "http://127.0.0.1:5000/api/gmail/callback"
    )
    GMAIL_SCOPES: list[str] = ["https://www.googleapis.com/auth/gmail.send"]

    # Delegated credentials are treated as valid for a fixed hour after
    # they are stored, regardless of the lifetime Google reports.
    CREDENTIAL_TTL_SECONDS: int = 3600

    # ========================================
    # Matching / drafting / delivery backend
    # ========================================
    API_BASE_URL: str = os.getenv("API_BASE_URL", "http://127.0.0.1:8000")
    BACKEND_TIMEOUT_SECONDS: float = float(os.getenv("BACKEND_TIMEOUT_SECONDS", "30"))

    # ========================================
    # Server Configuration
    # ========================================
    FLASK_DEBUG: bool = os.getenv("FLASK_DEBUG", "false").lower() == "true"
    API_HOST: str = os.getenv("API_HOST", "127.0.0.1")
    API_PORT: int = int(os.getenv("API_PORT", "5000"))
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:8080")

    # CORS
    ALLOWED_ORIGINS: list[str] = os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:8080,http://127.0.0.1:8080"
    ).split(",")

    # Rate Limiting
    RATE_LIMIT_WINDOW: int = int(os.getenv("RATE_LIMIT_WINDOW", "60"))
    RATE_LIMIT_MAX_REQUESTS: int = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "30"))

    # ========================================
    # History / Logging
    # ========================================
    HISTORY_PAGE_SIZE: int = int(os.getenv("HISTORY_PAGE_SIZE", "100"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def is_production(cls) -> bool:
        """Check if running in production mode."""
        return not cls.FLASK_DEBUG and cls.SECRET_KEY != "dev-secret-key-change-in-production"

    @classmethod
    def validate(cls) -> list[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not cls.GOOGLE_CLIENT_ID:
            errors.append("GOOGLE_CLIENT_ID is not set")

        if not cls.GOOGLE_CLIENT_SECRET:
            errors.append("GOOGLE_CLIENT_SECRET is not set")

        if not cls.API_BASE_URL:
            errors.append("API_BASE_URL is not set")

        if cls.is_production():
            if cls.SECRET_KEY == "dev-secret-key-change-in-production":
                errors.append("SECRET_KEY must be changed for production")

        return errors


def configure_logging(level: str | None = None) -> None:
    """Configure root logging for the server and CLI."""
    logging.basicConfig(
        level=getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Create singleton instance
config = Config()
