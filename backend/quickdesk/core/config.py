"""Application configuration"""

from typing import Any, Dict, List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "QuickDesk API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours

    # Database
    DATABASE_URL: str

    # URLs
    FRONTEND_URL: str = "http://localhost:3000"

    # Email
    RESEND_API_KEY: Optional[str] = None
    EMAIL_FROM_NAME: str = "QuickDesk Support"
    EMAIL_FROM_ADDRESS: str = "noreply@quickdesk.local"

    # S3 attachment storage
    S3_ENDPOINT: Optional[str] = None
    S3_ACCESS_KEY: Optional[str] = None
    S3_SECRET_KEY: Optional[str] = None
    S3_BUCKET: str = "quickdesk-attachments"
    S3_REGION: str = "us-east-1"
    S3_PUBLIC_URL: Optional[str] = None  # e.g. https://cdn.example.com

    # Uploads
    UPLOAD_MAX_FILE_SIZE: int = 5 * 1024 * 1024  # 5 MiB
    UPLOAD_MAX_FILES: int = 5
    UPLOAD_ALLOWED_EXTENSIONS: List[str] = ["jpg", "jpeg", "png", "gif", "pdf", "doc", "docx"]

    # Listing
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Notifications
    NOTIFICATION_QUEUE_SIZE: int = 1000

    # Categories
    # WHY: The seed list is configuration, applied once at bootstrap by
    # CategoryService.seed_categories; rerunning it only adds missing names.
    SEED_DEFAULT_CATEGORIES: bool = True
    DEFAULT_CATEGORIES: List[Dict[str, Any]] = [
        {
            "name": "Technical",
            "description": "Technical issues and troubleshooting",
            "color": "#3B82F6",
        },
        {
            "name": "Billing",
            "description": "Billing and payment related questions",
            "color": "#10B981",
        },
        {
            "name": "General",
            "description": "General inquiries and questions",
            "color": "#F59E0B",
        },
        {
            "name": "Feature Request",
            "description": "Requests for new features or improvements",
            "color": "#8B5CF6",
        },
        {
            "name": "Bug Report",
            "description": "Report bugs and unexpected behavior",
            "color": "#EF4444",
        },
    ]

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

    @property
    def is_sqlite(self) -> bool:
        """SQLite engines reject the pool sizing arguments used for PostgreSQL."""
        return self.async_database_url.startswith("sqlite")


settings = Settings()
