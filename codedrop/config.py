from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """codedrop configuration"""

    # Service
    SERVICE_NAME: str = "codedrop"
    SERVICE_VERSION: str = "1.0.0"
    HOST: str = "0.0.0.0"
    PORT: int = 5000
    LOG_LEVEL: str = "INFO"

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DB: str = "codedrop"
    MONGODB_COLLECTION: str = "images"
    MONGODB_CONNECT_RETRIES: int = 10
    MONGODB_RETRY_DELAY_SEC: float = 3.0

    # Metadata storage
    METADATA_STORE_TYPE: str = "mongo"  # "mongo" or "memory"

    # Blob storage
    UPLOAD_DIR: str = "uploads"

    # Codes and expiry
    ARTIFACT_TTL_SECONDS: int = 86400
    CODE_LENGTH: int = 8
    CODE_MAX_ATTEMPTS: int = 5

    # Background sweep
    SWEEP_ENABLED: bool = True
    SWEEP_INTERVAL_SEC: int = 300
    ORPHAN_GRACE_SEC: int = 3600
    SWEEP_BATCH_SIZE: int = 500

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
