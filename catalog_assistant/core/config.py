import logging
from typing import Dict

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Catalog Assistant Service"
    API_V1_STR: str = "/api/v1"

    # Database
    DB_HOST: str | None = None
    DB_PORT: str | None = None
    DB_NAME: str | None = None
    DB_USERNAME: str | None = None
    DB_PASSWORD: str | None = None
    DATABASE_URL: str | None = None

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if (
            self.DB_HOST
            and self.DB_PORT
            and self.DB_NAME
            and self.DB_USERNAME
            and self.DB_PASSWORD
        ):
            return f"postgresql+asyncpg://{self.DB_USERNAME}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

        raise ValueError(
            "Database configuration is incomplete. define DATABASE_URL or (DB_HOST, DB_PORT, DB_NAME, DB_USERNAME, DB_PASSWORD)."
        )

    # AI Providers
    GROQ_API_KEY: str = ""
    GOOGLE_API_KEY: str = ""
    CHAT_MODEL_NAME: str = "llama-3.3-70b-versatile"
    EMBEDDING_MODEL_NAME: str = "models/text-embedding-004"
    EMBEDDING_DIMENSION: int = 768
    EMBEDDING_MAX_INPUT_CHARS: int = 8000
    EMBEDDING_RETRY_ATTEMPTS: int = 5

    # Batch embedding job
    EMBEDDING_BATCH_CHUNK_SIZE: int = 10
    EMBEDDING_BATCH_DELAY_SECONDS: float = 0.1

    # Semantic search
    SEARCH_DEFAULT_THRESHOLD: float = 0.7
    SEARCH_DEFAULT_MAX_RESULTS: int = 10
    SEARCH_MAX_RESULTS_CAP: int = 50
    PRIMARY_SIMILARITY_THRESHOLD: float = 0.4
    BROAD_SCAN_LIMIT: int = 10
    KEYWORD_SCAN_LIMIT: int = 200

    # Query embedding cache
    QUERY_EMBEDDING_CACHE_TTL_SECONDS: int = 3600
    QUERY_EMBEDDING_CACHE_MAX_ENTRIES: int = 500

    # Result cache (seconds)
    SEARCH_CACHE_TTL_SECONDS: int = 3600
    SEARCH_CACHE_TTL_OVERRIDES: Dict[str, int] = {
        "estación": 7200,
        "meteorológica": 7200,
        "temperatura": 5400,
        "humedad": 5400,
    }

    # Chat
    CHAT_CACHE_TTL_SECONDS: int = 120
    CHAT_CACHE_MAX_ENTRIES: int = 50
    CHAT_HISTORY_TURNS: int = 4
    CHAT_PRODUCT_THRESHOLD: float = 0.4
    CHAT_PRODUCT_LIMIT: int = 5
    CHAT_BRAND_THRESHOLD: float = 0.4
    CHAT_BRAND_LIMIT: int = 3
    TRANSLATION_CACHE_TTL_SECONDS: int = 3600
    TRANSLATION_CACHE_MAX_ENTRIES: int = 200

    # Image match
    IMAGE_MATCH_SEARCH_THRESHOLD: float = 0.5
    IMAGE_MATCH_EXACT_THRESHOLD: float = 0.7
    IMAGE_MATCH_SIMILAR_THRESHOLD: float = 0.6

    # Messaging
    RABBITMQ_URL: str | None = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()


def configure_logging() -> None:
    """Configura o logging raiz a partir das settings."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=settings.LOG_FORMAT,
    )
