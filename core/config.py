from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    DATABASE_URL: str = Field(..., description="Async SQLAlchemy connection string (postgresql+asyncpg://...)")
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Redis (optional per-user session creation lock)
    REDIS_URL: str = Field("redis://localhost:6379/0")
    SESSION_LOCK_TIMEOUT_SECONDS: int = 10

    # Session Settings
    DEFAULT_QUESTIONS_PER_SESSION: int = 10
    MAX_QUESTIONS_PER_SESSION: int = 100

    # Question Selection
    CANDIDATE_FETCH_MULTIPLIER: int = Field(5, description="Candidates fetched per requested question")
    DEFAULT_CONTENT_WEIGHTAGE: int = Field(10, description="Weight used when a topic/subject has none")
    SAMPLER_MIN_WEIGHT: float = 0.1
    WEAK_TOPIC_LIMIT: int = 20
    DEFAULT_ADAPTIVE_ACCURACY: float = 60.0
    FRESHNESS_EXCLUDES_INCORRECT: bool = Field(
        False, description="Hide recently seen questions even if they were answered incorrectly"
    )

    # Progression
    XP_PER_CORRECT_ANSWER: int = 10
    XP_PER_PRACTICE_MINUTE: int = 2
    LEVEL_BASE_XP: int = 100
    LEVEL_GROWTH_RATE: float = 1.15

    # Environment
    ENV: str = "production"  # development, staging, production
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

settings = Settings()
