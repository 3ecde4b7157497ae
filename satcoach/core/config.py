from typing import List, Union, Optional
from pydantic import AliasChoices, AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

import logging

logger = logging.getLogger(__name__)

# Upper bound on questions per generated set. MAX_QUESTIONS may lower it, never raise it.
HARD_QUESTION_CAP: int = 10


class Settings(BaseSettings):
    PROJECT_NAME: str = "SAT Coach"
    API_PREFIX: str = "/api"

    # GEMINI
    GOOGLE_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_API_KEY", "GOOGLE_GENAI_API_KEY"),
    )
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_TIMEOUT_SECONDS: float = 60.0   # per upstream call / per stream chunk
    GEMINI_MAX_RETRIES: int = 2            # rate-limit retries only
    GEMINI_RETRY_BACKOFF_SECONDS: float = 2.0

    # GENERATION
    MAX_QUESTIONS: int = HARD_QUESTION_CAP
    DEFAULT_QUESTIONS: int = HARD_QUESTION_CAP

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    # ENVIRONMENT
    ENV: str = "production"  # "development" or "production"
    LOG_LEVEL: str = "INFO"
    PORT: int = 8000

    @field_validator("MAX_QUESTIONS", "DEFAULT_QUESTIONS", mode="after")
    def validate_question_limit(cls, v: int) -> int:
        if v < 1 or v > HARD_QUESTION_CAP:
            raise ValueError(f"Question limits must be between 1 and {HARD_QUESTION_CAP}")
        return v

    @field_validator("GEMINI_TIMEOUT_SECONDS", mode="after")
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("GEMINI_TIMEOUT_SECONDS must be positive")
        return v

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    @property
    def ai_configured(self) -> bool:
        return bool(self.GOOGLE_API_KEY)

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()
