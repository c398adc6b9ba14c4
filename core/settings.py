from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, PostgresDsn, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CustomSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env.docker",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class AppSettings(CustomSettings):
    ENVIRONMENT: Literal["local", "dev", "prod"] = Field(default="local")
    LOG_LEVEL: str = Field(default="INFO")
    JSON_LOGS: bool = Field(default=True)


class PgDbSettings(CustomSettings):
    POSTGRES_ENGINE: str = Field(default="postgresql+asyncpg")
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: SecretStr = Field(default="postgres")
    POSTGRES_DB: str = Field(default="interview")
    POSTGRES_HOST: str = Field(default="localhost")
    POSTGRES_PORT: int = Field(default=5432)
    DATABASE_URL: PostgresDsn | str = Field(default="")

    @model_validator(mode="before")
    def validate_postgres_dsn(cls, data: dict):
        if isinstance(data, dict) and not data.get("DATABASE_URL"):
            _built_uri = PostgresDsn.build(
                scheme=data.get("POSTGRES_ENGINE", "postgresql+asyncpg"),
                username=data.get("POSTGRES_USER", "postgres"),
                password=data.get("POSTGRES_PASSWORD", "postgres"),
                host=data.get("POSTGRES_HOST", "localhost"),
                port=int(data.get("POSTGRES_PORT", 5432)),
                path=data.get("POSTGRES_DB", "interview"),
            ).unicode_string()
            data["DATABASE_URL"] = _built_uri
        return data


class OpenAISettings(CustomSettings):
    OPENAI_API_KEY: SecretStr = Field(default="")
    OPENAI_MODEL: str = Field(default="gpt-4o-mini")
    OPENAI_TEMPERATURE: float = Field(default=0.7)


class InterviewSettings(CustomSettings):
    """Configuration for the career interview flow.

    Set via env vars:
    - SESSION_WINDOW_HOURS
    - HISTORY_WINDOW_SIZE
    - LLM_TIMEOUT_SECONDS
    - STATE_WRITE_ATTEMPTS
    - BOT_NAME
    """

    SESSION_WINDOW_HOURS: int = Field(default=24, ge=1)
    HISTORY_WINDOW_SIZE: int = Field(default=20, ge=1)
    LLM_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    STATE_WRITE_ATTEMPTS: int = Field(default=3, ge=1)
    BOT_NAME: str = Field(default="Rafiki")


class Settings(BaseModel):
    APP: AppSettings = Field(default_factory=AppSettings)
    DATABASE: PgDbSettings = Field(default_factory=PgDbSettings)
    OPENAI: OpenAISettings = Field(default_factory=OpenAISettings)
    INTERVIEW: InterviewSettings = Field(default_factory=InterviewSettings)


@lru_cache
def get_settings() -> Settings:
    return Settings()


SETTINGS = get_settings()
