"""Configuration utilities for the chatflow backend."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from the environment."""

    environment: str = Field(
        default="development",
        description="Name of the current environment (development, staging, production).",
    )
    frontend_url: str = Field(
        default="*",
        description="Origin allowed to call the API from a browser.",
    )
    dialogue_path: Path = Field(
        default=Path("dialogue_schema.json"),
        description="JSON file holding the question/option graph.",
    )
    contacts_path: Path = Field(
        default=Path("data/contacts.json"),
        description="Filesystem location of the embedded contact store, used when no database is set.",
    )
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy URL of the relational contact store (mysql+pymysql://, postgresql+psycopg://, sqlite:///).",
    )
    db_pool_size: int = Field(
        default=10,
        ge=1,
        description="Maximum number of concurrent database connections.",
    )
    port: int = Field(default=3000, description="Port the HTTP server listens on.")
    log_level: str = Field(default="INFO", description="Root logging level.")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def database_enabled(self) -> bool:
        return bool(self.database_url)

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.frontend_url.split(",") if origin.strip()] or ["*"]


@lru_cache
def get_settings() -> Settings:
    return Settings()


def ensure_data_directory(path: Path) -> None:
    """Ensure the directory containing the data file exists."""

    path.parent.mkdir(parents=True, exist_ok=True)
