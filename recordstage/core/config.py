from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_ANONYMIZE_RULES,
    DEFAULT_TENANT_ID,
    INSERT_FLUSH_THRESHOLD,
    MAX_VALUE_LENGTH,
)


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    level: str = Field(default="INFO")
    json_format: bool = Field(default=False)
    format: str = Field(default="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    file_path: Optional[str] = Field(default=None)
    max_bytes: int = Field(default=10 * 1024 * 1024)
    backup_count: int = Field(default=5)

    model_config = SettingsConfigDict(env_prefix="LOG_", env_file=".env", extra="ignore")


class Settings(BaseSettings):
    """Staging run configuration."""

    database_url: str = Field(default="postgresql://user:password@db:5432/warehouse")
    dialect: str = Field(default="postgresql")
    database_echo: bool = Field(default=False)

    # Directory holding <table>_count.txt and <table>_<page>.json files
    load_dir: str = Field(default="./extract")
    tables: List[str] = Field(default_factory=list)

    tenant_id: int = Field(default=DEFAULT_TENANT_ID)
    max_workers: int = Field(default=1)

    insert_flush_threshold: int = Field(default=INSERT_FLUSH_THRESHOLD)
    max_value_length: int = Field(default=MAX_VALUE_LENGTH)

    grant_select_to: Optional[str] = Field(default=None)

    # table name -> field paths to redact during the load pass
    anonymize: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_ANONYMIZE_RULES.items()}
    )

    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="RECORDSTAGE_", env_file=".env", extra="ignore", env_file_encoding="utf-8"
    )

    @field_validator("dialect")
    @classmethod
    def validate_dialect(cls, v: str) -> str:
        v = v.lower()
        if v not in ("postgresql", "redshift", "sqlite"):
            raise ValueError(f"Unsupported dialect: {v}")
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_workers must be at least 1")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
