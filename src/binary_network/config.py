from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./binary_network.db"


class NetworkSettings(BaseSettings):
    """Runtime configuration for placement, traversal and persistence."""

    model_config = SettingsConfigDict(
        env_prefix="BINARY_NETWORK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    database_url: str = Field(
        DEFAULT_DATABASE_URL,
        validation_alias=AliasChoices("BINARY_NETWORK_DATABASE_URL", "DATABASE_URL"),
    )
    database_echo: bool = False
    log_level: str = Field(
        "INFO",
        validation_alias=AliasChoices("BINARY_NETWORK_LOG_LEVEL", "LOG_LEVEL"),
    )

    placement_max_visits: int = Field(10_000, ge=1)
    traversal_max_nodes: int = Field(100_000, ge=1)
    subtree_max_depth: int = Field(10, ge=0, le=64)
    upline_search_max_depth: int = Field(1_000, ge=1)
    balance_epsilon: Decimal = Field(Decimal("0.01"), gt=0)

    @field_validator("log_level")
    @classmethod
    def normalise_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unsupported log level '{value}'")
        return level


@lru_cache(maxsize=1)
def get_settings() -> NetworkSettings:
    return NetworkSettings()
