"""
relgraph Configuration Settings
"""
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Storage (use RELGRAPH_ prefix)
    db_path: Path = Field(
        default=Path("./data/relgraph.db"),
        alias="RELGRAPH_DB_PATH",
        description="SQLite database holding entities, facts and interaction stats"
    )
    sqlite_timeout: float = Field(
        default=10.0,
        alias="RELGRAPH_SQLITE_TIMEOUT",
        description="Seconds to wait for a write lock before the transaction fails"
    )

    # Entity defaults
    default_privacy_tier: str = Field(
        default="INTERNAL",
        alias="RELGRAPH_DEFAULT_PRIVACY_TIER"
    )
    default_organization_type: str = Field(
        default="PROSPECT",
        alias="RELGRAPH_DEFAULT_ORG_TYPE"
    )

    # Duplicate detection
    person_duplicate_threshold: float = 0.85
    organization_duplicate_threshold: float = 0.80
    duplicate_scan_limit: int = Field(
        default=5000,
        alias="RELGRAPH_DUPLICATE_SCAN_LIMIT",
        description="Max rows scanned per duplicate search (linear scan, not indexed)"
    )

    # Scripts
    log_level: str = Field(default="INFO", alias="RELGRAPH_LOG_LEVEL")


settings = Settings()
