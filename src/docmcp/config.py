"""Configuration management using pydantic-settings."""

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DOCMCP_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Paths
    data_dir: Path = Path("data")
    database_url: str = "sqlite+aiosqlite:///data/docmcp.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: str = "*"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int = 384
    embedding_batch_size: int = 32

    # Chunking
    chunk_max_tokens: int = 400
    chunk_overlap_tokens: int = 50

    # Search
    search_default_alpha: float = 0.3
    search_default_mode: str = "hybrid"
    # Combined-score floor, also the semantic similarity threshold.
    # Keep it <= search_default_alpha or lexical-only hits never pass.
    search_min_similarity: float = 0.2
    search_default_limit: int = 10
    search_max_limit: int = 50
    semantic_max_distance: float = 1.0
    snippet_length: int = 500

    # Timeouts (seconds)
    fetch_timeout_seconds: float = 120.0
    embed_timeout_seconds: float = 60.0
    sync_timeout_seconds: float = 1800.0

    # Scheduled sync
    sync_scheduling_enabled: bool = False
    sync_cron: str = "0 2 * * *"

    # API keys
    api_key_auth_enabled: bool = True
    api_key_default_rate_limit: int = 1000
    rate_limit_storage_uri: str = "async+memory://"

    # GitHub API (optional)
    github_token: str | None = None
    github_api_base: str = "https://api.github.com"
    github_raw_base: str = "https://raw.githubusercontent.com"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.data_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
