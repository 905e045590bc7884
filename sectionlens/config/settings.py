"""
Settings - Application configuration using Pydantic Settings.

Loads from environment variables and .env files.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Paths (store and index default to locations under data_dir)
    data_dir: Path = Path("data")
    db_path: Path
    vector_index_path: Path

    # Embeddings
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_dimension: int = 384

    # Search
    search_default_limit: int = 15
    search_max_limit: int = 200
    metadata_fetch_floor: int = 50
    semantic_distance_threshold: float | None = None
    default_tenant: str | None = None

    # Query interpretation (Ollama, optional)
    interpretation_enabled: bool = False
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"
    llm_temperature: float = 0.0
    llm_timeout_seconds: float = 30.0

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    api_rate_limit_rpm: int = 60

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def set_paths_from_data_dir(cls, data: dict[str, Any]) -> dict[str, Any]:
        """Place the database and vector index under data_dir unless given."""
        if isinstance(data, dict):
            data_dir = Path(data.get("data_dir") or "data")
            if not data.get("db_path"):
                data["db_path"] = data_dir / "sectionlens.db"
            if not data.get("vector_index_path"):
                data["vector_index_path"] = data_dir / "indices" / "faiss"
        return data


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
