"""Application settings loaded from environment variables."""

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """F1GPT configuration. All values come from environment variables."""

    # OpenAI (embeddings, and completions when completion_provider=openai)
    openai_api_key: str = Field(default="")
    embedding_model: str = Field(default="text-embedding-3-small")
    embedding_dimension: int = Field(default=1536)

    # Anthropic (completions when completion_provider=anthropic)
    anthropic_api_key: str = Field(default="")
    claude_model: str = Field(default="claude-sonnet-4-5-20250929")

    # Completion
    completion_provider: Literal["openai", "anthropic"] = Field(default="openai")
    chat_model: str = Field(default="gpt-4o-mini")
    temperature: float = Field(default=0.2)
    max_output_tokens: int = Field(default=1500)

    # Vector store (LanceDB). A db:// URI plus api key targets LanceDB Cloud.
    lancedb_uri: str = Field(default="data/lancedb")
    lancedb_api_key: str = Field(default="")
    lancedb_region: str = Field(default="us-east-1")
    collection_name: str = Field(default="f1gpt")
    similarity_metric: str = Field(default="cosine")
    search_limit: int = Field(default=10)

    # Seconds allowed for each of the embedding and retrieval calls
    retrieval_timeout: float = Field(default=10.0)

    # HTTP server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    stream_protocol: Literal["data", "text"] = Field(default="data")

    # Session storage
    database_path: Path = Field(default=Path("data/f1gpt.db"))

    # Hosted libSQL (Turso) takes precedence over database_path when the URL is set
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Ingestion
    chunk_size: int = Field(default=512)
    chunk_overlap: int = Field(default=100)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def is_lancedb_cloud(self) -> bool:
        """True when the vector store URI points at LanceDB Cloud."""
        return self.lancedb_uri.startswith("db://")


settings = Settings()
