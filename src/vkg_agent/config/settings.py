"""
Configuration management for the application.
Loads settings from environment variables and the project .env file.
"""

from pathlib import Path
from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
from loguru import logger

# This file is at src/vkg_agent/config/settings.py, so project root is 4 levels up
_project_root = Path(__file__).resolve().parent.parent.parent.parent

PROJECT_ROOT = _project_root

_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(dotenv_path=_env_file, override=True)
    logger.debug(f"Loaded .env from: {_env_file}")
else:
    logger.debug(f".env file not found at: {_env_file}, using process environment")
    load_dotenv(override=False)


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # LLM Provider Selection
    llm_provider: str = Field(default="openai")  # Options: "openai" | "ollama"
    openai_api_key: str = Field(default="")
    openai_model: str = Field(default="gpt-4o-mini")
    ollama_base_url: str = Field(default="http://localhost:11434")
    ollama_model: str = Field(default="llama3")
    max_output_tokens: int = Field(default=4000)

    # Per-stage temperatures
    generation_temperature: float = Field(default=0.1)  # Plan+SQL generation
    answer_temperature: float = Field(default=0.3)  # Answer + no-results explanation

    # Trino (federation engine)
    trino_url: str = Field(default="http://localhost:8080")
    trino_user: str = Field(default="trino")
    trino_password: str = Field(default="")  # Basic auth when set
    trino_token: str = Field(default="")  # Bearer auth when set (wins over password)
    trino_catalog: str = Field(default="")
    trino_schema: str = Field(default="")
    trino_poll_interval_seconds: float = Field(default=0.5)
    trino_max_poll_attempts: int = Field(default=120)
    trino_request_timeout_seconds: float = Field(default=30.0)
    trino_catalog_path: str = Field(default="trino/catalog")  # Where .properties files are written
    trino_docker_host: str = Field(default="host.docker.internal")  # Replaces localhost in catalog files

    # Ontology store (SPARQL endpoint, GraphDB compatible)
    sparql_endpoint_url: str = Field(default="http://localhost:7200")
    sparql_repository: str = Field(default="vkg")
    sparql_timeout_seconds: float = Field(default=15.0)
    sparql_graph_base: str = Field(default="http://vkg.local/graphs")  # Ontology graphs: {base}/tenant/{t}/workspace/{ws}/ontology/
    vkg_mapping_namespace: str = Field(default="http://vkg.local/mapping/")  # vkgmap: predicate namespace

    # Cache
    cache_backend: str = Field(default="redis")  # Options: "redis" | "memory"
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="")
    schema_cache_ttl_seconds: int = Field(default=600)

    # Query pipeline
    vkg_max_attempts: int = Field(default=3)  # Generate -> validate -> execute attempts
    vkg_default_row_limit: int = Field(default=1000)  # Appended when SQL has no LIMIT
    vkg_answer_sample_rows: int = Field(default=20)  # Rows shown to the answer model
    vkg_exploration_limit: int = Field(default=25)  # Distinct values per explored column
    vkg_query_mode: str = Field(default="vkg_federated")

    # API
    cors_origins: List[str] = Field(default=["http://localhost:3000", "http://127.0.0.1:3000"])
    log_level: str = Field(default="INFO")

    class Config:
        env_file = str(_project_root / ".env")
        env_file_encoding = "utf-8"
        extra = "allow"  # Allow extra fields from .env


# Create global settings instance
settings = Settings()
