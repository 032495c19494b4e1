"""
Service-layer configuration

Central settings for the chat pipeline, the structured storage and the remote
catalog API, so environment lookups are not scattered across modules.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PipelineConfig(BaseSettings):
    """
    Chat pipeline configuration

    Cache bounds, prompt-shaping limits and the model worker pool size.
    """

    response_cache_ttl: float = Field(
        default=120,
        alias="PIPELINE_RESPONSE_CACHE_TTL",
        description="TTL of the response namespace (seconds)",
    )
    response_cache_maxsize: int = Field(
        default=500,
        alias="PIPELINE_RESPONSE_CACHE_MAXSIZE",
        description="Entry bound of the response namespace",
    )
    query_cache_ttl: float = Field(
        default=300,
        alias="PIPELINE_QUERY_CACHE_TTL",
        description="TTL of the query namespace (seconds)",
    )
    query_cache_maxsize: int = Field(
        default=1000,
        alias="PIPELINE_QUERY_CACHE_MAXSIZE",
        description="Entry bound of the query namespace",
    )
    eviction_ratio: float = Field(
        default=0.2,
        gt=0,
        le=1,
        alias="PIPELINE_EVICTION_RATIO",
        description="Fraction of oldest entries dropped when a bound is exceeded",
    )

    intent_cache_key_length: int = Field(
        default=50,
        alias="PIPELINE_INTENT_CACHE_KEY_LENGTH",
        description="Characters of the message used for the intent cache key",
    )
    history_turns: int = Field(
        default=3,
        alias="PIPELINE_HISTORY_TURNS",
        description="Conversation turns included in the classifier prompt",
    )
    history_turn_chars: int = Field(
        default=100,
        alias="PIPELINE_HISTORY_TURN_CHARS",
        description="Characters kept from each history turn",
    )

    catalog_default_limit: int = Field(
        default=20,
        alias="PIPELINE_CATALOG_DEFAULT_LIMIT",
        description="Default catalog page size",
    )
    search_default_limit: int = Field(
        default=5,
        alias="PIPELINE_SEARCH_DEFAULT_LIMIT",
        description="Default search result size",
    )

    model_worker_threads: int = Field(
        default=4,
        gt=0,
        alias="PIPELINE_MODEL_WORKER_THREADS",
        description="Threads available for in-flight completion calls",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        protected_namespaces=(),
    )


_pipeline_config_instance = None


def get_pipeline_config() -> PipelineConfig:
    """
    Pipeline configuration singleton

    Returns:
        PipelineConfig instance
    """
    global _pipeline_config_instance
    if _pipeline_config_instance is None:
        _pipeline_config_instance = PipelineConfig()
    return _pipeline_config_instance


def reset_pipeline_config():
    """
    Reset the singleton (mainly for tests)
    """
    global _pipeline_config_instance
    _pipeline_config_instance = None


class StorageConfig(BaseSettings):
    """
    Structured storage configuration

    Without a database URL the storage layer stays disconnected and every
    lookup goes to the remote API.
    """

    database_url: Optional[str] = Field(
        default=None,
        alias="STORAGE_DATABASE_URL",
        description="SQLAlchemy URL of the catalog database",
    )
    echo_sql: bool = Field(
        default=False,
        alias="STORAGE_ECHO_SQL",
        description="Log emitted SQL",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


_storage_config_instance = None


def get_storage_config() -> StorageConfig:
    global _storage_config_instance
    if _storage_config_instance is None:
        _storage_config_instance = StorageConfig()
    return _storage_config_instance


def reset_storage_config():
    global _storage_config_instance
    _storage_config_instance = None


class RemoteAPIConfig(BaseSettings):
    """Remote catalog API configuration"""

    base_url: str = Field(
        default="http://localhost:3000/api",
        alias="REMOTE_API_BASE_URL",
        description="Base URL of the catalog REST API",
    )
    token: Optional[str] = Field(
        default=None,
        alias="REMOTE_API_TOKEN",
        description="Bearer token (optional)",
    )
    timeout: float = Field(
        default=10.0,
        gt=0,
        alias="REMOTE_API_TIMEOUT",
        description="Request timeout (seconds)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


_remote_config_instance = None


def get_remote_api_config() -> RemoteAPIConfig:
    global _remote_config_instance
    if _remote_config_instance is None:
        _remote_config_instance = RemoteAPIConfig()
    return _remote_config_instance


def reset_remote_api_config():
    global _remote_config_instance
    _remote_config_instance = None
