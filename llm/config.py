"""
Completion-service configuration
Environment variables are managed through Pydantic Settings.
"""
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"


def _resolve_env_files() -> List[Path]:
    """
    Return the .env files to load (project root first, then the working directory)
    """
    candidates = []

    if DEFAULT_ENV_FILE.exists():
        candidates.append(DEFAULT_ENV_FILE)

    cwd_env = Path.cwd() / ".env"
    try:
        if cwd_env.exists() and cwd_env.resolve() != DEFAULT_ENV_FILE.resolve():
            candidates.append(cwd_env)
    except FileNotFoundError:
        # resolve() can fail on some virtual filesystems
        pass

    return candidates


class LLMSettings(BaseSettings):
    """LLM configuration (read from the environment)"""

    model_config = SettingsConfigDict(
        env_file=_resolve_env_files(),
        env_file_encoding="utf-8",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    llm_provider: Literal["ollama", "openai", "anthropic", "custom"] = Field(
        default="ollama",
        description="Completion provider"
    )

    # Ollama
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL"
    )
    ollama_model: str = Field(
        default="phi3:mini",
        description="Ollama model name"
    )

    # OpenAI
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API Key"
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model name"
    )
    openai_base_url: Optional[str] = Field(
        default=None,
        description="OpenAI API Base URL (optional, for proxies)"
    )

    # Anthropic
    anthropic_api_key: Optional[str] = Field(
        default=None,
        description="Anthropic API Key"
    )
    anthropic_model: str = Field(
        default="claude-3-5-haiku-20241022",
        description="Anthropic model name"
    )
    anthropic_base_url: Optional[str] = Field(
        default=None,
        description="Anthropic API Base URL (optional)"
    )

    llm_max_tokens: int = Field(
        default=1024,
        gt=0,
        description="Maximum tokens per completion"
    )
    llm_health_timeout: float = Field(
        default=3.0,
        gt=0,
        description="Timeout in seconds for availability probes"
    )

    def active_model(self) -> str:
        """Model id used by the configured provider."""
        if self.llm_provider == "openai":
            return self.openai_model
        if self.llm_provider == "anthropic":
            return self.anthropic_model
        return self.ollama_model


# Global settings instance
llm_settings = LLMSettings()


def reload_settings():
    """Reload settings (mainly for tests)"""
    global llm_settings
    llm_settings = LLMSettings()
