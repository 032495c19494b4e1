"""
Completion client abstraction
Responsibilities: give the model dispatcher one `generate` contract across
providers (Ollama over HTTP, OpenAI / Anthropic through LangChain chat models,
or a plain callback), plus availability and model-presence probes.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import httpx

from . import config

logger = logging.getLogger(__name__)


class LLMClient(ABC):
    """Base class for completion clients"""

    model_name: str = ""

    @abstractmethod
    def generate(self, prompt: str, system_prompt: Optional[str] = None, **kwargs) -> str:
        """
        Generate text

        Args:
            prompt: user prompt
            system_prompt: system instructions (optional)
            **kwargs: sampling options: temperature, top_p, top_k, max_tokens

        Returns:
            Generated text
        """
        raise NotImplementedError

    def is_available(self) -> bool:
        """Whether the completion service answers at all."""
        return True

    def has_model(self) -> bool:
        """Whether the configured model is served."""
        return True


def _flatten_content(content: Any) -> str:
    if isinstance(content, list):
        content = "".join(
            piece.get("text", "") if isinstance(piece, dict) else str(piece)
            for piece in content
        )
    return str(content)


class OllamaClient(LLMClient):
    """Ollama native HTTP API client"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        request_timeout: float = 30.0,
    ):
        settings = config.llm_settings
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self.model_name = model or settings.ollama_model
        self.health_timeout = settings.llm_health_timeout
        self.client = http_client or httpx.Client(timeout=request_timeout)

        logger.info("✓ Ollama client ready: %s @ %s", self.model_name, self.base_url)

    def generate(self, prompt: str, system_prompt: Optional[str] = None, **kwargs) -> str:
        options: Dict[str, Any] = {}
        for key in ("temperature", "top_p", "top_k"):
            if kwargs.get(key) is not None:
                options[key] = kwargs[key]
        if kwargs.get("max_tokens") is not None:
            options["num_predict"] = kwargs["max_tokens"]

        body: Dict[str, Any] = {
            "model": self.model_name,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }
        if system_prompt:
            body["system"] = system_prompt

        response = self.client.post(f"{self.base_url}/api/generate", json=body)
        response.raise_for_status()
        return str(response.json().get("response", ""))

    def _list_models(self) -> List[str]:
        response = self.client.get(f"{self.base_url}/api/tags", timeout=self.health_timeout)
        response.raise_for_status()
        return [m.get("name", "") for m in response.json().get("models", [])]

    def is_available(self) -> bool:
        try:
            response = self.client.get(f"{self.base_url}/api/tags", timeout=self.health_timeout)
            return response.status_code == 200
        except httpx.HTTPError as exc:
            logger.warning("Ollama unreachable: %s", exc)
            return False

    def has_model(self) -> bool:
        try:
            names = self._list_models()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Could not list Ollama models: %s", exc)
            return False
        wanted = self.model_name if ":" in self.model_name else f"{self.model_name}:latest"
        return any(name in (self.model_name, wanted) for name in names)


class _LangChainClient(LLMClient):
    """Shared invoke logic for LangChain chat models"""

    supports_top_k = False

    def _init_messages(self):
        try:
            from langchain_core.messages import HumanMessage, SystemMessage
        except ImportError as exc:
            raise ImportError(
                "Install langchain-core first: pip install langchain-core"
            ) from exc
        self._HumanMessage = HumanMessage
        self._SystemMessage = SystemMessage

    def generate(self, prompt: str, system_prompt: Optional[str] = None, **kwargs) -> str:
        messages = []
        if system_prompt:
            messages.append(self._SystemMessage(content=system_prompt))
        messages.append(self._HumanMessage(content=prompt))

        invoke_kwargs = {}
        for key in ("temperature", "top_p", "max_tokens"):
            if kwargs.get(key) is not None:
                invoke_kwargs[key] = kwargs[key]
        if self.supports_top_k and kwargs.get("top_k") is not None:
            invoke_kwargs["top_k"] = kwargs["top_k"]

        response = self.client.invoke(messages, **invoke_kwargs)
        return _flatten_content(response.content)

    def _probe_models(self, url: str, headers: Dict[str, str]) -> Optional[List[str]]:
        try:
            response = httpx.get(url, headers=headers, timeout=config.llm_settings.llm_health_timeout)
            response.raise_for_status()
            return [m.get("id", "") for m in response.json().get("data", [])]
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Model listing failed (%s): %s", url, exc)
            return None


class OpenAIClient(_LangChainClient):
    """OpenAI chat model through LangChain"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        try:
            from langchain_openai import ChatOpenAI
        except ImportError as exc:
            raise ImportError(
                "Install langchain-openai first: pip install langchain-openai"
            ) from exc
        self._init_messages()

        settings = config.llm_settings
        api_key = api_key or settings.openai_api_key
        if not api_key:
            raise ValueError("OPENAI_API_KEY is not set (environment or .env)")

        self.model_name = model or settings.openai_model
        self.base_url = (base_url or settings.openai_base_url or "https://api.openai.com/v1").rstrip("/")
        self._api_key = api_key

        self.client = ChatOpenAI(
            model=self.model_name,
            openai_api_key=api_key,
            openai_api_base=self.base_url,
        )

        logger.info("✓ LangChain ChatOpenAI ready: %s", self.model_name)

    def _models(self) -> Optional[List[str]]:
        return self._probe_models(
            f"{self.base_url}/models",
            {"Authorization": f"Bearer {self._api_key}"},
        )

    def is_available(self) -> bool:
        return self._models() is not None

    def has_model(self) -> bool:
        return self.model_name in (self._models() or [])


class AnthropicClient(_LangChainClient):
    """Anthropic chat model through LangChain"""

    supports_top_k = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        try:
            from langchain_anthropic import ChatAnthropic
        except ImportError as exc:
            raise ImportError(
                "Install langchain-anthropic first: pip install langchain-anthropic"
            ) from exc
        self._init_messages()

        settings = config.llm_settings
        api_key = api_key or settings.anthropic_api_key
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY is not set (environment or .env)")

        self.model_name = model or settings.anthropic_model
        base_url = base_url or settings.anthropic_base_url
        self.base_url = (base_url or "https://api.anthropic.com").rstrip("/")
        self._api_key = api_key

        client_kwargs = {
            "model": self.model_name,
            "anthropic_api_key": api_key,
            "max_tokens": settings.llm_max_tokens,
        }
        if base_url:
            client_kwargs["base_url"] = base_url

        self.client = ChatAnthropic(**client_kwargs)

        logger.info("✓ LangChain ChatAnthropic ready: %s", self.model_name)

    def _models(self) -> Optional[List[str]]:
        return self._probe_models(
            f"{self.base_url}/v1/models",
            {"x-api-key": self._api_key, "anthropic-version": "2023-06-01"},
        )

    def is_available(self) -> bool:
        return self._models() is not None

    def has_model(self) -> bool:
        return self.model_name in (self._models() or [])


class CustomLLMClient(LLMClient):
    """Callback-driven client (embedding and tests)"""

    def __init__(
        self,
        generate_func: Callable[..., str],
        name: str = "Custom",
        available_func: Optional[Callable[[], bool]] = None,
    ):
        self.generate_func = generate_func
        self.name = name
        self.model_name = name
        self.available_func = available_func
        logger.info("✓ Custom completion client: %s", name)

    def generate(self, prompt: str, system_prompt: Optional[str] = None, **kwargs) -> str:
        logger.debug("Calling custom completion: %s", self.name)
        return self.generate_func(prompt, system_prompt, **kwargs)

    def is_available(self) -> bool:
        return self.available_func() if self.available_func else True

    def has_model(self) -> bool:
        return self.is_available()


def create_llm_client(
    provider: Optional[str] = None,
    **kwargs,
) -> LLMClient:
    """
    Factory: build a completion client

    Args:
        provider: ollama, openai, anthropic or custom (defaults to settings)
        **kwargs: forwarded to the client constructor

    Returns:
        LLMClient instance
    """
    provider = provider or config.llm_settings.llm_provider
    if provider == "ollama":
        return OllamaClient(**kwargs)
    if provider == "openai":
        return OpenAIClient(**kwargs)
    if provider == "anthropic":
        return AnthropicClient(**kwargs)
    if provider == "custom":
        return CustomLLMClient(**kwargs)
    raise ValueError(f"Unsupported completion provider: {provider}")
