"""
LLM client factory and chat service

Creates LangChain chat models based on provider configuration and wraps
them in a role/content message interface used by the pipeline stages.
"""

from typing import Any, Callable, Dict, List, Optional

import httpx
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from loguru import logger

from vkg_agent.config.settings import settings
from vkg_agent.llm.response_utils import extract_text_from_response
from vkg_agent.utils.errors import ConfigurationError


def log_provider_status():
    """Log which provider/model is configured (called once at startup)."""
    if settings.llm_provider == "openai":
        if settings.openai_api_key:
            key = settings.openai_api_key
            masked_key = key[:8] + "..." + key[-4:] if len(key) > 12 else "***"
            logger.info(f"✅ LLM Provider: OpenAI | Model: {settings.openai_model} | API key loaded: {masked_key}")
        else:
            logger.warning("⚠️  LLM Provider: OpenAI but OPENAI_API_KEY not set - API calls will fail!")
    elif settings.llm_provider == "ollama":
        logger.info(f"✅ LLM Provider: Ollama | Base URL: {settings.ollama_base_url} | Model: {settings.ollama_model}")
        try:
            response = httpx.get(f"{settings.ollama_base_url}/api/tags", timeout=3.0)
            response.raise_for_status()
            available = [m.get("name", "").split(":")[0] for m in response.json().get("models", [])]
            if settings.ollama_model.split(":")[0] not in available:
                logger.error(
                    f"❌ Ollama model '{settings.ollama_model}' is not available on the server. "
                    f"Available models: {', '.join(available) if available else 'None'}. "
                    f"To install: ollama pull {settings.ollama_model}"
                )
        except httpx.HTTPError as e:
            logger.warning(f"⚠️  Could not reach Ollama at {settings.ollama_base_url}: {e}")
    else:
        logger.warning(f"⚠️  Unknown LLM provider: {settings.llm_provider}. Supported: 'openai', 'ollama'")


def create_llm(temperature: Optional[float] = None, max_completion_tokens: Optional[int] = None, model: Optional[str] = None):
    """
    Factory function to create appropriate LLM based on provider configuration.

    Args:
        temperature: Generation temperature (defaults to the generation temperature)
        max_completion_tokens: Max tokens for completion (defaults to settings.max_output_tokens)
        model: Model name (defaults to provider-specific model)

    Returns:
        LangChain ChatModel instance (ChatOpenAI or ChatOllama)
    """
    provider = settings.llm_provider.lower()
    max_tokens = max_completion_tokens or settings.max_output_tokens
    temperature = temperature if temperature is not None else settings.generation_temperature

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is required when LLM_PROVIDER=openai")

        return ChatOpenAI(
            model=model or settings.openai_model,
            api_key=settings.openai_api_key,
            temperature=temperature,
            max_completion_tokens=max_tokens,
        )

    elif provider == "ollama":
        from langchain_community.chat_models import ChatOllama

        return ChatOllama(
            model=model or settings.ollama_model,
            base_url=settings.ollama_base_url,
            temperature=temperature,
            num_predict=max_tokens,  # Ollama uses num_predict instead of max_completion_tokens
        )

    else:
        raise ConfigurationError(f"Unsupported LLM provider: {provider}. Supported: 'openai', 'ollama'")


_ROLE_TO_MESSAGE = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


def to_langchain_messages(messages: List[Dict[str, str]]) -> List[BaseMessage]:
    """[{"role": "user", "content": "..."}] -> LangChain message objects."""
    converted = []
    for message in messages:
        message_cls = _ROLE_TO_MESSAGE.get(message.get("role", "user"), HumanMessage)
        converted.append(message_cls(content=message.get("content", "")))
    return converted


class LangChainChatService:
    """
    chat(messages, options) -> text over LangChain chat models.

    One model instance is kept per temperature so per-stage temperatures
    don't rebuild clients on every call.
    """

    def __init__(self, llm_factory: Callable[..., Any] = create_llm):
        self._factory = llm_factory
        self._models: Dict[float, Any] = {}

    def _model(self, temperature: float):
        if temperature not in self._models:
            self._models[temperature] = self._factory(temperature=temperature)
        return self._models[temperature]

    async def chat(self, messages: List[Dict[str, str]], options: Optional[Dict[str, Any]] = None) -> str:
        options = options or {}
        temperature = options.get("temperature", settings.generation_temperature)
        response = await self._model(temperature).ainvoke(to_langchain_messages(messages))
        return extract_text_from_response(response)
