import logging
from functools import lru_cache
from typing import Any, Optional
import openai
import tiktoken
from ..config.models import ChatConfig
from .errors import UpstreamError

logger = logging.getLogger("coderag.core.chat")


def create_chat_llm(chat_config: ChatConfig, api_key: str, temperature: Optional[float] = None,
                    max_tokens: Optional[int] = None) -> Any:
    """Create a chat model bound to the caller's key. Retries are left to the caller."""
    from langchain_openai import ChatOpenAI

    logger.info(f"Creating OpenAI chat LLM with model: {chat_config.model}")

    kwargs = {
        "model": chat_config.model,
        "api_key": api_key,
        "temperature": chat_config.temperature if temperature is None else temperature,
        "max_retries": 0,
        "timeout": chat_config.timeout_s,
    }

    tokens = max_tokens or chat_config.max_tokens
    if tokens:
        kwargs["max_tokens"] = tokens

    if chat_config.base_url:
        kwargs["base_url"] = chat_config.base_url

    return ChatOpenAI(**kwargs)


async def complete(llm: Any, system_prompt: Optional[str], user_prompt: str) -> str:
    """Single-turn completion. Provider failures surface as UpstreamError."""
    messages = []
    if system_prompt:
        messages.append(("system", system_prompt))
    messages.append(("human", user_prompt))

    try:
        response = await llm.ainvoke(messages)
    except openai.APIStatusError as e:
        raise UpstreamError(provider_message(e), status_code=e.status_code) from e
    except openai.APIError as e:
        raise UpstreamError(getattr(e, "message", None) or str(e)) from e

    content = response.content
    if isinstance(content, list):
        content = "".join(part if isinstance(part, str) else part.get("text", "") for part in content)
    return content or ""


def provider_message(e: Exception) -> str:
    """Pull the provider's own message out of an error body."""
    status = getattr(e, "status_code", None)
    body = getattr(e, "body", None)
    message = None
    if isinstance(body, dict):
        err = body.get("error", body)
        if isinstance(err, dict):
            message = err.get("message")
        elif isinstance(err, str):
            message = err
    if not message:
        if status == 401:
            message = "Invalid OpenAI API key"
        elif status == 429:
            message = "OpenAI rate limit exceeded. Please try again later."
        else:
            message = getattr(e, "message", None) or "OpenAI API error"
    return message


@lru_cache(maxsize=8)
def _get_encoding(model: str) -> Any:
    try:
        return tiktoken.encoding_for_model(model)
    except Exception:
        pass
    try:
        # Default to cl100k_base for most OpenAI models
        return tiktoken.get_encoding("cl100k_base")
    except Exception as e:
        logger.warning(f"Failed to load tokenizer: {e}")
        return None


def count_tokens(text: str, model: str = "gpt-4o-mini") -> int:
    encoding = _get_encoding(model)
    if encoding is None:
        # Rough estimation
        return max(1, len(text) // 4)
    return len(encoding.encode(text))


def estimate_token_cost(text: str, model: str) -> dict:
    """Estimate token usage and cost for the given text and model"""
    token_count = count_tokens(text, model)
    cost_per_1k_tokens = _get_cost_per_1k_tokens(model)
    return {
        "token_count": token_count,
        "estimated_cost_usd": round((token_count / 1000) * cost_per_1k_tokens, 6),
        "cost_per_1k_tokens": cost_per_1k_tokens,
        "model": model,
    }


def _get_cost_per_1k_tokens(model: str) -> float:
    """Input-token prices per 1K tokens"""
    openai_costs = {
        "gpt-4o-mini": 0.00015,
        "gpt-4o": 0.0025,
        "gpt-4-turbo": 0.01,
        "gpt-4": 0.03,
        "gpt-3.5-turbo": 0.0005,
    }
    for model_key, cost in openai_costs.items():
        if model_key in model.lower():
            return cost
    return 0.002  # Default OpenAI cost


def estimate_embeddings_cost(text: str, model: str) -> dict:
    """Estimate cost for embeddings"""
    embedding_costs = {
        "text-embedding-ada-002": 0.0001,
        "text-embedding-3-small": 0.00002,
        "text-embedding-3-large": 0.00013,
    }
    token_count = count_tokens(text, model)
    cost_per_1k = next((c for k, c in embedding_costs.items() if k in model.lower()), 0.0001)
    return {
        "token_count": token_count,
        "estimated_cost_usd": round((token_count / 1000) * cost_per_1k, 8),
        "cost_per_1k_tokens": cost_per_1k,
        "model": model,
    }
