import logging
from typing import Any
from langchain_openai import OpenAIEmbeddings
from ..config.models import EmbeddingConfig
from .chat import estimate_embeddings_cost

logger = logging.getLogger("coderag.core.embeddings")


def create_embedding_fn(cfg: EmbeddingConfig, api_key: str) -> Any:
	"""Embedding client bound to the caller's key. Nothing is cached across calls."""
	cost_estimate = estimate_embeddings_cost("This is a test string for embedding cost estimation.", cfg.model_name)
	logger.debug(f"Embedding cost estimate per test query: {cost_estimate}")
	
	kwargs = {
		"model": cfg.model_name,
		"api_key": api_key,
		"max_retries": 0,
	}
	if cfg.dimensions:
		kwargs["dimensions"] = cfg.dimensions
	if cfg.base_url:
		kwargs["base_url"] = cfg.base_url
	
	logger.info(f"Creating OpenAI embeddings with model: {cfg.model_name}")
	return OpenAIEmbeddings(**kwargs)
