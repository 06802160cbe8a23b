import logging
from typing import Any, Callable, Optional

from ..config.models import AppConfig
from .errors import ConfigurationError

logger = logging.getLogger("coderag.core.context")


class ProviderContext:
	"""Per-call bundle of provider clients, all bound to one caller-supplied key.

	Built fresh for every ingest/search/ask call and passed explicitly to each
	component. Nothing here outlives the call, and the key is only forwarded on
	outgoing requests.
	"""

	def __init__(
		self,
		cfg: AppConfig,
		api_key: Optional[str],
		embeddings: Any = None,
		chat_llm_factory: Optional[Callable[..., Any]] = None,
		vector_client: Any = None,
	):
		if not api_key or not api_key.strip():
			raise ConfigurationError("API key required")
		self.cfg = cfg
		self.api_key = api_key.strip()
		self._embeddings = embeddings
		self._chat_llm_factory = chat_llm_factory
		self._vector_client = vector_client

	@property
	def embeddings(self) -> Any:
		if self._embeddings is None:
			from .embeddings import create_embedding_fn
			self._embeddings = create_embedding_fn(self.cfg.embedding, self.api_key)
		return self._embeddings

	def chat_llm(self, temperature: Optional[float] = None, max_tokens: Optional[int] = None) -> Any:
		if self._chat_llm_factory is not None:
			return self._chat_llm_factory(temperature=temperature, max_tokens=max_tokens)
		from .chat import create_chat_llm
		return create_chat_llm(self.cfg.chat, self.api_key, temperature=temperature, max_tokens=max_tokens)

	async def vector_client(self) -> Any:
		if self._vector_client is None:
			from ..db.vectorstores import create_vector_client
			self._vector_client = await create_vector_client(self.cfg.backend)
		return self._vector_client

	async def index(self):
		from ..db.vectorstores import CodeIndex
		client = await self.vector_client()
		return CodeIndex(client, self.cfg.backend, self.embeddings, embedding_model=self.cfg.embedding.model_name)
