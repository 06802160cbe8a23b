import asyncio
import logging
from typing import Any, Optional

from ..config.models import AppConfig
from ..core.context import ProviderContext
from ..core.models import IngestResult
from ..db.vectorstores import CodeIndex, create_vector_client
from ..repos.acquisition import acquired, repository_id
from .chunker import RepoChunker

logger = logging.getLogger("coderag.indexing.indexer")


class RepoIndexer:
	"""Runs one repository through acquisition, chunking and the index."""

	def __init__(self, ctx: ProviderContext):
		self.ctx = ctx
		self.cfg = ctx.cfg
		self.chunker = RepoChunker(ctx.cfg.indexing)

	@property
	def repository_scoped(self) -> bool:
		return self.cfg.backend.isolation == "repository"

	async def ingest(self, reference: str) -> IngestResult:
		indexing = self.cfg.indexing
		repo_id = repository_id(reference)
		logger.info(f"Starting ingestion for: {reference}")
		
		async with acquired(reference, depth=indexing.clone_depth, token_env=indexing.github_token_env) as repo:
			index: CodeIndex = await self.ctx.index()
			await index.ensure_schema(reset=not self.repository_scoped)
			
			collection = await asyncio.to_thread(self.chunker.collect, repo.path, repo_id)
			logger.info(f"Found {collection.files_processed} files to process")
			
			if self.repository_scoped:
				await index.delete_repository(repo_id)
			
			written = await index.upsert(collection.records, batch_size=indexing.batch_size)
			logger.info(f"Ingestion complete: {collection.files_processed} files, {written} chunks")
		
		return IngestResult(
			repository=repo_id,
			files_processed=collection.files_processed,
			chunks_written=written,
		)


async def ingest(cfg: AppConfig, reference: str, api_key: Optional[str], timeout: Optional[float] = None,
				 **inject: Any) -> IngestResult:
	"""Ingest a local path or remote URL under a wall-clock timeout.

	On timeout the clone is cancelled and its temporary directory removed
	before ``asyncio.TimeoutError`` reaches the caller. Records already
	flushed to the index stay there.
	"""
	ctx = ProviderContext(cfg, api_key, **inject)
	indexer = RepoIndexer(ctx)
	timeout = cfg.indexing.ingest_timeout_s if timeout is None else timeout
	if not timeout or timeout <= 0:
		return await indexer.ingest(reference)
	try:
		return await asyncio.wait_for(indexer.ingest(reference), timeout=timeout)
	except asyncio.TimeoutError:
		logger.error(f"Ingestion of {reference} timed out after {timeout}s")
		raise


async def reset_index(cfg: AppConfig, vector_client: Any = None) -> None:
	"""Drop and recreate the collection. Needs no provider key."""
	client = vector_client or await create_vector_client(cfg.backend)
	index = CodeIndex(client, cfg.backend, embeddings=None, embedding_model=cfg.embedding.model_name)
	await index.ensure_schema(reset=True)
