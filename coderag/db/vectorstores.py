import logging
import uuid
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, List, Optional

import chromadb
from chromadb.config import Settings

from ..config.models import BackendConfig
from ..core.errors import IndexSchemaError, UpsertError
from ..core.models import ChunkRecord, RetrievalResult

logger = logging.getLogger("coderag.db.vectorstores")

# "code" is stored as the Chroma document; the rest are metadata keys.
SCHEMA_FIELDS = ("code", "filename", "basename", "language", "start_line", "end_line", "repo")
SCHEMA_SIGNATURE = ",".join(SCHEMA_FIELDS)


async def create_vector_client(cfg: BackendConfig) -> Any:
	try:
		return await chromadb.AsyncHttpClient(
			host=cfg.host,
			port=cfg.port,
			ssl=cfg.ssl,
			settings=Settings(anonymized_telemetry=False),
		)
	except Exception as e:
		raise IndexSchemaError(f"cannot reach vector store at {cfg.host}:{cfg.port}: {e}") from e


def _metadata(record: ChunkRecord) -> Dict[str, Any]:
	return {
		"filename": record.filename,
		"basename": PurePosixPath(record.filename).name,
		"language": record.language,
		"start_line": record.start_line,
		"end_line": record.end_line,
		"repo": record.repo,
	}


def _to_result(code: str, metadata: Optional[Dict[str, Any]], score: Optional[float] = None) -> RetrievalResult:
	metadata = metadata or {}
	return RetrievalResult(
		code=code or "",
		filename=str(metadata.get("filename", "")),
		line=int(metadata.get("start_line", 1) or 1),
		language=str(metadata.get("language", "")),
		score=score,
	)


class CodeIndex:
	"""The remote collection holding every ingested chunk."""

	def __init__(self, client: Any, cfg: BackendConfig, embeddings: Any, embedding_model: str = ""):
		self.client = client
		self.cfg = cfg
		self.embeddings = embeddings
		self.embedding_model = embedding_model
		self.collection_name = cfg.collection_name

	def _schema_metadata(self) -> Dict[str, Any]:
		return {
			"hnsw:space": "cosine",
			"fields": SCHEMA_SIGNATURE,
			"embedding_model": self.embedding_model or "unknown",
		}

	async def _collection_names(self) -> List[str]:
		collections = await self.client.list_collections()
		# Depending on the chromadb release this is a list of names or of collections
		return [c if isinstance(c, str) else c.name for c in collections]

	async def _collection(self) -> Any:
		return await self.client.get_collection(name=self.collection_name, embedding_function=None)

	async def ensure_schema(self, reset: bool = True) -> None:
		"""Provision the collection with the fixed field set.

		With ``reset`` (the default) an existing collection is dropped and
		recreated, wiping every record. Without it the collection is only
		recreated when its pinned field set differs from the current one.
		"""
		name = self.collection_name
		try:
			exists = name in await self._collection_names()
			if exists and not reset:
				collection = await self._collection()
				if (collection.metadata or {}).get("fields") == SCHEMA_SIGNATURE:
					logger.info(f"Schema for {name} is current")
					return
				logger.info(f"Field set of {name} drifted, recreating")
			if exists:
				logger.info(f"Resetting schema for {name}...")
				await self.client.delete_collection(name=name)
			await self.client.create_collection(
				name=name,
				metadata=self._schema_metadata(),
				embedding_function=None,
			)
			logger.info(f"Created Schema: {name}")
		except Exception as e:
			logger.error(f"Vector store schema error: {e}")
			raise IndexSchemaError(f"failed to provision collection {name}: {e}") from e

	async def delete_repository(self, repo: str) -> None:
		try:
			collection = await self._collection()
			await collection.delete(where={"repo": repo})
			logger.info(f"Cleared old records for repo: {repo}")
		except Exception as e:
			raise IndexSchemaError(f"failed to clear records for {repo}: {e}") from e

	async def _write_batch(self, collection: Any, batch: List[ChunkRecord]) -> None:
		codes = [r.code for r in batch]
		vectors = await self.embeddings.aembed_documents(codes)
		await collection.add(
			ids=[str(uuid.uuid4()) for _ in batch],
			documents=codes,
			metadatas=[_metadata(r) for r in batch],
			embeddings=vectors,
		)

	async def upsert(self, records: Iterable[ChunkRecord], batch_size: int = 50) -> int:
		"""Write records in bounded batches; returns the number written.

		A failed batch raises UpsertError carrying how many records made it in.
		"""
		if batch_size < 1:
			raise ValueError("batch_size must be positive")
		try:
			collection = await self._collection()
		except Exception as e:
			raise UpsertError(f"collection {self.collection_name} is not available: {e}") from e
		
		written = 0
		batch_num = 0
		batch: List[ChunkRecord] = []
		
		async def flush() -> None:
			nonlocal written, batch_num, batch
			batch_num += 1
			try:
				await self._write_batch(collection, batch)
			except Exception as e:
				raise UpsertError(
					f"Failed to upsert batch {batch_num} ({len(batch)} records) after {written} written: {e}",
					records_written=written,
				) from e
			written += len(batch)
			logger.info(f"Flushed batch {batch_num} ({len(batch)} chunks, {written} total)")
			batch = []
		
		for record in records:
			batch.append(record)
			if len(batch) >= batch_size:
				await flush()
		if batch:
			await flush()
		return written

	async def semantic_query(self, query: str, limit: int, repo: Optional[str] = None) -> List[RetrievalResult]:
		collection = await self._collection()
		vector = await self.embeddings.aembed_query(query)
		kwargs: Dict[str, Any] = {
			"query_embeddings": [vector],
			"n_results": limit,
			"include": ["documents", "metadatas", "distances"],
		}
		if repo:
			kwargs["where"] = {"repo": repo}
		res = await collection.query(**kwargs)
		
		documents = (res.get("documents") or [[]])[0]
		metadatas = (res.get("metadatas") or [[]])[0]
		distances = (res.get("distances") or [[]])[0]
		hits = [
			_to_result(doc, meta, 1.0 - float(dist))
			for doc, meta, dist in zip(documents, metadatas, distances)
		]
		hits.sort(key=lambda r: r.score, reverse=True)
		return hits[:limit]

	async def filename_query(self, token: str, limit: int, repo: Optional[str] = None) -> List[RetrievalResult]:
		"""Chunks whose relative path contains ``token``, in stored order.

		Chroma metadata filters only compare whole values, so the substring
		test runs here over the stored paths before the matching documents
		are fetched.
		"""
		collection = await self._collection()
		scan: Dict[str, Any] = {"include": ["metadatas"]}
		if repo:
			scan["where"] = {"repo": repo}
		res = await collection.get(**scan)
		ids = res.get("ids") or []
		metadatas = res.get("metadatas") or []
		matched = [
			id_ for id_, meta in zip(ids, metadatas)
			if token in str((meta or {}).get("filename", ""))
		][:limit]
		if not matched:
			return []
		
		found = await collection.get(ids=matched, include=["documents", "metadatas"])
		by_id = {
			id_: (doc, meta)
			for id_, doc, meta in zip(found.get("ids") or [], found.get("documents") or [], found.get("metadatas") or [])
		}
		return [_to_result(*by_id[id_]) for id_ in matched if id_ in by_id]

	async def count(self) -> int:
		collection = await self._collection()
		return await collection.count()
