import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Protocol

from ..config.models import AppConfig
from ..core.context import ProviderContext
from ..core.models import RetrievalResult

logger = logging.getLogger("coderag.search.retrieval")

FILENAME_RE = re.compile(r"\b[\w-]+\.\w+\b")


@dataclass(frozen=True)
class FilenameMatch:
	matched: bool
	token: Optional[str] = None


class FilenameDetector(Protocol):
	def detect(self, query: str) -> FilenameMatch:
		...


class RegexFilenameDetector:
	"""Treats the first bare ``name.ext`` token in a query as a file reference."""

	def __init__(self, pattern: re.Pattern = FILENAME_RE):
		self.pattern = pattern

	def detect(self, query: str) -> FilenameMatch:
		m = self.pattern.search(query or "")
		if not m:
			return FilenameMatch(matched=False)
		return FilenameMatch(matched=True, token=m.group(0))


def merge_results(file_hits: Iterable[RetrievalResult], semantic_hits: Iterable[RetrievalResult],
				  cap: int) -> List[RetrievalResult]:
	"""Filename hits first, then semantic hits; first copy of each (filename, line) wins."""
	seen = set()
	merged: List[RetrievalResult] = []
	for hit in list(file_hits) + list(semantic_hits):
		if hit.dedup_key in seen:
			continue
		seen.add(hit.dedup_key)
		merged.append(hit)
	return merged[:cap]


async def search(ctx: ProviderContext, query: str, limit: Optional[int] = None, repo: Optional[str] = None,
				 detector: Optional[FilenameDetector] = None) -> List[RetrievalResult]:
	"""Hybrid search. Failures are logged; a failed lookup contributes no hits."""
	cfg = ctx.cfg
	limit = limit or cfg.retrieval.default_limit
	file_limit = cfg.retrieval.filename_match_limit
	detector = detector or RegexFilenameDetector()
	
	try:
		index = await ctx.index()
		match = detector.detect(query)
		if not match.matched:
			hits = await index.semantic_query(query, limit, repo=repo)
			return hits[:limit]
		
		logger.info(f"Detected filename in query: {match.token}")
		semantic_hits, file_hits = await asyncio.gather(
			index.semantic_query(query, limit, repo=repo),
			index.filename_query(match.token, file_limit, repo=repo),
			return_exceptions=True,
		)
		if isinstance(semantic_hits, BaseException):
			logger.error(f"Semantic search error: {semantic_hits}")
			semantic_hits = []
		if isinstance(file_hits, BaseException):
			logger.error(f"Filename search error: {file_hits}")
			file_hits = []
		return merge_results(file_hits, semantic_hits, limit + file_limit)
	except Exception as e:
		logger.error(f"Search error: {e}")
		return []


async def search_codebase(cfg: AppConfig, query: str, api_key: Optional[str], limit: Optional[int] = None,
						  repo: Optional[str] = None, **inject: Any) -> List[RetrievalResult]:
	ctx = ProviderContext(cfg, api_key, **inject)
	return await search(ctx, query, limit=limit, repo=repo)
