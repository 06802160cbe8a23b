import logging
from typing import Any, List, Optional, Tuple

from ..config.models import AppConfig
from ..core.chat import complete, count_tokens, estimate_token_cost
from ..core.context import ProviderContext
from ..core.models import AnswerResult, RetrievalResult
from .retrieval import search

logger = logging.getLogger("coderag.search.answer")

NO_CONTEXT = "No relevant code found."

SYSTEM_PROMPT = """You are a senior codebase expert.
Answer the user's question primarily using the provided Code Context.
If the answer is not in the context, say so explicitly instead of guessing.
Always cite the filename when referencing code.
If the user names a specific file (e.g. "main.rs") and it is in the context, explain that file in detail.

Code Context:
{context}"""


def format_block(hit: RetrievalResult) -> str:
	return f"File: {hit.filename} (Line {hit.line})\n```{hit.language}\n{hit.code}\n```"


def format_context(hits: List[RetrievalResult], max_tokens: Optional[int] = None,
				   model: str = "gpt-4o-mini") -> Tuple[str, List[RetrievalResult]]:
	"""Render hits as fenced blocks, stopping once the token budget is used up.

	Returns the context text and the hits that made it in. The first hit is
	always kept so a single oversized chunk still reaches the model.
	"""
	blocks: List[str] = []
	used: List[RetrievalResult] = []
	spent = 0
	for hit in hits:
		block = format_block(hit)
		cost = count_tokens(block, model)
		if max_tokens and used and spent + cost > max_tokens:
			logger.info(f"Context budget of {max_tokens} tokens reached after {len(used)} chunks")
			break
		blocks.append(block)
		used.append(hit)
		spent += cost
	if not blocks:
		return NO_CONTEXT, []
	return "\n\n".join(blocks), used


async def answer(ctx: ProviderContext, query: str, repo: Optional[str] = None) -> AnswerResult:
	cfg = ctx.cfg
	hits = await search(ctx, query, limit=cfg.retrieval.default_limit, repo=repo)
	context, used = format_context(hits, cfg.chat.max_context_tokens, cfg.chat.model)
	system_prompt = SYSTEM_PROMPT.format(context=context)
	
	query_cost = estimate_token_cost(system_prompt + query, cfg.chat.model)
	logger.info(f"Query token estimate: {query_cost}")
	
	llm = ctx.chat_llm()
	text = await complete(llm, system_prompt, query)
	
	response_cost = estimate_token_cost(text, cfg.chat.model)
	logger.info(f"Response token estimate: {response_cost}")
	return AnswerResult(answer=text, context=used)


async def ask(cfg: AppConfig, query: str, api_key: Optional[str], repo: Optional[str] = None,
			  **inject: Any) -> AnswerResult:
	# ProviderContext rejects a missing key before any retrieval happens
	ctx = ProviderContext(cfg, api_key, **inject)
	return await answer(ctx, query, repo=repo)
