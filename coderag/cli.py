import argparse
import asyncio
import logging
import os
from typing import List, Optional

from .config.loader import load_config
from .config.models import AppConfig
from .core.errors import CodeRagError
from .core.models import AnswerResult, ConversationExchange, RetrievalResult

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("coderag.cli")


def _resolve_api_key(cfg: AppConfig, explicit: Optional[str]) -> Optional[str]:
	if explicit:
		return explicit
	if cfg.chat.api_key_env:
		return os.getenv(cfg.chat.api_key_env)
	return None


def _print_results(results: List[RetrievalResult]) -> None:
	if not results:
		print("No relevant code found.")
		return
	for i, r in enumerate(results, 1):
		score = f" score={r.score:.3f}" if r.score is not None else ""
		print(f"\n--- Result {i}: {r.filename} (Line {r.line}){score} ---")
		preview = r.code if len(r.code) <= 400 else r.code[:400] + "..."
		print(preview)


def _print_answer(result: AnswerResult) -> None:
	print(result.answer)
	if result.context:
		print("\nSources:")
		for r in result.context:
			print(f"  - {r.filename} (Line {r.line})")


def run_chat(cfg: AppConfig, api_key: Optional[str]) -> List[ConversationExchange]:
	"""Interactive question loop. The history lives only for this session."""
	from .search.answer import ask
	history: List[ConversationExchange] = []
	print("Ask about the indexed code. Empty line or Ctrl-D to quit.")
	while True:
		try:
			query = input("> ").strip()
		except EOFError:
			break
		if not query:
			break
		try:
			result = asyncio.run(ask(cfg, query, api_key))
		except CodeRagError as e:
			logger.error(f"Ask failed: {e}")
			continue
		_print_answer(result)
		history.append(ConversationExchange(query=query, answer=result.answer, sources=result.context))
	logger.info(f"Chat session ended after {len(history)} exchanges")
	return history


def main(argv: Optional[List[str]] = None) -> int:
	ap = argparse.ArgumentParser(description="Code ingestion and retrieval-augmented Q&A")
	ap.add_argument("--ingest", type=str, metavar="REF", help="Ingest a local path or remote git URL")
	ap.add_argument("--search", type=str, metavar="QUERY", help="Search the indexed code")
	ap.add_argument("--ask", type=str, metavar="QUESTION", help="Answer a question from the indexed code")
	ap.add_argument("--chat", action="store_true", help="Interactive question session")
	ap.add_argument("--reset", action="store_true", help="Drop and recreate the code collection")
	ap.add_argument("--serve", action="store_true", help="Start the API server")
	ap.add_argument("--env", type=str, default=None, help="Override APP_ENV (local|prod)")
	ap.add_argument("--limit", type=int, default=None, help="Number of search results")
	ap.add_argument("--repo", type=str, default=None, help="Scope search to one repository id")
	ap.add_argument("--api-key", type=str, default=None, help="Provider API key (defaults to the configured env var)")
	args = ap.parse_args(argv)

	try:
		cfg = load_config(args.env)
		logger.info(f"Loaded configuration for environment: {cfg.app_env}")
	except Exception as e:
		logger.error(f"Failed to load configuration: {e}")
		return 1

	api_key = _resolve_api_key(cfg, args.api_key)

	if args.reset:
		from .indexing.indexer import reset_index
		try:
			asyncio.run(reset_index(cfg))
			logger.info("Collection reset completed")
		except CodeRagError as e:
			logger.error(f"Reset failed: {e}")
			return 1

	if args.ingest:
		from .indexing.indexer import ingest
		try:
			result = asyncio.run(ingest(cfg, args.ingest, api_key))
			logger.info(f"Ingested {result.repository}: {result.files_processed} files, {result.chunks_written} chunks")
		except asyncio.TimeoutError:
			logger.error(f"Ingestion timed out after {cfg.indexing.ingest_timeout_s}s")
			return 1
		except CodeRagError as e:
			logger.error(f"Ingestion failed: {e}")
			return 1

	if args.search:
		from .search.retrieval import search_codebase
		try:
			results = asyncio.run(search_codebase(cfg, args.search, api_key, limit=args.limit, repo=args.repo))
		except CodeRagError as e:
			logger.error(f"Search failed: {e}")
			return 1
		_print_results(results)

	if args.ask:
		from .search.answer import ask
		try:
			result = asyncio.run(ask(cfg, args.ask, api_key, repo=args.repo))
		except CodeRagError as e:
			logger.error(f"Ask failed: {e}")
			return 1
		_print_answer(result)

	if args.chat:
		run_chat(cfg, api_key)

	if args.serve:
		import uvicorn
		from .api.server import create_app
		try:
			logger.info(f"Starting server on {cfg.server.host}:{cfg.server.port}")
			uvicorn.run(
				create_app(cfg),
				host=cfg.server.host,
				port=cfg.server.port,
				log_level="info"
			)
		except Exception as e:
			logger.error(f"Server failed to start: {e}")
			return 1

	# If no action specified, show help
	if not any([args.reset, args.ingest, args.search, args.ask, args.chat, args.serve]):
		ap.print_help()

	return 0


if __name__ == "__main__":
	exit(main())
