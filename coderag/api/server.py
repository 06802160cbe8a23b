import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..config.loader import load_config
from ..config.models import AppConfig, ServerConfig
from ..core.context import ProviderContext
from ..core.docs import Documentation, generate_docs
from ..core.errors import (
	AcquisitionError,
	CodeRagError,
	ConfigurationError,
	IndexSchemaError,
	UpsertError,
	UpstreamError,
)
from ..core.models import AnswerResult, IngestResult, RetrievalResult
from ..indexing.indexer import ingest
from ..search.answer import ask
from ..search.retrieval import search_codebase

logger = logging.getLogger("coderag.api.server")


class KeyedIn(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	openai_key: Optional[str] = Field(default=None, alias="openaiKey")


class IngestIn(KeyedIn):
	repo_url: str = Field(alias="repoUrl")


class SearchIn(KeyedIn):
	query: str
	limit: Optional[int] = None
	repo: Optional[str] = None


class AskIn(KeyedIn):
	query: str
	repo: Optional[str] = None


class DocsIn(KeyedIn):
	code: str
	language: str = "javascript"


class SearchOut(BaseModel):
	results: List[RetrievalResult]


def get_cfg(request: Request) -> AppConfig:
	return request.app.state.cfg


@asynccontextmanager
async def lifespan(app: FastAPI):
	if app.state.cfg is None:
		app.state.cfg = load_config()
	logger.info(f"Serving collection {app.state.cfg.backend.collection_name} "
				f"at {app.state.cfg.backend.host}:{app.state.cfg.backend.port}")
	yield


router = APIRouter(prefix="/api")


@router.get("/health")
async def health_check():
	"""Health check endpoint"""
	return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.post("/rag/ingest", response_model=IngestResult)
async def ingest_repository(payload: IngestIn, cfg: AppConfig = Depends(get_cfg)):
	return await ingest(cfg, payload.repo_url, payload.openai_key)


@router.post("/rag/search", response_model=SearchOut)
async def search_repository(payload: SearchIn, cfg: AppConfig = Depends(get_cfg)):
	results = await search_codebase(cfg, payload.query, payload.openai_key, limit=payload.limit, repo=payload.repo)
	return SearchOut(results=results)


@router.post("/rag/ask", response_model=AnswerResult)
async def ask_repository(payload: AskIn, cfg: AppConfig = Depends(get_cfg)):
	return await ask(cfg, payload.query, payload.openai_key, repo=payload.repo)


@router.post("/generate-docs", response_model=Documentation)
async def generate_documentation(payload: DocsIn, cfg: AppConfig = Depends(get_cfg)):
	if not payload.code.strip():
		raise ConfigurationError("Code is required")
	ctx = ProviderContext(cfg, payload.openai_key)
	return await generate_docs(ctx, payload.code, payload.language)


def _error(status: int, e: Exception, **extra) -> JSONResponse:
	return JSONResponse(status_code=status, content={"error": str(e), **extra})


def _register_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(ConfigurationError)
	@app.exception_handler(AcquisitionError)
	async def bad_request(request: Request, e: CodeRagError):
		return _error(400, e)

	@app.exception_handler(UpstreamError)
	async def upstream_failed(request: Request, e: UpstreamError):
		logger.error(f"Upstream provider error: {e}")
		return _error(502, e, status_code=e.status_code)

	@app.exception_handler(UpsertError)
	async def upsert_failed(request: Request, e: UpsertError):
		logger.error(f"Index write failed: {e}")
		return _error(500, e, records_written=e.records_written)

	@app.exception_handler(IndexSchemaError)
	async def schema_failed(request: Request, e: IndexSchemaError):
		logger.error(f"Index schema error: {e}")
		return _error(500, e)

	@app.exception_handler(asyncio.TimeoutError)
	async def timed_out(request: Request, e: Exception):
		return JSONResponse(status_code=504, content={"error": "Ingestion timed out"})


def create_app(cfg: Optional[AppConfig] = None) -> FastAPI:
	app = FastAPI(title="coderag", lifespan=lifespan)
	app.state.cfg = cfg
	origins = (cfg.server if cfg else ServerConfig()).cors_origins
	app.add_middleware(
		CORSMiddleware,
		allow_origins=origins,
		allow_credentials="*" not in origins,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	_register_error_handlers(app)
	app.include_router(router)
	return app


app = create_app()
