"""Test fixtures and in-memory stand-ins for the vector store and providers."""

import logging
import math
import re
import sys
import zlib
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from coderag.config.models import AppConfig
from coderag.core.context import ProviderContext

API_KEY = "sk-test"


def pytest_configure(config):
    """Configure logging to be visible for all tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(levelname)s:%(name)s:%(message)s",
        stream=sys.stdout,
    )


def _matches(metadata: Dict[str, Any], where: Optional[Dict[str, Any]]) -> bool:
    if not where:
        return True
    if "$or" in where:
        return any(_matches(metadata, clause) for clause in where["$or"])
    if "$and" in where:
        return all(_matches(metadata, clause) for clause in where["$and"])
    return all(metadata.get(key) == value for key, value in where.items())


def _cosine_distance(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    if not na or not nb:
        return 1.0
    return 1.0 - dot / (na * nb)


class FakeCollection:
    """Enough of chromadb's AsyncCollection for the index code paths."""

    def __init__(self, name: str, metadata: Optional[Dict[str, Any]] = None):
        self.name = name
        self.metadata = metadata or {}
        self.records: Dict[str, Dict[str, Any]] = {}
        self.add_calls = 0
        self.fail_on_add_call: Optional[int] = None

    async def add(self, ids, documents, metadatas, embeddings):
        self.add_calls += 1
        if self.fail_on_add_call is not None and self.add_calls >= self.fail_on_add_call:
            raise RuntimeError("payload too large")
        for id_, doc, meta, emb in zip(ids, documents, metadatas, embeddings):
            self.records[id_] = {"document": doc, "metadata": dict(meta), "embedding": emb}

    async def query(self, query_embeddings, n_results, include=None, where=None):
        vector = query_embeddings[0]
        hits = [
            (rec, _cosine_distance(vector, rec["embedding"]))
            for rec in self.records.values()
            if _matches(rec["metadata"], where)
        ]
        hits.sort(key=lambda h: h[1])
        hits = hits[:n_results]
        return {
            "ids": [[str(i) for i in range(len(hits))]],
            "documents": [[rec["document"] for rec, _ in hits]],
            "metadatas": [[rec["metadata"] for rec, _ in hits]],
            "distances": [[dist for _, dist in hits]],
        }

    async def get(self, ids=None, where=None, limit=None, include=None):
        found = [
            (id_, rec) for id_, rec in self.records.items()
            if (ids is None or id_ in ids) and _matches(rec["metadata"], where)
        ]
        if limit is not None:
            found = found[:limit]
        include = include or ["documents", "metadatas"]
        return {
            "ids": [id_ for id_, _ in found],
            "documents": [rec["document"] for _, rec in found] if "documents" in include else None,
            "metadatas": [rec["metadata"] for _, rec in found] if "metadatas" in include else None,
        }

    async def delete(self, where=None):
        for key in [k for k, rec in self.records.items() if _matches(rec["metadata"], where)]:
            del self.records[key]

    async def count(self):
        return len(self.records)


class FakeAsyncClient:
    """In-memory stand-in for chromadb.AsyncHttpClient."""

    def __init__(self):
        self.collections: Dict[str, FakeCollection] = {}
        self.deleted: List[str] = []
        self.created: List[str] = []

    async def list_collections(self):
        return list(self.collections.values())

    async def create_collection(self, name, metadata=None, embedding_function=None):
        if name in self.collections:
            raise ValueError(f"Collection {name} already exists")
        self.collections[name] = FakeCollection(name, metadata)
        self.created.append(name)
        return self.collections[name]

    async def get_collection(self, name, embedding_function=None):
        if name not in self.collections:
            raise ValueError(f"Collection {name} does not exist.")
        return self.collections[name]

    async def delete_collection(self, name):
        if name not in self.collections:
            raise ValueError(f"Collection {name} does not exist.")
        del self.collections[name]
        self.deleted.append(name)


class FakeEmbeddings:
    """Hashed bag-of-words vectors; similar wording gives similar vectors."""

    dims = 2048

    def __init__(self):
        self.document_batches: List[List[str]] = []
        self.queries: List[str] = []

    def _vector(self, text: str) -> List[float]:
        vec = [0.0] * self.dims
        for word in re.findall(r"\w+", text.lower()):
            vec[zlib.crc32(word.encode()) % self.dims] += 1.0
        return vec

    async def aembed_documents(self, texts):
        self.document_batches.append(list(texts))
        return [self._vector(t) for t in texts]

    async def aembed_query(self, text):
        self.queries.append(text)
        return self._vector(text)


class FakeChatLLM:
    def __init__(self, reply: str = "stub answer"):
        self.reply = reply
        self.error: Optional[Exception] = None
        self.calls: List[List[Any]] = []
        self.factory_kwargs: List[Dict[str, Any]] = []

    def factory(self, **kwargs):
        self.factory_kwargs.append(kwargs)
        return self

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=self.reply)

    @property
    def last_system_prompt(self) -> str:
        return dict(self.calls[-1]).get("system", "")


@pytest.fixture(autouse=True)
def no_tokenizer_download(monkeypatch):
    """Use the length heuristic instead of fetching tiktoken encodings."""
    monkeypatch.setattr("coderag.core.chat._get_encoding", lambda model: None)


@pytest.fixture
def cfg() -> AppConfig:
    return AppConfig()


@pytest.fixture
def vector_client() -> FakeAsyncClient:
    return FakeAsyncClient()


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def chat_llm() -> FakeChatLLM:
    return FakeChatLLM()


@pytest.fixture
def inject(vector_client, embeddings, chat_llm) -> Dict[str, Any]:
    """Keyword arguments accepted by ingest/search_codebase/ask."""
    return {
        "embeddings": embeddings,
        "chat_llm_factory": chat_llm.factory,
        "vector_client": vector_client,
    }


@pytest.fixture
def ctx(cfg, inject) -> ProviderContext:
    return ProviderContext(cfg, API_KEY, **inject)


@pytest.fixture
def sample_repo(tmp_path: Path) -> Path:
    """Three files, one of them under node_modules."""
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "node_modules").mkdir()
    (root / "src" / "app.py").write_text(
        "import logging\n\n\ndef main():\n    logging.info('starting')\n    return 0\n"
    )
    (root / "README.md").write_text("# Sample\n\nA tiny repository used in tests.\n")
    (root / "node_modules" / "lib.js").write_text("module.exports = function () { return 1; };\n")
    return root
