"""Tests for hybrid retrieval and result merging."""

from unittest.mock import patch

import pytest

from coderag.core.errors import ConfigurationError
from coderag.core.models import ChunkRecord, RetrievalResult
from coderag.search.retrieval import (
    FilenameMatch,
    RegexFilenameDetector,
    merge_results,
    search,
    search_codebase,
)


def _hit(filename, line, code="code", score=None):
    return RetrievalResult(code=code, filename=filename, line=line, score=score)


async def _populate(ctx, records):
    index = await ctx.index()
    await index.ensure_schema()
    await index.upsert(records)
    return index


class TestFilenameDetector:
    @pytest.mark.parametrize("query,token", [
        ("how does main.rs handle errors", "main.rs"),
        ("what is in docker-compose.yml?", "docker-compose.yml"),
        ("explain utils.py and app.py", "utils.py"),
    ])
    def test_detects_bare_filenames(self, query, token):
        assert RegexFilenameDetector().detect(query) == FilenameMatch(matched=True, token=token)

    @pytest.mark.parametrize("query", ["how are errors handled", "where is the config loaded", ""])
    def test_plain_questions_do_not_trigger(self, query):
        assert RegexFilenameDetector().detect(query).matched is False


class TestMerge:
    def test_duplicate_keeps_filename_copy(self):
        file_hits = [_hit("src/a.py", 1, code="from filename lookup")]
        semantic = [_hit("src/b.py", 5), _hit("src/a.py", 1, code="from semantic search", score=0.9)]

        merged = merge_results(file_hits, semantic, cap=10)

        assert [(h.filename, h.line) for h in merged] == [("src/a.py", 1), ("src/b.py", 5)]
        assert merged[0].code == "from filename lookup"

    def test_cap_applies_after_dedup(self):
        file_hits = [_hit("f.py", i) for i in range(3)]
        semantic = [_hit("f.py", 0)] + [_hit("g.py", i) for i in range(10)]

        merged = merge_results(file_hits, semantic, cap=5)

        assert len(merged) == 5
        assert len({h.dedup_key for h in merged}) == 5


class TestSearch:
    @pytest.mark.asyncio
    async def test_named_file_comes_first(self, ctx):
        await _populate(ctx, [
            ChunkRecord(code="how errors are handled: handle errors by logging", filename="src/errors.rs", language="rs"),
            ChunkRecord(code="errors handle retry loop", filename="src/retry.rs", language="rs"),
            ChunkRecord(code="fn main() { run().unwrap(); }", filename="src/main.rs", language="rs"),
        ])

        results = await search(ctx, "how does main.rs handle errors", limit=2)

        assert results[0].filename == "src/main.rs"
        assert len(results) <= 2 + ctx.cfg.retrieval.filename_match_limit
        assert len({r.dedup_key for r in results}) == len(results)

    @pytest.mark.asyncio
    async def test_without_filename_semantic_results_capped(self, ctx, embeddings):
        await _populate(ctx, [
            ChunkRecord(code=f"retry handler {i}", filename=f"src/h{i}.py", language="py", start_line=1)
            for i in range(8)
        ])

        results = await search(ctx, "retry handler", limit=3)

        assert len(results) == 3
        assert embeddings.queries == ["retry handler"]

    @pytest.mark.asyncio
    async def test_fresh_index_returns_empty(self, ctx):
        await _populate(ctx, [])

        assert await search(ctx, "how does main.rs work", limit=5) == []

    @pytest.mark.asyncio
    async def test_provider_failure_degrades_to_empty(self, ctx):
        # Collection was never created, so every lookup fails.
        assert await search(ctx, "anything at all", limit=5) == []

    @pytest.mark.asyncio
    async def test_embedding_failure_degrades_to_empty(self, ctx, embeddings):
        await _populate(ctx, [ChunkRecord(code="x = 1", filename="x.py", language="py")])

        async def broken(text):
            raise RuntimeError("invalid api key")
        embeddings.aembed_query = broken

        assert await search(ctx, "what is x", limit=5) == []

    @pytest.mark.asyncio
    async def test_custom_detector(self, ctx):
        await _populate(ctx, [ChunkRecord(code="body", filename="Makefile.am", language="am")])

        class Always:
            def detect(self, query):
                return FilenameMatch(matched=True, token="Makefile.am")

        results = await search(ctx, "build rules", limit=1, detector=Always())

        assert results[0].filename == "Makefile.am"


class TestSearchCodebase:
    @pytest.mark.asyncio
    async def test_requires_api_key(self, cfg, inject):
        with pytest.raises(ConfigurationError):
            await search_codebase(cfg, "query", "", **inject)

    @pytest.mark.asyncio
    async def test_uses_default_limit(self, cfg, inject, vector_client):
        await vector_client.create_collection("CodeSnippet")

        assert await search_codebase(cfg, "query", "sk-test", **inject) == []


class TestPartialFailure:
    @pytest.mark.asyncio
    async def test_filename_hits_survive_embedding_failure(self, ctx, embeddings):
        await _populate(ctx, [ChunkRecord(code="export default App", filename="src/index.jsx", language="jsx")])

        async def broken(text):
            raise RuntimeError("invalid api key")
        embeddings.aembed_query = broken

        results = await search(ctx, "what does index.js render", limit=5)

        assert [r.filename for r in results] == ["src/index.jsx"]

    @pytest.mark.asyncio
    async def test_semantic_hits_survive_filename_failure(self, ctx):
        index = await _populate(ctx, [ChunkRecord(code="render the app", filename="src/app.jsx", language="jsx")])

        async def broken(self, token, limit, repo=None):
            raise RuntimeError("scan failed")

        with patch.object(type(index), "filename_query", new=broken):
            results = await search(ctx, "how does index.js render the app", limit=5)

        assert [r.filename for r in results] == ["src/app.jsx"]
