"""Tests for documentation generation and reply normalisation."""

import json

import pytest

from coderag.core.docs import (
    StringDocs,
    StructuredDocs,
    SymbolDocs,
    classify,
    generate_docs,
    parse_documentation,
    to_jsdoc,
    to_readme,
)
from coderag.core.errors import UpstreamError

ADD_INFO = {
    "description": "Adds two numbers",
    "params": [{"name": "a", "type": "number", "description": "first"}, {"name": "b", "type": "number"}],
    "returns": {"type": "number", "description": "the sum"},
}


class TestClassify:
    def test_string_values(self):
        assert isinstance(classify({"jsdoc": "/** x */", "readme": "# X"}), StringDocs)

    def test_object_values(self):
        assert isinstance(classify({"jsdoc": {"add": ADD_INFO}, "readme": "# X"}), StructuredDocs)

    def test_function_keyed(self):
        raw = classify({"add": ADD_INFO})
        assert isinstance(raw, SymbolDocs)
        assert raw.kind == "symbols"

    def test_non_object_rejected(self):
        with pytest.raises(ValueError):
            classify(["not", "an", "object"])


class TestParseDocumentation:
    def test_fenced_string_reply(self):
        content = "Here you go:\n```json\n" + json.dumps({"jsdoc": "/** Adds */", "readme": "# Adder"}) + "\n```"

        docs = parse_documentation(content)

        assert docs.jsdoc == "/** Adds */"
        assert docs.readme == "# Adder"

    def test_nested_object_values_are_rendered(self):
        content = json.dumps({"jsdoc": {"add": ADD_INFO}, "readme": {"add": ADD_INFO}})

        docs = parse_documentation(content)

        assert "@param {number} a - first" in docs.jsdoc
        assert "@returns {number} the sum" in docs.jsdoc
        assert docs.readme.startswith("# API Reference")
        assert "| `a` | `number` | first |" in docs.readme

    def test_function_keyed_reply(self):
        content = json.dumps({
            "Calculator": {
                "description": "Keeps a running total",
                "constructor": {"params": [{"name": "start", "type": "number"}]},
                "methods": {"add": {"description": "Adds to the total", "params": [{"name": "n", "type": "number"}]}},
            }
        })

        docs = parse_documentation(content)

        assert "@param {number} start - " in docs.jsdoc
        assert "@method add - Adds to the total" in docs.jsdoc
        assert "## Class: Calculator" in docs.readme
        assert "#### `add()`" in docs.readme
        assert "- **n** (`number`): " in docs.readme

    def test_missing_readme_becomes_empty(self):
        docs = parse_documentation(json.dumps({"jsdoc": "/** only */"}))

        assert docs.jsdoc == "/** only */"
        assert docs.readme == ""

    def test_malformed_reply_raises_upstream_error(self):
        with pytest.raises(UpstreamError, match="malformed documentation JSON"):
            parse_documentation("I'm sorry, I can't do that.")


class TestRenderers:
    def test_non_dict_renders_empty(self):
        assert to_jsdoc(None) == ""
        assert to_readme("text") == ""

    def test_plain_function_is_not_a_class(self):
        assert "## add" in to_readme({"add": ADD_INFO})
        assert "Class:" not in to_readme({"add": ADD_INFO})


@pytest.mark.asyncio
async def test_generate_docs_uses_docs_sampling(ctx, chat_llm):
    chat_llm.reply = json.dumps({"jsdoc": "/** hi */", "readme": "# hi"})

    docs = await generate_docs(ctx, "function hi() {}", "javascript")

    assert docs.readme == "# hi"
    assert chat_llm.factory_kwargs[-1] == {"temperature": 0.3, "max_tokens": 3000}
    prompt = dict(chat_llm.calls[-1])["human"]
    assert "```javascript\nfunction hi() {}\n```" in prompt
    assert "system" not in dict(chat_llm.calls[-1])
