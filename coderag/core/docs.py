import json
import logging
import re
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel

from .chat import complete
from .context import ProviderContext
from .errors import UpstreamError

logger = logging.getLogger("coderag.core.docs")

FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

DOCS_PROMPT = """Generate comprehensive documentation for this {language} code.

Return a JSON object with exactly two keys:
- "jsdoc": A single STRING containing JSDoc/docstring comments for all functions and classes (the actual comment text, not an object)
- "readme": A single STRING containing a README in markdown format documenting the module's purpose, usage, and API

IMPORTANT: Both values must be strings, NOT nested objects.

Code:
```{language}
{code}
```

Return only valid JSON with "jsdoc" and "readme" as string values."""


class Documentation(BaseModel):
	jsdoc: str
	readme: str


# The model does not always follow the requested shape. Each reply is tagged
# with one of these before it is normalised into Documentation.

class StringDocs(BaseModel):
	kind: Literal["strings"] = "strings"
	jsdoc: str = ""
	readme: str = ""


class StructuredDocs(BaseModel):
	kind: Literal["structured"] = "structured"
	jsdoc: Union[str, Dict[str, Any], None] = None
	readme: Union[str, Dict[str, Any], None] = None


class SymbolDocs(BaseModel):
	kind: Literal["symbols"] = "symbols"
	symbols: Dict[str, Any]


RawDocs = Union[StringDocs, StructuredDocs, SymbolDocs]


def extract_json(content: str) -> Any:
	text = content or "{}"
	m = FENCED_JSON_RE.search(text)
	if m:
		text = m.group(1)
	return json.loads(text.strip())


def classify(parsed: Any) -> RawDocs:
	if not isinstance(parsed, dict):
		raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
	if "jsdoc" in parsed or "readme" in parsed:
		jsdoc, readme = parsed.get("jsdoc"), parsed.get("readme")
		if isinstance(jsdoc, str) and isinstance(readme, str):
			return StringDocs(jsdoc=jsdoc, readme=readme)
		return StructuredDocs(
			jsdoc=jsdoc if isinstance(jsdoc, (str, dict)) else None,
			readme=readme if isinstance(readme, (str, dict)) else None,
		)
	return SymbolDocs(symbols=parsed)


def _info(value: Any) -> Dict[str, Any]:
	return value if isinstance(value, dict) else {"description": str(value)}


def _params(info: Dict[str, Any]) -> list:
	params = info.get("params")
	if params is None and isinstance(info.get("constructor"), dict):
		params = info["constructor"].get("params")
	return [p for p in (params or []) if isinstance(p, dict)] if isinstance(params, list) else []


def to_jsdoc(symbols: Optional[Dict[str, Any]]) -> str:
	"""Render a function-keyed description object as JSDoc comment blocks."""
	if not isinstance(symbols, dict):
		return ""
	out = []
	for name, raw in symbols.items():
		info = _info(raw)
		lines = ["/**", f" * {info.get('description') or name}", " *"]
		for p in _params(info):
			lines.append(f" * @param {{{p.get('type') or 'any'}}} {p.get('name', '')} - {p.get('description') or ''}")
		returns = info.get("returns")
		if isinstance(returns, dict):
			lines.append(f" * @returns {{{returns.get('type') or 'any'}}} {returns.get('description') or ''}")
		throws = info.get("throws")
		if isinstance(throws, dict):
			lines.append(f" * @throws {{{throws.get('type') or 'Error'}}} {throws.get('description') or ''}")
		methods = info.get("methods")
		if isinstance(methods, dict):
			lines.append(" *")
			for method_name, method in methods.items():
				lines.append(f" * @method {method_name} - {_info(method).get('description') or ''}")
		lines.append(" */")
		out.append("\n".join(lines))
	return "\n\n".join(out).strip()


def to_readme(symbols: Optional[Dict[str, Any]]) -> str:
	"""Render a function-keyed description object as a markdown API reference."""
	if not isinstance(symbols, dict):
		return ""
	parts = ["# API Reference\n"]
	for name, raw in symbols.items():
		info = _info(raw)
		is_class = "constructor" in info or "methods" in info
		parts.append(f"## {'Class: ' if is_class else ''}{name}\n")
		parts.append(f"{info.get('description') or ''}\n")
		params = _params(info)
		if params:
			parts.append("### Parameters\n")
			rows = ["| Name | Type | Description |", "|------|------|-------------|"]
			rows += [f"| `{p.get('name', '')}` | `{p.get('type') or 'any'}` | {p.get('description') or ''} |" for p in params]
			parts.append("\n".join(rows) + "\n")
		returns = info.get("returns")
		if isinstance(returns, dict):
			parts.append(f"**Returns:** `{returns.get('type') or 'any'}` - {returns.get('description') or ''}\n")
		methods = info.get("methods")
		if isinstance(methods, dict):
			parts.append("### Methods\n")
			for method_name, method in methods.items():
				m = _info(method)
				parts.append(f"#### `{method_name}()`\n")
				parts.append(f"{m.get('description') or ''}\n")
				method_params = _params(m)
				if method_params:
					parts.append("\n".join(
						f"- **{p.get('name', '')}** (`{p.get('type') or 'any'}`): {p.get('description') or ''}"
						for p in method_params
					) + "\n")
		parts.append("---\n")
	return "\n".join(parts).strip()


def _as_text(value: Union[str, Dict[str, Any], None], render) -> str:
	if isinstance(value, str):
		return value
	return render(value)


def normalize(raw: RawDocs) -> Documentation:
	if isinstance(raw, StringDocs):
		return Documentation(jsdoc=raw.jsdoc, readme=raw.readme)
	if isinstance(raw, StructuredDocs):
		return Documentation(jsdoc=_as_text(raw.jsdoc, to_jsdoc), readme=_as_text(raw.readme, to_readme))
	return Documentation(jsdoc=to_jsdoc(raw.symbols), readme=to_readme(raw.symbols))


def parse_documentation(content: str) -> Documentation:
	try:
		raw = classify(extract_json(content))
	except ValueError as e:
		# json.JSONDecodeError is a ValueError
		logger.error(f"Failed to parse LLM documentation response: {e}")
		raise UpstreamError(f"model returned malformed documentation JSON: {e}") from e
	logger.info(f"Documentation reply shape: {raw.kind}")
	return normalize(raw)


async def generate_docs(ctx: ProviderContext, code: str, language: str) -> Documentation:
	chat = ctx.cfg.chat
	llm = ctx.chat_llm(temperature=chat.docs_temperature, max_tokens=chat.docs_max_tokens)
	prompt = DOCS_PROMPT.format(language=language, code=code)
	content = await complete(llm, None, prompt)
	return parse_documentation(content)
