from pydantic import BaseModel, Field
from typing import Optional, List, Literal


DEFAULT_EXTENSIONS = [
	# JavaScript/TypeScript
	"js", "jsx", "ts", "tsx", "mjs", "cjs",
	# Python
	"py", "pyi", "pyx",
	"rs", "go",
	"java", "kt", "kts", "scala",
	"c", "cpp", "cc", "cxx", "h", "hpp", "hxx",
	"cs", "fs",
	"rb", "rake", "php", "swift",
	"sh", "bash", "zsh",
	# Web
	"html", "htm", "css", "scss", "sass", "less", "vue", "svelte",
	# Data/Config
	"json", "yaml", "yml", "toml", "xml", "ini", "env",
	# Docs
	"md", "mdx", "rst", "txt",
	"sql", "prisma", "graphql", "gql",
	"lua", "pl", "pm", "ex", "exs", "erl", "hrl", "zig", "nim", "v", "dart", "r",
]

DEFAULT_EXCLUDE_DIRS = [
	"node_modules", ".git", "dist", "build", ".next", "target",
	"__pycache__", ".venv", "venv",
]

DEFAULT_EXCLUDE_GLOBS = [
	"*.min.js",
	"*.min.css",
	"package-lock.json",
	"yarn.lock",
	"Cargo.lock",
	"poetry.lock",
	"Gemfile.lock",
]


class EmbeddingConfig(BaseModel):
	model_name: str = "text-embedding-ada-002"
	dimensions: Optional[int] = None
	base_url: Optional[str] = None


class BackendConfig(BaseModel):
	host: str = "localhost"
	port: int = 8000
	ssl: bool = False
	collection_name: str = "CodeSnippet"
	isolation: Literal["collection", "repository"] = "collection"


class IndexingConfig(BaseModel):
	include_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
	exclude_dirs: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_DIRS))
	exclude_globs: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_GLOBS))
	respect_gitignore: bool = False
	max_file_mb: float = 2.0
	chunk_size: int = 1000
	chunk_overlap: int = 200
	batch_size: int = 50
	clone_depth: int = 1
	github_token_env: Optional[str] = None
	ingest_timeout_s: float = 600.0


class RetrievalConfig(BaseModel):
	default_limit: int = 10
	filename_match_limit: int = 3


class ServerConfig(BaseModel):
	host: str = "127.0.0.1"
	port: int = 3005
	cors_origins: List[str] = Field(default_factory=lambda: ["*"])


class ChatConfig(BaseModel):
	model: str = "gpt-4o-mini"
	temperature: float = 0.2
	api_key_env: Optional[str] = "OPENAI_API_KEY"
	base_url: Optional[str] = None
	max_tokens: Optional[int] = None
	max_context_tokens: int = 12000
	timeout_s: float = 60.0
	docs_temperature: float = 0.3
	docs_max_tokens: int = 3000


class AppConfig(BaseModel):
	embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
	backend: BackendConfig = Field(default_factory=BackendConfig)
	indexing: IndexingConfig = Field(default_factory=IndexingConfig)
	retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
	server: ServerConfig = Field(default_factory=ServerConfig)
	chat: ChatConfig = Field(default_factory=ChatConfig)
	app_env: str = "local"
