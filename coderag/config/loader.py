import os
from pathlib import Path
from typing import Optional
import yaml
from .models import AppConfig
from dotenv import load_dotenv

load_dotenv()

def _read_yaml(path: Optional[str]) -> dict:
	if not path:
		return {}
	p = Path(path)
	if not p.exists():
		raise FileNotFoundError(f"Configuration file not found: {path}")
	with p.open() as f:
		content = yaml.safe_load(f)
		if content is None:
			raise ValueError(f"Configuration file is empty: {path}")
		return content

def _get_config_path(env: str) -> str:
	if env.lower() == "local":
		return "config/local.yaml"
	elif env.lower() == "prod":
		return "config/prod.yaml"
	else:
		raise ValueError(f"Unknown environment: {env}. Use 'local' or 'prod'")

def load_config(env: str = None) -> AppConfig:
	app_env = env or os.getenv("APP_ENV", "local")
	base_path = os.getenv("APP_CONFIG_PATH") or _get_config_path(app_env)
	
	try:
		base_config = _read_yaml(base_path)
	except FileNotFoundError:
		raise FileNotFoundError(f"Configuration file not found: {base_path}. Ensure the file exists.")
	except Exception as e:
		raise ValueError(f"Failed to load configuration from {base_path}: {e}")
	
	if not isinstance(base_config, dict):
		raise ValueError(f"Configuration file must contain a mapping: {base_path}")
	
	merged_config = {**base_config}
	merged_config["app_env"] = app_env
	
	try:
		cfg = AppConfig(**merged_config)
	except Exception as e:
		raise ValueError(f"Invalid configuration: {e}")
	
	_apply_env_overrides(cfg)
	
	return cfg

def _apply_env_overrides(cfg: AppConfig) -> None:
	if os.getenv("CHROMA_HOST"):
		cfg.backend.host = os.getenv("CHROMA_HOST")
	if os.getenv("CHROMA_PORT"):
		cfg.backend.port = int(os.getenv("CHROMA_PORT"))
	if os.getenv("COLLECTION_NAME"):
		cfg.backend.collection_name = os.getenv("COLLECTION_NAME")
	if os.getenv("INDEX_ISOLATION"):
		cfg.backend.isolation = os.getenv("INDEX_ISOLATION")
	
	if os.getenv("CHUNK_SIZE"):
		cfg.indexing.chunk_size = int(os.getenv("CHUNK_SIZE"))
	if os.getenv("CHUNK_OVERLAP"):
		cfg.indexing.chunk_overlap = int(os.getenv("CHUNK_OVERLAP"))
	if os.getenv("BATCH_SIZE"):
		cfg.indexing.batch_size = int(os.getenv("BATCH_SIZE"))
	if os.getenv("MAX_FILE_MB"):
		cfg.indexing.max_file_mb = float(os.getenv("MAX_FILE_MB"))
	if os.getenv("GITHUB_TOKEN_ENV"):
		cfg.indexing.github_token_env = os.getenv("GITHUB_TOKEN_ENV")
	if os.getenv("INGEST_TIMEOUT"):
		cfg.indexing.ingest_timeout_s = float(os.getenv("INGEST_TIMEOUT"))
	
	if os.getenv("EMBEDDING_MODEL"):
		cfg.embedding.model_name = os.getenv("EMBEDDING_MODEL")
	if os.getenv("EMBEDDING_MODEL_DIM"):
		cfg.embedding.dimensions = int(os.getenv("EMBEDDING_MODEL_DIM"))
	
	if os.getenv("DEFAULT_LIMIT"):
		cfg.retrieval.default_limit = int(os.getenv("DEFAULT_LIMIT"))
	if os.getenv("FILENAME_MATCH_LIMIT"):
		cfg.retrieval.filename_match_limit = int(os.getenv("FILENAME_MATCH_LIMIT"))
	
	if os.getenv("BIND_HOST"):
		cfg.server.host = os.getenv("BIND_HOST")
	if os.getenv("BIND_PORT"):
		cfg.server.port = int(os.getenv("BIND_PORT"))
	
	# Chat configuration overrides
	if os.getenv("CHAT_MODEL"):
		cfg.chat.model = os.getenv("CHAT_MODEL")
	if os.getenv("CHAT_TEMPERATURE"):
		cfg.chat.temperature = float(os.getenv("CHAT_TEMPERATURE"))
	if os.getenv("CHAT_API_KEY_ENV"):
		cfg.chat.api_key_env = os.getenv("CHAT_API_KEY_ENV")
	if os.getenv("CHAT_MAX_TOKENS"):
		cfg.chat.max_tokens = int(os.getenv("CHAT_MAX_TOKENS"))
	if os.getenv("OPENAI_BASE_URL"):
		cfg.chat.base_url = os.getenv("OPENAI_BASE_URL")
		cfg.embedding.base_url = os.getenv("OPENAI_BASE_URL")
