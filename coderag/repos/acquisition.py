import asyncio
import contextlib
import logging
import os
import re
import shutil
import tempfile
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

from ..core.errors import AcquisitionError

logger = logging.getLogger("coderag.repos.acquisition")

REMOTE_URL_RE = re.compile(r"^(?:https?|git|ssh)://\S+$|^[\w.-]+@[\w.-]+:\S+$")
TEMP_PREFIX = "coderag-repo-"


@dataclass
class AcquiredRepository:
	path: Path
	is_temporary: bool
	reference: str


def is_remote_reference(reference: str) -> bool:
	return bool(REMOTE_URL_RE.match(reference.strip()))


def _with_token(url: str, token_env: Optional[str]) -> str:
	if not token_env:
		return url
	token = os.getenv(token_env)
	if token and url.startswith("https://") and "@" not in url:
		return url.replace("https://", f"https://{token}:x-oauth-basic@", 1)
	return url


def _mask(text: str, token_env: Optional[str]) -> str:
	token = os.getenv(token_env) if token_env else None
	if token:
		text = text.replace(token, "***")
	return text


async def _clone(url: str, dest: Path, depth: int, token_env: Optional[str]) -> None:
	clean_url = _with_token(url.strip().rstrip("/"), token_env)
	logger.info(f"Cloning {url} to {dest}...")
	try:
		proc = await asyncio.create_subprocess_exec(
			"git", "clone", "--depth", str(depth), clean_url, str(dest),
			stdout=asyncio.subprocess.PIPE,
			stderr=asyncio.subprocess.PIPE,
		)
	except OSError as e:
		raise AcquisitionError(f"failed to clone repository: {e}") from e
	
	try:
		_, stderr_b = await proc.communicate()
	except asyncio.CancelledError:
		with contextlib.suppress(ProcessLookupError):
			proc.kill()
		raise
	
	if proc.returncode != 0:
		stderr = (stderr_b or b"").decode("utf-8", errors="replace").strip()
		message = _mask(stderr or f"git exited with status {proc.returncode}", token_env)
		raise AcquisitionError(f"failed to clone repository: {message}")
	logger.info(f"Cloned {url}")


async def release(repo: AcquiredRepository) -> None:
	"""Delete a temporary clone off the event loop. Failures are logged, never raised."""
	if not repo.is_temporary:
		return
	try:
		await asyncio.to_thread(shutil.rmtree, repo.path)
		logger.info(f"Cleaned up temp directory: {repo.path}")
	except FileNotFoundError:
		pass
	except Exception as e:
		logger.warning(f"Failed to cleanup temp dir {repo.path}: {e}")


async def acquire(reference: str, depth: int = 1, token_env: Optional[str] = None) -> AcquiredRepository:
	"""Resolve a repository reference to a local directory.

	Remote URLs are shallow-cloned into a fresh temporary directory which the
	caller owns and must pass to :func:`release`. Local references are used
	in place.
	"""
	reference = (reference or "").strip()
	if not reference:
		raise AcquisitionError("repository reference is empty")
	
	if is_remote_reference(reference):
		dest = Path(tempfile.mkdtemp(prefix=f"{TEMP_PREFIX}{int(time.time() * 1000)}-"))
		repo = AcquiredRepository(path=dest, is_temporary=True, reference=reference)
		try:
			await _clone(reference, dest, depth, token_env)
		except BaseException:
			await release(repo)
			raise
		return repo
	
	path = Path(reference).expanduser()
	if not path.is_dir():
		raise AcquisitionError(f"repository path does not exist or is not a directory: {reference}")
	return AcquiredRepository(path=path.resolve(), is_temporary=False, reference=reference)


@asynccontextmanager
async def acquired(reference: str, depth: int = 1, token_env: Optional[str] = None) -> AsyncIterator[AcquiredRepository]:
	repo = await acquire(reference, depth=depth, token_env=token_env)
	try:
		yield repo
	finally:
		await release(repo)


def repository_id(reference: str) -> str:
	"""Stable identifier used to scope records when repositories share a collection."""
	reference = reference.strip()
	if is_remote_reference(reference):
		ref = reference.rstrip("/")
		if ref.endswith(".git"):
			ref = ref[:-4]
		return ref
	return Path(reference).expanduser().resolve().as_posix()
