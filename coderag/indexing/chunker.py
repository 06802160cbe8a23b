import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

import pathspec
from langchain_text_splitters import RecursiveCharacterTextSplitter

from ..config.models import IndexingConfig
from ..core.models import ChunkRecord

logger = logging.getLogger("coderag.indexing.chunker")

# Highest priority first; the splitter falls through to the next entry only for
# pieces still larger than the chunk size. "" guarantees a hard cut.
CODE_SEPARATORS = [
	"\nclass ",
	"\nexport class ",
	"\nfunction ",
	"\nexport function ",
	"\nasync function ",
	"\ndef ",
	"\nasync def ",
	"\nfunc ",
	"\nfn ",
	"\npub fn ",
	"\n//",
	"\n#",
	"\n\n",
	"\n",
	" ",
	"",
]

# RecursiveCharacterTextSplitter never emits a chunk longer than chunk_size once
# "" is among the separators.
BOUNDARY_SLACK = 0


@dataclass
class ChunkCollection:
	records: List[ChunkRecord] = field(default_factory=list)
	files_processed: int = 0
	files_skipped: int = 0


def _line_of(text: str, offset: int) -> int:
	return text.count("\n", 0, max(offset, 0)) + 1


class RepoChunker:
	def __init__(self, cfg: IndexingConfig):
		self.cfg = cfg
		self.extensions = {e.lower().lstrip(".") for e in cfg.include_extensions}
		self.excluded_dirs = set(cfg.exclude_dirs)
		self.splitter = RecursiveCharacterTextSplitter(
			chunk_size=cfg.chunk_size,
			chunk_overlap=cfg.chunk_overlap,
			separators=CODE_SEPARATORS,
			keep_separator=True,
			add_start_index=True,
		)

	def _exclude_spec(self, root: Path) -> pathspec.GitIgnoreSpec:
		lines = [f"{d}/" for d in self.cfg.exclude_dirs] + list(self.cfg.exclude_globs)
		if self.cfg.respect_gitignore:
			gi = root / ".gitignore"
			if gi.exists():
				with gi.open("r", encoding="utf-8", errors="ignore") as f:
					lines.extend(l.strip() for l in f if l.strip() and not l.strip().startswith("#"))
		return pathspec.GitIgnoreSpec.from_lines(lines)

	def iter_files(self, root: Path) -> Iterator[Path]:
		"""Walk root, pruning excluded directories before looking at extensions."""
		spec = self._exclude_spec(root)
		max_bytes = self.cfg.max_file_mb * 1024 * 1024
		for dirpath, dirnames, filenames in os.walk(root):
			dirnames[:] = sorted(d for d in dirnames if d not in self.excluded_dirs)
			for name in sorted(filenames):
				p = Path(dirpath) / name
				rel = p.relative_to(root).as_posix()
				if spec.match_file(rel):
					continue
				if p.suffix.lower().lstrip(".") not in self.extensions:
					continue
				try:
					if p.stat().st_size > max_bytes:
						logger.info(f"Skipping {rel}: larger than {self.cfg.max_file_mb} MB")
						continue
				except OSError:
					continue
				yield p

	def split(self, text: str, filename: str, repo: str = "") -> List[ChunkRecord]:
		language = Path(filename).suffix.lower().lstrip(".")
		records: List[ChunkRecord] = []
		for doc in self.splitter.create_documents([text]):
			chunk = doc.page_content
			offset = doc.metadata.get("start_index", -1)
			start_line = _line_of(text, offset) if offset >= 0 else 1
			records.append(ChunkRecord(
				code=chunk,
				filename=filename,
				language=language,
				start_line=start_line,
				end_line=start_line + chunk.count("\n"),
				repo=repo,
			))
		return records

	def chunk_file(self, path: Path, root: Path, repo: str = "") -> Optional[List[ChunkRecord]]:
		"""Chunk one file; None when the file cannot be read as UTF-8 text."""
		rel = path.relative_to(root).as_posix()
		try:
			text = path.read_text(encoding="utf-8")
		except (OSError, UnicodeDecodeError) as e:
			logger.warning(f"Skipping unreadable file {rel}: {e}")
			return None
		return self.split(text, rel, repo)

	def collect(self, root: Path, repo: str = "") -> ChunkCollection:
		root = Path(root)
		out = ChunkCollection()
		for p in self.iter_files(root):
			records = self.chunk_file(p, root, repo)
			if records is None:
				out.files_skipped += 1
				continue
			out.files_processed += 1
			out.records.extend(records)
		logger.info(f"Collected {len(out.records)} chunks from {out.files_processed} files ({out.files_skipped} skipped)")
		return out


def collect_chunks(root_path, cfg: IndexingConfig, repo: str = "") -> List[ChunkRecord]:
	return RepoChunker(cfg).collect(Path(root_path), repo).records
