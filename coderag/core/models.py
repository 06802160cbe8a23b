from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ChunkRecord(BaseModel):
	"""One retrievable slice of a source file. Never modified after creation."""
	model_config = ConfigDict(frozen=True)

	code: str
	filename: str
	language: str
	start_line: int = 1
	end_line: int = 1
	repo: str = ""
	vector: Optional[List[float]] = None


class RetrievalResult(BaseModel):
	code: str
	filename: str
	line: int
	language: str = ""
	score: Optional[float] = None

	@property
	def dedup_key(self):
		return (self.filename, self.line)


class IngestResult(BaseModel):
	repository: str
	files_processed: int
	chunks_written: int


class AnswerResult(BaseModel):
	answer: str
	context: List[RetrievalResult] = Field(default_factory=list)


class ConversationExchange(BaseModel):
	query: str
	answer: str
	sources: List[RetrievalResult] = Field(default_factory=list)
