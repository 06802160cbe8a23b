from typing import Optional


class CodeRagError(Exception):
	"""Base class for ingestion and retrieval failures"""


class AcquisitionError(CodeRagError):
	"""Repository could not be cloned or resolved to a local directory"""


class IndexSchemaError(CodeRagError):
	"""Vector collection could not be (re)provisioned"""


class UpsertError(CodeRagError):
	def __init__(self, message: str, records_written: int = 0):
		super().__init__(message)
		self.records_written = records_written


class ConfigurationError(CodeRagError):
	"""A required credential or setting is missing"""


class UpstreamError(CodeRagError):
	def __init__(self, message: str, status_code: Optional[int] = None):
		super().__init__(message)
		self.status_code = status_code
