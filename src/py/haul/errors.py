from pathlib import Path

# -----------------------------------------------------------------------------
#
# ERRORS
#
# -----------------------------------------------------------------------------


class HTTPRequestError(Exception):
	"""To be raised by handlers to generate an error response, 500 by default."""

	def __init__(
		self,
		message: str,
		status: int | None = None,
		contentType: str | None = None,
		payload: str | bytes | None = None,
	):
		super().__init__(message)
		self.message: str = message
		self.status: int | None = status
		self.contentType: str | None = contentType
		self.payload: str | bytes | None = payload


class ConfigurationError(Exception):
	"""The base directory is missing or not a directory. Raised when a
	service is created, so that the server never starts accepting requests."""

	def __init__(self, message: str, path: Path | str | None = None):
		super().__init__(message)
		self.path: Path | str | None = path


class NotFound(HTTPRequestError):
	"""The requested path does not reference a servable file."""

	def __init__(self, path: Path | str):
		super().__init__(f"Not found: {path}", status=404, contentType="text/plain")
		self.path: Path | str = path


class Unreadable(HTTPRequestError):
	"""The requested file exists but can't be opened or read."""

	def __init__(self, path: Path | str, reason: str | None = None):
		super().__init__(
			f"Unreadable: {path}{f' ({reason})' if reason else ''}",
			status=500,
			contentType="text/plain",
		)
		self.path: Path | str = path
		self.reason: str | None = reason


class TransferAborted(Exception):
	"""Streaming failed after the response head was committed. There is no
	way to report this to the client other than closing the connection."""

	def __init__(self, message: str, sent: int = 0, expected: int | None = None):
		super().__init__(message)
		self.sent: int = sent
		self.expected: int | None = expected


# EOF
