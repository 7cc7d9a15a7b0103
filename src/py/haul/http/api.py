from abc import ABC, abstractmethod
from email.utils import formatdate
from pathlib import Path
from typing import Any, Generic, TypeVar

from ..utils.files import mediaType
from .status import HTTP_STATUS

T = TypeVar("T")

# --
# == Response API
#
# The response factory is implemented by requests: handlers build their
# responses from the request they answer, as in `request.notFound()`. Only
# `respond` is abstract, the rest are shorthands.


def httpdate(timestamp: float) -> str:
	"""Formats the timestamp as an HTTP date, `Sun, 06 Nov 1994 08:49:37 GMT`."""
	return formatdate(timestamp, usegmt=True)


def contentDisposition(filename: str, disposition: str = "attachment") -> str:
	"""Returns a `Content-Disposition` value for the given file name, as a
	quoted string. Line breaks are dropped, quotes and backslashes escaped."""
	name = "".join(
		f"\\{c}" if c in '"\\' else c for c in filename if c not in "\r\n"
	)
	return f'{disposition}; filename="{name}"'


class ResponseFactory(ABC, Generic[T]):
	@abstractmethod
	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> T: ...

	# --
	# === Empty and error responses

	def empty(self, status: int = 204, headers: dict[str, str] | None = None) -> T:
		return self.respond(status=status, headers=headers)

	def notModified(self, headers: dict[str, str] | None = None) -> T:
		return self.empty(304, headers)

	def error(
		self,
		status: int,
		content: str | None = None,
		contentType: str = "text/plain",
		headers: dict[str, str] | None = None,
	) -> T:
		"""An error response, the body defaults to the status text."""
		message: str = HTTP_STATUS.get(status, "Error")
		return self.respond(
			content=message if content is None else content,
			contentType=contentType,
			status=status,
			headers=headers,
			message=message,
		)

	def notFound(
		self,
		content: str | None = None,
		contentType: str = "text/plain",
		*,
		status: int = 404,
	) -> T:
		return self.error(status, content, contentType)

	# --
	# === Content responses

	def respondText(
		self, content: str | bytes, contentType: str = "text/plain", status: int = 200
	) -> T:
		return self.respond(content=content, contentType=contentType, status=status)

	def respondHTML(self, html: str | bytes, status: int = 200) -> T:
		return self.respondText(html, "text/html", status)

	def respondFile(
		self,
		path: Path | str,
		headers: dict[str, str] | None = None,
		status: int = 200,
		contentType: str | None = None,
		*,
		body: Any = None,
		length: int | None = None,
		modified: float | None = None,
	) -> T:
		"""Responds with the file inline, with its length, media type
		(`application/octet-stream` when unknown) and modification date.
		The `body` is what gets sent, usually a stream already opened on
		the file, with its `length` and `modified` time taken from that
		stream. Without a body, only the headers are set, as for `HEAD`."""
		p = Path(path)
		if length is None or modified is None:
			stats = p.stat()
			length = stats.st_size if length is None else length
			modified = stats.st_mtime if modified is None else modified
		file_headers: dict[str, str] = {
			"Content-Type": contentType or mediaType(p) or "application/octet-stream",
			"Content-Length": str(length),
			"Last-Modified": httpdate(modified),
		}
		return self.respond(
			content=body,
			status=status,
			headers=file_headers | (headers or {}),
		)

	def respondAttachment(
		self,
		content: Any,
		filename: str,
		contentType: str | None = None,
		headers: dict[str, str] | None = None,
	) -> T:
		"""Responds with the content as a download saved as `filename`. There
		is no `Content-Type` when `contentType` is `None`."""
		return self.respond(
			content=content,
			contentType=contentType,
			headers={"Content-Disposition": contentDisposition(filename)}
			| (headers or {}),
		)


# EOF
