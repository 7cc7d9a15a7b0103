import os
from abc import ABC, abstractmethod
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, BinaryIO, NamedTuple, TypeAlias, TypeVar, Union

from mypy_extensions import mypyc_attr

from ..errors import HTTPRequestError, TransferAborted  # NOQA: F401
from ..utils.io import CHUNK_SIZE, DEFAULT_ENCODING, copyStream
from ..utils.logging import debug, logged
from .api import ResponseFactory
from .status import HTTP_STATUS

T = TypeVar("T")


@lru_cache(maxsize=512)
def headername(name: str) -> str:
	"""Normalizes the header name as `Kebab-Case`."""
	return "-".join(_.capitalize() for _ in name.strip().split("-"))


# -----------------------------------------------------------------------------
#
# PARSED ATOMS
#
# -----------------------------------------------------------------------------


class HTTPRequestLine(NamedTuple):
	method: str
	path: str
	query: str
	protocol: str


class HTTPHeaders(NamedTuple):
	"""Headers by normalized name, with the values the server cares about
	already extracted."""

	headers: dict[str, str]
	contentType: str | None = None
	contentLength: int | None = None


class HTTPProcessingStatus(Enum):
	Processing = 0
	Body = 1
	Complete = 2
	Timeout = 10
	NoData = 11
	BadFormat = 12


# What the parser yields while reading a request
HTTPAtom: TypeAlias = Union[
	HTTPRequestLine, HTTPHeaders, HTTPProcessingStatus, "HTTPRequest"
]

# -----------------------------------------------------------------------------
#
# BODIES
#
# -----------------------------------------------------------------------------


class HTTPBodyBlob(NamedTuple):
	"""A body held in memory."""

	payload: bytes = b""
	length: int = 0

	@property
	def raw(self) -> bytes:
		return self.payload


class HTTPBodyFile(NamedTuple):
	"""A body read from the file at `path` when it is written."""

	path: Path

	@property
	def length(self) -> int:
		return self.path.stat().st_size


class HTTPBodyFileStream:
	"""A body streamed from an open binary handle, which the body owns: it's
	released by `close()`. Exactly `length` bytes are sent."""

	__slots__ = ["handle", "length", "name"]

	def __init__(self, handle: BinaryIO, length: int, name: str | None = None):
		self.handle: BinaryIO = handle
		self.length: int = length
		self.name: str | None = name

	@property
	def isClosed(self) -> bool:
		return self.handle.closed

	def close(self) -> None:
		if not self.handle.closed:
			logged(debug) and debug("Closing file stream", Name=self.name)
			self.handle.close()

	def __repr__(self) -> str:
		return f"HTTPBodyFileStream({self.name!r}, {self.length})"


THTTPBody: TypeAlias = HTTPBodyBlob | HTTPBodyFile | HTTPBodyFileStream


# NOTE: Subclassed by transports and tests, including interpreted ones.
@mypyc_attr(allow_interpreted_subclasses=True)
class HTTPBodyWriter(ABC):
	"""Writes heads and bodies to a transport. Files are copied through a
	buffer of `bufferSize` bytes, the transport's preferred write size. A
	failing transport sets `shouldClose`."""

	__slots__ = ["bufferSize", "shouldClose"]

	def __init__(self, bufferSize: int = CHUNK_SIZE) -> None:
		self.bufferSize: int = bufferSize
		self.shouldClose: bool = False

	async def write(self, body: THTTPBody | bytes | None) -> bool:
		if body is None:
			return True
		elif isinstance(body, bytes):
			return await self._writeBytes(body)
		elif isinstance(body, HTTPBodyBlob):
			return await self._writeBytes(body.payload)
		elif isinstance(body, HTTPBodyFileStream):
			try:
				await copyStream(
					body.handle, self._writeBytes, body.length, self.bufferSize
				)
			finally:
				body.close()
			return True
		elif isinstance(body, HTTPBodyFile):
			try:
				f = open(body.path, "rb")
			except OSError as e:
				raise TransferAborted(f"Could not open {body.path}: {e}", 0) from e
			with f:
				length = os.fstat(f.fileno()).st_size
				await copyStream(f, self._writeBytes, length, self.bufferSize)
			return True
		else:
			raise ValueError(f"Unsupported body format: {body}")

	@abstractmethod
	async def _writeBytes(self, chunk: bytes | memoryview) -> bool: ...


# -----------------------------------------------------------------------------
#
# REQUESTS
#
# -----------------------------------------------------------------------------


class HTTPRequest(ResponseFactory["HTTPResponse"]):
	"""A parsed request, which is also the factory for its responses."""

	__slots__ = [
		"method",
		"path",
		"query",
		"protocol",
		"_headers",
		"_body",
	]

	def __init__(
		self,
		method: str,
		path: str,
		query: dict[str, str] | None,
		headers: HTTPHeaders,
		body: HTTPBodyBlob | None = None,
		protocol: str = "HTTP/1.1",
	):
		self.method: str = method
		self.path: str = path
		self.query: dict[str, str] | None = query
		self.protocol: str = protocol
		self._headers: HTTPHeaders = headers
		self._body: HTTPBodyBlob | None = body

	@property
	def headers(self) -> dict[str, str]:
		return self._headers.headers

	@property
	def contentType(self) -> str | None:
		return self._headers.contentType

	@property
	def contentLength(self) -> int | None:
		return self._headers.contentLength

	@property
	def body(self) -> HTTPBodyBlob:
		return self._body or HTTPBodyBlob()

	@property
	def keepAlive(self) -> bool:
		"""HTTP/1.1 connections persist unless closed, HTTP/1.0 ones only
		when asked to."""
		connection = (self.header("Connection") or "").strip().lower()
		if self.protocol == "HTTP/1.0":
			return connection == "keep-alive"
		return connection != "close"

	def header(self, name: str) -> str | None:
		return self._headers.headers.get(headername(name))

	def param(self, name: str, default: T | None = None) -> str | T | None:
		return self.query.get(name, default) if self.query else default

	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> "HTTPResponse":
		return HTTPResponse.Create(
			content,
			contentType=contentType,
			contentLength=contentLength,
			headers=headers,
			status=status,
			message=message,
			protocol=self.protocol,
		)

	def __str__(self) -> str:
		return f"Request({self.method} {self.path} {self.protocol})"


# -----------------------------------------------------------------------------
#
# RESPONSE
#
# -----------------------------------------------------------------------------


def bodyOf(content: Any) -> THTTPBody | None:
	"""Wraps the given content as a body."""
	if content is None:
		return None
	elif isinstance(content, str):
		data = content.encode(DEFAULT_ENCODING)
		return HTTPBodyBlob(data, len(data))
	elif isinstance(content, bytes):
		return HTTPBodyBlob(content, len(content))
	elif isinstance(content, Path):
		return HTTPBodyFile(content.absolute())
	elif isinstance(content, (HTTPBodyBlob, HTTPBodyFile, HTTPBodyFileStream)):
		return content
	else:
		raise ValueError(f"Unsupported content {type(content)}: {content}")


class HTTPResponse:
	"""An HTTP response. Headers can be changed until `head()` serializes
	them, after which the response is committed."""

	__slots__ = [
		"protocol",
		"status",
		"message",
		"headers",
		"body",
		"shouldClose",
		"isCommitted",
	]

	@staticmethod
	def Create(
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		headers: dict[str, str] | None = None,
		status: int = 200,
		message: str | None = None,
		protocol: str = "HTTP/1.1",
	) -> "HTTPResponse":
		"""Creates a response for the content (`str`, `bytes`, `Path`, or
		an already built body). `Content-Length` is set from the body, or
		to `0` when there's no body and the status allows one."""
		body = bodyOf(content)
		fields: dict[str, str] = {headername(k): v for k, v in (headers or {}).items()}
		if contentType is not None:
			fields["Content-Type"] = contentType
		length: int | None = contentLength
		if body is not None:
			length = body.length
		elif length is None and "Content-Length" in fields:
			length = int(fields["Content-Length"])
		elif length is None and status >= 200 and status not in (204, 304):
			# An empty body still needs to be delimited for keep-alive
			length = 0
		if length is not None:
			fields["Content-Length"] = str(length)
		return HTTPResponse(
			protocol=protocol,
			status=status,
			message=message,
			headers=HTTPHeaders(fields, fields.get("Content-Type"), length),
			body=body,
		)

	def __init__(
		self,
		protocol: str,
		status: int,
		message: str | None,
		headers: HTTPHeaders,
		body: THTTPBody | None = None,
		shouldClose: bool = False,
	):
		self.protocol: str = protocol
		self.status: int = status
		self.message: str | None = message
		self.headers: HTTPHeaders = headers
		self.body: THTTPBody | None = body
		self.shouldClose: bool = shouldClose
		self.isCommitted: bool = False

	@property
	def contentType(self) -> str | None:
		return self.headers.contentType

	@property
	def contentLength(self) -> int | None:
		return self.headers.contentLength

	def header(self, name: str) -> str | None:
		return self.headers.headers.get(headername(name))

	def setHeader(self, name: str, value: str | int | None) -> "HTTPResponse":
		"""Sets (or removes, when `None`) a header, raising a `RuntimeError`
		once the response is committed."""
		if self.isCommitted:
			raise RuntimeError(f"Response is committed, can't set header: {name}")
		key = headername(name)
		if value is None:
			self.headers.headers.pop(key, None)
		else:
			self.headers.headers[key] = str(value)
		# The extracted values follow the headers they come from
		if key == "Content-Type":
			self.headers = self.headers._replace(
				contentType=None if value is None else str(value)
			)
		elif key == "Content-Length":
			self.headers = self.headers._replace(
				contentLength=None if value is None else int(value)
			)
		return self

	def head(self) -> bytes:
		"""Serializes the status line and headers, committing the response."""
		self.isCommitted = True
		message = self.message or HTTP_STATUS.get(self.status, "Unknown status")
		lines = [f"{self.protocol} {self.status} {message}"]
		lines.extend(f"{k}: {v}" for k, v in self.headers.headers.items())
		# Header values are Latin-1 on the wire, anything else is replaced.
		return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1", errors="replace")

	def close(self) -> None:
		"""Releases the body's resources, closing twice has no effect."""
		if isinstance(self.body, HTTPBodyFileStream):
			self.body.close()

	def __str__(self) -> str:
		return f"Response({self.protocol} {self.status} {self.message} {self.headers.headers})"


# EOF
