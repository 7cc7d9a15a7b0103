from enum import Enum
from typing import Iterator
from urllib.parse import unquote

from ..utils.io import EOL
from .model import (
	HTTPAtom,
	HTTPBodyBlob,
	HTTPHeaders,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPRequestLine,
	headername,
)

# Longest request or header line accepted, longer ones are malformed.
MAX_LINE: int = 65_536


class ParserStage(Enum):
	RequestLine = 0
	Headers = 1
	Body = 2


def parseRequestLine(line: bytes) -> HTTPRequestLine | None:
	"""Parses `METHOD /path?query PROTOCOL`, the path being unquoted.
	Returns `None` when the line is malformed."""
	text = line.decode("latin-1").strip()
	method, _, rest = text.partition(" ")
	target, _, protocol = rest.rpartition(" ")
	if not (method and target and protocol.startswith("HTTP/")):
		return None
	path, _, query = target.strip().partition("?")
	return HTTPRequestLine(method.upper(), unquote(path), query, protocol)


def parseQuery(text: str) -> dict[str, str]:
	res: dict[str, str] = {}
	for item in text.split("&") if text else ():
		key, _, value = item.partition("=")
		res[unquote(key)] = unquote(value)
	return res


class HTTPParser:
	"""A stateful HTTP request parser. Chunks are fed as they arrive and
	the atoms parsed so far are yielded: the request line, the headers,
	then the complete `HTTPRequest`. Data past the end of a request is
	kept for the next one, so pipelined requests are supported."""

	__slots__ = ["buffer", "stage", "line", "fields", "contentType", "contentLength"]

	def __init__(self) -> None:
		self.buffer: bytearray = bytearray()
		self.stage: ParserStage = ParserStage.RequestLine
		self.line: HTTPRequestLine | None = None
		self.fields: dict[str, str] = {}
		self.contentType: str | None = None
		self.contentLength: int | None = None

	def reset(self) -> "HTTPParser":
		"""Drops any buffered data along with the current request."""
		self.buffer.clear()
		return self.next()

	def next(self) -> "HTTPParser":
		"""Gets ready to parse the next request, keeping buffered data."""
		self.stage = ParserStage.RequestLine
		self.line = None
		self.fields = {}
		self.contentType = None
		self.contentLength = None
		return self

	def request(self, body: HTTPBodyBlob) -> HTTPRequest:
		line = self.line
		if line is None:
			raise RuntimeError("Request line has not been parsed yet")
		return HTTPRequest(
			method=line.method,
			path=line.path,
			query=parseQuery(line.query),
			headers=HTTPHeaders(self.fields, self.contentType, self.contentLength),
			protocol=line.protocol,
			body=body,
		)

	def readLine(self) -> bytes | None:
		end = self.buffer.find(EOL)
		if end == -1:
			return None
		line = bytes(self.buffer[:end])
		del self.buffer[: end + len(EOL)]
		return line

	def addHeader(self, line: bytes) -> bool:
		"""Adds the header, returning `False` when it's malformed."""
		name, sep, value = line.decode("latin-1").partition(":")
		if not sep:
			# Lines that are not headers are ignored
			return True
		key = headername(name)
		value = value.strip()
		if key == "Content-Length":
			if not value.isdigit():
				return False
			self.contentLength = int(value)
		elif key == "Content-Type":
			self.contentType = value
		self.fields[key] = value
		return True

	def complete(self) -> Iterator[HTTPAtom]:
		length = self.contentLength or 0
		body = bytes(self.buffer[:length])
		del self.buffer[:length]
		yield self.request(HTTPBodyBlob(body, length))
		yield HTTPProcessingStatus.Complete
		self.next()

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		self.buffer += chunk
		while True:
			if self.stage is ParserStage.Body:
				if len(self.buffer) < (self.contentLength or 0):
					return
				yield from self.complete()
				continue
			line = self.readLine()
			if line is None:
				if len(self.buffer) > MAX_LINE:
					yield HTTPProcessingStatus.BadFormat
					self.reset()
				return
			elif len(line) > MAX_LINE:
				yield HTTPProcessingStatus.BadFormat
				self.reset()
				return
			elif self.stage is ParserStage.RequestLine:
				# Empty lines before a request line are skipped
				if not line.strip():
					continue
				self.line = parseRequestLine(line)
				if self.line is None:
					yield HTTPProcessingStatus.BadFormat
					self.reset()
					return
				yield self.line
				self.stage = ParserStage.Headers
			elif line:
				if not self.addHeader(line):
					yield HTTPProcessingStatus.BadFormat
					self.reset()
					return
			else:
				yield HTTPHeaders(self.fields, self.contentType, self.contentLength)
				# Bodies are read whatever the method, so that the next
				# request starts at the right offset.
				if self.contentLength:
					self.stage = ParserStage.Body
					yield HTTPProcessingStatus.Body
				else:
					yield from self.complete()


# EOF
