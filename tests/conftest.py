import asyncio
import os
from pathlib import Path

import pytest

from haul.http.model import HTTPBodyWriter, HTTPRequest, HTTPResponse
from haul.http.parser import HTTPParser
from haul.model import Application, Service, mount
from haul.server import AIOSocketServer
from haul.utils.io import CHUNK_SIZE


class MemoryWriter(HTTPBodyWriter):
	"""Collects what would be sent to the client, optionally failing once
	`failAfter` bytes have been written."""

	def __init__(self, bufferSize: int = CHUNK_SIZE, failAfter: int | None = None):
		super().__init__(bufferSize)
		self.data = bytearray()
		self.chunks: list[int] = []
		self.failAfter = failAfter

	async def _writeBytes(self, chunk: bytes | memoryview) -> bool:
		if self.failAfter is not None and len(self.data) >= self.failAfter:
			raise BrokenPipeError("Client went away")
		self.data += chunk
		self.chunks.append(len(chunk))
		return True

	@property
	def head(self) -> bytes:
		return bytes(self.data.split(b"\r\n\r\n", 1)[0])

	@property
	def body(self) -> bytes:
		return bytes(self.data.split(b"\r\n\r\n", 1)[1])

	def headers(self) -> dict[str, str]:
		lines = self.head.decode("latin-1").split("\r\n")[1:]
		return dict(_.split(": ", 1) for _ in lines)


def makeRequest(
	method: str, path: str, headers: dict[str, str] | None = None
) -> HTTPRequest:
	"""Parses a request from its raw form, the way the server does."""
	raw = "".join(
		[f"{method} {path} HTTP/1.1\r\n", "Host: localhost\r\n"]
		+ [f"{k}: {v}\r\n" for k, v in (headers or {}).items()]
		+ ["\r\n"]
	).encode("latin-1")
	requests = [_ for _ in HTTPParser().feed(raw) if isinstance(_, HTTPRequest)]
	assert len(requests) == 1
	return requests[0]


def makeFile(path: Path, size: int, fill: bytes = b"x") -> Path:
	"""Creates a file of `size` bytes, written in blocks."""
	path.parent.mkdir(parents=True, exist_ok=True)
	block = fill * (1024 * 1024 // len(fill))
	with open(path, "wb") as f:
		remaining = size
		while remaining > 0:
			n = min(remaining, len(block))
			f.write(block[:n])
			remaining -= n
	return path


def process(
	app: Application | Service,
	method: str,
	path: str,
	headers: dict[str, str] | None = None,
	writer: MemoryWriter | None = None,
) -> tuple[HTTPResponse | None, MemoryWriter]:
	"""Runs the request through the application and the server's response
	writing, without a socket."""
	application = app if isinstance(app, Application) else mount(app)
	application.dispatcher.prepare()
	w = writer or MemoryWriter()
	res = asyncio.run(
		AIOSocketServer.SendResponse(makeRequest(method, path, headers), application, w)
	)
	return res, w


@pytest.fixture
def base(tmp_path: Path) -> Path:
	"""A base directory with a few files of different kinds."""
	root = Path(os.path.realpath(tmp_path)) / "base"
	root.mkdir()
	(root / "video.mkv").write_bytes(b"mkv data")
	(root / "notes.txt").write_bytes(b"Hello, World!\n")
	(root / "blob.unknownext").write_bytes(b"\x00\x01\x02")
	(root / "README").write_bytes(b"No extension")
	(root / "dir" / "sub").mkdir(parents=True)
	(root / "dir" / "inner.txt").write_bytes(b"inner")
	(root / "dir" / "sub" / "deep.png").write_bytes(b"\x89PNG")
	(tmp_path / "outside.txt").write_bytes(b"secret")
	return root


@pytest.fixture
def large() -> bool:
	return os.getenv("HAUL_TEST_LARGE") == "1"


# EOF
