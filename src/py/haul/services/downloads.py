from pathlib import Path
from typing import BinaryIO, NamedTuple
import errno
import os
import stat

from ..decorators import on
from ..errors import ConfigurationError, NotFound, Unreadable
from ..http.model import HTTPBodyFileStream, HTTPRequest, HTTPResponse
from ..model import Service
from ..utils.files import mediaType
from ..utils.logging import info

# --
# Service: downloads
#
# Streams files from a base directory as attachments. The file is opened
# and checked before anything is sent, so that a missing or unreadable
# file is reported as a proper error response. Once the head is sent, the
# file is copied in chunks of the writer's buffer size.


class RequestedFile(NamedTuple):
	"""A file resolved and opened for the duration of one request."""

	path: Path
	length: int
	mediaType: str | None
	handle: BinaryIO
	modified: float

	@property
	def name(self) -> str:
		return self.path.name


def baseDirectory(path: Path | str | None) -> Path:
	"""Returns the canonical base directory for `path`, raising
	a `ConfigurationError` if it's not an existing directory."""
	if path is None or path == "":
		raise ConfigurationError("No base directory given")
	p = Path(path)
	if not p.exists():
		raise ConfigurationError(f"Base directory does not exist: {p}", p)
	if not p.is_dir():
		raise ConfigurationError(f"Base directory is not a directory: {p}", p)
	return Path(os.path.realpath(p))


def resolvePath(base: Path, path: str) -> Path:
	"""Joins the request path onto the base directory, once all the leading
	separators are stripped. An empty path resolves to `base` itself."""
	while path.startswith("/"):
		path = path[1:]
	return base.joinpath(path) if path else base


def confinePath(base: Path, path: Path) -> Path:
	"""Canonicalizes `path` (resolving `..` and symlinks) and makes sure it
	denotes a file strictly within `base`, raising `NotFound` otherwise."""
	resolved = Path(os.path.realpath(path))
	if resolved == base or not resolved.is_relative_to(base):
		raise NotFound(path)
	return resolved


# Errors meaning that there is no file at the path
MISSING_ERRNO: frozenset[int] = frozenset(
	(errno.ENOENT, errno.ENOTDIR, errno.ENAMETOOLONG, errno.ELOOP)
)


def fileError(path: Path, error: OSError) -> NotFound | Unreadable:
	"""Maps an error raised while accessing `path` to a request error."""
	if error.errno in MISSING_ERRNO:
		return NotFound(path)
	return Unreadable(path, error.strerror)


def openFile(base: Path, path: Path) -> RequestedFile:
	"""Opens the file at `path`, which must be a regular file within `base`.
	The length is taken from the open handle, so that it matches what will
	be streamed."""
	resolved = confinePath(base, path)
	try:
		st = resolved.stat()
	except OSError as e:
		raise fileError(path, e) from e
	# NOTE: We check before opening, as opening a FIFO would block.
	if not stat.S_ISREG(st.st_mode):
		raise Unreadable(path, "not a regular file")
	try:
		handle: BinaryIO = open(resolved, "rb")
	except OSError as e:
		raise fileError(path, e) from e
	try:
		st = os.fstat(handle.fileno())
		if not stat.S_ISREG(st.st_mode):
			raise Unreadable(path, "not a regular file")
	except BaseException:
		handle.close()
		raise
	return RequestedFile(
		resolved, st.st_size, mediaType(resolved.name), handle, st.st_mtime
	)


class DownloadService(Service):
	"""Serves the files of the base directory as downloads, mounted under
	`/files` by default. Responses have a `Content-Disposition: attachment`
	header and a `Content-Type` only when the media type is known."""

	PREFIX = "/files"

	def __init__(
		self,
		root: Path | str | None,
		*,
		name: str | None = None,
		prefix: str | None = None,
	):
		super().__init__(name, prefix=prefix)
		self.root: Path = baseDirectory(root)

	def resolve(self, path: str) -> Path:
		return resolvePath(self.root, path)

	def open(self, path: str) -> RequestedFile:
		return openFile(self.root, self.resolve(path))

	@on(priority=10, GET=("", "/{path:any}"))
	def download(self, request: HTTPRequest, path: str = "") -> HTTPResponse:
		file = self.open(path)
		info("Streaming file", Path=path, Length=file.length, Type=file.mediaType)
		return request.respondAttachment(
			HTTPBodyFileStream(file.handle, file.length, file.name),
			file.name,
			contentType=file.mediaType,
		)


# EOF
