import errno
import os
from pathlib import Path

import pytest

from conftest import MemoryWriter, makeFile, makeRequest, process
from haul.errors import ConfigurationError, NotFound, Unreadable
from haul.http.model import HTTPBodyFileStream
from haul.services import downloads
from haul.services.downloads import (
	DownloadService,
	baseDirectory,
	confinePath,
	fileError,
	openFile,
	resolvePath,
)

# --
# Path resolution


def test_resolve_strips_leading_separators(base: Path):
	assert resolvePath(base, "/video.mkv") == base / "video.mkv"
	assert resolvePath(base, "///video.mkv") == base / "video.mkv"
	assert resolvePath(base, "video.mkv") == base / "video.mkv"
	assert resolvePath(base, "/dir/sub/deep.png") == base / "dir" / "sub" / "deep.png"


def test_resolve_empty_is_base(base: Path):
	assert resolvePath(base, "") == base
	assert resolvePath(base, "/") == base
	assert resolvePath(base, "////") == base


def test_resolve_never_escapes_with_absolute_paths(base: Path):
	# An absolute request path stays relative to the base.
	assert resolvePath(base, "/etc/passwd") == base / "etc" / "passwd"


def test_confine_rejects_traversal(base: Path):
	with pytest.raises(NotFound):
		confinePath(base, resolvePath(base, "/../outside.txt"))
	with pytest.raises(NotFound):
		confinePath(base, resolvePath(base, "/dir/../../outside.txt"))
	# Going up and back in stays inside.
	assert (
		confinePath(base, resolvePath(base, "/dir/../notes.txt")) == base / "notes.txt"
	)


def test_confine_rejects_symlinks_out(base: Path):
	os.symlink(base.parent / "outside.txt", base / "link.txt")
	with pytest.raises(NotFound):
		confinePath(base, base / "link.txt")


def test_confine_rejects_base(base: Path):
	with pytest.raises(NotFound):
		confinePath(base, base)


# --
# Base directory


def test_base_directory(base: Path):
	assert baseDirectory(base) == Path(os.path.realpath(base))
	assert baseDirectory(str(base)) == Path(os.path.realpath(base))


@pytest.mark.parametrize("value", [None, ""])
def test_base_directory_missing(value):
	with pytest.raises(ConfigurationError):
		baseDirectory(value)


def test_base_directory_invalid(base: Path):
	with pytest.raises(ConfigurationError) as e:
		baseDirectory(base / "nope")
	assert e.value.path == base / "nope"
	with pytest.raises(ConfigurationError):
		baseDirectory(base / "notes.txt")
	with pytest.raises(ConfigurationError):
		DownloadService(base / "nope")


# --
# Opening


def test_open_file(base: Path):
	file = openFile(base, resolvePath(base, "/video.mkv"))
	try:
		assert file.length == 8
		assert file.name == "video.mkv"
		assert file.mediaType == "video/x-matroska"
		assert file.handle.read() == b"mkv data"
	finally:
		file.handle.close()


def test_open_missing(base: Path):
	with pytest.raises(NotFound) as e:
		openFile(base, resolvePath(base, "/nope.bin"))
	assert e.value.status == 404


def test_open_directory_is_unreadable(base: Path):
	with pytest.raises(Unreadable) as e:
		openFile(base, resolvePath(base, "/dir"))
	assert e.value.status == 500


@pytest.mark.skipif(os.geteuid() == 0, reason="root can read anything")
def test_open_without_permission(base: Path):
	path = base / "locked.bin"
	path.write_bytes(b"locked")
	path.chmod(0)
	try:
		with pytest.raises(Unreadable):
			openFile(base, path)
	finally:
		path.chmod(0o644)


def test_open_denied_is_unreadable(base: Path, monkeypatch: pytest.MonkeyPatch):
	def deny(path, mode="r"):
		raise PermissionError(errno.EACCES, "Permission denied", str(path))

	monkeypatch.setattr(downloads, "open", deny, raising=False)
	with pytest.raises(Unreadable) as e:
		openFile(base, base / "notes.txt")
	assert e.value.reason == "Permission denied"


@pytest.mark.parametrize(
	"code", [errno.ENOENT, errno.ENOTDIR, errno.ENAMETOOLONG, errno.ELOOP]
)
def test_file_error_missing(base: Path, code: int):
	assert isinstance(fileError(base / "x", OSError(code, "missing")), NotFound)


def test_file_error_other(base: Path):
	res = fileError(base / "x", OSError(errno.EIO, "I/O error"))
	assert isinstance(res, Unreadable)
	assert res.status == 500


def test_open_fifo_is_unreadable(base: Path):
	os.mkfifo(base / "pipe")
	with pytest.raises(Unreadable):
		openFile(base, base / "pipe")


# --
# Responses


def test_download_headers(base: Path):
	res, w = process(DownloadService(base), "GET", "/files/video.mkv")
	assert res is not None
	assert w.head.startswith(b"HTTP/1.1 200 OK\r\n")
	headers = w.headers()
	assert headers["Content-Length"] == "8"
	assert headers["Content-Type"] == "video/x-matroska"
	assert headers["Content-Disposition"] == 'attachment; filename="video.mkv"'
	assert w.body == b"mkv data"


def test_download_nested(base: Path):
	_, w = process(DownloadService(base), "GET", "/files/dir/sub/deep.png")
	headers = w.headers()
	assert headers["Content-Type"] == "image/png"
	assert headers["Content-Disposition"] == 'attachment; filename="deep.png"'
	assert w.body == b"\x89PNG"


@pytest.mark.parametrize("name", ["blob.unknownext", "README"])
def test_download_unknown_type_has_no_content_type(base: Path, name: str):
	_, w = process(DownloadService(base), "GET", f"/files/{name}")
	headers = w.headers()
	assert "Content-Type" not in headers
	assert headers["Content-Disposition"] == f'attachment; filename="{name}"'
	assert int(headers["Content-Length"]) == len(w.body)


def test_download_missing_is_404(base: Path):
	res, w = process(DownloadService(base), "GET", "/files/nope.bin")
	assert res is not None and res.status == 404
	assert w.head.startswith(b"HTTP/1.1 404 ")
	assert "Content-Disposition" not in w.headers()


@pytest.mark.parametrize("path", ["/files", "/files/", "/files/dir"])
def test_download_base_and_dirs(base: Path, path: str):
	res, _ = process(DownloadService(base), "GET", path)
	assert res is not None
	assert res.status == (500 if path.endswith("dir") else 404)


@pytest.mark.parametrize(
	"path", ["/files/notes.txt/x", "/files/dir/inner.txt/deep", "/files/" + "a" * 300]
)
def test_download_no_such_path_is_404(base: Path, path: str):
	res, w = process(DownloadService(base), "GET", path)
	assert res is not None and res.status == 404
	assert w.body == b"Not Found"


def test_download_traversal_is_404(base: Path):
	res, w = process(DownloadService(base), "GET", "/files/../outside.txt")
	assert res is not None and res.status == 404
	assert b"secret" not in w.data
	res, _ = process(DownloadService(base), "GET", "/files/%2e%2e/outside.txt")
	assert res is not None and res.status == 404


def test_download_quoted_names(base: Path):
	(base / 'say "hi".txt').write_bytes(b"hi")
	(base / "with space.txt").write_bytes(b"space")
	_, w = process(DownloadService(base), "GET", "/files/say%20%22hi%22.txt")
	assert w.headers()["Content-Disposition"] == r'attachment; filename="say \"hi\".txt"'
	_, w = process(DownloadService(base), "GET", "/files/with%20space.txt")
	assert w.headers()["Content-Disposition"] == 'attachment; filename="with space.txt"'
	assert w.body == b"space"


def test_download_custom_prefix(base: Path):
	_, w = process(DownloadService(base, prefix="/dl"), "GET", "/dl/notes.txt")
	assert w.body == b"Hello, World!\n"


def test_download_handle_closed(base: Path):
	service = DownloadService(base)
	res = service.download(makeRequest("GET", "/files/notes.txt"), "/notes.txt")
	assert isinstance(res.body, HTTPBodyFileStream)
	handle = res.body.handle
	assert not handle.closed
	res.close()
	assert handle.closed
	# Closing is idempotent
	res.close()
	assert res.body.isClosed


def test_download_handle_closed_on_abort(base: Path):
	makeFile(base / "big.bin", 1024 * 1024)
	service = DownloadService(base)
	writer = MemoryWriter(bufferSize=4096, failAfter=64 * 1024)
	res, w = process(service, "GET", "/files/big.bin", writer=writer)
	assert res is not None
	assert isinstance(res.body, HTTPBodyFileStream)
	assert res.body.isClosed
	assert w.shouldClose
	assert len(w.body) < 1024 * 1024


def test_download_head_committed(base: Path):
	res, _ = process(DownloadService(base), "GET", "/files/notes.txt")
	assert res is not None and res.isCommitted
	with pytest.raises(RuntimeError):
		res.setHeader("X-Late", "1")


def test_response_header_fields_follow_headers(base: Path):
	res = makeRequest("GET", "/").respondText("hello")
	assert res.contentType == "text/plain"
	res.setHeader("content-type", "text/html")
	assert res.contentType == "text/html"
	assert res.header("Content-Type") == "text/html"
	res.setHeader("Content-Length", 3)
	assert res.contentLength == 3
	res.setHeader("Content-Type", None)
	assert res.contentType is None
	assert res.header("Content-Type") is None


def test_download_head_is_not_allowed(base: Path):
	res, w = process(DownloadService(base), "HEAD", "/files/notes.txt")
	assert res is not None and res.status == 405
	assert w.headers()["Allow"] == "GET"


# EOF
