import errno
import os
from pathlib import Path

import pytest

from conftest import process
from haul.errors import ConfigurationError
from haul.http.api import contentDisposition, httpdate
from haul.http.model import HTTPBodyFileStream
from haul.model import mount
from haul.services import downloads
from haul.services.downloads import DownloadService
from haul.services.files import FileService, isModifiedSince


def test_file_inline(base: Path):
	res, w = process(FileService(base), "GET", "/notes.txt")
	assert res is not None and res.status == 200
	headers = w.headers()
	assert headers["Content-Type"] == "text/plain"
	assert headers["Content-Length"] == "14"
	assert headers["Last-Modified"] == httpdate((base / "notes.txt").stat().st_mtime)
	assert "Content-Disposition" not in headers
	assert w.body == b"Hello, World!\n"


def test_file_unknown_type_is_octet_stream(base: Path):
	_, w = process(FileService(base), "GET", "/blob.unknownext")
	assert w.headers()["Content-Type"] == "application/octet-stream"


def test_file_missing(base: Path):
	res, _ = process(FileService(base), "GET", "/nope.txt")
	assert res is not None and res.status == 404


def test_file_through_file_is_404(base: Path):
	res, _ = process(FileService(base), "GET", "/notes.txt/x")
	assert res is not None and res.status == 404
	res, _ = process(FileService(base), "GET", "/" + "a" * 300)
	assert res is not None and res.status == 404


def test_file_fifo_is_500(base: Path):
	os.mkfifo(base / "pipe")
	res, w = process(FileService(base), "GET", "/pipe")
	assert res is not None and res.status == 500
	assert w.data.startswith(b"HTTP/1.1 500 ")
	assert b"200 OK" not in w.data


def test_file_unreadable_is_500(base: Path, monkeypatch: pytest.MonkeyPatch):
	def deny(path, mode="r"):
		raise PermissionError(errno.EACCES, "Permission denied", str(path))

	monkeypatch.setattr(downloads, "open", deny, raising=False)
	res, w = process(FileService(base), "GET", "/notes.txt")
	assert res is not None and res.status == 500
	assert w.data.startswith(b"HTTP/1.1 500 ")
	assert w.headers()["Content-Length"] == str(len(w.body))
	assert b"Hello" not in w.data


def test_file_stream_closed(base: Path):
	res, w = process(FileService(base), "GET", "/notes.txt")
	assert res is not None and isinstance(res.body, HTTPBodyFileStream)
	assert res.body.isClosed
	assert w.body == b"Hello, World!\n"


def test_file_traversal(base: Path):
	res, w = process(FileService(base), "GET", "/../outside.txt")
	assert res is not None and res.status == 404
	assert b"secret" not in w.data


def test_file_not_modified(base: Path):
	path = base / "notes.txt"
	os.utime(path, (1_600_000_000, 1_600_000_000))
	res, w = process(
		FileService(base),
		"GET",
		"/notes.txt",
		{"If-Modified-Since": httpdate(1_600_000_000)},
	)
	assert res is not None and res.status == 304
	assert w.data.endswith(b"\r\n\r\n")
	res, _ = process(
		FileService(base),
		"GET",
		"/notes.txt",
		{"If-Modified-Since": httpdate(1_500_000_000)},
	)
	assert res is not None and res.status == 200


def test_is_modified_since(base: Path):
	path = base / "notes.txt"
	os.utime(path, (1_600_000_000, 1_600_000_000))
	modified = path.stat().st_mtime
	assert isModifiedSince(modified, None)
	assert isModifiedSince(modified, "not a date")
	assert not isModifiedSince(modified, httpdate(1_600_000_000))
	assert isModifiedSince(modified, httpdate(1_599_999_999))


def test_file_head(base: Path):
	res, w = process(FileService(base), "HEAD", "/notes.txt")
	assert res is not None and res.status == 200
	assert w.headers()["Content-Length"] == "14"
	assert w.data.endswith(b"\r\n\r\n")
	res, _ = process(FileService(base), "HEAD", "/dir")
	assert res is not None and res.status == 404


def test_directory_listing(base: Path):
	res, w = process(FileService(base), "GET", "/")
	assert res is not None and res.status == 200
	assert w.headers()["Content-Type"] == "text/html"
	html = w.body.decode("utf8")
	assert '<a href="/dir">dir/</a>' in html
	assert '<a href="/notes.txt">notes.txt</a>' in html
	# Directories come first
	assert html.index("dir/") < html.index("notes.txt")
	assert ">..</a>" not in html


def test_directory_listing_nested(base: Path):
	_, w = process(FileService(base), "GET", "/dir/")
	html = w.body.decode("utf8")
	assert '<a href="/dir/inner.txt">inner.txt</a>' in html
	assert '<a href="/dir/sub">sub/</a>' in html
	assert '<a href="/">..</a>' in html


def test_directory_listing_escapes(base: Path):
	(base / "<b>&.txt").write_bytes(b"")
	_, w = process(FileService(base), "GET", "/")
	html = w.body.decode("utf8")
	assert "<b>&.txt" not in html
	assert "&lt;b&gt;&amp;.txt" in html


def test_both_paths(base: Path):
	app = mount(FileService(base), DownloadService(base))
	_, w = process(app, "GET", "/notes.txt")
	assert "Content-Disposition" not in w.headers()
	_, w = process(app, "GET", "/files/notes.txt")
	assert w.headers()["Content-Disposition"] == 'attachment; filename="notes.txt"'
	assert w.body == b"Hello, World!\n"


def test_file_service_invalid_root(base: Path):
	with pytest.raises(ConfigurationError):
		FileService(base / "notes.txt")


def test_content_disposition():
	assert contentDisposition("a.txt") == 'attachment; filename="a.txt"'
	assert contentDisposition('a"b') == r'attachment; filename="a\"b"'
	assert contentDisposition("a\\b") == r'attachment; filename="a\\b"'
	assert contentDisposition("a\r\nb") == 'attachment; filename="ab"'
	assert contentDisposition("a", "inline") == 'inline; filename="a"'


# EOF
