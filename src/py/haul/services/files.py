from pathlib import Path
from email.utils import parsedate_to_datetime
from html import escape
from urllib.parse import quote
import os

from ..decorators import on
from ..model import Service
from ..http.model import HTTPBodyFileStream, HTTPRequest, HTTPResponse
from ..utils.files import FileEntry, listdir
from .downloads import baseDirectory, openFile


FILE_CSS: str = """
:root {
    font-family: sans-serif;
    font-size: 14px;
    line-height: 1.35em;
    padding: 20px;
    background: #F0F0F0;
}
h1 {
margin-top: 1.75em;
margin-bottom: 1.75em;
line-height:1.25em;
}
ul {
    padding: 0px 20px;
    margin: 1.25em 0em;
}
li {
    padding: 0px 10px;
    margin: 0.5em 0em;
}
"""


def isModifiedSince(modified: float, since: str | None) -> bool:
	"""Tells if the `modified` time is after the `If-Modified-Since` date.
	Dates that can't be parsed count as modified."""
	if not since:
		return True
	try:
		date = parsedate_to_datetime(since)
	except (TypeError, ValueError):
		return True
	# HTTP dates have a one second resolution
	return int(modified) > int(date.timestamp())


class FileService(Service):
	"""Serves the files of the base directory inline, with directory listings
	and `If-Modified-Since` support. This is the generic path, while
	`DownloadService` forces downloads."""

	def __init__(
		self,
		root: Path | str | None,
		*,
		name: str | None = None,
		prefix: str | None = None,
	):
		super().__init__(name, prefix=prefix)
		self.root: Path = baseDirectory(root)

	def resolvePath(self, path: str) -> Path | None:
		"""Returns the local path for the given request path, or `None`
		if it is outside of the root."""
		local_path = Path(os.path.realpath(self.root.joinpath(path.lstrip("/"))))
		if local_path != self.root and not local_path.is_relative_to(self.root):
			return None
		return local_path

	def renderDir(
		self, request: HTTPRequest, path: str, localPath: Path
	) -> HTTPResponse:
		path = path.strip("/")
		prefix = (self.prefix or "").rstrip("/")
		current = f"/{path}" if path else "/"
		items: list[str] = []
		if path:
			parent = os.path.dirname(path)
			items.append(
				f'<li><a href="{escape(quote(f"{prefix}/{parent}"))}">..</a></li>'
			)
		for entry in listdir(localPath):
			href = quote("/".join(_ for _ in (prefix, path, entry.name) if _))
			href = href if href.startswith("/") else f"/{href}"
			label = f"{entry.name}/" if entry.isDir else entry.name
			items.append(
				f'<li><a href="{escape(href)}">{escape(label)}</a>{self.renderSize(entry)}</li>'
			)
		return request.respondHTML(
			"".join(
				(
					"<!DOCTYPE html>",
					"<html><head>",
					'<meta charset="utf-8">',
					f"<title>{escape(current)}</title>",
					f"<style>{FILE_CSS}</style>",
					"</head><body>",
					f"<h1>Listing for {escape(current)}</h1>",
					f"<ul>{''.join(items)}</ul>",
					"</body></html>",
				)
			)
		)

	def renderSize(self, entry: FileEntry) -> str:
		return "" if entry.size is None else f" <small>({entry.size:,} bytes)</small>"

	def renderPath(
		self, request: HTTPRequest, path: str, localPath: Path, *, body: bool = True
	) -> HTTPResponse:
		if localPath.is_dir():
			return self.renderDir(request, path, localPath)
		# The file is opened before responding, so that a file that can't be
		# served is an error response and not a truncated body.
		file = openFile(self.root, localPath)
		if not isModifiedSince(file.modified, request.header("If-Modified-Since")):
			file.handle.close()
			return request.notModified()
		if not body:
			file.handle.close()
		try:
			return request.respondFile(
				file.path,
				body=HTTPBodyFileStream(file.handle, file.length, file.name)
				if body
				else None,
				length=file.length,
				modified=file.modified,
			)
		except BaseException:
			file.handle.close()
			raise

	@on(GET=("/", "/{path:any}"))
	def read(self, request: HTTPRequest, path: str = "") -> HTTPResponse:
		local_path = self.resolvePath(path)
		if not (local_path and os.path.exists(local_path)):
			return request.notFound()
		else:
			return self.renderPath(request, path, local_path)

	@on(HEAD=("/", "/{path:any}"))
	def head(self, request: HTTPRequest, path: str = "") -> HTTPResponse:
		local_path = self.resolvePath(path)
		if not (local_path and os.path.isfile(local_path)):
			return request.notFound()
		else:
			return self.renderPath(request, path, local_path, body=False)


# EOF
