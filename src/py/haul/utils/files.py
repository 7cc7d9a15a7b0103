from pathlib import Path
from typing import NamedTuple
import os

# --
# Media types are inferred from the file extension using a static table,
# so that the result does not depend on the host's MIME database. Unknown
# extensions have no media type at all, callers decide on a fallback.

MEDIA_TYPES: dict[str, str] = {
	# Text
	"txt": "text/plain",
	"text": "text/plain",
	"log": "text/plain",
	"md": "text/markdown",
	"csv": "text/csv",
	"tsv": "text/tab-separated-values",
	"html": "text/html",
	"htm": "text/html",
	"css": "text/css",
	"xml": "application/xml",
	# Scripts and data
	"js": "text/javascript",
	"mjs": "text/javascript",
	"json": "application/json",
	"map": "application/json",
	"wasm": "application/wasm",
	"pdf": "application/pdf",
	"rtf": "application/rtf",
	# Images
	"png": "image/png",
	"jpg": "image/jpeg",
	"jpeg": "image/jpeg",
	"gif": "image/gif",
	"bmp": "image/bmp",
	"webp": "image/webp",
	"svg": "image/svg+xml",
	"ico": "image/vnd.microsoft.icon",
	"tif": "image/tiff",
	"tiff": "image/tiff",
	"avif": "image/avif",
	# Audio
	"mp3": "audio/mpeg",
	"wav": "audio/x-wav",
	"ogg": "audio/ogg",
	"oga": "audio/ogg",
	"flac": "audio/flac",
	"aac": "audio/aac",
	"m4a": "audio/mp4",
	"weba": "audio/webm",
	# Video
	"mp4": "video/mp4",
	"m4v": "video/mp4",
	"mkv": "video/x-matroska",
	"webm": "video/webm",
	"avi": "video/x-msvideo",
	"mov": "video/quicktime",
	"mpeg": "video/mpeg",
	"mpg": "video/mpeg",
	"ogv": "video/ogg",
	# Fonts
	"woff": "font/woff",
	"woff2": "font/woff2",
	"ttf": "font/ttf",
	"otf": "font/otf",
	# Archives
	"zip": "application/zip",
	"gz": "application/gzip",
	"tgz": "application/gzip",
	"bz2": "application/x-bzip2",
	"xz": "application/x-xz",
	"tar": "application/x-tar",
	"7z": "application/x-7z-compressed",
	"iso": "application/x-iso9660-image",
	"bin": "application/octet-stream",
}


def mediaType(path: Path | str) -> str | None:
	"""Returns the media type for the given file name, or `None` when the
	extension is unknown (or there is no extension)."""
	name: str = os.path.basename(str(path))
	if "." not in name.lstrip("."):
		return None
	return MEDIA_TYPES.get(name.rsplit(".", 1)[-1].lower())


class FileEntry(NamedTuple):
	"""A directory entry as shown in listings."""

	name: str
	isDir: bool
	size: int | None = None
	updatedAt: float | None = None

	@staticmethod
	def FromPath(path: Path) -> "FileEntry":
		try:
			stats = path.stat()
		except OSError:
			return FileEntry(path.name, path.is_dir())
		return FileEntry(
			name=path.name,
			isDir=path.is_dir(),
			size=None if path.is_dir() else stats.st_size,
			updatedAt=stats.st_mtime,
		)


def listdir(path: Path) -> list[FileEntry]:
	"""Lists the entries of the given directory, directories first, each group
	sorted by name."""
	entries = [FileEntry.FromPath(_) for _ in path.iterdir()]
	return sorted(entries, key=lambda _: (not _.isDir, _.name))


# EOF
