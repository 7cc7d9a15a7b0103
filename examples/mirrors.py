"""
Mirrors Example

A service that extends `DownloadService`, serving more than one directory
under different prefixes along with a small status page.

Usage:
    python mirrors.py DIRECTORY...

Test with:
    curl http://localhost:8000/
    curl -OJ http://localhost:8000/mirror/0/some/file.iso
"""

import sys

from haul import DownloadService, HTTPRequest, HTTPResponse, Service, on, run
from haul.utils.logging import info


class Mirror(DownloadService):
	def __init__(self, index: int, root: str):
		super().__init__(root, name=f"mirror-{index}", prefix=f"/mirror/{index}")


class Status(Service):
	def __init__(self, mirrors: list[Mirror]):
		super().__init__()
		self.mirrors = mirrors

	@on(GET="/")
	def status(self, request: HTTPRequest) -> HTTPResponse:
		return request.respondText(
			"\n".join(f"{_.prefix}/ → {_.root}" for _ in self.mirrors) + "\n"
		)


if __name__ == "__main__":
	mirrors = [Mirror(i, _) for i, _ in enumerate(sys.argv[1:] or ["."])]
	info("Starting mirrors", Count=len(mirrors))
	run(Status(mirrors), *mirrors)

# EOF
