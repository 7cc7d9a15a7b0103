"""
File Server Example

Serves a directory both ways: inline with listings under `/`, and as
downloads under `/files/`.

Usage:
    python fileserver.py [DIRECTORY]

Test with:
    curl http://localhost:8000/              # Browse the directory
    curl -OJ http://localhost:8000/files/README.md  # Download a file
"""

import sys

from haul import DownloadService, FileService, run
from haul.utils.logging import info

if __name__ == "__main__":
	root = sys.argv[1] if len(sys.argv) > 1 else "."
	info("Starting file server", Root=root)
	run(FileService(root), DownloadService(root))

# EOF
