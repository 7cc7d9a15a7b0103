from os import getenv
from pathlib import Path
import tempfile
from .utils.io import CHUNK_SIZE

PORT: int = int(getenv("PORT", 8000))

# If we're starting in a development environment, we want it to be accessible from everywhere
HOST: str = getenv("HOST", "0.0.0.0")  # nosec: B104

LOG_REQUESTS: bool = getenv("HAUL_LOG_REQUESTS", "1") == "1"

# The directory served when none is given, created on startup if needed.
WORK_DIR: Path = Path(tempfile.gettempdir()) / "haul-work"

# The base directory, `None` means the work directory.
ROOT: str | None = getenv("HAUL_ROOT") or None

# The preferred size of the chunks written to clients, which is also the size
# of the buffer used when streaming files.
WRITE_SIZE: int = int(getenv("HAUL_WRITE_SIZE", CHUNK_SIZE))

# EOF
