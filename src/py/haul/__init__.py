from .http.model import (
	HTTPRequest,
	HTTPResponse,
	HTTPRequestError,
)  # NOQA: F401
from .errors import ConfigurationError, NotFound, Unreadable, TransferAborted  # NOQA: F401
from .decorators import on  # NOQA: F401
from .server import run  # NOQA: F401
from .model import Service  # NOQA: F401
from .services.downloads import DownloadService  # NOQA: F401
from .services.files import FileService  # NOQA: F401


# EOF
