import argparse
import sys
from pathlib import Path

from . import config
from .errors import ConfigurationError
from .server import run
from .services.downloads import DownloadService
from .services.files import FileService
from .utils.logging import error, info


def parser() -> argparse.ArgumentParser:
	res = argparse.ArgumentParser(
		prog="haul",
		description="Serves the files of a directory over HTTP",
		formatter_class=argparse.ArgumentDefaultsHelpFormatter,
	)
	res.add_argument(
		"-r",
		"--root",
		action="store",
		dest="root",
		help="The base directory to serve, the work directory when not given",
		default=config.ROOT,
	)
	res.add_argument(
		"-H",
		"--host",
		action="store",
		dest="host",
		help="Specifies the host to bind to",
		default=config.HOST,
	)
	res.add_argument(
		"-p",
		"--port",
		action="store",
		dest="port",
		type=int,
		help="Specifies the port",
		default=config.PORT,
	)
	res.add_argument(
		"-w",
		"--write-size",
		action="store",
		dest="writeSize",
		type=int,
		help="Size of the buffer used to stream files (in bytes)",
		default=config.WRITE_SIZE,
	)
	res.add_argument(
		"-q",
		"--quiet",
		action="store_true",
		dest="quiet",
		help="Does not log requests",
	)
	return res


def main(args: list[str] | None = None) -> int:
	options = parser().parse_args(args)
	if options.writeSize <= 0:
		error(f"Write size must be positive, got: {options.writeSize}", "CONFIG")
		return 1
	root: Path
	if options.root:
		root = Path(options.root)
	else:
		root = config.WORK_DIR
		root.mkdir(parents=True, exist_ok=True)
	try:
		services = (FileService(root), DownloadService(root))
	except ConfigurationError as e:
		error(str(e), "CONFIG", Path=str(e.path or ""))
		return 1
	info("Serving files", icon="📂", Root=str(services[0].root))
	run(
		*services,
		host=options.host,
		port=options.port,
		writesize=options.writeSize,
		logRequests=not options.quiet and config.LOG_REQUESTS,
	)
	return 0


if __name__ == "__main__":
	sys.exit(main())

# EOF
