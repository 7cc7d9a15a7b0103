import asyncio
import socket
import threading
from dataclasses import dataclass
from signal import SIGINT, SIGTERM
from typing import Any, Callable, NamedTuple

from .config import HOST, LOG_REQUESTS, PORT, WRITE_SIZE
from .errors import TransferAborted
from .http.model import HTTPBodyWriter, HTTPProcessingStatus, HTTPRequest, HTTPResponse
from .http.parser import HTTPParser
from .model import Application, Service, mount
from .utils.limits import LimitType, unlimit
from .utils.logging import (
	debug,
	error,
	event,
	exception,
	info,
	logContext,
	logged,
	warning,
)

# -----------------------------------------------------------------------------
#
# OPTIONS & STATE
#
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class ServerState:
	isRunning: bool = True

	def stop(self) -> None:
		info("Server stopping…")
		self.isRunning = False

	def onException(
		self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
	) -> None:
		e = context.get("exception")
		if e:
			exception(e)
		else:
			warning(str(context.get("message", "Unexpected event loop error")))


class ServerOptions(NamedTuple):
	host: str = HOST
	port: int = PORT
	backlog: int = 10_000
	# How often the stop condition and state are checked while waiting
	# for connections.
	polling: float = 1.0
	readsize: int = 4_096
	# The preferred size of writes to a client, which is also the size of
	# the buffer used to stream files.
	writesize: int = WRITE_SIZE
	keepalive: float = 3_600
	logRequests: bool = LOG_REQUESTS
	condition: Callable[[], bool] | None = None
	stopSignals: bool = True
	# Called with the host and port once listening, port `0` binds to
	# any free port.
	onListening: Callable[[str, int], None] | None = None


OPTIONS: ServerOptions = ServerOptions()


def rawResponse(status: str, text: str = "") -> bytes:
	"""A complete response that closes the connection, for when the
	application could not produce one."""
	body = text.encode("latin-1")
	return (
		f"HTTP/1.1 {status}\r\n"
		f"Content-Type: text/plain\r\n"
		f"Content-Length: {len(body)}\r\n"
		f"Connection: close\r\n\r\n"
	).encode("latin-1") + body


SERVER_BADREQUEST: bytes = rawResponse("400 Bad Request", "Bad Request")
SERVER_ERROR: bytes = rawResponse(
	"500 Internal Server Error", "Internal server error: Request not sent"
)

# -----------------------------------------------------------------------------
#
# WRITER
#
# -----------------------------------------------------------------------------


class AIOSocketBodyWriter(HTTPBodyWriter):
	"""Writes response heads and bodies to a non-blocking socket."""

	def __init__(
		self,
		client: socket.socket,
		loop: asyncio.AbstractEventLoop,
		bufferSize: int = WRITE_SIZE,
	) -> None:
		super().__init__(bufferSize)
		self.client: socket.socket = client
		self.loop: asyncio.AbstractEventLoop = loop

	async def _writeBytes(self, chunk: bytes | memoryview) -> bool:
		if chunk:
			await self.loop.sock_sendall(self.client, chunk)
		return True


# -----------------------------------------------------------------------------
#
# SERVER
#
# -----------------------------------------------------------------------------


# NOTE: Based on benchmarks, this gave the best performance.
class AIOSocketServer:
	"""AsyncIO backend using sockets directly, each connection is served
	by its own task."""

	@staticmethod
	def Peer(client: socket.socket) -> str:
		try:
			host, port = client.getpeername()[:2]
		except (OSError, ValueError):
			return "unknown"
		return f"{host}:{port}"

	@staticmethod
	def Bind(options: ServerOptions) -> socket.socket:
		server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
		server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
		server.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
		try:
			server.bind((options.host, options.port))
		except OSError:
			error(
				f"Unable to bind to {options.host}:{options.port}, aborting.",
				"HOSTPORTERR",
			)
			server.close()
			raise
		# The backlog is how many connections are queued before new ones
		# are refused.
		server.listen(options.backlog)
		server.setblocking(False)
		return server

	@classmethod
	async def OnRequest(
		cls,
		app: Application,
		client: socket.socket,
		*,
		loop: asyncio.AbstractEventLoop,
		options: ServerOptions,
	) -> None:
		"""Serves the requests of one connection, until the client closes it,
		it stays idle longer than the keep-alive or a response closes it."""
		buffer = bytearray(options.readsize)
		parser: HTTPParser = HTTPParser()
		writer = AIOSocketBodyWriter(client, loop, options.writesize)
		served: int = 0
		status: HTTPProcessingStatus = HTTPProcessingStatus.Processing
		with logContext(Client=cls.Peer(client)):
			try:
				while not writer.shouldClose:
					try:
						n = await asyncio.wait_for(
							loop.sock_recv_into(client, buffer),
							timeout=options.keepalive,
						)
					except asyncio.TimeoutError:
						status = HTTPProcessingStatus.Timeout
						break
					if not n:
						status = HTTPProcessingStatus.NoData
						break
					# More than one request may come in the same read when
					# the client pipelines them.
					for atom in parser.feed(bytes(buffer[:n])):
						if atom is HTTPProcessingStatus.BadFormat:
							warning("Malformed request", Served=served)
							await writer.write(SERVER_BADREQUEST)
							writer.shouldClose = True
						elif isinstance(atom, HTTPRequest):
							if options.logRequests:
								event(atom.method, atom.path)
							res = await cls.SendResponse(atom, app, writer)
							served += 1
							if not atom.keepAlive or (res is not None and res.shouldClose):
								writer.shouldClose = True
						if writer.shouldClose:
							break
				logged(debug) and debug(
					"Connection done", Served=served, Status=status.name
				)
			except ConnectionError as e:
				warning("Connection lost", Reason=str(e), Served=served)
			except Exception as e:
				exception(e)
			finally:
				client.close()

	@staticmethod
	async def Process(request: HTTPRequest, app: Application) -> HTTPResponse | None:
		"""Returns the application's response to the request, `None` when
		the application failed."""
		try:
			r = app.process(request)
			return r if isinstance(r, HTTPResponse) else await r
		except Exception as e:
			exception(e, f"Handler failed for {request.method} {request.path}")
			return None

	@classmethod
	async def SendResponse(
		cls,
		request: HTTPRequest,
		app: Application,
		writer: HTTPBodyWriter,
	) -> HTTPResponse | None:
		"""Processes the request and writes the response. The head is
		committed before any body byte is written: a failure after that can
		only close the connection. The response is always closed."""
		res: HTTPResponse | None = await cls.Process(request, app)
		try:
			if res is None:
				await writer.write(SERVER_ERROR)
				writer.shouldClose = True
			else:
				await writer.write(res.head())
				# Responses to `HEAD` have the headers of a `GET`, without
				# the body.
				if request.method != "HEAD":
					await writer.write(res.body)
		except TransferAborted as e:
			warning(
				"Transfer aborted",
				Method=request.method,
				Path=request.path,
				Sent=e.sent,
				Expected=e.expected,
				Reason=str(e),
			)
			writer.shouldClose = True
		except ConnectionError:
			# The client closed early
			writer.shouldClose = True
		finally:
			if res is not None:
				res.close()
		return res

	@classmethod
	async def Serve(
		cls,
		app: Application,
		options: ServerOptions = OPTIONS,
	) -> None:
		"""Main server coroutine, accepts connections until stopped."""
		server = cls.Bind(options)
		port: int = server.getsockname()[1]
		loop = asyncio.get_running_loop()
		state = ServerState()
		# Signal handlers can only be set from the main thread.
		if options.stopSignals and threading.current_thread() is threading.main_thread():
			loop.add_signal_handler(SIGINT, state.stop)
			loop.add_signal_handler(SIGTERM, state.stop)
		loop.set_exception_handler(state.onException)
		tasks: set[asyncio.Task[None]] = set()
		try:
			await app.start()
			info("Haul server listening", icon="🚚", Host=options.host, Port=port)
			if options.onListening:
				options.onListening(options.host, port)
			while state.isRunning and (not options.condition or options.condition()):
				try:
					client, _ = await asyncio.wait_for(
						loop.sock_accept(server), timeout=options.polling or 1.0
					)
				except asyncio.TimeoutError:
					continue
				except OSError as e:
					# Too many open files, we wait for some to be released
					if e.errno == 24:
						await asyncio.sleep(0.1)
					else:
						exception(e)
					continue
				task = loop.create_task(
					cls.OnRequest(app, client, loop=loop, options=options)
				)
				tasks.add(task)
				task.add_done_callback(tasks.discard)
		finally:
			server.close()
			for task in tasks:
				task.cancel()
			await asyncio.gather(*tasks, return_exceptions=True)
			await app.stop()


def serve(
	*components: Application | Service,
	options: ServerOptions = OPTIONS,
) -> None:
	"""Mounts the components and serves them until stopped, blocking the
	current thread."""
	app = mount(*components)
	try:
		asyncio.run(AIOSocketServer.Serve(app, options))
	except KeyboardInterrupt:
		event("ManualShutdown")
	event("EOK")


def run(*components: Application | Service, **options: Any) -> None:
	"""Runs the server with the default options, updated with the given
	ones (see `ServerOptions`), raising `ValueError` for unknown ones."""
	unlimit(LimitType.Files)
	serve(*components, options=OPTIONS._replace(**options))


# EOF
