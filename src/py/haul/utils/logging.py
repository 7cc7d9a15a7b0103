import os
import sys
import time
import traceback
from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum
from typing import Any, Iterator, NamedTuple, TypeAlias

from .term import Term

# --
# Structured logging to stderr. Each entry has an origin, a level and
# `Key=value` context, which is merged with the connection context (the
# client address, set by the server for the lifetime of a connection task).

ERR = sys.stderr

# NOTE: Log context values are kept to what can be printed on one line.
TPrimitive: TypeAlias = bool | int | float | str | bytes | None

LogOrigin: ContextVar[str] = ContextVar("LogOrigin", default="haul")
LogContext: ContextVar[dict[str, TPrimitive]] = ContextVar("LogContext", default={})


class LogType(Enum):
	Message = 0
	Event = 20


class LogLevel(Enum):
	Debug = 0
	Info = 10
	Warning = 30
	Error = 40
	# An unexpected exception, always shown
	Exception = 50


LOG_LEVEL_COLOR: dict[LogLevel, int] = {
	LogLevel.Debug: 31,
	LogLevel.Info: 75,
	LogLevel.Warning: 202,
	LogLevel.Error: 160,
	LogLevel.Exception: 124,
}

# The minimum level that gets written, `HAUL_LOG_LEVEL=debug` shows everything.
LOG_LEVEL: LogLevel = {_.name.lower(): _ for _ in LogLevel}.get(
	os.getenv("HAUL_LOG_LEVEL", "info").lower(), LogLevel.Info
)


class LogEntry(NamedTuple):
	origin: str
	time: float
	type: LogType = LogType.Message
	level: LogLevel = LogLevel.Info
	message: str | None = None
	name: str | None = None
	value: Any = None
	context: dict[str, TPrimitive] | None = None
	icon: str | None = None

	@property
	def isShown(self) -> bool:
		return self.level.value >= LOG_LEVEL.value

	def format(self) -> str:
		clr: str = Term.Color(LOG_LEVEL_COLOR[self.level])
		stamp: str = time.strftime("%H:%M:%S", time.localtime(self.time))
		head: str = f"{clr}{Term.BOLD}{stamp} [{self.origin}]"
		if self.type is LogType.Event:
			text = f"{head} {self.name}{Term.RESET} {formatData(self.value)}"
		else:
			icon: str = f" {self.icon}" if self.icon else ""
			text = f"{head}{Term.RESET}{icon} {self.message}"
		return f"{text} {formatData(self.context)}{Term.RESET}"


def formatData(value: Any) -> str:
	"""Formats a context value so that it fits on one line."""
	if value is None or value == () or value == [] or value == {}:
		return "◌"
	elif isinstance(value, dict):
		return " ".join(
			f"{Term.BOLD}{k}{Term.NORMAL}={formatData(v)}" for k, v in value.items()
		)
	elif isinstance(value, (list, tuple)):
		return ",".join(formatData(_) for _ in value)
	elif isinstance(value, bool):
		return "✓" if value else "✗"
	elif isinstance(value, float):
		return f"{value:0.2f}"
	elif isinstance(value, bytes):
		return formatData(value.decode("utf8", "replace"))
	elif isinstance(value, str):
		return repr(value) if " " in value or not value else value
	else:
		return str(value)


@contextmanager
def logContext(**context: TPrimitive) -> Iterator[dict[str, TPrimitive]]:
	"""Adds the given values to the context of every entry logged within
	the block, in the current task only."""
	merged = LogContext.get() | context
	token = LogContext.set(merged)
	try:
		yield merged
	finally:
		LogContext.reset(token)


def send(entry: LogEntry) -> LogEntry:
	if entry.isShown:
		ERR.write(f"{entry.format()}\n")
		ERR.flush()
	return entry


def log(
	level: LogLevel,
	message: str | None = None,
	*,
	type: LogType = LogType.Message,
	name: str | None = None,
	value: Any = None,
	origin: str | None = None,
	icon: str | None = None,
	context: dict[str, TPrimitive],
) -> LogEntry:
	shared = LogContext.get()
	return send(
		LogEntry(
			origin=origin or LogOrigin.get(),
			time=time.time(),
			type=type,
			level=level,
			message=message,
			name=name,
			value=value,
			context=shared | context if shared else context,
			icon=icon,
		)
	)


def debug(
	message: str,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return log(LogLevel.Debug, message, origin=origin, icon=icon, context=context)


def info(
	message: str,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return log(LogLevel.Info, message, origin=origin, icon=icon, context=context)


def warning(
	message: str,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return log(LogLevel.Warning, message, origin=origin, icon=icon, context=context)


def error(
	message: str,
	code: int | str | None,
	*,
	origin: str | None = None,
	icon: str | None = None,
	**context: TPrimitive,
) -> LogEntry:
	"""Logs a managed error, `code` identifies the kind of error (like
	`CONFIG`) and is added to the context."""
	return log(
		LogLevel.Error,
		message,
		value=code,
		origin=origin,
		icon=icon,
		context={"Code": code} | context if code is not None else context,
	)


def event(
	event: str,
	value: Any = None,
	*,
	origin: str | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return log(
		LogLevel.Info,
		type=LogType.Event,
		name=event,
		value=value,
		origin=origin,
		context=context,
	)


def exception(
	exception: BaseException,
	message: str | None = None,
) -> BaseException:
	"""Writes the exception and its traceback, and returns the exception
	so that it can be used as `raise exception(e)`."""
	try:
		summary = f"[{exception.__class__.__name__}] {exception}"
		lines = [f"!!! EXCP {f'{message}: {summary}' if message else summary}"]
		for frame in traceback.extract_tb(exception.__traceback__):
			lines.append(
				f"... in {frame.name:15s} at {frame.lineno or 0:4d} in {frame.filename}"
			)
		ERR.write("\n".join(lines) + "\n")
		ERR.flush()
	except Exception:  # nosec: B110
		# This is called from exception handlers, it must never raise.
		pass
	return exception


LOG_FUNCTION_LEVEL: dict[Any, LogLevel] = {
	debug: LogLevel.Debug,
	info: LogLevel.Info,
	warning: LogLevel.Warning,
	error: LogLevel.Error,
}


def logged(item: Any) -> bool:
	"""Takes one of the logging function, and tells if it is currently
	enabled. This is used to guard against building the whole entry
	when not necessary, as in `logged(debug) and debug(...)`."""
	return LOG_FUNCTION_LEVEL.get(item, LogLevel.Info).value >= LOG_LEVEL.value


# EOF
