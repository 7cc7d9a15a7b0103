from typing import Any, Awaitable, BinaryIO, Callable
from ..errors import TransferAborted

DEFAULT_ENCODING: str = "utf8"
EOL: bytes = b"\r\n"
# The default size of the buffer used to stream files to a client.
CHUNK_SIZE: int = 32_768


async def copyStream(
	source: BinaryIO,
	write: Callable[[memoryview], Awaitable[Any]],
	length: int | None = None,
	size: int = CHUNK_SIZE,
) -> int:
	"""Copies `length` bytes (or everything up to EOF when `length` is `None`)
	from `source` to `write`, going through a single buffer of `size` bytes.
	Memory use is bounded by `size`, whatever the length. Any failure
	is raised as `TransferAborted`, returns the number of bytes copied."""
	if size <= 0:
		raise ValueError(f"Buffer size must be positive, got: {size}")
	buffer = bytearray(size)
	view = memoryview(buffer)
	sent: int = 0
	while length is None or sent < length:
		want = size if length is None else min(size, length - sent)
		try:
			n = source.readinto(view[:want])
		except OSError as e:
			raise TransferAborted(
				f"Read failed after {sent} bytes: {e}", sent, length
			) from e
		if not n:
			if length is not None:
				# The file was truncated since its length was taken, the
				# client has been promised more bytes than we can send.
				raise TransferAborted(
					f"Source ended after {sent} bytes", sent, length
				)
			break
		try:
			await write(view[:n])
		except OSError as e:
			raise TransferAborted(
				f"Write failed after {sent} bytes: {e}", sent, length
			) from e
		sent += n
	return sent


# EOF
