"""Local console as an async byte stream (stdin in, stdout out)."""

import asyncio
import os
import stat
import sys


def _pollable(f) -> bool:
    """True if the event loop can watch ``f`` (pipe, socket or terminal)."""
    try:
        mode = os.fstat(f.fileno()).st_mode
    except (AttributeError, OSError, ValueError):
        return False
    return stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode) or stat.S_ISCHR(mode)


class ConsoleStream:
    """Reads raw bytes from stdin and writes raw bytes to stdout.

    ``open()`` must be awaited inside the running event loop before the
    first ``read``. Pipes, sockets and terminals are read through the event
    loop; anything else (a redirected regular file) is read in a worker
    thread. Writes always go through a worker thread.
    """

    def __init__(self, stdin=None, stdout=None):
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._reader: asyncio.StreamReader | None = None
        self._opened = False

    async def open(self):
        if _pollable(self._stdin):
            loop = asyncio.get_running_loop()
            reader = asyncio.StreamReader()
            protocol = asyncio.StreamReaderProtocol(reader)
            await loop.connect_read_pipe(lambda: protocol, self._stdin)
            self._reader = reader
        self._opened = True
        return self

    async def read(self, n: int) -> bytes:
        if not self._opened:
            raise RuntimeError("ConsoleStream.open() was not awaited")
        if self._reader is not None:
            return await self._reader.read(n)
        source = getattr(self._stdin, "buffer", self._stdin)
        read = getattr(source, "read1", source.read)
        return await asyncio.get_running_loop().run_in_executor(None, read, n)

    async def write(self, data: bytes):
        await asyncio.get_running_loop().run_in_executor(None, self._stdout.write, data)

    async def flush(self):
        await asyncio.get_running_loop().run_in_executor(None, self._stdout.flush)
