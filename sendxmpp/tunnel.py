"""Raw tunnel — full-duplex byte relay between the console and the XMPP stream.

No protocol interpretation: whatever the user types goes to the server
verbatim, whatever the server sends is printed verbatim.

Both ends are byte streams exposing ``async read(n)``, ``async write(data)``
and ``async flush()``. The loop keeps at most one read in flight per side and
services whichever completes first.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger("sendxmpp.tunnel")

_CHUNK_SIZE = 4096
_DRAIN_TIMEOUT = 1.0


class TunnelState(Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Tunnel:
    """Relay bytes between ``local`` and ``remote`` until the remote ends.

    Usage:
        tunnel = Tunnel(console, stream, end_marker=stream.end_marker)
        await tunnel.run()
    """

    def __init__(
        self,
        local,
        remote,
        end_marker: bytes = b"",
        chunk_size: int = _CHUNK_SIZE,
        on_local_eof: Optional[Callable[[], None]] = None,
        drain_timeout: float = _DRAIN_TIMEOUT,
    ):
        self.local = local
        self.remote = remote
        self.end_marker = end_marker
        self.chunk_size = chunk_size
        self.drain_timeout = drain_timeout
        self._on_local_eof = on_local_eof
        self.state = TunnelState.OPEN
        self.bytes_up = 0    # local -> remote
        self.bytes_down = 0  # remote -> local

    async def run(self):
        """Relay until end-of-data, then close best-effort."""
        reads: dict[str, asyncio.Task] = {
            "local": asyncio.create_task(self.local.read(self.chunk_size)),
            "remote": asyncio.create_task(self.remote.read(self.chunk_size)),
        }
        try:
            while self.state is TunnelState.OPEN:
                done, _ = await asyncio.wait(reads.values(), return_when=asyncio.FIRST_COMPLETED)
                for side in ("local", "remote"):
                    task = reads.get(side)
                    if task is None or task not in done:
                        continue
                    del reads[side]
                    # data already read is forwarded even if the other side just closed
                    if await self._handle(side, task) and self.state is TunnelState.OPEN:
                        source = self.local if side == "local" else self.remote
                        reads[side] = asyncio.create_task(source.read(self.chunk_size))
        finally:
            for task in reads.values():
                task.cancel()
            if reads:
                await asyncio.gather(*reads.values(), return_exceptions=True)
            self.state = TunnelState.CLOSING

        await self._close()
        logger.info(f"Tunnel closed ({self.bytes_up} bytes up, {self.bytes_down} bytes down)")

    async def _handle(self, side: str, task: asyncio.Task) -> bool:
        """Forward one completed read. Returns True if the side stays readable."""
        try:
            data = task.result()
        except (OSError, EOFError) as e:
            logger.debug(f"{side} read failed, closing: {e}")
            self.state = TunnelState.CLOSING
            return False

        if not data:
            if side == "remote":
                logger.debug("Remote end-of-data")
                self.state = TunnelState.CLOSING
            else:
                logger.debug("Local end-of-data, still relaying remote output")
                if self._on_local_eof is not None:
                    self._on_local_eof()
            return False

        sink = self.remote if side == "local" else self.local
        try:
            await sink.write(data)
            await sink.flush()
        except (OSError, EOFError) as e:
            logger.debug(f"write from {side} failed, closing: {e}")
            self.state = TunnelState.CLOSING
            return False

        if side == "local":
            self.bytes_up += len(data)
        else:
            self.bytes_down += len(data)
        return True

    async def _close(self):
        """Send the end marker, flush, and drain one response. Errors ignored."""
        try:
            if self.end_marker:
                await self.remote.write(self.end_marker)
            await self.remote.flush()
        except (OSError, EOFError) as e:
            logger.debug(f"Ignoring error while ending stream: {e}")

        try:
            data = await asyncio.wait_for(self.remote.read(self.chunk_size), timeout=self.drain_timeout)
            if data:
                await self.local.write(data)
                await self.local.flush()
        except (OSError, EOFError, asyncio.TimeoutError) as e:
            logger.debug(f"Ignoring error while draining: {e!r}")

        self.state = TunnelState.CLOSED
