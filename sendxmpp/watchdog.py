"""Shutdown watchdog — bound the process lifetime after the main work starts.

The XMPP close handshake sometimes never completes. Rather than letting the
process hang, the main operation is raced against a deadline:

1. ``arm()`` starts the grace period.
2. When it expires, the main task is cancelled and ``supervise()`` returns.
3. If the event loop itself is stuck and cannot even process the
   cancellation, an OS-thread backstop exits the process with status 0.

Usage:
    watchdog = Watchdog(grace=4.0, backstop=2.0)
    watchdog.arm()
    result = await watchdog.supervise(dispatch(...))
"""

import asyncio
import logging
import os
import threading
from typing import Callable, Optional

logger = logging.getLogger("sendxmpp.watchdog")

# How long a cancelled main task may take to unwind
_CANCEL_GRACE = 0.5


class Watchdog:
    def __init__(
        self,
        grace: float,
        backstop: Optional[float] = None,
        exit_func: Callable[[int], None] = os._exit,
    ):
        """Initialize watchdog.

        Args:
            grace: Seconds between ``arm()`` and cancellation of the main task
            backstop: Extra seconds after ``grace`` before ``exit_func(0)`` is
                called from a thread. None disables the backstop.
            exit_func: Process-termination function used by the backstop
        """
        self.grace = grace
        self.backstop = backstop
        self._exit_func = exit_func
        self._expired: Optional[asyncio.Event] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._timer: Optional[threading.Timer] = None
        self.fired = False

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def _event(self) -> asyncio.Event:
        if self._expired is None:
            self._expired = asyncio.Event()
        return self._expired

    def arm(self):
        """Start the grace period. Later calls are no-ops."""
        if self.armed:
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.grace, self._expire)
        if self.backstop is not None:
            self._timer = threading.Timer(self.grace + self.backstop, self._hard_exit)
            self._timer.daemon = True
            self._timer.start()
        logger.debug(f"Watchdog armed ({self.grace}s)")

    def disarm(self):
        if self._handle is not None:
            self._handle.cancel()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self):
        self.fired = True
        self._event().set()

    def _hard_exit(self):
        logger.warning("Event loop unresponsive after shutdown deadline, exiting")
        self._exit_func(0)

    async def supervise(self, coro):
        """Run ``coro`` until it finishes or the armed deadline expires.

        Returns:
            The coroutine's result, or None if the deadline won the race.
            Exceptions from the coroutine propagate.
        """
        main = asyncio.create_task(coro)
        deadline = asyncio.create_task(self._event().wait())
        try:
            done, _ = await asyncio.wait({main, deadline}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            main.cancel()
            deadline.cancel()
            raise

        if main in done:
            deadline.cancel()
            self.disarm()
            return main.result()

        logger.info(f"Shutdown deadline of {self.grace}s reached, cancelling")
        main.cancel()
        await asyncio.wait({main}, timeout=_CANCEL_GRACE)
        if main.done() and not main.cancelled() and main.exception() is not None:
            logger.debug(f"Main task ended with {main.exception()!r} after deadline")
        return None
