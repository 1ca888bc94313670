"""sendxmpp — orchestration of one invocation."""

import logging
import sys
from typing import Optional, Sequence

from .config import load_settings
from .console import ConsoleStream
from .dispatch import close_quietly, dispatch
from .encryption import EncryptionPolicy, GpgEncryptor
from .session import connect, parse_recipients
from .tunnel import Tunnel
from .watchdog import Watchdog

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Seconds past the grace period before the thread backstop exits the process
_BACKSTOP = 2.0

logger = logging.getLogger("sendxmpp")


def setup_logging(debug: bool = False):
    """Log to stderr; stdout carries tunnel output."""
    logging.basicConfig(
        level=logging.WARNING,
        format=_log_format,
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    if debug:
        logging.getLogger("sendxmpp").setLevel(logging.DEBUG)
    else:
        logging.getLogger("slixmpp").setLevel(logging.ERROR)


def read_body(stream) -> str:
    """Read the message body, trimmed of surrounding whitespace."""
    return stream.read().strip()


async def run(
    recipient_args: Sequence[str],
    config_path: Optional[str] = None,
    policy: EncryptionPolicy = EncryptionPolicy.NONE,
    raw: bool = False,
    presence: bool = False,
    stdin=None,
    connect_func=connect,
    encryptor=None,
) -> int:
    """Run one invocation. Returns the process exit status.

    Fatal conditions raise SendXmppError subclasses; the caller prints them.
    """
    settings = load_settings(config_path)
    recipients = parse_recipients(recipient_args)
    stdin = stdin if stdin is not None else sys.stdin

    if raw:
        return await _run_tunnel(settings, presence, stdin, connect_func)

    body = read_body(stdin)
    if not body:
        logger.warning("Message body is empty")

    session = await connect_func(settings)
    if presence:
        await session.announce()

    if encryptor is None:
        encryptor = GpgEncryptor(settings.gpg_binary)
    watchdog = Watchdog(settings.shutdown_grace, backstop=_BACKSTOP)
    sent = await watchdog.supervise(
        dispatch(session, recipients, body, policy, encryptor, on_closing=watchdog.arm)
    )
    if sent is not None:
        logger.info(f"Delivered {sent} message(s)")
    return 0


async def _run_tunnel(settings, presence: bool, stdin, connect_func) -> int:
    stream = await connect_func(settings, raw=True)
    watchdog = Watchdog(settings.shutdown_grace, backstop=_BACKSTOP)
    try:
        if presence:
            await stream.announce()
        console = await ConsoleStream(stdin=stdin).open()
        tunnel = Tunnel(console, stream, end_marker=stream.end_marker, on_local_eof=watchdog.arm)
        await watchdog.supervise(tunnel.run())
    finally:
        await close_quietly(stream)
    return 0
