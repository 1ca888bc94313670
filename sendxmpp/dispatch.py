"""Message dispatch — one message per recipient, in order, then close."""

import logging
from typing import Callable, Optional

from .encryption import EncryptionPolicy, build_message
from .errors import SendError

logger = logging.getLogger("sendxmpp.dispatch")


async def close_quietly(session):
    """Close the session; failures are logged, never raised."""
    try:
        await session.close()
    except Exception as e:
        logger.warning(f"Closing session failed: {e}")


async def dispatch(
    session,
    recipients,
    body: str,
    policy: EncryptionPolicy,
    encryptor,
    on_closing: Optional[Callable[[], None]] = None,
) -> int:
    """Send ``body`` to every recipient over ``session``.

    Stops at the first send failure or forced-encryption failure. The
    session is closed in every case; ``on_closing`` is called right before.

    Returns:
        Number of messages sent
    """
    sent = 0
    try:
        for recipient in recipients:
            message = await build_message(recipient, body, policy, encryptor)
            try:
                await session.send(message)
            except SendError:
                raise
            except Exception as e:
                raise SendError(recipient, e) from e
            sent += 1
            kind = "encrypted" if message.is_encrypted else "plain"
            logger.info(f"Sent {kind} message to {recipient}")
    finally:
        if on_closing is not None:
            on_closing()
        await close_quietly(session)
    return sent
