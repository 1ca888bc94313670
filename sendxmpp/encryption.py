"""Encryption policy — decide per recipient whether and how to encrypt.

Policies:
- none:    plain message, gpg is never run
- attempt: encrypt if possible, fall back to plain text on any failure
- force:   encrypt or fail; never downgrade to plain text
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .armor import extract_armored_payload
from .errors import EncryptionError, EncryptorExitError, EncryptorSpawnError, ForcedEncryptionError

logger = logging.getLogger("sendxmpp.encryption")

# Body shown by clients that do not understand XEP-0027
ENCRYPTED_PLACEHOLDER = "This message is encrypted."


class EncryptionPolicy(str, Enum):
    NONE = "none"
    ATTEMPT = "attempt"
    FORCE = "force"


@dataclass(frozen=True)
class OutboundMessage:
    """One message for one recipient. ``encrypted`` holds the armored payload."""

    recipient: object
    body: str
    encrypted: Optional[str] = None

    @property
    def is_encrypted(self) -> bool:
        return self.encrypted is not None


class GpgEncryptor:
    """Runs ``gpg --encrypt --armor`` once per call."""

    def __init__(self, binary: str = "gpg"):
        self.binary = binary

    def command(self, recipient) -> list[str]:
        return [self.binary, "--batch", "--encrypt", "--armor", "--recipient", str(recipient)]

    async def encrypt(self, recipient, body: str) -> bytes:
        """Encrypt ``body`` for ``recipient`` and return gpg's armored stdout.

        Raises:
            EncryptorSpawnError: gpg could not be started
            EncryptorExitError: gpg exited nonzero (e.g. no key for recipient)
        """
        cmd = self.command(recipient)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EncryptorSpawnError(f"cannot run {self.binary}: {e}") from e

        stdout, stderr = await proc.communicate(body.encode("utf-8"))
        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace") if stderr else ""
            raise EncryptorExitError(proc.returncode, err)
        logger.debug(f"{self.binary} produced {len(stdout)} bytes for {recipient}")
        return stdout


async def build_message(recipient, body: str, policy: EncryptionPolicy, encryptor) -> OutboundMessage:
    """Build the outbound message for one recipient under ``policy``.

    Args:
        recipient: Parsed recipient address
        body: Plaintext body
        policy: Encryption policy in force for this run
        encryptor: Object with ``async encrypt(recipient, body) -> bytes``

    Returns:
        A plain or an encrypted OutboundMessage

    Raises:
        ForcedEncryptionError: encryption failed under the force policy
    """
    if policy is EncryptionPolicy.NONE:
        return OutboundMessage(recipient, body)

    try:
        armored = await encryptor.encrypt(recipient, body)
        payload = extract_armored_payload(armored)
    except EncryptionError as e:
        if policy is EncryptionPolicy.FORCE:
            raise ForcedEncryptionError(recipient, e) from e
        logger.warning(f"Encryption for {recipient} failed, sending plain text: {e}")
        return OutboundMessage(recipient, body)

    return OutboundMessage(recipient, ENCRYPTED_PLACEHOLDER, encrypted=payload)
