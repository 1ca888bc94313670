"""Error hierarchy and one-line diagnostics for fatal conditions."""

import asyncio
from typing import Optional


class SendXmppError(Exception):
    """Base class for all sendxmpp errors."""
    pass


class ConfigError(SendXmppError):
    """Account configuration is missing, unreadable or invalid."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class AddressParseError(SendXmppError):
    """A recipient address could not be parsed."""

    def __init__(self, value: str, reason: str = ""):
        super().__init__(f"invalid recipient address '{value}'" + (f": {reason}" if reason else ""))
        self.value = value


class ConnectError(SendXmppError):
    """The XMPP session could not be established."""
    pass


# ── Encryption (recoverable under --attempt-pgp) ─────────────

class EncryptionError(SendXmppError):
    """Base class for encryptor and armor failures."""
    pass


class EncryptorSpawnError(EncryptionError):
    """The encryptor process could not be started."""
    pass


class EncryptorExitError(EncryptionError):
    """The encryptor exited with a nonzero status."""

    def __init__(self, returncode: int, stderr: str = ""):
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        super().__init__(f"encryptor exited with status {returncode}" + (f": {detail}" if detail else ""))
        self.returncode = returncode
        self.stderr = stderr


class ExtractionError(EncryptionError):
    """The encryptor output did not contain a usable armored payload."""
    pass


class ArmorNotFoundError(ExtractionError):
    """Header separator or footer marker missing."""
    pass


class ArmorTooShortError(ExtractionError):
    """Nothing follows the header separator."""
    pass


class ArmorEncodingError(ExtractionError):
    """Payload bytes are not valid UTF-8."""
    pass


# ── Fatal delivery errors ────────────────────────────────────

class ForcedEncryptionError(SendXmppError):
    """Encryption failed for a recipient while encryption is mandatory."""

    def __init__(self, recipient, cause: Exception):
        super().__init__(f"encryption for {recipient} failed: {cause}")
        self.recipient = recipient


class SendError(SendXmppError):
    """The session rejected a message."""

    def __init__(self, recipient, cause: Optional[Exception] = None):
        msg = f"sending to {recipient} failed"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)
        self.recipient = recipient


class CloseError(SendXmppError):
    """Closing the session failed (only ever logged)."""
    pass


def describe_error(e: Exception) -> str:
    """Turn any exception into a single diagnostic line.

    The line names the failing input (config file, recipient, subsystem)
    where the exception carries one.
    """
    if isinstance(e, ConfigError):
        if e.path:
            return f"config {e.path}: {e}"
        return f"config: {e}"
    if isinstance(e, AddressParseError):
        return str(e)
    if isinstance(e, ConnectError):
        return f"connection failed: {e}"
    if isinstance(e, (ForcedEncryptionError, SendError)):
        return str(e)
    if isinstance(e, EncryptionError):
        return f"encryption failed: {e}"
    if isinstance(e, SendXmppError):
        return str(e)

    if isinstance(e, asyncio.TimeoutError):
        return "operation timed out"
    if isinstance(e, OSError):
        return f"I/O error: {e.strerror or e}"

    type_name = type(e).__name__
    return f"unexpected error ({type_name}): {e}"
