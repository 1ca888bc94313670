"""XMPP session adapter on top of slixmpp.

Two variants, chosen at connect time:
- XmppSession: structured stanza I/O (send chat messages, presence)
- RawXmppStream: the authenticated stream as raw bytes, for the tunnel
"""

import asyncio
import logging
from typing import Iterable

from slixmpp import JID, ClientXMPP
from slixmpp.jid import InvalidJID
from slixmpp.xmlstream import ET

from .encryption import OutboundMessage
from .errors import AddressParseError, CloseError, ConfigError, ConnectError, SendError

logger = logging.getLogger("sendxmpp.session")

ENCRYPTED_NS = "jabber:x:encrypted"


def parse_address(value: str) -> JID:
    """Parse one address. Raises AddressParseError."""
    if not value or not value.strip():
        raise AddressParseError(value, "empty address")
    try:
        jid = JID(value.strip())
    except InvalidJID as e:
        raise AddressParseError(value, str(e)) from e
    if not jid.domain:
        raise AddressParseError(value, "missing domain")
    return jid


def parse_recipients(values: Iterable[str]) -> list[JID]:
    """Parse all recipient addresses, failing on the first bad one."""
    return [parse_address(v) for v in values]


def build_stanza(client: ClientXMPP, message: OutboundMessage):
    """Build a chat message stanza, attaching the encrypted payload if any."""
    stanza = client.make_message(mto=message.recipient, mbody=message.body, mtype="chat")
    if message.encrypted is not None:
        x = ET.Element(f"{{{ENCRYPTED_NS}}}x")
        x.text = message.encrypted
        stanza.xml.append(x)
    return stanza


class _RawCapturingClient(ClientXMPP):
    """ClientXMPP that also hands every received byte to a queue once relaying starts."""

    def __init__(self, jid, password):
        super().__init__(jid, password)
        self.raw_incoming: asyncio.Queue[bytes] = asyncio.Queue()
        self.relaying = False

    def data_received(self, data: bytes) -> None:
        if self.relaying:
            self.raw_incoming.put_nowait(data)
        super().data_received(data)

    def connection_lost(self, exception) -> None:
        if self.relaying:
            self.raw_incoming.put_nowait(b"")
        super().connection_lost(exception)


async def _establish(client: ClientXMPP, timeout: float):
    """Connect and wait for session_start."""
    loop = asyncio.get_running_loop()
    ready: asyncio.Future = loop.create_future()

    def _resolve(exc=None):
        if ready.done():
            return
        if exc is None:
            ready.set_result(True)
        else:
            ready.set_exception(exc)

    client.add_event_handler("session_start", lambda _event: _resolve())
    client.add_event_handler("failed_all_auth", lambda _event: _resolve(ConnectError("authentication failed")))
    client.add_event_handler(
        "connection_failed", lambda err: _resolve(ConnectError(f"cannot reach server: {err}"))
    )

    client.connect()
    try:
        await asyncio.wait_for(ready, timeout=timeout)
    except asyncio.TimeoutError as e:
        client.abort()
        raise ConnectError(f"no session after {timeout:g}s") from e
    except ConnectError:
        client.abort()
        raise


class XmppSession:
    """Structured session: one chat stanza per OutboundMessage."""

    def __init__(self, client: ClientXMPP):
        self._client = client

    @property
    def jid(self) -> JID:
        return self._client.boundjid

    async def announce(self):
        self._client.send_presence()
        logger.debug("Sent initial presence")

    async def send(self, message: OutboundMessage):
        if self._client.transport is None:
            raise SendError(message.recipient, ConnectionError("not connected"))
        build_stanza(self._client, message).send()

    async def close(self):
        try:
            await self._client.disconnect()
        except Exception as e:
            raise CloseError(f"disconnect failed: {e}") from e


class RawXmppStream:
    """Raw byte view of an authenticated XMPP stream."""

    end_marker = b"</stream:stream>"

    def __init__(self, client: _RawCapturingClient):
        self._client = client
        self._client.relaying = True
        self._ended = False

    async def announce(self):
        self._client.send_presence()

    async def read(self, n: int) -> bytes:
        if self._ended:
            return b""
        data = await self._client.raw_incoming.get()
        if not data:
            self._ended = True
        return data

    async def write(self, data: bytes):
        transport = self._client.transport
        if transport is None or transport.is_closing():
            raise ConnectionResetError("XMPP transport is closed")
        transport.write(data)

    async def flush(self):
        # asyncio transports buffer internally; nothing to push
        pass

    async def close(self):
        try:
            self._client.abort()
        except Exception as e:
            raise CloseError(f"abort failed: {e}") from e


async def connect(settings, raw: bool = False):
    """Open an authenticated session for ``settings``.

    Returns:
        RawXmppStream if ``raw`` else XmppSession

    Raises:
        ConfigError: the account jid is not a valid address
        ConnectError: server unreachable, authentication failed or timed out
    """
    try:
        jid = parse_address(settings.jid)
    except AddressParseError as e:
        raise ConfigError(f"account jid: {e}") from e

    client_cls = _RawCapturingClient if raw else ClientXMPP
    client = client_cls(jid, settings.password)
    await _establish(client, settings.connect_timeout)
    logger.info(f"Session established as {client.boundjid}")

    if raw:
        return RawXmppStream(client)
    return XmppSession(client)
