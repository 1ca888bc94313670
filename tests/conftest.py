"""Pytest configuration and shared fakes."""

import asyncio

import pytest

from sendxmpp.errors import EncryptorExitError


ARMORED = (
    b"-----BEGIN PGP MESSAGE-----\n"
    b"\n"
    b"hQEMA7vQ9xZ3YqGkAQf/Xk2\n"
    b"=Qk3v\n"
    b"-----END PGP MESSAGE-----\n"
)
ARMORED_PAYLOAD = "hQEMA7vQ9xZ3YqGkAQf/Xk2\n=Qk3v"


class FakeSession:
    """Records sent messages; optionally fails on a given recipient."""

    def __init__(self, fail_on=None, close_error=None):
        self.sent = []
        self.closed = False
        self.announced = False
        self._fail_on = fail_on
        self._close_error = close_error

    async def announce(self):
        self.announced = True

    async def send(self, message):
        if self._fail_on is not None and str(message.recipient) == self._fail_on:
            raise ConnectionResetError("stream closed by peer")
        self.sent.append(message)

    async def close(self):
        self.closed = True
        if self._close_error is not None:
            raise self._close_error


class FakeEncryptor:
    """Returns canned output per recipient; ``failing`` recipients exit nonzero."""

    def __init__(self, output=ARMORED, failing=(), outputs=None):
        self.calls = []
        self._output = output
        self._outputs = outputs or {}
        self._failing = set(failing)

    async def encrypt(self, recipient, body):
        self.calls.append((str(recipient), body))
        if str(recipient) in self._failing:
            raise EncryptorExitError(2, "gpg: no public key\n")
        return self._outputs.get(str(recipient), self._output)


class FakeStream:
    """Scripted byte stream for tunnel tests.

    ``chunks`` are returned by successive reads; after them the stream
    reports end-of-data, unless ``eof_after`` is set, in which case it
    first waits for that many bytes to be written to it.
    """

    def __init__(self, chunks=(), eof_after=None):
        self._chunks = list(chunks)
        self.written = bytearray()
        self.flushes = 0
        self.pending_reads = 0
        self.max_pending_reads = 0
        self._eof_after = eof_after
        self._enough = asyncio.Event()
        if eof_after is None:
            self._enough.set()

    async def read(self, n):
        self.pending_reads += 1
        self.max_pending_reads = max(self.max_pending_reads, self.pending_reads)
        try:
            await asyncio.sleep(0)
            if self._chunks:
                return self._chunks.pop(0)[:n]
            await self._enough.wait()
            return b""
        finally:
            self.pending_reads -= 1

    async def write(self, data):
        self.written.extend(data)
        if self._eof_after is not None and len(self.written) >= self._eof_after:
            self._enough.set()

    async def flush(self):
        self.flushes += 1


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def fake_encryptor():
    return FakeEncryptor()
