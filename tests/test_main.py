"""Tests for one full invocation with a fake session."""

import asyncio
import io
import os
from unittest.mock import AsyncMock, patch

import pytest

from sendxmpp import main as main_mod
from sendxmpp.encryption import EncryptionPolicy
from sendxmpp.errors import AddressParseError, ConfigError, ForcedEncryptionError
from sendxmpp.main import read_body, run

from conftest import FakeEncryptor, FakeSession, FakeStream


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "sendxmpp.toml"
    path.write_text('jid = "me@example.org"\npassword = "pw"\nshutdown_grace = 0.2\n')
    return str(path)


def _connector(session):
    return AsyncMock(return_value=session)


def test_read_body_trims():
    assert read_body(io.StringIO("\n  hello world \n\n")) == "hello world"


@pytest.mark.asyncio
async def test_sends_stdin_to_all_recipients(config_file):
    session = FakeSession()
    code = await run(
        ["a@example.org", "b@example.org"],
        config_path=config_file,
        stdin=io.StringIO("hello\n"),
        connect_func=_connector(session),
        encryptor=FakeEncryptor(),
    )
    assert code == 0
    assert [str(m.recipient) for m in session.sent] == ["a@example.org", "b@example.org"]
    assert all(m.body == "hello" for m in session.sent)
    assert session.closed
    assert not session.announced


@pytest.mark.asyncio
async def test_presence_is_announced(config_file):
    session = FakeSession()
    await run(["a@example.org"], config_path=config_file, presence=True,
              stdin=io.StringIO("x"), connect_func=_connector(session), encryptor=FakeEncryptor())
    assert session.announced


@pytest.mark.asyncio
async def test_bad_address_fails_before_connecting(config_file):
    connect = _connector(FakeSession())
    with pytest.raises(AddressParseError):
        await run(["a@example.org", "b@"], config_path=config_file,
                  stdin=io.StringIO("x"), connect_func=connect)
    connect.assert_not_awaited()


@pytest.mark.asyncio
async def test_config_error_fails_before_connecting(tmp_path):
    connect = _connector(FakeSession())
    with pytest.raises(ConfigError):
        await run(["a@example.org"], config_path=str(tmp_path / "missing.toml"),
                  stdin=io.StringIO("x"), connect_func=connect)
    connect.assert_not_awaited()


@pytest.mark.asyncio
async def test_forced_encryption_failure_propagates(config_file):
    session = FakeSession()
    with pytest.raises(ForcedEncryptionError):
        await run(["a@example.org"], config_path=config_file, policy=EncryptionPolicy.FORCE,
                  stdin=io.StringIO("x"), connect_func=_connector(session),
                  encryptor=FakeEncryptor(failing={"a@example.org"}))
    assert session.sent == []
    assert session.closed


@pytest.mark.asyncio
async def test_hanging_close_is_cut_off(config_file, monkeypatch):
    monkeypatch.setattr(main_mod, "_BACKSTOP", None)

    class HangingClose(FakeSession):
        async def close(self):
            self.closed = True
            await asyncio.Event().wait()

    session = HangingClose()
    code = await run(["a@example.org"], config_path=config_file,
                     stdin=io.StringIO("x"), connect_func=_connector(session),
                     encryptor=FakeEncryptor())
    assert code == 0
    assert len(session.sent) == 1


class FakeRawStream(FakeStream):
    end_marker = b"</stream:stream>"

    def __init__(self, chunks=(), eof_after=None):
        super().__init__(chunks, eof_after)
        self.announced = False
        self.closed = False

    async def announce(self):
        self.announced = True

    async def close(self):
        self.closed = True


@pytest.fixture
def stanza_file(tmp_path):
    path = tmp_path / "stanzas.xml"
    path.write_bytes(b"<presence/>")
    return path


class TestRawMode:
    @pytest.mark.asyncio
    async def test_regular_file_stdin(self, config_file, stanza_file, monkeypatch):
        monkeypatch.setattr(main_mod, "_BACKSTOP", None)
        stream = FakeRawStream(eof_after=len(b"<presence/>"))
        connect = _connector(stream)
        with open(stanza_file, "rb") as stdin:
            code = await asyncio.wait_for(
                run([], config_path=config_file, raw=True, stdin=stdin, connect_func=connect),
                timeout=3,
            )
        assert code == 0
        connect.assert_awaited_once()
        assert connect.await_args.kwargs == {"raw": True}
        assert bytes(stream.written) == b"<presence/>" + FakeRawStream.end_marker
        assert stream.closed
        assert not stream.announced

    @pytest.mark.asyncio
    async def test_silent_server_is_cut_off_after_stdin_ends(self, config_file, monkeypatch):
        monkeypatch.setattr(main_mod, "_BACKSTOP", None)
        stream = FakeRawStream(eof_after=10**6)  # never ends on its own
        r, w = os.pipe()
        os.write(w, b"<presence/>")
        os.close(w)
        with os.fdopen(r, "rb") as stdin:
            code = await asyncio.wait_for(
                run([], config_path=config_file, raw=True, stdin=stdin,
                    connect_func=_connector(stream)),
                timeout=3,
            )
        assert code == 0
        assert bytes(stream.written) == b"<presence/>"
        assert stream.closed

    @pytest.mark.asyncio
    async def test_presence_is_announced(self, config_file, stanza_file, monkeypatch):
        monkeypatch.setattr(main_mod, "_BACKSTOP", None)
        stream = FakeRawStream(eof_after=len(b"<presence/>"))
        with open(stanza_file, "rb") as stdin:
            await asyncio.wait_for(
                run([], config_path=config_file, raw=True, presence=True, stdin=stdin,
                    connect_func=_connector(stream)),
                timeout=3,
            )
        assert stream.announced

    @pytest.mark.asyncio
    async def test_stream_closed_when_console_cannot_open(self, config_file, stanza_file, monkeypatch):
        monkeypatch.setattr(main_mod, "_BACKSTOP", None)
        stream = FakeRawStream()
        with open(stanza_file, "rb") as stdin, \
                patch.object(main_mod.ConsoleStream, "open", AsyncMock(side_effect=ValueError("bad stdin"))):
            with pytest.raises(ValueError):
                await run([], config_path=config_file, raw=True, stdin=stdin,
                          connect_func=_connector(stream))
        assert stream.closed
