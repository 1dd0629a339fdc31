from __future__ import annotations

import asyncio
import io
import json
import os
import socket
import sys
import threading
import time
from pathlib import Path
from typing import IO, Any, Dict, List, Tuple

import pytest

from glint.core import platform
from glint.core.config_schema import LSPConfig
from glint.lsp.client import LSPSession
from glint.lsp.errors import TransportClosedError, UnsupportedOperationError
from glint.lsp.transport import SocketTransport, StdioTransport, Transport
from tests.helpers import wait_until

STUB_SERVER = Path(__file__).resolve().parent.parent / "fixtures" / "lsp_stub_server.py"


def _frame(message: Dict[str, Any]) -> bytes:
    body = json.dumps(message).encode("utf-8")
    return f"Content-Length: {len(body)}\r\n\r\n".encode("ascii") + body


class PipeTransport(Transport):
    """Transport over a pair of OS pipes the test drives by hand."""

    def __init__(self) -> None:
        super().__init__()
        inbound_r, self.server_out = os.pipe()
        self.server_in, outbound_w = os.pipe()
        self._files = (os.fdopen(inbound_r, "rb"), os.fdopen(outbound_w, "wb"))

    def _open(self) -> Tuple[IO[bytes], IO[bytes]]:
        return self._files

    def _release(self) -> None:
        for stream in self._files:
            stream.close()


class StreamTransport(Transport):
    """Transport over in-memory streams whose release leaves them open."""

    def __init__(self) -> None:
        super().__init__()
        self.rfile = io.BytesIO()
        self.wfile = io.BytesIO()

    def _open(self) -> Tuple[IO[bytes], IO[bytes]]:
        return self.rfile, self.wfile

    def _release(self) -> None:
        pass


def _listen_in_thread(transport: Transport) -> Tuple[List[Dict[str, Any]], threading.Thread]:
    received: List[Dict[str, Any]] = []
    thread = threading.Thread(target=transport.listen, args=(received.append,), daemon=True)
    thread.start()
    return received, thread


def test_partial_frames_are_delivered_whole() -> None:
    transport = PipeTransport()
    transport.start()
    received, thread = _listen_in_thread(transport)

    first = _frame({"jsonrpc": "2.0", "id": 1, "result": {"contents": "x" * 200}})
    second = _frame({"jsonrpc": "2.0", "method": "$/progress", "params": {}})
    try:
        os.write(transport.server_out, first[:30])
        time.sleep(0.05)
        assert received == []

        os.write(transport.server_out, first[30:] + second[:10])
        time.sleep(0.05)
        assert [m.get("id") for m in received] == [1]

        os.write(transport.server_out, second[10:])
        os.close(transport.server_out)
        thread.join(timeout=2.0)
        assert not thread.is_alive()
        assert [m.get("method") for m in received] == [None, "$/progress"]
    finally:
        transport.close()
        os.close(transport.server_in)


def test_write_frames_with_content_length() -> None:
    transport = PipeTransport()
    transport.start()
    try:
        transport.write({"jsonrpc": "2.0", "method": "initialized", "params": {}})
        raw = os.read(transport.server_in, 4096)
        header, _, body = raw.partition(b"\r\n\r\n")

        assert header.startswith(b"Content-Length: ")
        assert int(header.split(b":")[1].split(b"\r\n")[0]) == len(body)
        assert json.loads(body)["method"] == "initialized"
    finally:
        transport.close()
        os.close(transport.server_out)
        os.close(transport.server_in)


def test_write_before_start_raises() -> None:
    transport = PipeTransport()
    try:
        with pytest.raises(TransportClosedError):
            transport.write({"jsonrpc": "2.0", "method": "x"})
    finally:
        transport.start()
        transport.close()
        os.close(transport.server_out)
        os.close(transport.server_in)


def test_close_closes_both_streams() -> None:
    transport = StreamTransport()
    transport.start()

    transport.close()

    assert transport.rfile.closed
    assert transport.wfile.closed
    transport.close()


def test_stdio_is_unsupported_without_processes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "platform", "emscripten")

    assert platform.process_id() == platform.NO_PROCESS_ID
    with pytest.raises(UnsupportedOperationError):
        StdioTransport(["pyright-langserver", "--stdio"])


def test_stdio_requires_a_command() -> None:
    with pytest.raises(ValueError):
        StdioTransport([])


def test_spawn_failure_is_a_closed_transport(tmp_path: Path) -> None:
    transport = StdioTransport([str(tmp_path / "no-such-server")])
    with pytest.raises(TransportClosedError):
        transport.start()


def test_from_config_picks_variant() -> None:
    stdio = Transport.from_config(LSPConfig(command=["pylsp"]))
    tcp = Transport.from_config(LSPConfig(socket="127.0.0.1:2087"))

    assert isinstance(stdio, StdioTransport)
    assert stdio.command == ["pylsp"]
    assert isinstance(tcp, SocketTransport)
    assert (tcp.host, tcp.port) == ("127.0.0.1", 2087)

    with pytest.raises(ValueError):
        Transport.from_config(LSPConfig())


def test_socket_transport_round_trip() -> None:
    server = socket.create_server(("127.0.0.1", 0))
    port = server.getsockname()[1]
    seen: List[bytes] = []

    def serve() -> None:
        conn, _ = server.accept()
        with conn:
            seen.append(conn.recv(4096))
            conn.sendall(_frame({"jsonrpc": "2.0", "id": 1, "result": None}))

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()

    transport = SocketTransport("127.0.0.1", port)
    try:
        transport.start()
        transport.write({"jsonrpc": "2.0", "id": 1, "method": "shutdown"})
        received: List[Dict[str, Any]] = []
        transport.listen(received.append)

        assert received == [{"jsonrpc": "2.0", "id": 1, "result": None}]
        assert seen[0].startswith(b"Content-Length: ")
        assert b'"shutdown"' in seen[0]
    finally:
        transport.close()
        server.close()
        thread.join(timeout=2.0)


def test_socket_connect_failure() -> None:
    closed_server = socket.create_server(("127.0.0.1", 0))
    port = closed_server.getsockname()[1]
    closed_server.close()

    with pytest.raises(TransportClosedError):
        SocketTransport("127.0.0.1", port, timeout=1.0).start()


@pytest.mark.anyio
async def test_session_over_stdio_stub_server(source_file: Path) -> None:
    transport = StdioTransport([sys.executable, str(STUB_SERVER)])
    session = LSPSession(transport, str(source_file), settle_delay=0)
    try:
        await session.initialize()
        await session.open_document()

        assert await session.get_hover(1, 4) == "hover 1:4"
        await wait_until(lambda: len(session.diagnostics) == 1, timeout=5.0)
        assert session.diagnostics[0].message == "stub diagnostic"
    finally:
        await session.dispose()

    assert transport.process is not None
    assert await asyncio.to_thread(transport.process.wait, 5) is not None
