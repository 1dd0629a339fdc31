"""Byte-stream transports carrying framed JSON-RPC messages.

Both variants frame messages with the ``Content-Length`` header convention
through pylsp_jsonrpc's stream reader and writer. The reader blocks until a
whole frame body has arrived, so the session never sees a partial message,
and frames are handed over in wire order.

``listen`` blocks its calling thread until the stream ends; sessions run it in
an executor thread.
"""

from __future__ import annotations

import os
import socket
import subprocess
from abc import ABC, abstractmethod
from typing import IO, Any, Callable, Dict, List, Optional, Tuple

from pylsp_jsonrpc.streams import JsonRpcStreamReader, JsonRpcStreamWriter

from ..core import platform
from ..util.log import Log
from .errors import TransportClosedError, UnsupportedOperationError

log = Log.create({"service": "lsp.transport"})

MessageConsumer = Callable[[Dict[str, Any]], None]

# Seconds to wait for a terminated server before killing it.
TERMINATE_GRACE = 5.0


class Transport(ABC):
    """Duplex channel of JSON-RPC messages to one language server."""

    def __init__(self) -> None:
        self._reader: Optional[JsonRpcStreamReader] = None
        self._writer: Optional[JsonRpcStreamWriter] = None
        self._closed = False

    @abstractmethod
    def _open(self) -> Tuple[IO[bytes], IO[bytes]]:
        """Open the channel and return its (read, write) binary streams."""

    @abstractmethod
    def _release(self) -> None:
        """Release the channel's underlying OS resources."""

    @property
    def process_id(self) -> int:
        """Process id announced in the ``initialize`` handshake."""
        return platform.process_id()

    @property
    def started(self) -> bool:
        return self._reader is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Open the channel. Idempotent."""
        if self._closed:
            raise TransportClosedError("transport already closed")
        if self.started:
            return
        rfile, wfile = self._open()
        self._reader = JsonRpcStreamReader(rfile)
        self._writer = JsonRpcStreamWriter(wfile)

    def write(self, message: Dict[str, Any]) -> None:
        """Frame and write one message."""
        if self._closed or self._writer is None:
            raise TransportClosedError("transport is not open")
        self._writer.write(message)

    def listen(self, consumer: MessageConsumer) -> None:
        """Deliver each complete inbound message to ``consumer`` until EOF."""
        if self._reader is None:
            raise TransportClosedError("transport is not open")
        self._reader.listen(consumer)

    def exit_reason(self) -> str:
        """Why the inbound stream ended, for error messages."""
        return "transport closed"

    def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._writer is not None:
            try:
                self._writer.close()
            except (OSError, ValueError) as e:
                log.debug("failed to close writer", {"error": str(e)})
        self._release()
        # After release, so a listener blocked in a read has already hit EOF.
        if self._reader is not None:
            try:
                self._reader.close()
            except (OSError, ValueError) as e:
                log.debug("failed to close reader", {"error": str(e)})

    @classmethod
    def from_config(cls, config: Any, cwd: Optional[str] = None) -> "Transport":
        """Build the transport an ``LSPConfig`` section describes."""
        if config.socket:
            host, port = config.socket_address()
            return SocketTransport(host, port)
        if config.command:
            return StdioTransport(config.command, cwd=cwd, env=config.env or None)
        raise ValueError("LSP config needs either 'command' or 'socket'")


class StdioTransport(Transport):
    """Language server spawned as a child process, spoken to over its stdio."""

    def __init__(
        self,
        command: List[str],
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        if not platform.stdio_supported():
            raise UnsupportedOperationError(
                "stdio language servers need process support; use SocketTransport instead"
            )
        if not command:
            raise ValueError("command must not be empty")
        super().__init__()
        self.command = list(command)
        self.cwd = cwd
        self.env = env
        self.process: Optional[subprocess.Popen] = None

    def _open(self) -> Tuple[IO[bytes], IO[bytes]]:
        env = {**os.environ, **self.env} if self.env else None
        try:
            self.process = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                cwd=self.cwd,
                env=env,
            )
        except OSError as e:
            log.error("failed to spawn language server", {"cmd": self.command, "error": str(e)})
            raise TransportClosedError(f"failed to spawn {self.command[0]}", cause=e) from e

        log.info("spawned language server", {"cmd": self.command, "pid": self.process.pid})
        assert self.process.stdout is not None and self.process.stdin is not None
        return self.process.stdout, self.process.stdin

    def exit_reason(self) -> str:
        if self.process is not None:
            code = self.process.poll()
            if code is not None:
                return f"language server exited with code {code}"
        return "language server closed its output"

    def _release(self) -> None:
        process = self.process
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(TERMINATE_GRACE)
        except subprocess.TimeoutExpired:
            log.warn("language server did not terminate; killing", {"pid": process.pid})
            process.kill()
            process.wait(1)


class SocketTransport(Transport):
    """Language server reachable over a raw TCP socket.

    Frames go straight over the connection, as with servers started with
    ``--tcp``. There is no WebSocket handshake, so ``ws://`` endpoints and
    WebSocket proxies are not supported.
    """

    def __init__(self, host: str, port: int, timeout: float = 10.0):
        super().__init__()
        self.host = host
        self.port = port
        self.timeout = timeout
        self._socket: Optional[socket.socket] = None

    def _open(self) -> Tuple[IO[bytes], IO[bytes]]:
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except OSError as e:
            log.error("failed to connect to language server", {
                "host": self.host,
                "port": self.port,
                "error": str(e),
            })
            raise TransportClosedError(f"cannot connect to {self.host}:{self.port}", cause=e) from e

        # Reads block in the listener thread; only the connect is time-limited.
        sock.settimeout(None)
        self._socket = sock
        log.info("connected to language server", {"host": self.host, "port": self.port})
        return sock.makefile("rb"), sock.makefile("wb")

    def exit_reason(self) -> str:
        return f"connection to {self.host}:{self.port} closed"

    def _release(self) -> None:
        sock = self._socket
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()
