"""Shared test helpers."""

from __future__ import annotations

import asyncio
import queue
from typing import Any, Callable, Dict, IO, List, Optional, Tuple

from glint.lsp.errors import TransportClosedError
from glint.lsp.transport import MessageConsumer, Transport

Responder = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]


def reply(message: Dict[str, Any], result: Any = None, error: Any = None) -> Dict[str, Any]:
    """Response envelope for a request the session sent."""
    response: Dict[str, Any] = {"jsonrpc": "2.0", "id": message["id"]}
    if error is not None:
        response["error"] = error
    else:
        response["result"] = result
    return response


def scripted(results: Dict[str, Any]) -> Responder:
    """Responder answering each method from ``results``.

    Values may be callables taking the request. Methods missing from
    ``results`` are left unanswered, except ``initialize``.
    """
    def respond(message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        method = message["method"]
        if method not in results:
            if method == "initialize":
                return reply(message, {"capabilities": {}})
            return None
        value = results[method]
        if callable(value):
            return value(message)
        return reply(message, value)

    return respond


class FakeTransport(Transport):
    """In-memory transport; a responder plays the server side.

    ``listen`` blocks on a queue like a real reader thread would.
    """

    def __init__(self, responder: Optional[Responder] = None) -> None:
        super().__init__()
        self.responder = responder
        self.sent: List[Dict[str, Any]] = []
        self._inbox: "queue.Queue[Optional[Dict[str, Any]]]" = queue.Queue()
        self._started = False

    def _open(self) -> Tuple[IO[bytes], IO[bytes]]:
        raise AssertionError("FakeTransport has no byte streams")

    def _release(self) -> None:
        self._inbox.put(None)

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if self.closed:
            raise TransportClosedError("transport already closed")
        self._started = True

    def write(self, message: Dict[str, Any]) -> None:
        if self.closed or not self._started:
            raise TransportClosedError("transport is not open")
        self.sent.append(message)
        if self.responder is not None and "method" in message and "id" in message:
            response = self.responder(message)
            if response is not None:
                self.push(response)

    def listen(self, consumer: MessageConsumer) -> None:
        while True:
            message = self._inbox.get()
            if message is None:
                return
            consumer(message)

    def push(self, message: Dict[str, Any]) -> None:
        """Deliver a message as if the server had sent it."""
        self._inbox.put(message)

    def end(self) -> None:
        """Simulate the server closing its output."""
        self._inbox.put(None)

    def methods(self) -> List[str]:
        return [message.get("method", "<response>") for message in self.sent]

    def requests(self, method: str) -> List[Dict[str, Any]]:
        return [message for message in self.sent if message.get("method") == method]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the event loop until it holds."""
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout=timeout)
