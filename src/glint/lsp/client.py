"""LSP session bound to a single document.

The session owns one JSON-RPC conversation with a language server: the
initialize handshake, didOpen/didChange/didClose bookkeeping for its document,
and correlated requests for completion, hover, definition and references.
Messages the server sends on its own (diagnostics, progress, configuration
requests) are published on the session's notification bus.
"""

import asyncio
import os
from concurrent.futures import ThreadPoolExecutor
from contextvars import Context, copy_context
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Coroutine, Dict, List, Optional
from urllib.parse import quote

from pydantic import BaseModel

from ..core.bus import Bus, BusEvent, SubscriptionCallback
from ..util.log import Log
from .errors import InitializationFailedError, TransportClosedError
from .language import language_for_path
from .transport import Transport
from .types import CompletionItemKind, DiagnosticSeverity, DocumentHandle, LSPCompletion, LSPDiagnostic

log = Log.create({"service": "lsp.client"})

# Seconds to let the server index a freshly opened file before querying it.
DEFAULT_SETTLE_DELAY = 0.3


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DISPOSED = "disposed"


class ServerNotificationProps(BaseModel):
    """A message the server sent without being asked.

    ``id`` is set when the message is a server-to-client request.
    """
    method: str
    params: Any = None
    id: Optional[Any] = None


ServerNotification = BusEvent.define("lsp.server.notification", ServerNotificationProps)


def path_to_uri(path: str) -> str:
    """Convert a file path to a ``file://`` URI."""
    path = os.path.abspath(path)
    if os.name == "nt":
        path = "/" + path.replace("\\", "/")
    return "file://" + quote(path, safe="/:")


class LSPSession:
    """JSON-RPC session with a language server for one document.

    Callers drive a session from a single event loop and must not call
    ``initialize()`` twice.
    """

    def __init__(
        self,
        transport: Transport,
        file_path: str,
        language_id: Optional[str] = None,
        workspace_path: Optional[str] = None,
        *,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        disable_warning: bool = False,
        disable_error: bool = False,
    ):
        """Create a session.

        Args:
            transport: Channel to the server; owned by this session from now on
            file_path: Document the session is bound to
            language_id: Language id sent in didOpen; derived from the file
                extension when omitted
            workspace_path: Workspace root; defaults to the file's directory
            settle_delay: Seconds open_document() waits after didOpen
            disable_warning: Drop warning diagnostics
            disable_error: Drop error diagnostics
        """
        self.transport = transport
        self.file_path = os.path.abspath(file_path)
        self.language_id = language_id or language_for_path(self.file_path)
        self.workspace_path = os.path.abspath(workspace_path or os.path.dirname(self.file_path))
        self.settle_delay = settle_delay
        self.disable_warning = disable_warning
        self.disable_error = disable_error

        self.notifications = Bus()
        self._state = SessionState.UNINITIALIZED
        self._documents: Dict[str, DocumentHandle] = {}
        self._diagnostics: List[LSPDiagnostic] = []
        self._request_id = 0
        self._pending_requests: Dict[int, asyncio.Future] = {}
        self._reader_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_context: Context | None = None
        self._closed_reason: Optional[str] = None
        # One writer thread keeps outbound messages in call order.
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="glint-lsp-writer")

    @classmethod
    def from_config(cls, transport: Transport, file_path: str, config: Any) -> "LSPSession":
        """Create a session from an ``LSPConfig`` section."""
        return cls(
            transport,
            file_path,
            language_id=config.language_id,
            settle_delay=config.settle_delay,
            disable_warning=config.disable_warning,
            disable_error=config.disable_error,
        )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def uri(self) -> str:
        return path_to_uri(self.file_path)

    @property
    def document(self) -> Optional[DocumentHandle]:
        """Handle of the bound document while it is open."""
        return self._documents.get(self.file_path)

    @property
    def diagnostics(self) -> List[LSPDiagnostic]:
        """Latest diagnostics the server pushed for the bound document."""
        return list(self._diagnostics)

    @property
    def pending_request_ids(self) -> List[int]:
        return sorted(self._pending_requests)

    def subscribe(self, callback: SubscriptionCallback) -> Callable[[], None]:
        """Listen to unsolicited server messages. Returns an unsubscribe function."""
        return self.notifications.subscribe(ServerNotification, callback)

    # -- handshake --

    async def initialize(self) -> None:
        """Start the transport and perform the initialize handshake.

        Raises:
            InitializationFailedError: the server answered with an error
            TransportClosedError: the channel could not be opened or closed early
        """
        self._state = SessionState.INITIALIZING
        self._loop = asyncio.get_running_loop()
        self._loop_context = copy_context()

        await asyncio.to_thread(self.transport.start)
        self._reader_task = asyncio.create_task(self._read_messages())

        root_uri = path_to_uri(self.workspace_path)
        response = await self._send_request("initialize", {
            "processId": self.transport.process_id,
            "rootUri": root_uri,
            "workspaceFolders": [
                {"uri": root_uri, "name": "workspace"},
            ],
            "capabilities": {
                "textDocument": {
                    "completion": {
                        "completionItem": {"snippetSupport": False},
                    },
                    "hover": {
                        "contentFormat": ["markdown"],
                    },
                    "publishDiagnostics": {"relatedInformation": False},
                },
            },
        })

        if response.get("error") is not None:
            log.error("LSP initialize rejected", {"error": response["error"]})
            raise InitializationFailedError(response["error"])

        await self._send_notification("initialized", {})
        self._state = SessionState.READY
        log.info("LSP session initialized", {"path": self.file_path, "language": self.language_id})

    # -- inbound --

    async def _read_messages(self) -> None:
        """Pump the transport until it ends, then fail whatever is still pending."""
        loop = asyncio.get_running_loop()
        reason = None
        try:
            await loop.run_in_executor(
                None,
                self.transport.listen,
                self._consume_message_from_reader_thread,
            )
            reason = self.transport.exit_reason()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("Error reading LSP messages", {"error": str(e)})
            reason = f"{self.transport.exit_reason()}: {e}"

        if self._state is not SessionState.DISPOSED:
            self._on_transport_closed(reason)

    def _consume_message_from_reader_thread(self, message: Dict[str, Any]) -> None:
        """Bridge reader-thread messages into the event loop, preserving order."""
        loop = self._loop
        if not loop or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._handle_message, message, context=self._loop_context)
        except RuntimeError:
            # Loop shut down between the check and the call.
            pass

    def _handle_message(self, message: Dict[str, Any]) -> None:
        """Route one inbound message.

        Responses resolve their pending request synchronously so that
        resolution order matches wire order.
        """
        if "method" not in message:
            request_id = message.get("id")
            future = self._pending_requests.pop(request_id, None) if request_id is not None else None
            if future is None:
                log.debug("response for unknown request", {"id": request_id})
                return
            if not future.done():
                future.set_result(message)
            return

        method = message["method"]
        params = message.get("params")

        if method == "textDocument/publishDiagnostics" and isinstance(params, dict):
            self._handle_diagnostics(params)

        if "id" in message:
            self._spawn(self._answer_server_request(message["id"], method, params))

        self._spawn(self.notifications.publish(
            ServerNotification,
            ServerNotificationProps(method=method, params=params, id=message.get("id")),
        ))

    def _handle_diagnostics(self, params: Dict[str, Any]) -> None:
        if params.get("uri") != self.uri:
            return

        diagnostics: List[LSPDiagnostic] = []
        for raw in params.get("diagnostics") or []:
            try:
                diagnostic = LSPDiagnostic.model_validate(raw)
            except ValueError as e:
                log.warn("skipping malformed diagnostic", {"error": str(e)})
                continue
            if self.disable_warning and diagnostic.severity == DiagnosticSeverity.WARNING:
                continue
            if self.disable_error and diagnostic.severity == DiagnosticSeverity.ERROR:
                continue
            diagnostics.append(diagnostic)

        self._diagnostics = diagnostics
        log.info("textDocument/publishDiagnostics", {"path": self.file_path, "count": len(diagnostics)})

    async def _answer_server_request(self, request_id: Any, method: str, params: Any) -> None:
        """Answer server-to-client requests so the server never waits on us."""
        self._check_open()
        result: Any = None
        if method == "workspace/configuration":
            items = params.get("items", []) if isinstance(params, dict) else []
            result = [{} for _ in items]
        elif method == "workspace/workspaceFolders":
            result = [{"uri": path_to_uri(self.workspace_path), "name": "workspace"}]
        await self._send_message({"jsonrpc": "2.0", "id": request_id, "result": result})

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None and not isinstance(error, TransportClosedError):
            log.error("Error handling LSP message", {"error": str(error)})

    def _on_transport_closed(self, reason: Optional[str]) -> None:
        self._closed_reason = reason or "transport closed"
        log.warn("LSP transport closed", {"reason": self._closed_reason, "pending": len(self._pending_requests)})
        self._fail_pending(self._closed_reason)

    def _fail_pending(self, reason: str) -> None:
        pending = list(self._pending_requests.values())
        self._pending_requests.clear()
        for future in pending:
            if not future.done():
                future.set_exception(TransportClosedError(reason))

    # -- outbound --

    def _check_open(self) -> None:
        if self._state is SessionState.DISPOSED:
            raise TransportClosedError("session disposed")
        if self._closed_reason is not None:
            raise TransportClosedError(self._closed_reason)

    async def _send_request(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Send a request and wait for its response envelope.

        Returns:
            The whole response message, so callers can inspect ``error``.
        """
        self._check_open()

        self._request_id += 1
        request_id = self._request_id

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending_requests[request_id] = future

        try:
            await self._send_message({
                "jsonrpc": "2.0",
                "id": request_id,
                "method": method,
                "params": params,
            })
            return await future
        finally:
            self._pending_requests.pop(request_id, None)

    async def _send_notification(self, method: str, params: Dict[str, Any]) -> None:
        self._check_open()
        await self._send_message({"jsonrpc": "2.0", "method": method, "params": params})

    async def _send_message(self, message: Dict[str, Any]) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._writer, self.transport.write, message)
        log.debug("LSP ->", {"method": message.get("method"), "id": message.get("id")})

    # -- document lifecycle --

    async def open_document(self) -> None:
        """Send didOpen with the file's current text, then let the server settle.

        Re-opening an open document sends didOpen again with the next version.
        """
        text = await asyncio.to_thread(Path(self.file_path).read_text, encoding="utf-8")

        previous = self._documents.get(self.file_path)
        version = (previous.version if previous else 0) + 1
        handle = DocumentHandle(
            path=self.file_path,
            uri=self.uri,
            language_id=self.language_id,
            workspace_root=self.workspace_path,
            version=version,
            is_open=True,
        )
        self._documents[self.file_path] = handle

        await self._send_notification("textDocument/didOpen", {
            "textDocument": {
                "uri": handle.uri,
                "languageId": handle.language_id,
                "version": version,
                "text": text,
            },
        })
        await asyncio.sleep(self.settle_delay)

    async def update_document(self, content: str) -> None:
        """Send the full new text as a didChange. No-op unless open."""
        handle = self._documents.get(self.file_path)
        if handle is None:
            return

        handle.version += 1
        await self._send_notification("textDocument/didChange", {
            "textDocument": {"uri": handle.uri, "version": handle.version},
            "contentChanges": [{"text": content}],
        })

    async def close_document(self) -> None:
        """Send didClose and forget the document. No-op unless open."""
        handle = self._documents.get(self.file_path)
        if handle is None:
            return

        await self._send_notification("textDocument/didClose", {
            "textDocument": {"uri": handle.uri},
        })
        handle.is_open = False
        self._documents.pop(self.file_path, None)

    # -- queries --

    def _common_params(self, line: int, character: int) -> Dict[str, Any]:
        return {
            "textDocument": {"uri": self.uri},
            "position": {"line": line, "character": character},
        }

    async def _query(self, method: str, params: Dict[str, Any]) -> Any:
        """Send a query and return its ``result``; error responses yield None."""
        response = await self._send_request(method, params)
        if response.get("error") is not None:
            log.debug("LSP query failed", {"method": method, "error": response["error"]})
            return None
        return response.get("result")

    async def get_completions(self, line: int, character: int) -> List[LSPCompletion]:
        """Completion labels and kinds at a position."""
        result = await self._query("textDocument/completion", self._common_params(line, character))
        if isinstance(result, dict):
            items = result.get("items") or []
        elif isinstance(result, list):
            items = result
        else:
            return []

        completions = []
        for item in items:
            if not isinstance(item, dict) or item.get("label") is None:
                continue
            completions.append(LSPCompletion(
                label=str(item["label"]),
                kind=CompletionItemKind.classify(item.get("kind")),
            ))
        return completions

    async def get_hover(self, line: int, character: int) -> str:
        """Hover text at a position, or ``''`` when there is nothing to show."""
        result = await self._query("textDocument/hover", self._common_params(line, character))
        contents = result.get("contents") if isinstance(result, dict) else None
        if not contents:
            return ""
        if isinstance(contents, str):
            return contents
        if isinstance(contents, dict):
            return str(contents.get("value") or "")
        if isinstance(contents, list):
            parts = []
            for item in contents:
                if isinstance(item, str):
                    parts.append(item)
                elif isinstance(item, dict) and "value" in item:
                    parts.append(str(item["value"] or ""))
                else:
                    parts.append("")
            return "\n".join(parts)
        return ""

    async def get_definition(self, line: int, character: int) -> str:
        """URI of the definition location at index 1 of the server's result."""
        result = await self._query("textDocument/definition", self._common_params(line, character))
        if not isinstance(result, list) or len(result) < 2:
            return ""
        location = result[1]
        if not isinstance(location, dict):
            return ""
        return location.get("uri") or ""

    async def get_references(self, line: int, character: int) -> List[Dict[str, Any]]:
        """Raw location records referencing the symbol at a position."""
        params = self._common_params(line, character)
        params["context"] = {"includeDeclaration": True}
        result = await self._query("textDocument/references", params)
        if not isinstance(result, list):
            return []
        return result

    # -- teardown --

    async def dispose(self) -> None:
        """Fail pending requests, release the transport and close the bus."""
        if self._state is SessionState.DISPOSED:
            return
        self._state = SessionState.DISPOSED
        log.info("disposing LSP session", {"path": self.file_path, "pending": len(self._pending_requests)})

        self._fail_pending("session disposed")
        self._documents.clear()

        await asyncio.to_thread(self.transport.close)

        if self._reader_task:
            self._reader_task.cancel()
            try:
                await asyncio.wait_for(self._reader_task, timeout=1.0)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                pass

        for task in list(self._background):
            task.cancel()
        self._writer.shutdown(wait=False)
        self.notifications.close()
