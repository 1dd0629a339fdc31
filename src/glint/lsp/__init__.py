"""Language Server Protocol client.

Example:
    from glint.lsp import LSPSession, StdioTransport

    session = LSPSession(StdioTransport(["pyright-langserver", "--stdio"]), "src/main.py")
    await session.initialize()
    await session.open_document()
    hover = await session.get_hover(line=10, character=5)
    await session.dispose()
"""

from .client import LSPSession, ServerNotification, ServerNotificationProps, SessionState, path_to_uri
from .completion import CompletionItem, CompletionParams, CompletionRegistry
from .errors import InitializationFailedError, LSPError, TransportClosedError, UnsupportedOperationError
from .language import LANGUAGE_EXTENSIONS, language_for_path
from .transport import SocketTransport, StdioTransport, Transport
from .types import CompletionItemKind, DocumentHandle, LSPCompletion, LSPDiagnostic

__all__ = [
    "LSPSession",
    "SessionState",
    "ServerNotification",
    "ServerNotificationProps",
    "path_to_uri",
    "CompletionItem",
    "CompletionParams",
    "CompletionRegistry",
    "LSPError",
    "InitializationFailedError",
    "TransportClosedError",
    "UnsupportedOperationError",
    "LANGUAGE_EXTENSIONS",
    "language_for_path",
    "Transport",
    "StdioTransport",
    "SocketTransport",
    "CompletionItemKind",
    "DocumentHandle",
    "LSPCompletion",
    "LSPDiagnostic",
]
