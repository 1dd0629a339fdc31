"""Value types exchanged between the LSP session and the editor."""

from enum import IntEnum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class CompletionItemKind(IntEnum):
    """Completion item kinds with their protocol values."""
    TEXT = 1
    METHOD = 2
    FUNCTION = 3
    CONSTRUCTOR = 4
    FIELD = 5
    VARIABLE = 6
    CLASS = 7
    INTERFACE = 8
    MODULE = 9
    PROPERTY = 10
    UNIT = 11
    VALUE = 12
    ENUM = 13
    KEYWORD = 14
    SNIPPET = 15
    COLOR = 16
    FILE = 17
    REFERENCE = 18
    FOLDER = 19
    ENUM_MEMBER = 20
    CONSTANT = 21
    STRUCT = 22
    EVENT = 23
    OPERATOR = 24
    TYPE_PARAMETER = 25

    @classmethod
    def classify(cls, value: Any) -> "CompletionItemKind":
        """Map a server-reported kind to a member, defaulting to TEXT."""
        if isinstance(value, bool) or not isinstance(value, int):
            return cls.TEXT
        try:
            return cls(value)
        except ValueError:
            return cls.TEXT


class DiagnosticSeverity(IntEnum):
    ERROR = 1
    WARNING = 2
    INFORMATION = 3
    HINT = 4


class LSPCompletion(BaseModel):
    """A completion suggestion: the label shown and its classified kind."""
    label: str
    kind: CompletionItemKind = CompletionItemKind.TEXT


class LSPDiagnostic(BaseModel):
    """Diagnostic pushed by the server for the open document.

    Attributes:
        range: Location as ``{"start": {line, character}, "end": {...}}``
        message: Diagnostic message
        severity: 1=Error, 2=Warning, 3=Information, 4=Hint
        source: Producer of the diagnostic (e.g. "pyright")
        code: Optional diagnostic code
    """
    range: Dict[str, Any]
    message: str
    severity: int = DiagnosticSeverity.ERROR
    source: Optional[str] = None
    code: Optional[Any] = None


class DocumentHandle(BaseModel):
    """Bookkeeping for the document a session is bound to."""
    path: str
    uri: str
    language_id: str
    workspace_root: str
    version: int = 0
    is_open: bool = False
