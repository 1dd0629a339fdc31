"""Errors raised by LSP sessions and transports."""

from typing import Any, Optional


class LSPError(Exception):
    """Base class for LSP session failures."""


class InitializationFailedError(LSPError):
    """The server answered ``initialize`` with an error; the session is unusable."""

    def __init__(self, error: Any):
        self.error = error
        message = error.get("message") if isinstance(error, dict) else None
        super().__init__(f"Initialization failed: {message or error}")


class TransportClosedError(LSPError):
    """The byte channel to the server has ended, errored, or was disposed."""

    def __init__(self, reason: str = "transport closed", cause: Optional[BaseException] = None):
        self.reason = reason
        self.cause = cause
        super().__init__(reason)


class UnsupportedOperationError(LSPError):
    """The host platform lacks a primitive the caller asked for."""
