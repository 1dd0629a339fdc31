"""Error formatting for user-facing output."""

import json
import traceback
from typing import Any

from ..core.config import ConfigError
from ..lsp.errors import InitializationFailedError, TransportClosedError, UnsupportedOperationError


def format_error(error: Any) -> str | None:
    """Format known Glint errors into short messages.

    Returns None for unrecognized errors so callers can fall back to
    format_unknown_error.
    """
    if isinstance(error, InitializationFailedError):
        return f"Language server rejected initialization: {error.error}"
    if isinstance(error, TransportClosedError):
        return f"Language server connection closed ({error.reason})"
    if isinstance(error, UnsupportedOperationError):
        return f"Unsupported on this platform: {error}"
    if isinstance(error, ConfigError):
        return str(error)
    return None


def format_unknown_error(error: Any) -> str:
    """Format any error into a string representation."""
    if isinstance(error, Exception):
        if error.__traceback__:
            return "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return f"{error.__class__.__name__}: {error}"

    if isinstance(error, (dict, list)):
        try:
            return json.dumps(error, indent=2)
        except (TypeError, ValueError):
            return "Unexpected error (unserializable)"

    return str(error)
