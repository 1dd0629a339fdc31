"""Host platform capabilities needed by the LSP handshake and transports."""

import os
import sys

# Sent as ``processId`` when the host has no process semantics.
NO_PROCESS_ID = -1

_NO_PROCESS_PLATFORMS = {"emscripten", "wasi"}


def process_id() -> int:
    """Return the current process id, or ``NO_PROCESS_ID`` when unavailable."""
    if sys.platform in _NO_PROCESS_PLATFORMS:
        return NO_PROCESS_ID
    try:
        return os.getpid()
    except (AttributeError, OSError):
        return NO_PROCESS_ID


def stdio_supported() -> bool:
    """Whether language servers can be spawned as child processes."""
    return sys.platform not in _NO_PROCESS_PLATFORMS and process_id() != NO_PROCESS_ID
