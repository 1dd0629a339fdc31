"""Core infrastructure modules."""

from .global_paths import GlobalPath
from .bus import Bus, BusEvent, EventPayload

__all__ = ["GlobalPath", "Bus", "BusEvent", "EventPayload"]

# Log is exported from util to avoid circular imports:
# from glint.util.log import Log
