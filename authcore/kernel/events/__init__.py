"""
Audit trail for identity lifecycle events.
"""

from authcore.kernel.events.event_store import EventStore

__all__ = ["EventStore"]
