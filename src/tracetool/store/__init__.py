"""SQLite event store adapter."""

from tracetool.store.event_store import EventSchema, EventStore, build_criteria

__all__ = ["EventSchema", "EventStore", "build_criteria"]
