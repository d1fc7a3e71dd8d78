"""Store implementations."""

from mailnotifier.infrastructure.stores.json_cursor_store import JsonCursorStore

__all__ = [
    "JsonCursorStore",
]
