"""Persistence for personas, memories, thoughts, and entry history"""

from innerparts.storage.sqlite_store import SQLitePartStore

__all__ = ["SQLitePartStore"]
