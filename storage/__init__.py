"""
Storage package for documents and their extracted tables.
"""

from storage.table_store import InMemoryTableStore, JsonFileTableStore, TableStore

__all__ = ["InMemoryTableStore", "JsonFileTableStore", "TableStore"]
