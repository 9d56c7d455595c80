"""
Store adapters - relational records and attachment blobs.
"""

from .objects import HTTPObjectStore, LocalObjectStore, ObjectStore
from .records import RecordStore, SQLRecordStore

__all__ = [
    "RecordStore",
    "SQLRecordStore",
    "ObjectStore",
    "LocalObjectStore",
    "HTTPObjectStore",
]
