"""
Keyword synchronization: secure local storage, remote keyword fetching and
the reconciler that keeps both consistent with the in-memory set.
"""

from tagsync.keywords.errors import (
    DecodeError,
    KeywordSyncError,
    NetworkError,
    StorageError,
)
from tagsync.keywords.gateway import (
    HttpKeywordGateway,
    KeywordGateway,
    parse_keywords_payload,
)
from tagsync.keywords.reconciler import TagReconciler
from tagsync.keywords.store import (
    EncryptedFileKeywordStore,
    KeywordStore,
    MemoryKeywordStore,
)

__all__ = [
    "DecodeError",
    "EncryptedFileKeywordStore",
    "HttpKeywordGateway",
    "KeywordGateway",
    "KeywordStore",
    "KeywordSyncError",
    "MemoryKeywordStore",
    "NetworkError",
    "StorageError",
    "TagReconciler",
    "parse_keywords_payload",
]
