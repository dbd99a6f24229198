from .database import SQLiteCacheDB
from .gateway import (
    PROFILE_POLICY,
    TRANSCRIPT_POLICY,
    FallbackPolicy,
    PersistenceError,
    PersistenceGateway,
    TierOutcome,
)
from .local_cache import LocalCache, profile_key, transcript_key
from .records import Citation, Message, Profile, message_ids
from .remote_store import HttpDocumentStore, RemoteDocumentStore, RemoteStoreError, UnconfiguredDocumentStore

__all__ = [
    "PROFILE_POLICY",
    "TRANSCRIPT_POLICY",
    "Citation",
    "FallbackPolicy",
    "HttpDocumentStore",
    "LocalCache",
    "Message",
    "PersistenceError",
    "PersistenceGateway",
    "Profile",
    "RemoteDocumentStore",
    "RemoteStoreError",
    "SQLiteCacheDB",
    "TierOutcome",
    "UnconfiguredDocumentStore",
    "message_ids",
    "profile_key",
    "transcript_key",
]
