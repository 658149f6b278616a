"""Defines common Value Objects used across different domain contexts.

These objects represent simple values like asset identifiers, owner and
collection identifiers, cache keys and upload task ids, ensuring consistency
and type safety.
"""

from typing import NewType, Dict, Any, TypedDict, Optional

# === Core Value Objects ===

# Using NewType for semantic clarity, although they are strings at runtime.
AssetId = NewType("AssetId", str)            # Public id of an asset in the media store
OwnerId = NewType("OwnerId", str)            # User who owns an asset
CollectionId = NewType("CollectionId", str)  # "Game number" grouping assets of one owner
FolderPath = NewType("FolderPath", str)      # Remote folder, e.g. photos/{owner}/{collection}
FilePath = NewType("FilePath", str)          # Local path to a source file

# === Upload Context ===
TaskId = NewType("TaskId", str)              # Generated id of an upload task
SessionKey = NewType("SessionKey", str)      # Key of the session-scoped asset list

# === Caching Context ===
CacheKey = NewType("CacheKey", str)          # Unique key for a cache entry
OperationName = NewType("OperationName", str)  # Name of a cached operation, e.g. 'fetchPhotosByFolder'

# === Rate Limiting Context ===
ClientIdentifier = NewType("ClientIdentifier", str)  # e.g. 'ip:203.0.113.7'
RateLimitPurpose = NewType("RateLimitPurpose", str)  # e.g. 'BATCH', 'UPDATE'

# === Remote Payloads ===
RemoteResource = NewType("RemoteResource", Dict[str, Any])  # Raw resource dict returned by the media store


class BackoffPolicy(TypedDict, total=False):
    """Retry/backoff settings for a remote operation."""
    max_retries: int
    retry_delay_s: float
    max_jitter_s: float


class RateLimitRule(TypedDict):
    """A limit applied to one rate-limit purpose."""
    limit: int
    window_ms: int


def folder_for(owner_id: OwnerId, collection_id: CollectionId) -> FolderPath:
    """Returns the remote folder holding an owner's collection."""
    return FolderPath(f"photos/{owner_id}/{collection_id}")


def scope_for(owner_id: Optional[str], collection_id: Optional[str]) -> str:
    """Returns the invalidation scope used for folder listings."""
    return f"folder:{owner_id or ''}/{collection_id or ''}"
