"""Core service wrapping media store access with caching and retries.

Read paths are cached under an order-independent key built from the
operation name and its parameters. Every remote call goes through the retry
service. Writes invalidate the cache entries that depend on the written
asset before the write's result is returned.
"""

import asyncio
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from photostream.domain.errors import ValidationError
from photostream.domain.events.api_events import CacheInvalidated, dispatch_event
from photostream.domain.interfaces.cache import CacheService
from photostream.domain.interfaces.media_store import MediaStore
from photostream.domain.interfaces.session_store import SessionStore
from photostream.domain.models.asset import Asset
from photostream.domain.models.batch import DeleteRequest, MetadataUpdate
from photostream.domain.models.common import AssetId, CollectionId, OwnerId, folder_for, scope_for
from photostream.infrastructure.cache.caching_service import build_cache_key
from photostream.infrastructure.resilience.api_retry import ApiRetryService

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_S = 5 * 60
DEFAULT_MAX_RESULTS = 50
DEFAULT_DELETE_BATCH_SIZE = 50

DependsOn = Union[Iterable[str], Callable[[Any], Iterable[str]], None]


def _photo_ids(page: Dict[str, Any]) -> List[str]:
    return [p.asset_id for p in page.get("photos", [])]


class PhotoStorageService:
    """Cache+retry facade over the media store."""

    def __init__(
        self,
        media_store: MediaStore,
        cache_service: CacheService,
        retry_service: ApiRetryService,
        session_store: Optional[SessionStore] = None,
        default_ttl: float = DEFAULT_CACHE_TTL_S,
    ):
        """Initializes the PhotoStorageService with its dependencies."""
        self.media_store = media_store
        self.cache_service = cache_service
        self.retry_service = retry_service
        self.session_store = session_store
        self.default_ttl = default_ttl
        logger.info(f"PhotoStorageService initialized (ttl={default_ttl}s, store={type(media_store).__name__})")

    # --- Generic execution ---

    async def execute(
        self,
        operation: str,
        params: Mapping[str, Any],
        fn: Callable[[], Awaitable[Any]],
        cacheable: bool = False,
        ttl: Optional[float] = None,
        depends_on: DependsOn = None,
        force_refresh: bool = False,
    ) -> Any:
        """Runs `fn` through retry, serving and filling the cache for reads.

        Args:
            operation: Operation name, first part of the cache key.
            params: Parameters identifying the call.
            fn: Zero-argument coroutine function performing the remote call.
            cacheable: Whether the result may be served from / stored in cache.
            ttl: Entry TTL in seconds (default TTL if None).
            depends_on: Resource ids the cached result depends on, or a
                callable deriving them from the result.
            force_refresh: Skip the cache lookup but still store the result.

        Returns:
            The cached or freshly fetched result.

        Raises:
            MaxRetryError: When every attempt failed.
        """
        key = build_cache_key(operation, params)
        if cacheable and not force_refresh:
            cached = await self.cache_service.get(key)
            if cached is not None:
                logger.debug(f"Serving {operation} from cache")
                return cached

        result = await self.retry_service.execute_with_retry(fn, operation_name=operation)

        if cacheable and result is not None:
            ids = depends_on(result) if callable(depends_on) else (depends_on or ())
            await self.cache_service.set(key, result, ttl=ttl if ttl is not None else self.default_ttl, resource_ids=ids)
        return result

    async def invalidate(self, resource_id: str) -> int:
        removed = await self.cache_service.invalidate(resource_id)
        dispatch_event(CacheInvalidated(resource_id=resource_id, keys_removed=removed))
        return removed

    # --- Read operations ---

    async def fetch_photos_by_folder(
        self,
        owner_id: OwnerId,
        collection_id: CollectionId,
        max_results: int = DEFAULT_MAX_RESULTS,
        next_cursor: Optional[str] = None,
        use_cache: bool = True,
        force_refresh: bool = False,
    ) -> Dict[str, Any]:
        """Lists the photos of one owner's collection.

        Returns:
            {'photos': List[Asset], 'next_cursor': Optional[str], 'total': int}
        """
        if not owner_id or not collection_id:
            raise ValidationError("owner_id and collection_id are required")
        folder = folder_for(owner_id, collection_id)

        async def _list() -> Dict[str, Any]:
            page = await self.media_store.list(prefix=folder, max_results=max_results, next_cursor=next_cursor)
            photos = [Asset.from_remote(r, owner_id, collection_id) for r in page.get("resources", [])]
            return {"photos": photos, "next_cursor": page.get("next_cursor"), "total": len(photos)}

        scope = scope_for(owner_id, collection_id)
        return await self.execute(
            "fetchPhotosByFolder",
            {"userId": owner_id, "gameNumber": collection_id, "maxResults": max_results, "nextCursor": next_cursor},
            _list,
            cacheable=use_cache,
            depends_on=lambda page: _photo_ids(page) + [scope],
            force_refresh=force_refresh,
        )

    async def search_photos(
        self,
        owner_id: OwnerId,
        collection_id: CollectionId,
        query: Optional[str] = None,
        tags: Optional[List[str]] = None,
        format: Optional[str] = None,
    ) -> List[Asset]:
        """Filters a collection by text (filename, description, tags), tags and format."""
        page = await self.fetch_photos_by_folder(owner_id, collection_id, max_results=500)
        results: List[Asset] = page["photos"]
        if query:
            needle = query.lower()
            results = [
                p for p in results
                if needle in p.filename.lower()
                or needle in (p.description or "").lower()
                or any(needle in t.lower() for t in p.tags)
            ]
        if tags:
            results = [p for p in results if all(t in p.tags for t in tags)]
        if format:
            results = [p for p in results if p.format.lower() == format.lower()]
        return results

    async def get_photo_stats(self, owner_id: OwnerId, collection_id: CollectionId) -> Dict[str, Any]:
        """Count, sizes, formats and tag frequencies of a collection."""
        page = await self.fetch_photos_by_folder(owner_id, collection_id, max_results=500)
        photos: List[Asset] = page["photos"]
        total_size = sum(p.bytes for p in photos)
        return {
            "total_photos": len(photos),
            "total_size": total_size,
            "average_size": round(total_size / len(photos)) if photos else 0,
            "formats": dict(Counter(p.format for p in photos if p.format)),
            "tags": dict(Counter(t for p in photos for t in p.tags)),
        }

    # --- Write operations ---

    async def update_metadata(self, request: MetadataUpdate) -> Asset:
        """Updates tags/description of one asset and invalidates dependent entries."""
        if not request.asset_id:
            raise ValidationError("publicId is required")
        params = request.remote_params()

        async def _update() -> Any:
            return await self.media_store.update(request.asset_id, **params)

        result = await self.execute("updatePhotoMetadata", {"publicId": request.asset_id}, _update)
        await self.invalidate(request.asset_id)
        return Asset.from_remote(result)

    async def delete(self, request: DeleteRequest) -> Dict[str, Any]:
        """Deletes one asset, invalidating cache and session entries for it."""
        if not request.asset_id:
            raise ValidationError("publicId is required")

        async def _destroy() -> Any:
            return await self.media_store.destroy(request.asset_id, invalidate=request.invalidate_cdn)

        result = await self.execute("deletePhoto", {"publicId": request.asset_id}, _destroy)
        await self.invalidate(request.asset_id)
        if self.session_store is not None:
            self.session_store.remove(request.asset_id)
        return result

    async def batch_delete(
        self, asset_ids: List[AssetId], batch_size: int = DEFAULT_DELETE_BATCH_SIZE
    ) -> Dict[str, List[Any]]:
        """Deletes many assets in sub-batches; failures are collected, not raised."""
        if batch_size < 1:
            raise ValidationError("batch_size must be at least 1")
        successful: List[str] = []
        failed: List[Dict[str, str]] = []
        for start in range(0, len(asset_ids), batch_size):
            chunk = asset_ids[start:start + batch_size]
            results = await asyncio.gather(
                *(self.delete(DeleteRequest(asset_id=a)) for a in chunk), return_exceptions=True
            )
            for asset_id, result in zip(chunk, results):
                if isinstance(result, BaseException) and not isinstance(result, Exception):
                    raise result
                if isinstance(result, Exception):
                    logger.warning(f"Failed to delete {asset_id}: {result}")
                    failed.append({"asset_id": asset_id, "error": str(result)})
                else:
                    successful.append(asset_id)
        return {"successful": successful, "failed": failed}

    # --- Cache management ---

    async def refresh_cache(self, owner_id: OwnerId, collection_id: CollectionId) -> Dict[str, Any]:
        """Drops cached listings of a collection and fetches it again."""
        await self.invalidate(scope_for(owner_id, collection_id))
        return await self.fetch_photos_by_folder(owner_id, collection_id, force_refresh=True)

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache_service.stats()

    async def clear_all_cache(self) -> None:
        await self.cache_service.clear()
