"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py) and delegates the work
to the application services (PhotoStorageService, UploadOrchestrator,
BatchUpdater). Errors are reported through the UserInterface and never
escape to the CLI layer.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from photostream.core.services.batch_updater import BatchUpdater
from photostream.core.services.photo_storage_service import PhotoStorageService
from photostream.core.services.upload_orchestrator import UploadOrchestrator
from photostream.domain.errors import MaxRetriesExceededError, RateLimitExceededError, ValidationError
from photostream.domain.interfaces.file_system import FileSystem
from photostream.domain.interfaces.user_interface import UserInterface
from photostream.domain.models.batch import (
    BatchOptions, BatchRequest, DeleteRequest, MetadataUpdate,
)
from photostream.domain.models.common import AssetId, ClientIdentifier, CollectionId, FilePath, OwnerId
from photostream.domain.models.upload import MAX_RETRIES, UploadStatus
from photostream.infrastructure.monitoring.error_tracking import capture_error
from photostream.infrastructure.resilience.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[OwnerId, CollectionId, List[str]], UploadOrchestrator]


def parse_batch_file(content: str, dry_run: Optional[bool] = None) -> BatchRequest:
    """Parses a batch request JSON document.

    Accepts either a bare list of operations or {'operations': [...], 'options': {...}}.
    """
    try:
        data = json.loads(content)
    except ValueError as e:
        raise ValidationError(f"Batch file is not valid JSON: {e}") from e
    if isinstance(data, list):
        data = {"operations": data}
    if not isinstance(data, dict):
        raise ValidationError("Batch file must contain a list or an object with 'operations'")

    operations = []
    for raw in data.get("operations") or []:
        if not isinstance(raw, dict):
            raise ValidationError("Each operation must be an object")
        operations.append(MetadataUpdate(
            asset_id=AssetId(raw.get("publicId") or raw.get("public_id") or ""),
            tags=list(raw.get("tags") or []),
            description=raw.get("description"),
            context=raw.get("context"),
            metadata=raw.get("metadata"),
        ))
    raw_options = data.get("options") or {}
    options = BatchOptions(
        dry_run=bool(raw_options.get("dryRun", raw_options.get("dry_run", False))),
        batch_size=int(raw_options.get("batchSize", raw_options.get("batch_size", BatchOptions.batch_size))),
        delay_between_batches_ms=int(raw_options.get(
            "delayBetweenBatches", raw_options.get("delay_between_batches_ms", BatchOptions.delay_between_batches_ms)
        )),
    )
    if dry_run is not None:
        options.dry_run = dry_run
    return BatchRequest(operations=operations, options=options)


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        photo_storage: PhotoStorageService,
        batch_updater: BatchUpdater,
        orchestrator_factory: OrchestratorFactory,
        file_system: FileSystem,
        ui: UserInterface,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """Initializes the CommandHandler with required services."""
        self.photo_storage = photo_storage
        self.batch_updater = batch_updater
        self.orchestrator_factory = orchestrator_factory
        self.file_system = file_system
        self.ui = ui
        self.rate_limiter = rate_limiter

    def _fail(self, action: str, error: Exception, **context: Any) -> None:
        capture_error(error, {"command": action, **context})
        self.ui.display_error(f"{action} failed: {error}")

    async def handle_upload(
        self,
        paths: List[str],
        owner_id: str,
        collection_id: str,
        tags: Optional[List[str]] = None,
        auto_retry: bool = False,
    ) -> Dict[str, Any]:
        """Handles the 'upload' command."""
        logger.info(f"Handling 'upload' of {len(paths)} files for user={owner_id} game={collection_id}")
        try:
            if self.rate_limiter is not None:
                await self.rate_limiter.enforce(ClientIdentifier(f"user:{owner_id}"), "UPLOAD")
            orchestrator = self.orchestrator_factory(OwnerId(owner_id), CollectionId(collection_id), list(tags or []))
            rejections = orchestrator.add_paths([FilePath(p) for p in paths])
            state = orchestrator.get_state()
            if not state.tasks:
                self.ui.display_upload_state(state, rejections)
                self.ui.display_error("No valid image files to upload.")
                return state.summary()

            self.ui.display_info(f"Uploading {state.total} file(s) to photos/{owner_id}/{collection_id}...")
            state = await orchestrator.start_upload()

            if auto_retry:
                for task in state.tasks:
                    while task.status == UploadStatus.ERROR and task.retry_count < MAX_RETRIES:
                        self.ui.display_warning(f"Retrying {task.source.name} ({task.retry_count + 1}/{MAX_RETRIES})")
                        await orchestrator.retry(task.task_id)
                state = orchestrator.get_state()

            self.ui.display_upload_state(state, rejections)
            uploaded = orchestrator.complete()
            if uploaded:
                self.ui.display_info(f"{len(uploaded)} photo(s) uploaded successfully.")
            return state.summary()
        except (MaxRetriesExceededError, RateLimitExceededError) as e:
            self.ui.display_error(str(e))
        except Exception as e:
            self._fail("Upload", e, owner_id=owner_id, collection_id=collection_id)
        return {}

    async def handle_list(
        self, owner_id: str, collection_id: str, max_results: int = 50, refresh: bool = False
    ) -> None:
        """Handles the 'list' command."""
        logger.info(f"Handling 'list' for user={owner_id} game={collection_id}")
        try:
            page = await self.photo_storage.fetch_photos_by_folder(
                OwnerId(owner_id), CollectionId(collection_id), max_results=max_results, force_refresh=refresh
            )
            self.ui.display_assets(page["photos"], title=f"Photos of {owner_id} / game {collection_id}")
            if page.get("next_cursor"):
                self.ui.display_info(f"More photos available (cursor: {page['next_cursor']})")
        except Exception as e:
            self._fail("List", e, owner_id=owner_id, collection_id=collection_id)

    async def handle_search(
        self,
        owner_id: str,
        collection_id: str,
        query: Optional[str] = None,
        tags: Optional[List[str]] = None,
        format: Optional[str] = None,
    ) -> None:
        try:
            results = await self.photo_storage.search_photos(
                OwnerId(owner_id), CollectionId(collection_id), query=query, tags=tags, format=format
            )
            self.ui.display_assets(results, title=f"Search results ({len(results)})")
        except Exception as e:
            self._fail("Search", e, owner_id=owner_id, collection_id=collection_id)

    async def handle_update(self, asset_id: str, tags: List[str], description: Optional[str] = None) -> None:
        """Handles the 'update' command."""
        logger.info(f"Handling 'update' for {asset_id}")
        try:
            asset = await self.photo_storage.update_metadata(
                MetadataUpdate(asset_id=AssetId(asset_id), tags=tags, description=description)
            )
            self.ui.display_info(f"Updated {asset.asset_id}: tags={', '.join(asset.tags) or '-'}")
        except Exception as e:
            self._fail("Update", e, asset_id=asset_id)

    async def handle_delete(self, asset_ids: List[str]) -> None:
        """Handles the 'delete' command for one or more assets."""
        logger.info(f"Handling 'delete' for {len(asset_ids)} assets")
        try:
            if len(asset_ids) == 1:
                await self.photo_storage.delete(DeleteRequest(asset_id=AssetId(asset_ids[0])))
                self.ui.display_info(f"Deleted {asset_ids[0]}")
                return
            result = await self.photo_storage.batch_delete([AssetId(a) for a in asset_ids])
            self.ui.display_info(f"Deleted {len(result['successful'])} of {len(asset_ids)} photos.")
            for failure in result["failed"]:
                self.ui.display_error(f"Failed to delete {failure['asset_id']}: {failure['error']}")
        except Exception as e:
            self._fail("Delete", e, asset_ids=asset_ids)

    async def handle_batch_update(self, batch_file: str, dry_run: Optional[bool] = None) -> None:
        """Handles the 'batch-update' command reading a JSON request file."""
        logger.info(f"Handling 'batch-update' from {batch_file}")
        try:
            content = await self.file_system.read_text(FilePath(batch_file))
            request = parse_batch_file(content, dry_run=dry_run)
            result = await self.batch_updater.batch_update(request)
            self.ui.display_batch_result(result)
        except Exception as e:
            self._fail("Batch update", e, batch_file=batch_file)

    async def handle_stats(self, owner_id: str, collection_id: str) -> None:
        try:
            stats = await self.photo_storage.get_photo_stats(OwnerId(owner_id), CollectionId(collection_id))
            self.ui.display_stats(stats, title=f"Photo statistics for {owner_id} / game {collection_id}")
        except Exception as e:
            self._fail("Stats", e, owner_id=owner_id, collection_id=collection_id)

    async def handle_clear_cache(self) -> None:
        """Handles the 'clear-cache' command."""
        try:
            await self.photo_storage.clear_all_cache()
            self.ui.display_info("Cache cleared successfully.")
        except Exception as e:
            self._fail("Clear cache", e)
