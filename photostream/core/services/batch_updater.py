"""Core service applying metadata updates to many assets.

Operations are validated up front, split into consecutive sub-batches, and
each sub-batch is issued concurrently on the event loop. Sub-batch N+1
starts only after every operation of sub-batch N has settled, with a pause
in between. Per-operation failures are recorded, never raised.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from photostream.domain.errors import ValidationError
from photostream.domain.events.api_events import BatchCompleted, dispatch_event
from photostream.domain.interfaces.cache import CacheService
from photostream.domain.interfaces.media_store import MediaStore
from photostream.domain.models.batch import (
    BatchOperationResult, BatchRequest, MetadataUpdate, OperationOutcome,
    MAX_OPERATIONS_PER_BATCH, DEFAULT_BATCH_SIZE, DEFAULT_DELAY_BETWEEN_BATCHES_MS,
)

logger = logging.getLogger(__name__)

DRY_RUN_MESSAGE = "Operation would be performed in production"
UPDATE_MESSAGE = "Metadata updated successfully"


def validate_batch_request(request: BatchRequest) -> None:
    """Rejects malformed batches before any remote call.

    Raises:
        ValidationError: With a human-readable reason.
    """
    operations = request.operations
    if not operations:
        raise ValidationError("operations array is required and must not be empty")
    if len(operations) > MAX_OPERATIONS_PER_BATCH:
        raise ValidationError(f"Maximum {MAX_OPERATIONS_PER_BATCH} operations allowed per batch request")
    for op in operations:
        if not op.asset_id:
            raise ValidationError("publicId is required for each operation")
    if request.options.batch_size < 1:
        raise ValidationError("batchSize must be at least 1")
    if request.options.delay_between_batches_ms < 0:
        raise ValidationError("delayBetweenBatches must not be negative")


def partition(operations: List[MetadataUpdate], batch_size: int) -> List[List[MetadataUpdate]]:
    """Splits operations into consecutive chunks of `batch_size`."""
    return [operations[i:i + batch_size] for i in range(0, len(operations), batch_size)]


class BatchUpdater:
    """Runs batch metadata updates against the media store."""

    def __init__(
        self,
        media_store: MediaStore,
        cache_service: Optional[CacheService] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """Initializes the BatchUpdater.

        Args:
            media_store: Store receiving the updates.
            cache_service: Cache whose entries for an updated asset are dropped.
            sleep: Awaitable sleep used between sub-batches.
            clock: Timer used for processing-time statistics.
        """
        self.media_store = media_store
        self.cache_service = cache_service
        self._sleep = sleep
        self._clock = clock
        logger.info("BatchUpdater initialized.")

    async def _apply(self, op: MetadataUpdate, dry_run: bool) -> OperationOutcome:
        changes = op.changes()
        if dry_run:
            return OperationOutcome(
                asset_id=op.asset_id,
                success=True,
                details={"operation": "dry_run", "message": DRY_RUN_MESSAGE, "changes": changes},
            )

        result = await self.media_store.update(op.asset_id, **op.remote_params())
        if self.cache_service is not None:
            try:
                await self.cache_service.invalidate(op.asset_id)
            except Exception as e:
                # Best-effort; a stale entry expires with its TTL
                logger.warning(f"Cache invalidation failed for {op.asset_id}: {e}")
        return OperationOutcome(
            asset_id=op.asset_id,
            success=True,
            details={"operation": "update", "message": UPDATE_MESSAGE, "changes": changes, "result": result},
        )

    async def _run_sub_batch(self, chunk: List[MetadataUpdate], dry_run: bool) -> List[OperationOutcome]:
        results = await asyncio.gather(*(self._apply(op, dry_run) for op in chunk), return_exceptions=True)
        outcomes = []
        for op, result in zip(chunk, results):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"Batch operation failed for {op.asset_id}: {type(result).__name__}: {result}")
                outcomes.append(OperationOutcome(asset_id=op.asset_id, success=False, error=str(result) or type(result).__name__))
            else:
                outcomes.append(result)
        return outcomes

    async def batch_update(self, request: BatchRequest) -> BatchOperationResult:
        """Validates and processes a batch request.

        Args:
            request: 1..100 operations plus dry-run, batch size and delay options.

        Returns:
            The aggregated result. Partial or total per-item failure is
            reported in the result, not raised.

        Raises:
            ValidationError: If the request is malformed.
        """
        validate_batch_request(request)
        options = request.options
        chunks = partition(request.operations, options.batch_size)
        logger.info(
            f"Processing batch of {len(request.operations)} operations in {len(chunks)} sub-batches "
            f"(size={options.batch_size}, delay={options.delay_between_batches_ms}ms, dry_run={options.dry_run})"
        )

        start = self._clock()
        successful: List[OperationOutcome] = []
        failed: List[OperationOutcome] = []
        for index, chunk in enumerate(chunks):
            for outcome in await self._run_sub_batch(chunk, options.dry_run):
                (successful if outcome.success else failed).append(outcome)
            if index < len(chunks) - 1 and options.delay_between_batches_ms > 0:
                await self._sleep(options.delay_between_batches_ms / 1000)
        elapsed_ms = (self._clock() - start) * 1000

        result = BatchOperationResult(
            successful=successful,
            failed=failed,
            processing_time_ms=elapsed_ms,
            batch_count=len(chunks),
            dry_run=options.dry_run,
        )
        dispatch_event(BatchCompleted(total=result.total, succeeded=len(successful), failed=len(failed), dry_run=options.dry_run))
        logger.info(f"Batch finished: {len(successful)} succeeded, {len(failed)} failed in {elapsed_ms:.0f}ms")
        return result

    def status(self) -> Dict[str, Any]:
        """Describes the limits and options accepted by `batch_update`."""
        return {
            "status": "operational",
            "limits": {
                "max_operations_per_batch": MAX_OPERATIONS_PER_BATCH,
                "default_batch_size": DEFAULT_BATCH_SIZE,
                "default_delay_between_batches_ms": DEFAULT_DELAY_BETWEEN_BATCHES_MS,
            },
            "supported_operations": ["update_tags", "update_description", "update_context", "update_metadata"],
            "options": ["dry_run", "batch_size", "delay_between_batches_ms"],
        }
