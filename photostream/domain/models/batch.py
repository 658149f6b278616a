"""Domain models for batch metadata updates.

A `BatchRequest` holds 1..100 `MetadataUpdate` operations plus `BatchOptions`;
processing it yields a `BatchOperationResult` with one `OperationOutcome` per
operation.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from photostream.domain.models.common import AssetId
from photostream.domain.models.asset import dedupe_tags

MAX_OPERATIONS_PER_BATCH = 100
DEFAULT_BATCH_SIZE = 10
DEFAULT_DELAY_BETWEEN_BATCHES_MS = 100


@dataclass
class MetadataUpdate:
    """A tag/caption change for one asset."""
    asset_id: AssetId
    tags: List[str] = field(default_factory=list)
    description: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None

    def changes(self) -> Dict[str, Any]:
        """The changes this operation applies, as echoed in results."""
        return {
            "tags": list(self.tags),
            "description": self.description,
            "context": self.context,
            "metadata": self.metadata,
        }

    def remote_params(self) -> Dict[str, Any]:
        """Keyword arguments for `MediaStore.update`.

        Tags are sent only when non-empty; the description is merged into
        `context.custom.description`.
        """
        params: Dict[str, Any] = {}
        if self.tags:
            params["tags"] = dedupe_tags(self.tags)
        context = dict(self.context or {})
        if self.description is not None:
            custom = dict(context.get("custom") or {})
            custom["description"] = self.description
            context["custom"] = custom
        if context:
            params["context"] = context
        if self.metadata:
            params["metadata"] = dict(self.metadata)
        return params


@dataclass
class DeleteRequest:
    """Removal of one asset from the media store."""
    asset_id: AssetId
    invalidate_cdn: bool = True


@dataclass
class BatchOptions:
    dry_run: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    delay_between_batches_ms: int = DEFAULT_DELAY_BETWEEN_BATCHES_MS


@dataclass
class BatchRequest:
    operations: List[MetadataUpdate]
    options: BatchOptions = field(default_factory=BatchOptions)


@dataclass
class OperationOutcome:
    """Result of a single operation within a batch."""
    asset_id: AssetId
    success: bool
    error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"asset_id": self.asset_id, "success": self.success}
        if self.success:
            data["details"] = self.details
        else:
            data["error"] = self.error
        return data


@dataclass
class BatchOperationResult:
    """Aggregated report of a processed batch.

    Partial or total per-item failure is a normal result; `success` is True
    only when no operation failed.
    """
    successful: List[OperationOutcome]
    failed: List[OperationOutcome]
    processing_time_ms: float
    batch_count: int
    dry_run: bool = False

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def success_rate(self) -> float:
        if not self.total:
            return 0.0
        return round(len(self.successful) / self.total * 100, 2)

    @property
    def average_time_per_operation_ms(self) -> float:
        if not self.total:
            return 0.0
        return round(self.processing_time_ms / self.total, 2)

    @property
    def message(self) -> str:
        prefix = "Dry run: " if self.dry_run else ""
        if self.success:
            return f"{prefix}All {self.total} operations completed successfully"
        return f"{prefix}{len(self.successful)} of {self.total} operations succeeded, {len(self.failed)} failed"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation returned by the batch endpoint."""
        return {
            "success": self.success,
            "message": self.message,
            "results": {
                "successful": [o.to_dict() for o in self.successful],
                "failed": [o.to_dict() for o in self.failed],
                "total": self.total,
                "summary": {
                    "total_processed": self.total,
                    "total_successful": len(self.successful),
                    "total_failed": len(self.failed),
                    "success_rate": self.success_rate,
                },
            },
            "metadata": {
                "processing_time_ms": round(self.processing_time_ms, 2),
                "average_time_per_operation_ms": self.average_time_per_operation_ms,
                "batch_count": self.batch_count,
            },
        }
