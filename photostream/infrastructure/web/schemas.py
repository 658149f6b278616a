"""Request schemas for the HTTP API.

Field names follow the JSON bodies the web client sends (camelCase), and
snake_case names are accepted as well.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from photostream.domain.models.batch import (
    BatchOptions, BatchRequest, MetadataUpdate,
    DEFAULT_BATCH_SIZE, DEFAULT_DELAY_BETWEEN_BATCHES_MS,
)
from photostream.domain.models.common import AssetId


class BatchOperationIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    public_id: Optional[str] = Field(default=None, alias="publicId")
    tags: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_domain(self) -> MetadataUpdate:
        return MetadataUpdate(
            asset_id=AssetId(self.public_id or ""),
            tags=list(self.tags),
            description=self.description,
            context=self.context,
            metadata=self.metadata,
        )


class BatchOptionsIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dry_run: bool = Field(default=False, alias="dryRun")
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, alias="batchSize")
    delay_between_batches: int = Field(default=DEFAULT_DELAY_BETWEEN_BATCHES_MS, alias="delayBetweenBatches")


class BatchRequestIn(BaseModel):
    operations: List[BatchOperationIn] = Field(default_factory=list)
    options: BatchOptionsIn = Field(default_factory=BatchOptionsIn)

    def to_domain(self) -> BatchRequest:
        return BatchRequest(
            operations=[op.to_domain() for op in self.operations],
            options=BatchOptions(
                dry_run=self.options.dry_run,
                batch_size=self.options.batch_size,
                delay_between_batches_ms=self.options.delay_between_batches,
            ),
        )


class UpdateRequestIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    public_id: Optional[str] = Field(default=None, alias="publicId")
    tags: Any = None
    description: Optional[str] = None


class DeleteRequestIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    public_id: Optional[str] = Field(default=None, alias="publicId")
