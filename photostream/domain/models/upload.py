"""Domain models for the batch upload workflow.

Includes the `UploadTask` entity with its status lifecycle, the `SourceFile`
value describing a local file, and the aggregate `UploadState` snapshot.
"""

import uuid
from enum import Enum
from typing import List, Optional
from dataclasses import dataclass, field

from photostream.domain.models.common import TaskId, FilePath
from photostream.domain.models.asset import Asset

MAX_RETRIES = 3
MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
ALLOWED_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})


class UploadStatus(str, Enum):
    """Lifecycle of an upload task."""
    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class SourceFile:
    """A local file offered for upload."""
    name: str
    size: int
    mime_type: str
    path: Optional[FilePath] = None  # Local preview reference


@dataclass(frozen=True)
class IntakeRejection:
    """A file refused at intake, with the reason naming the file."""
    file_name: str
    reason: str


@dataclass
class UploadTask:
    """Entity tracking the upload of one accepted file."""
    source: SourceFile
    task_id: TaskId = field(default_factory=lambda: TaskId(uuid.uuid4().hex))
    status: UploadStatus = UploadStatus.PENDING
    progress: int = 0
    retry_count: int = 0
    error: Optional[str] = None
    asset: Optional[Asset] = None

    @property
    def preview(self) -> Optional[FilePath]:
        return self.source.path

    def can_retry(self) -> bool:
        """True if the task failed and still has manual retries left."""
        return self.status == UploadStatus.ERROR and self.retry_count < MAX_RETRIES


@dataclass
class UploadState:
    """Snapshot of the orchestrator observed by callers."""
    tasks: List[UploadTask]
    overall_progress: float = 0.0

    @property
    def total(self) -> int:
        return len(self.tasks)

    @property
    def completed(self) -> int:
        return sum(1 for t in self.tasks if t.status == UploadStatus.COMPLETED)

    @property
    def in_progress(self) -> int:
        return sum(1 for t in self.tasks if t.status == UploadStatus.UPLOADING)

    @property
    def pending(self) -> int:
        return sum(1 for t in self.tasks if t.status == UploadStatus.PENDING)

    @property
    def errors(self) -> int:
        return sum(1 for t in self.tasks if t.status == UploadStatus.ERROR)

    def summary(self) -> dict:
        return {
            "total": self.total,
            "completed": self.completed,
            "in_progress": self.in_progress,
            "pending": self.pending,
            "errors": self.errors,
            "overall_progress": self.overall_progress,
        }
