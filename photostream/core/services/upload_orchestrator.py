"""Core service driving a batch of photo uploads.

Files are validated at intake; accepted files become `pending` tasks. A run
uploads every pending task strictly one at a time in submission order, so a
single failure never aborts the batch. Failed tasks can be retried manually
up to MAX_RETRIES times. Uploaded assets are appended to the session store
and handed to the completion callback only when the caller asks for it.
"""

import asyncio
import logging
import random
from datetime import date
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from photostream.domain.errors import MaxRetriesExceededError, NotFoundError, ValidationError
from photostream.domain.events.api_events import UploadTaskSettled, dispatch_event
from photostream.domain.interfaces.file_system import FileSystem
from photostream.domain.interfaces.media_store import MediaStore
from photostream.domain.interfaces.session_store import SessionStore
from photostream.domain.models.asset import Asset
from photostream.domain.models.common import CollectionId, FilePath, OwnerId, TaskId, folder_for
from photostream.domain.models.upload import (
    ALLOWED_MIME_TYPES, MAX_FILE_SIZE, MAX_RETRIES,
    IntakeRejection, SourceFile, UploadState, UploadStatus, UploadTask,
)

logger = logging.getLogger(__name__)

PROGRESS_CAP = 90
PROGRESS_INTERVAL_S = 0.2
MAX_PROGRESS_STEP = 30


def generate_auto_tags(source: SourceFile, owner_id: str, collection_id: str, today: Optional[date] = None) -> List[str]:
    """Tags describing owner, collection, format, size and upload date."""
    today = today or date.today()
    subtype = source.mime_type.split("/")[-1]
    tags = [
        f"user:{owner_id}",
        f"game:{collection_id}",
        f"format:{subtype}",
        f"size:{round(source.size / 1024)}kb",
        f"uploaded:{today.isoformat()}",
    ]
    if source.mime_type.startswith("image/"):
        tags.append("type:image")
    if source.size < 1024 * 1024:
        tags.append("size:small")
    elif source.size < 5 * 1024 * 1024:
        tags.append("size:medium")
    else:
        tags.append("size:large")
    return tags


class UploadOrchestrator:
    """Tracks upload tasks for one owner's collection."""

    def __init__(
        self,
        media_store: MediaStore,
        file_system: FileSystem,
        owner_id: OwnerId,
        collection_id: CollectionId,
        session_store: Optional[SessionStore] = None,
        extra_tags: Optional[List[str]] = None,
        max_file_size: int = MAX_FILE_SIZE,
        allowed_mime_types: Iterable[str] = ALLOWED_MIME_TYPES,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        progress_interval_s: float = PROGRESS_INTERVAL_S,
        progress_step: Optional[Callable[[], float]] = None,
    ):
        """Initializes the orchestrator.

        Args:
            media_store: Store receiving the uploads.
            file_system: Reader for local source files.
            owner_id: Owner of the uploaded photos.
            collection_id: Collection ("game number") of the uploaded photos.
            session_store: Optional session list receiving uploaded assets.
            extra_tags: Tags added to every upload besides the automatic ones.
            max_file_size: Intake size cap in bytes.
            allowed_mime_types: Accepted MIME types.
            sleep: Awaitable sleep used by the progress ticker.
            progress_interval_s: Seconds between progress ticks.
            progress_step: Returns the next progress increment.
        """
        if not owner_id or not collection_id:
            raise ValueError("owner_id and collection_id are required")
        self.media_store = media_store
        self.file_system = file_system
        self.owner_id = owner_id
        self.collection_id = collection_id
        self.session_store = session_store
        self.extra_tags = list(extra_tags or [])
        self.max_file_size = max_file_size
        self.allowed_mime_types = frozenset(allowed_mime_types)
        self._sleep = sleep
        self.progress_interval_s = progress_interval_s
        self._progress_step = progress_step or (lambda: random.uniform(0, MAX_PROGRESS_STEP))

        self.tasks: List[UploadTask] = []
        self.uploaded: List[Asset] = []
        self.overall_progress: float = 0.0
        self._listeners: List[Callable[[UploadState], None]] = []
        self._on_complete: Optional[Callable[[List[Asset]], Any]] = None
        self._running = False
        logger.info(f"UploadOrchestrator initialized for {folder_for(owner_id, collection_id)}")

    # --- Observation ---

    def on_change(self, listener: Callable[[UploadState], None]) -> None:
        """Registers a listener called with the state after every change."""
        self._listeners.append(listener)

    def on_complete(self, callback: Callable[[List[Asset]], Any]) -> None:
        self._on_complete = callback

    def get_state(self) -> UploadState:
        return UploadState(tasks=list(self.tasks), overall_progress=self.overall_progress)

    def _notify(self) -> None:
        state = self.get_state()
        for listener in self._listeners:
            listener(state)

    def _find(self, task_id: TaskId) -> UploadTask:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        raise NotFoundError(f"Upload task {task_id} not found")

    # --- Intake ---

    def validate_file(self, source: SourceFile) -> Optional[str]:
        """Returns the rejection reason for a file, or None if acceptable."""
        if source.size > self.max_file_size:
            return f"{source.name} is too large (max {self.max_file_size // (1024 * 1024)}MB)"
        if source.mime_type not in self.allowed_mime_types:
            return f"{source.name} is not a valid image file"
        return None

    def add_files(self, files: Iterable[SourceFile]) -> List[IntakeRejection]:
        """Validates files and queues the accepted ones as pending tasks.

        Returns:
            One rejection per refused file; refused files never become tasks.
        """
        rejections: List[IntakeRejection] = []
        for source in files:
            reason = self.validate_file(source)
            if reason:
                logger.info(f"Rejected at intake: {reason}")
                rejections.append(IntakeRejection(file_name=source.name, reason=reason))
                continue
            self.tasks.append(UploadTask(source=source))
        if self.tasks:
            self._notify()
        return rejections

    def add_paths(self, paths: Iterable[FilePath]) -> List[IntakeRejection]:
        """Describes local paths and queues them via `add_files`."""
        sources: List[SourceFile] = []
        rejections: List[IntakeRejection] = []
        for path in paths:
            try:
                sources.append(self.file_system.describe(path))
            except OSError as e:
                rejections.append(IntakeRejection(file_name=str(path), reason=f"{path} could not be read: {e}"))
        return rejections + self.add_files(sources)

    def remove(self, task_id: TaskId) -> None:
        task = self._find(task_id)
        if task.status == UploadStatus.UPLOADING:
            raise ValidationError(f"Cannot remove {task.source.name} while it is uploading")
        self.tasks.remove(task)
        self._notify()

    def clear(self) -> None:
        """Drops every task and the uploaded list."""
        if any(t.status == UploadStatus.UPLOADING for t in self.tasks):
            raise ValidationError("Cannot clear while an upload is in progress")
        self.tasks.clear()
        self.uploaded.clear()
        self.overall_progress = 0.0
        self._notify()

    # --- Execution ---

    async def _tick_progress(self, task: UploadTask) -> None:
        while task.progress < PROGRESS_CAP:
            await self._sleep(self.progress_interval_s)
            step = max(1, int(self._progress_step()))
            task.progress = min(PROGRESS_CAP, task.progress + step)
            self._notify()

    async def _upload(self, task: UploadTask) -> None:
        source = task.source
        task.status = UploadStatus.UPLOADING
        task.progress = 0
        task.error = None
        self._notify()

        ticker = asyncio.ensure_future(self._tick_progress(task))
        try:
            if not source.path:
                raise ValidationError(f"{source.name} has no local file to read")
            data = await self.file_system.read_bytes(source.path)
            tags = self.extra_tags + generate_auto_tags(source, self.owner_id, self.collection_id)
            resource = await self.media_store.upload(
                data, folder_for(self.owner_id, self.collection_id), tags, filename=source.name
            )
            asset = Asset.from_remote(resource, self.owner_id, self.collection_id)
        except asyncio.CancelledError:
            task.status = UploadStatus.ERROR
            task.error = "Upload cancelled"
            self._notify()
            raise
        except Exception as e:
            task.status = UploadStatus.ERROR
            task.error = f"Failed to upload {source.name}: {e}"
            logger.warning(task.error)
        else:
            task.asset = asset
            task.status = UploadStatus.COMPLETED
            task.progress = 100
            self.uploaded.append(asset)
            logger.info(f"Uploaded {source.name} as {asset.asset_id}")
            self._remember(asset)
        finally:
            ticker.cancel()
            try:
                await ticker
            except asyncio.CancelledError:
                pass

        dispatch_event(UploadTaskSettled(task_id=task.task_id, file_name=source.name, status=task.status.value, error=task.error))
        self._notify()

    def _remember(self, asset: Asset) -> None:
        # Best-effort; the task stays completed when the session store fails
        if self.session_store is None:
            return
        try:
            self.session_store.append(asset)
        except Exception as e:
            logger.warning(f"Could not record {asset.asset_id} in the session store: {e}")

    def _ensure_idle(self) -> None:
        if self._running:
            raise ValidationError("An upload run is already in progress")

    async def _run(self, tasks: List[UploadTask]) -> UploadState:
        pending_at_start = len(tasks)
        completed = 0
        self._running = True
        try:
            for task in tasks:
                await self._upload(task)
                if task.status == UploadStatus.COMPLETED:
                    completed += 1
                self.overall_progress = round(completed / pending_at_start * 100, 2)
                self._notify()
        finally:
            self._running = False
        return self.get_state()

    async def start_upload(self) -> UploadState:
        """Uploads every pending task sequentially, in submission order.

        Raises:
            ValidationError: If another run or retry is still in progress.
        """
        self._ensure_idle()
        pending = [t for t in self.tasks if t.status == UploadStatus.PENDING]
        if not pending:
            logger.info("No pending uploads to process.")
            return self.get_state()
        logger.info(f"Starting upload of {len(pending)} files")
        return await self._run(pending)

    async def retry(self, task_id: TaskId) -> UploadTask:
        """Re-attempts a failed task.

        Raises:
            NotFoundError: If the task doesn't exist.
            ValidationError: If the task is not in `error` state, or a run is in progress.
            MaxRetriesExceededError: If the task already used MAX_RETRIES retries.
        """
        self._ensure_idle()
        task = self._find(task_id)
        if task.status != UploadStatus.ERROR:
            raise ValidationError(f"{task.source.name} has not failed and cannot be retried")
        if task.retry_count >= MAX_RETRIES:
            raise MaxRetriesExceededError(f"Maximum retries exceeded for {task.source.name}")
        task.retry_count += 1
        task.status = UploadStatus.PENDING
        task.progress = 0
        logger.info(f"Retrying {task.source.name} (attempt {task.retry_count}/{MAX_RETRIES})")
        await self._run([task])
        return task

    # --- Completion ---

    def complete(self) -> List[Asset]:
        """Hands the uploaded assets to the completion callback."""
        uploaded = list(self.uploaded)
        if self._on_complete is not None:
            self._on_complete(uploaded)
        logger.info(f"Upload batch completed with {len(uploaded)} assets")
        return uploaded

    def summary(self) -> Dict[str, Any]:
        return self.get_state().summary()
