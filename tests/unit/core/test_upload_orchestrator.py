import asyncio
from datetime import date
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from photostream.core.services.upload_orchestrator import UploadOrchestrator, generate_auto_tags
from photostream.domain.errors import MaxRetriesExceededError, NotFoundError, ValidationError
from photostream.domain.interfaces.file_system import FileSystem
from photostream.domain.interfaces.media_store import MediaStore
from photostream.domain.interfaces.session_store import SessionStore
from photostream.domain.models.upload import SourceFile, UploadState, UploadStatus

from tests.factories import make_resource


def _source(name: str, size: int = 2048, mime: str = "image/png") -> SourceFile:
    return SourceFile(name=name, size=size, mime_type=mime, path=f"/tmp/{name}")


@pytest.fixture
def media_store():
    store = MagicMock(spec=MediaStore)
    store.upload.side_effect = lambda data, folder, tags, filename=None: make_resource(
        f"{folder}/{filename.rsplit('.', 1)[0]}", tags=tags
    )
    return store


@pytest.fixture
def file_system():
    fs = MagicMock(spec=FileSystem)
    fs.read_bytes.return_value = b"imagebytes"
    return fs


@pytest.fixture
def session_store():
    return MagicMock(spec=SessionStore)


@pytest.fixture
def orchestrator(media_store, file_system, session_store):
    return UploadOrchestrator(
        media_store=media_store,
        file_system=file_system,
        owner_id="u1",
        collection_id="3",
        session_store=session_store,
        sleep=AsyncMock(),
        progress_step=lambda: 30,
    )


def _fail_third(data, folder, tags, filename=None):
    if filename == "f3.png":
        raise RuntimeError("store exploded")
    return make_resource(f"{folder}/{filename.rsplit('.', 1)[0]}", tags=tags)


def test_generate_auto_tags():
    tags = generate_auto_tags(_source("a.png", size=2048), "u1", "3", today=date(2024, 5, 1))
    assert tags == [
        "user:u1", "game:3", "format:png", "size:2kb", "uploaded:2024-05-01", "type:image", "size:small",
    ]
    assert generate_auto_tags(_source("b.jpg", size=6 * 1024 * 1024, mime="image/jpeg"), "u1", "3")[-1] == "size:large"


def test_intake_rejects_with_reasons(orchestrator):
    rejections = orchestrator.add_files([
        _source("ok.png"),
        _source("huge.png", size=11 * 1024 * 1024),
        _source("doc.pdf", mime="application/pdf"),
    ])

    assert [r.reason for r in rejections] == [
        "huge.png is too large (max 10MB)",
        "doc.pdf is not a valid image file",
    ]
    state = orchestrator.get_state()
    assert state.total == 1
    assert state.tasks[0].status == UploadStatus.PENDING


def test_file_at_exact_size_limit_accepted(orchestrator):
    assert orchestrator.add_files([_source("edge.png", size=10 * 1024 * 1024)]) == []


def test_sequential_upload_continues_after_failure(orchestrator, media_store, session_store):
    media_store.upload.side_effect = _fail_third
    orchestrator.add_files([_source(f"f{i}.png") for i in range(1, 6)])

    state = asyncio.run(orchestrator.start_upload())

    assert [t.status for t in state.tasks] == [
        UploadStatus.COMPLETED, UploadStatus.COMPLETED, UploadStatus.ERROR,
        UploadStatus.COMPLETED, UploadStatus.COMPLETED,
    ]
    assert [c.kwargs["filename"] for c in media_store.upload.await_args_list] == [f"f{i}.png" for i in range(1, 6)]
    assert state.tasks[2].error == "Failed to upload f3.png: store exploded"
    assert state.overall_progress == 80.0
    assert state.summary()["completed"] == 4
    assert state.summary()["errors"] == 1
    assert session_store.append.call_count == 4
    assert all(t.progress == 100 for t in state.tasks if t.status == UploadStatus.COMPLETED)


def test_session_store_failure_does_not_fail_the_upload(orchestrator, media_store, session_store):
    session_store.append.side_effect = OSError("disk full")
    orchestrator.add_files([_source(f"f{i}.png") for i in range(1, 4)])

    state = asyncio.run(orchestrator.start_upload())

    assert [t.status for t in state.tasks] == [UploadStatus.COMPLETED] * 3
    assert media_store.upload.await_count == 3
    assert session_store.append.call_count == 3
    assert len(orchestrator.uploaded) == 3
    assert state.overall_progress == 100.0


def test_malformed_store_response_fails_only_that_task(orchestrator, media_store, session_store):
    def upload(data, folder, tags, filename=None):
        if filename == "f2.png":
            return {"public_id": "x", "width": "n/a"}
        return make_resource(f"{folder}/{filename.rsplit('.', 1)[0]}", tags=tags)

    media_store.upload.side_effect = upload
    orchestrator.add_files([_source(f"f{i}.png") for i in range(1, 4)])

    state = asyncio.run(orchestrator.start_upload())

    assert [t.status for t in state.tasks] == [UploadStatus.COMPLETED, UploadStatus.ERROR, UploadStatus.COMPLETED]
    assert state.tasks[1].error.startswith("Failed to upload f2.png: ")
    assert state.tasks[1].asset is None
    assert [a.asset_id for a in orchestrator.uploaded] == ["photos/u1/3/f1", "photos/u1/3/f3"]
    assert session_store.append.call_count == 2


def test_uploaded_asset_mapped_with_folder_and_tags(orchestrator, media_store):
    orchestrator.add_files([_source("boss.png")])

    state = asyncio.run(orchestrator.start_upload())

    args = media_store.upload.await_args
    assert args.args[1] == "photos/u1/3"
    assert "user:u1" in args.args[2] and "game:3" in args.args[2]
    asset = state.tasks[0].asset
    assert asset.asset_id == "photos/u1/3/boss"
    assert asset.owner_id == "u1"


def test_progress_never_exceeds_cap_while_uploading(orchestrator, media_store):
    seen: List[int] = []

    def listener(state: UploadState) -> None:
        for task in state.tasks:
            if task.status == UploadStatus.UPLOADING:
                seen.append(task.progress)

    async def slow_upload(data, folder, tags, filename=None):
        for _ in range(5):
            await asyncio.sleep(0)
        return make_resource(f"{folder}/slow", tags=tags)

    media_store.upload.side_effect = slow_upload
    orchestrator.on_change(listener)
    orchestrator.add_files([_source("slow.png")])

    state = asyncio.run(orchestrator.start_upload())

    assert max(seen) <= 90
    assert 90 in seen
    assert state.tasks[0].progress == 100


def test_retry_bounded_by_max_retries(orchestrator, media_store):
    media_store.upload.side_effect = RuntimeError("always failing")
    orchestrator.add_files([_source("bad.png")])
    asyncio.run(orchestrator.start_upload())
    task_id = orchestrator.tasks[0].task_id

    for expected in (1, 2, 3):
        task = asyncio.run(orchestrator.retry(task_id))
        assert task.retry_count == expected
        assert task.status == UploadStatus.ERROR

    with pytest.raises(MaxRetriesExceededError, match="Maximum retries exceeded for bad.png"):
        asyncio.run(orchestrator.retry(task_id))

    assert media_store.upload.await_count == 4
    assert orchestrator.tasks[0].retry_count == 3


def test_retry_can_succeed(orchestrator, media_store):
    media_store.upload.side_effect = [RuntimeError("flaky"), make_resource("photos/u1/3/ok")]
    orchestrator.add_files([_source("ok.png")])
    asyncio.run(orchestrator.start_upload())

    task = asyncio.run(orchestrator.retry(orchestrator.tasks[0].task_id))

    assert task.status == UploadStatus.COMPLETED
    assert task.error is None
    assert orchestrator.get_state().overall_progress == 100.0


def test_retry_rejected_for_non_failed_or_unknown_task(orchestrator):
    orchestrator.add_files([_source("a.png")])
    with pytest.raises(ValidationError):
        asyncio.run(orchestrator.retry(orchestrator.tasks[0].task_id))
    with pytest.raises(NotFoundError):
        asyncio.run(orchestrator.retry("missing"))


def test_start_upload_skips_settled_tasks(orchestrator, media_store):
    orchestrator.add_files([_source("a.png")])
    asyncio.run(orchestrator.start_upload())
    orchestrator.add_files([_source("b.png")])

    asyncio.run(orchestrator.start_upload())

    assert media_store.upload.await_count == 2
    assert orchestrator.get_state().completed == 2


def test_cancellation_marks_task_as_error(orchestrator, media_store):
    async def scenario():
        started = asyncio.Event()

        async def hang(data, folder, tags, filename=None):
            started.set()
            await asyncio.Event().wait()

        media_store.upload.side_effect = hang
        orchestrator.add_files([_source("stuck.png")])
        run = asyncio.ensure_future(orchestrator.start_upload())
        await started.wait()
        run.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run

    asyncio.run(scenario())

    task = orchestrator.tasks[0]
    assert task.status == UploadStatus.ERROR
    assert task.error == "Upload cancelled"


def test_complete_hands_uploaded_assets_to_callback(orchestrator):
    received = []
    orchestrator.on_complete(received.append)
    orchestrator.add_files([_source("a.png"), _source("b.png")])
    asyncio.run(orchestrator.start_upload())

    assets = orchestrator.complete()

    assert received == [assets]
    assert [a.asset_id for a in assets] == ["photos/u1/3/a", "photos/u1/3/b"]


def test_remove_and_clear(orchestrator):
    orchestrator.add_files([_source("a.png"), _source("b.png")])
    orchestrator.remove(orchestrator.tasks[0].task_id)
    assert [t.source.name for t in orchestrator.tasks] == ["b.png"]

    orchestrator.clear()
    state = orchestrator.get_state()
    assert state.total == 0
    assert state.overall_progress == 0.0
    assert orchestrator.uploaded == []


def test_missing_owner_rejected(media_store, file_system):
    with pytest.raises(ValueError):
        UploadOrchestrator(media_store=media_store, file_system=file_system, owner_id="", collection_id="3")


def test_overlapping_runs_are_rejected(orchestrator, media_store):
    async def scenario():
        gate = asyncio.Event()

        async def slow_upload(data, folder, tags, filename=None):
            await gate.wait()
            return make_resource(f"{folder}/{filename.rsplit('.', 1)[0]}", tags=tags)

        media_store.upload.side_effect = slow_upload
        orchestrator.add_files([_source("f1.png"), _source("f2.png")])
        first = asyncio.ensure_future(orchestrator.start_upload())
        await asyncio.sleep(0)

        with pytest.raises(ValidationError, match="already in progress"):
            await orchestrator.start_upload()
        with pytest.raises(ValidationError, match="already in progress"):
            await orchestrator.retry(orchestrator.tasks[1].task_id)

        gate.set()
        return await first

    state = asyncio.run(scenario())

    assert media_store.upload.await_count == 2
    assert [t.status for t in state.tasks] == [UploadStatus.COMPLETED, UploadStatus.COMPLETED]
    assert all(t.retry_count == 0 for t in state.tasks)


def test_concurrent_start_uploads_each_file_once(orchestrator, media_store):
    async def scenario():
        orchestrator.add_files([_source(f"f{i}.png") for i in range(1, 4)])
        return await asyncio.gather(orchestrator.start_upload(), orchestrator.start_upload(), return_exceptions=True)

    results = asyncio.run(scenario())

    assert media_store.upload.await_count == 3
    assert all(not isinstance(r, Exception) or isinstance(r, ValidationError) for r in results)
    assert not orchestrator._running
