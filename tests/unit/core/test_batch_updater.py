import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from photostream.core.services.batch_updater import BatchUpdater, partition
from photostream.domain.errors import NotFoundError, ValidationError
from photostream.domain.interfaces.cache import CacheService
from photostream.domain.interfaces.media_store import MediaStore
from photostream.domain.models.batch import BatchOptions, BatchRequest, MetadataUpdate

from tests.factories import make_resource


@pytest.fixture
def media_store():
    store = MagicMock(spec=MediaStore)
    store.update.side_effect = lambda asset_id, **params: make_resource(asset_id, tags=params.get("tags"))
    return store


@pytest.fixture
def cache_service():
    return MagicMock(spec=CacheService)


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def updater(media_store, cache_service, sleep):
    return BatchUpdater(media_store=media_store, cache_service=cache_service, sleep=sleep)


def _request(count: int, **options) -> BatchRequest:
    operations = [MetadataUpdate(asset_id=f"photos/u1/3/p{i}", tags=["boss"], description=f"shot {i}") for i in range(count)]
    return BatchRequest(operations=operations, options=BatchOptions(**options))


def test_partition():
    assert [len(c) for c in partition(list(range(25)), 10)] == [10, 10, 5]


def test_sub_batches_with_delay_between_but_not_after(updater, media_store, sleep):
    result = asyncio.run(updater.batch_update(_request(25, batch_size=10, delay_between_batches_ms=100)))

    assert result.batch_count == 3
    assert result.total == 25
    assert result.success is True
    assert media_store.update.await_count == 25
    assert [c.args[0] for c in sleep.await_args_list] == [0.1, 0.1]


def test_operations_within_sub_batch_run_concurrently(media_store, cache_service, sleep):
    active = 0
    peak = 0

    async def slow_update(asset_id, **params):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0)
        active -= 1
        return make_resource(asset_id)

    media_store.update.side_effect = slow_update
    updater = BatchUpdater(media_store=media_store, cache_service=cache_service, sleep=sleep)

    asyncio.run(updater.batch_update(_request(12, batch_size=5)))

    assert peak == 5


def test_dry_run_makes_no_remote_calls(updater, media_store, cache_service):
    result = asyncio.run(updater.batch_update(_request(3, dry_run=True)))

    media_store.update.assert_not_awaited()
    cache_service.invalidate.assert_not_awaited()
    assert result.success is True
    assert result.dry_run is True
    details = result.successful[0].details
    assert details["operation"] == "dry_run"
    assert details["message"] == "Operation would be performed in production"
    assert details["changes"] == {"tags": ["boss"], "description": "shot 0", "context": None, "metadata": None}


def test_real_update_sends_params_and_invalidates(updater, media_store, cache_service):
    result = asyncio.run(updater.batch_update(_request(1)))

    media_store.update.assert_awaited_once_with(
        "photos/u1/3/p0", tags=["boss"], context={"custom": {"description": "shot 0"}}
    )
    cache_service.invalidate.assert_awaited_once_with("photos/u1/3/p0")
    details = result.successful[0].details
    assert details["operation"] == "update"
    assert details["message"] == "Metadata updated successfully"
    assert details["result"]["public_id"] == "photos/u1/3/p0"


def test_cache_invalidation_failure_keeps_update_successful(updater, media_store, cache_service):
    cache_service.invalidate.side_effect = RuntimeError("cache backend gone")

    result = asyncio.run(updater.batch_update(_request(2)))

    assert media_store.update.await_count == 2
    assert [o.success for o in result.successful] == [True, True]
    assert result.failed == []
    assert cache_service.invalidate.await_count == 2


def test_one_failure_does_not_affect_siblings(updater, media_store):
    def update(asset_id, **params):
        if asset_id.endswith("p2"):
            raise NotFoundError("resource: not found")
        return make_resource(asset_id)

    media_store.update.side_effect = update

    result = asyncio.run(updater.batch_update(_request(5, batch_size=5)))

    assert len(result.successful) == 4
    assert [o.asset_id for o in result.failed] == ["photos/u1/3/p2"]
    assert result.failed[0].error == "resource: not found"
    assert result.success_rate == 80.0
    assert result.to_dict()["success"] is False


def test_total_failure_is_still_a_result(updater, media_store):
    media_store.update.side_effect = RuntimeError("store down")

    result = asyncio.run(updater.batch_update(_request(3)))

    assert result.successful == []
    assert len(result.failed) == 3


@pytest.mark.parametrize("request_factory, message", [
    (lambda: BatchRequest(operations=[]), "operations array is required and must not be empty"),
    (lambda: _request(101), "Maximum 100 operations allowed per batch request"),
    (lambda: BatchRequest(operations=[MetadataUpdate(asset_id="")]), "publicId is required for each operation"),
    (lambda: _request(2, batch_size=0), "batchSize must be at least 1"),
    (lambda: _request(2, delay_between_batches_ms=-1), "delayBetweenBatches must not be negative"),
])
def test_validation_errors_make_no_remote_calls(updater, media_store, request_factory, message):
    with pytest.raises(ValidationError, match=message):
        asyncio.run(updater.batch_update(request_factory()))
    media_store.update.assert_not_awaited()


def test_exactly_100_operations_accepted(updater):
    result = asyncio.run(updater.batch_update(_request(100, batch_size=50, delay_between_batches_ms=0)))
    assert result.total == 100
    assert result.batch_count == 2


def test_status_describes_limits(updater):
    status = updater.status()
    assert status["limits"]["max_operations_per_batch"] == 100
    assert status["limits"]["default_batch_size"] == 10
