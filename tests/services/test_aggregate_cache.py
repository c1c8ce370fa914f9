"""Tests for the per-tool aggregate cache"""
import asyncio

import pytest
from unittest.mock import patch

from app.core.errors import StoreError, TransientStoreError
from app.models.aggregate import AggregateSnapshot
from app.services.aggregate_cache import CLOSED, AggregateCache


async def settle(cache: AggregateCache):
    while cache.refetching:
        await asyncio.sleep(0.001)


async def wait_until(predicate, timeout=1.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def cache(review_store, tool_id):
    return AggregateCache(tool_id, review_store.list_for_tool, initial_backoff=0.01, max_backoff=0.05)


class TestInstall:
    """Version-guarded installs"""

    def test_older_result_never_overwrites_newer(self, cache, tool_id):
        """Test that v1 arriving after v2 is ignored"""
        v2 = AggregateSnapshot(tool_id=tool_id, review_count=2, mean_rating=3.0, as_of_version=2)
        v1 = AggregateSnapshot(tool_id=tool_id, review_count=1, mean_rating=5.0, as_of_version=1)

        assert cache.install(v2, []) is True
        assert cache.install(v1, []) is False

        current = cache.current()
        assert current.as_of_version == 2
        assert current.review_count == 2

    def test_same_version_reinstall_allowed(self, cache, tool_id):
        snapshot = AggregateSnapshot(tool_id=tool_id, review_count=1, mean_rating=4.0, as_of_version=3)
        assert cache.install(snapshot, []) is True
        assert cache.install(snapshot, []) is True

    def test_install_after_close_discarded(self, cache, tool_id):
        cache.close()
        snapshot = AggregateSnapshot(tool_id=tool_id, review_count=1, mean_rating=4.0)

        assert cache.install(snapshot, []) is False
        assert cache.current() is None

    def test_listeners_receive_installs(self, cache, tool_id):
        queue = cache.subscribe()
        assert queue.empty()

        cache.install(AggregateSnapshot(tool_id=tool_id), [])

        assert queue.get_nowait().review_count == 0


class TestRefetch:
    """Invalidation and coalesced refetch"""

    @pytest.mark.asyncio
    async def test_first_load_computes_from_store(self, cache, review_store, tool_id):
        await review_store.insert(tool_id, "user-a", 5, "Great")
        await review_store.insert(tool_id, "user-b", 2, "Meh")

        snapshot = await cache.load()

        assert snapshot.review_count == 2
        assert snapshot.mean_rating == 3.5
        assert snapshot.stale is False
        assert [r.user_id for r in cache.reviews()] == ["user-b", "user-a"]

    @pytest.mark.asyncio
    async def test_empty_review_set(self, cache):
        snapshot = await cache.load()

        assert snapshot.review_count == 0
        assert snapshot.mean_rating is None

    @pytest.mark.asyncio
    async def test_invalidations_during_refetch_coalesce(self, cache, review_store, tool_id):
        """Test that a burst of invalidations costs at most one extra refetch"""
        review_store.fetch_gate = asyncio.Event()
        cache.invalidate(0)
        await asyncio.sleep(0)
        assert cache.refetching

        for version in range(1, 21):
            await review_store.insert(tool_id, f"user-{version}", 4, "ok")
            cache.invalidate(version)

        review_store.fetch_gate.set()
        await settle(cache)

        assert review_store.fetch_count == 2
        assert cache.refetch_count == 2
        current = cache.current()
        assert current.as_of_version == 20
        assert current.review_count == 20
        assert current.stale is False

    @pytest.mark.asyncio
    async def test_stale_while_refetch_pending(self, cache, review_store):
        await cache.load()
        review_store.fetch_gate = asyncio.Event()

        cache.invalidate(1)

        assert cache.current().stale is True
        assert cache.current().as_of_version == 0
        review_store.fetch_gate.set()
        await settle(cache)
        assert cache.current().stale is False

    @pytest.mark.asyncio
    async def test_failed_refetch_keeps_last_snapshot(self, cache, review_store, tool_id):
        """Test that a store failure leaves the previous aggregate, marked stale"""
        await review_store.insert(tool_id, "user-a", 5, "Great")
        await cache.load()
        review_store.fetch_error = TransientStoreError("Store unavailable during review listing")

        with patch('app.services.aggregate_cache.logger') as mock_logger:
            cache.invalidate(1)
            await wait_until(lambda: cache.last_error is not None)

            current = cache.current()
            assert current.review_count == 1
            assert current.stale is True
            assert cache.last_error is review_store.fetch_error
            mock_logger.warning.assert_called()
        cache.close()

    @pytest.mark.asyncio
    async def test_failed_refetch_retried_until_store_recovers(self, cache, review_store, tool_id):
        """Test that retries continue with no further invalidation and converge"""
        await cache.load()
        review_store.fetch_error = TransientStoreError("Store unavailable during review listing")

        with patch('app.services.aggregate_cache.logger'):
            cache.invalidate(1)
            await wait_until(lambda: cache.refetch_count >= 3)
            assert cache.current().stale is True

            # Written while the store was failing reads
            await review_store.insert(tool_id, "user-a", 5, "Great")
            review_store.fetch_error = None
            await wait_until(lambda: not cache.refetching)

        current = cache.current()
        assert current.review_count == 1
        assert current.mean_rating == 5.0
        assert current.stale is False
        assert current.as_of_version == 1
        assert cache.last_error is None

    @pytest.mark.asyncio
    async def test_invalidation_cuts_retry_wait_short(self, review_store, tool_id):
        cache = AggregateCache(tool_id, review_store.list_for_tool, initial_backoff=30, max_backoff=60)
        review_store.fetch_error = TransientStoreError("Store unavailable during review listing")

        with patch('app.services.aggregate_cache.logger'):
            cache.invalidate(0)
            await wait_until(lambda: cache.last_error is not None)

            review_store.fetch_error = None
            cache.invalidate(1)
            await wait_until(lambda: not cache.refetching)

        assert cache.current().as_of_version == 1
        assert cache.current().stale is False
        assert review_store.fetch_count == 2

    @pytest.mark.asyncio
    async def test_first_load_failure_raises(self, cache, review_store):
        review_store.fetch_error = StoreError("Database error during review listing")

        with patch('app.services.aggregate_cache.logger'):
            with pytest.raises(StoreError):
                await cache.load()
            assert cache.refetching

            review_store.fetch_error = None
            snapshot = await asyncio.wait_for(cache.load(), 1)

        assert snapshot.review_count == 0
        assert snapshot.stale is False

    @pytest.mark.asyncio
    async def test_refetch_finishing_after_close_is_discarded(self, cache, review_store):
        review_store.fetch_gate = asyncio.Event()
        cache.invalidate(0)
        await asyncio.sleep(0)

        cache.close()
        review_store.fetch_gate.set()
        await settle(cache)

        assert cache.current() is None

    @pytest.mark.asyncio
    async def test_invalidate_after_close_ignored(self, cache, review_store):
        cache.close()
        cache.invalidate(5)
        await asyncio.sleep(0)

        assert review_store.fetch_count == 0
        assert not cache.refetching


class TestClose:
    """Listener shutdown"""

    def test_close_ends_every_listener(self, cache, tool_id):
        cache.install(AggregateSnapshot(tool_id=tool_id), [])
        queues = [cache.subscribe(), cache.subscribe()]

        cache.close()
        cache.close()

        for queue in queues:
            assert queue.get_nowait().review_count == 0
            assert queue.get_nowait() is CLOSED
            assert queue.empty()

    def test_subscribe_after_close(self, cache):
        cache.close()

        assert cache.subscribe().get_nowait() is CLOSED

    @pytest.mark.asyncio
    async def test_close_abandons_pending_retry(self, cache, review_store):
        review_store.fetch_error = TransientStoreError("Store unavailable during review listing")

        with patch('app.services.aggregate_cache.logger'):
            cache.invalidate(0)
            await wait_until(lambda: cache.last_error is not None)
            cache.close()
            await wait_until(lambda: not cache.refetching)

        assert cache.current() is None
