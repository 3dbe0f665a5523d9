# Copyright (c) Nex-AGI. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.


"""Unit tests for SQLCoordinationStore."""

import asyncio

import pytest

from salesos_collab.coordination import EntityKey, EntityLockService, LockFailureReason, PresenceService
from salesos_collab.coordination.store import SQLCoordinationStore, StoreUnavailableError
from tests.utils import FakeClock, lock_service_kwargs

MEMORY_URL = "sqlite+aiosqlite:///:memory:"


def make_store(clock: FakeClock | None = None) -> tuple[SQLCoordinationStore, FakeClock]:
    clock = clock or FakeClock()
    return SQLCoordinationStore.from_url(MEMORY_URL, clock=clock), clock


class TestSQLCoordinationStoreFromUrl:
    """Tests for SQLCoordinationStore.from_url() factory method."""

    def test_from_url_sqlite(self):
        store = SQLCoordinationStore.from_url(MEMORY_URL)
        assert store is not None
        assert store._engine is not None

    def test_from_url_missing_async_driver_raises(self):
        with pytest.raises(ValueError, match="async driver"):
            SQLCoordinationStore.from_url("sqlite:///coordination.db")

    def test_from_url_postgresql_missing_driver_raises(self):
        with pytest.raises(ValueError, match="async driver"):
            SQLCoordinationStore.from_url("postgresql://localhost/crm")

    def test_from_url_with_echo(self):
        store = SQLCoordinationStore.from_url(MEMORY_URL, echo=True)
        assert store._engine.sync_engine.echo is True


class TestSQLCoordinationStoreOperations:
    """Conditional writes and reads against an in-memory SQLite database."""

    def test_setup_is_idempotent(self):
        async def run():
            store, _ = make_store()
            await store.setup()
            await store.setup()
            assert await store.count() == 0
            await store.close()

        asyncio.run(run())

    def test_set_if_absent_and_get(self):
        async def run():
            store, clock = make_store()
            entry = await store.set_if_absent("k", {"holder": "alice"}, 10)

            assert entry is not None
            assert entry.expires_at_ns == clock.now_ns + 10 * 1_000_000_000
            assert await store.get("k") == entry
            assert await store.set_if_absent("k", {"holder": "bob"}, 10) is None
            assert (await store.get("k")).value == {"holder": "alice"}
            await store.close()

        asyncio.run(run())

    def test_expired_row_is_taken_over(self):
        async def run():
            store, clock = make_store()
            await store.set_if_absent("k", {"holder": "alice"}, 10)
            clock.advance(10)

            assert await store.get("k") is None
            replaced = await store.set_if_absent("k", {"holder": "bob"}, 10)
            assert replaced is not None
            assert (await store.get("k")).value == {"holder": "bob"}
            assert await store.count() == 1
            await store.close()

        asyncio.run(run())

    def test_compare_and_swap(self):
        async def run():
            store, clock = make_store()
            entry = await store.set_if_absent("k", {"n": 1}, 10)

            swapped = await store.compare_and_swap("k", entry.version, {"n": 2}, 30)
            assert swapped is not None
            assert swapped.version != entry.version
            assert await store.get("k") == swapped

            assert await store.compare_and_swap("k", entry.version, {"n": 3}, 30) is None
            clock.advance(31)
            assert await store.compare_and_swap("k", swapped.version, {"n": 4}, 30) is None
            await store.close()

        asyncio.run(run())

    def test_put_upserts(self):
        async def run():
            store, clock = make_store()
            first = await store.put("k", {"n": 1}, 10)
            second = await store.put("k", {"n": 2}, 10)

            assert first.version != second.version
            assert await store.get("k") == second

            clock.advance(20)
            revived = await store.put("k", {"n": 3}, 10)
            assert await store.get("k") == revived
            await store.close()

        asyncio.run(run())

    def test_delete(self):
        async def run():
            store, clock = make_store()
            entry = await store.put("k", {}, 10)

            assert await store.delete("k", expected_version=entry.version + 1) is False
            assert await store.delete("k", expected_version=entry.version) is True
            assert await store.delete("k") is False

            await store.put("old", {}, 1)
            clock.advance(2)
            assert await store.delete("old") is False
            await store.close()

        asyncio.run(run())

    def test_scan_prefix_escapes_like_wildcards(self):
        """'%' and '_' in a prefix match literally."""

        async def run():
            store, clock = make_store()
            await store.put("p%:a", {"n": 1}, 100)
            await store.put("p%:b", {"n": 2}, 100)
            await store.put("pX:a", {"n": 3}, 100)
            await store.put("p_:a", {"n": 4}, 100)
            await store.put("p%:c", {"n": 5}, 1)
            clock.advance(5)

            assert [entry.key for entry in await store.scan_prefix("p%:")] == ["p%:a", "p%:b"]
            assert [entry.key for entry in await store.scan_prefix("p_:")] == ["p_:a"]
            await store.close()

        asyncio.run(run())

    def test_purge_expired(self):
        async def run():
            store, clock = make_store()
            await store.put("a", {}, 1)
            await store.put("b", {}, 1)
            await store.put("c", {}, 100)
            clock.advance(5)

            assert await store.count() == 3
            assert await store.purge_expired() == 2
            assert await store.count() == 1
            assert await store.purge_expired() == 0
            await store.close()

        asyncio.run(run())

    def test_unreachable_database_raises_store_unavailable(self):
        async def run():
            store = SQLCoordinationStore.from_url("sqlite+aiosqlite:////nonexistent_dir/coordination.db")
            with pytest.raises(StoreUnavailableError):
                await store.get("k")
            await store.close()

        asyncio.run(run())


class TestServicesOverSQL:
    """Lock and presence services backed by the SQL store."""

    def test_lock_lifecycle(self):
        async def run():
            store, clock = make_store()
            service = EntityLockService(store=store, clock=clock, **lock_service_kwargs())

            acquired = await service.acquire_lock("deal", "42", "alice", "Alice", "alice@example.com", ttl_seconds=60)
            assert acquired.success

            conflict = await service.acquire_lock("deal", "42", "bob")
            assert conflict.reason == LockFailureReason.HELD_BY_OTHER
            assert conflict.lock == acquired.lock

            clock.advance(10)
            extended = await service.acquire_lock("deal", "42", "alice", ttl_seconds=60)
            assert extended.success
            assert extended.lock.acquired_at_ns == acquired.lock.acquired_at_ns
            assert extended.lock.expires_at_ns == acquired.lock.expires_at_ns + 10 * 1_000_000_000

            assert [lock.entity_id for lock in await service.get_user_locks("alice")] == ["42"]
            assert await service.release_lock("deal", "42", "bob") is False
            assert await service.release_lock("deal", "42", "alice") is True
            assert await service.get_lock_status("deal", "42") is None
            await store.close()

        asyncio.run(run())

    def test_expired_lock_can_be_taken(self):
        async def run():
            store, clock = make_store()
            service = EntityLockService(store=store, clock=clock, **lock_service_kwargs())

            await service.acquire_lock("deal", "42", "alice", ttl_seconds=5)
            clock.advance(6)

            taken = await service.acquire_lock("deal", "42", "bob")
            assert taken.success
            refreshed = await service.refresh_lock("deal", "42", "alice")
            assert refreshed.reason == LockFailureReason.HELD_BY_OTHER
            assert refreshed.lock == taken.lock
            await store.close()

        asyncio.run(run())

    def test_presence(self):
        async def run():
            store, clock = make_store()
            presence = PresenceService(store=store, presence_ttl_seconds=60, clock=clock)

            await presence.record_view("deal", "1", "alice")
            await presence.record_view("deal", "10", "bob")
            clock.advance(1)
            await presence.record_view("deal", "1", "carol")

            assert [v.user_id for v in await presence.get_entity_viewers("deal", "1")] == ["alice", "carol"]
            summary = await presence.get_presence_summary([("deal", "1"), ("deal", "10"), ("deal", "2")])
            assert summary == {EntityKey("deal", "1"): 2, EntityKey("deal", "10"): 1, EntityKey("deal", "2"): 0}
            await store.close()

        asyncio.run(run())
