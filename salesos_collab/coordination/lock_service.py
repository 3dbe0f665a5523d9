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


"""Entity lock service for collaborative editing.

Short-lived exclusive locks on CRM entities, stored in a shared
CoordinationStore so every API instance sees the same holder.

Design principles:
- Try-lock only: acquire fails immediately on conflict, nothing waits or queues
- Re-entrant: acquiring a lock you already hold extends it
- Lazy expiry: an expired lock is simply absent, there is no sweeper
- The store's TTL is the single source of truth for expires_at
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from .keys import CoordinationKeys
from .models.entity_key import EntityKey
from .models.entity_lock import EntityLock, LockResult
from .store.base import NS_PER_SECOND, CoordinationStore, StoreEntry

logger = logging.getLogger(__name__)

# Conditional writes lost to a concurrent writer are re-read and re-classified
# at most this many times before reporting contention.
_MAX_WRITE_ATTEMPTS = 3


class EntityLockService:
    """Exclusive TTL locks keyed by (entity_type, entity_id).

    Mutual exclusion rests entirely on the store's atomic set_if_absent and
    compare_and_swap. There is no in-process mutex and no state cached between
    calls.

    Example:
        >>> from salesos_collab.coordination.store import InMemoryCoordinationStore
        >>> service = EntityLockService(store=InMemoryCoordinationStore())
        >>> result = await service.acquire_lock("deal", "42", "u1", "Ada", "ada@example.com")
        >>> result.success
        True
        >>> (await service.acquire_lock("deal", "42", "u2", "Bob", "bob@example.com")).reason
        <LockFailureReason.HELD_BY_OTHER: 'held_by_other'>
    """

    def __init__(
        self,
        *,
        store: CoordinationStore,
        default_ttl_seconds: int = 300,
        min_ttl_seconds: int = 30,
        max_ttl_seconds: int = 3600,
        key_prefix: str = "collab",
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        """Initialize entity lock service.

        Args:
            store: Shared coordination store
            default_ttl_seconds: TTL used when the caller passes none (default: 300s)
            min_ttl_seconds: Lower clamp for requested TTLs (default: 30s)
            max_ttl_seconds: Upper clamp for requested TTLs (default: 3600s)
            key_prefix: Namespace prefix for store keys
            clock: Nanosecond clock for acquired_at timestamps

        Raises:
            ValueError: If the TTL bounds are not positive or not ordered
        """
        if min_ttl_seconds <= 0:
            raise ValueError(f"min_ttl_seconds ({min_ttl_seconds}) must be positive")
        if not min_ttl_seconds <= default_ttl_seconds <= max_ttl_seconds:
            raise ValueError(
                f"TTL bounds must satisfy min ({min_ttl_seconds}) <= default ({default_ttl_seconds}) <= max ({max_ttl_seconds})"
            )

        self._store = store
        self._default_ttl = default_ttl_seconds
        self._min_ttl = min_ttl_seconds
        self._max_ttl = max_ttl_seconds
        self._keys = CoordinationKeys(key_prefix)
        self._clock = clock

    def clamp_ttl(self, ttl_seconds: int | None) -> int:
        """Apply the default and clamp into [min_ttl_seconds, max_ttl_seconds]."""
        if ttl_seconds is None:
            return self._default_ttl
        return max(self._min_ttl, min(self._max_ttl, int(ttl_seconds)))

    @staticmethod
    def _bind(lock: EntityLock, entry: StoreEntry) -> EntityLock:
        """Take expires_at from the store entry, which owns expiry."""
        if lock.expires_at_ns == entry.expires_at_ns:
            return lock
        return lock.model_copy(update={"expires_at_ns": entry.expires_at_ns})

    async def _read(self, key: str) -> tuple[StoreEntry, EntityLock] | None:
        entry = await self._store.get(key)
        if entry is None:
            return None
        return entry, self._bind(EntityLock.from_payload(entry.value), entry)

    def _expires_at_ns(self, ttl_seconds: int) -> int:
        return self._clock() + ttl_seconds * NS_PER_SECOND

    async def get_lock_status(self, entity_type: str, entity_id: str) -> EntityLock | None:
        """Return the live lock on an entity, or None if unlocked or expired."""
        current = await self._read(self._keys.lock_key(EntityKey(entity_type, entity_id)))
        if current is None:
            logger.debug(f"get_lock_status: no live lock for {entity_type}/{entity_id}")
            return None
        return current[1]

    async def acquire_lock(
        self,
        entity_type: str,
        entity_id: str,
        user_id: str,
        display_name: str = "",
        email: str = "",
        ttl_seconds: int | None = None,
    ) -> LockResult:
        """Try to take the edit lock on an entity.

        Args:
            entity_type: CRM object type
            entity_id: Entity identifier
            user_id: Requesting user, becomes the holder on success
            display_name: Holder display name (metadata)
            email: Holder email (metadata)
            ttl_seconds: Requested TTL, clamped; default applied when None

        Returns:
            Success with the caller's lock (new, or extended when the caller
            already held it), or HELD_BY_OTHER with the current holder's lock.
        """
        entity = EntityKey(entity_type, entity_id)
        key = self._keys.lock_key(entity)
        ttl = self.clamp_ttl(ttl_seconds)
        existing: EntityLock | None = None

        for _ in range(_MAX_WRITE_ATTEMPTS):
            current = await self._read(key)

            if current is None:
                now = self._clock()
                lock = EntityLock(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    holder_user_id=user_id,
                    holder_display_name=display_name,
                    holder_email=email,
                    acquired_at_ns=now,
                    expires_at_ns=now + ttl * NS_PER_SECOND,
                    ttl_seconds=ttl,
                )
                entry = await self._store.set_if_absent(key, lock.to_payload(), ttl)
                if entry is not None:
                    logger.info(f"Lock acquired for {entity}, holder={user_id}, ttl={ttl}s")
                    return LockResult.acquired(self._bind(lock, entry))
                logger.debug(f"Lost lock creation race for {entity}, re-reading")
                continue

            entry, existing = current
            if existing.holder_user_id != user_id:
                logger.warning(f"Lock conflict: {entity} is held by {existing.holder_user_id}, requested by {user_id}")
                return LockResult.held_by_other(existing)

            renewed = existing.model_copy(
                update={
                    "holder_display_name": display_name or existing.holder_display_name,
                    "holder_email": email or existing.holder_email,
                    "expires_at_ns": self._expires_at_ns(ttl),
                    "ttl_seconds": ttl,
                }
            )
            swapped = await self._store.compare_and_swap(key, entry.version, renewed.to_payload(), ttl)
            if swapped is not None:
                logger.info(f"Lock re-acquired (extended) for {entity}, holder={user_id}, ttl={ttl}s")
                return LockResult.acquired(self._bind(renewed, swapped))
            logger.debug(f"Lock for {entity} changed during re-acquire, re-reading")

        logger.warning(f"Lock acquisition for {entity} by {user_id} gave up after {_MAX_WRITE_ATTEMPTS} contended attempts")
        return LockResult.held_by_other(existing)

    async def refresh_lock(
        self,
        entity_type: str,
        entity_id: str,
        user_id: str,
        ttl_seconds: int | None = None,
    ) -> LockResult:
        """Extend a lock the caller holds, counting the TTL from now.

        Returns:
            Success with the extended lock; NOT_FOUND if there is no live lock
            (the caller should acquire instead); HELD_BY_OTHER if another user
            holds it.
        """
        entity = EntityKey(entity_type, entity_id)
        key = self._keys.lock_key(entity)
        ttl = self.clamp_ttl(ttl_seconds)
        existing: EntityLock | None = None

        for _ in range(_MAX_WRITE_ATTEMPTS):
            current = await self._read(key)
            if current is None:
                logger.debug(f"refresh_lock: no live lock for {entity}")
                return LockResult.not_found()

            entry, existing = current
            if existing.holder_user_id != user_id:
                logger.warning(f"Lock refresh rejected: {entity} is held by {existing.holder_user_id}, not {user_id}")
                return LockResult.held_by_other(existing)

            renewed = existing.model_copy(update={"expires_at_ns": self._expires_at_ns(ttl), "ttl_seconds": ttl})
            swapped = await self._store.compare_and_swap(key, entry.version, renewed.to_payload(), ttl)
            if swapped is not None:
                logger.debug(f"Lock refreshed for {entity}, holder={user_id}, ttl={ttl}s")
                return LockResult.acquired(self._bind(renewed, swapped))

        return LockResult.held_by_other(existing)

    async def release_lock(self, entity_type: str, entity_id: str, user_id: str) -> bool:
        """Release a lock held by the caller.

        Returns:
            True if the caller held the lock and it was removed, False if there
            was no live lock or someone else holds it
        """
        entity = EntityKey(entity_type, entity_id)
        key = self._keys.lock_key(entity)

        for _ in range(_MAX_WRITE_ATTEMPTS):
            current = await self._read(key)
            if current is None:
                logger.debug(f"release_lock: no live lock for {entity}")
                return False

            entry, lock = current
            if lock.holder_user_id != user_id:
                logger.warning(f"Lock release rejected: {entity} is held by {lock.holder_user_id}, not {user_id}")
                return False

            # Versioned delete, so a lock taken over after our read survives
            if await self._store.delete(key, expected_version=entry.version):
                logger.info(f"Lock released for {entity}, holder={user_id}")
                return True

        logger.warning(f"Lock release for {entity} by {user_id} lost to concurrent writers")
        return False

    async def user_owns_lock(self, entity_type: str, entity_id: str, user_id: str) -> bool:
        """Check whether user_id holds the live lock on an entity."""
        lock = await self.get_lock_status(entity_type, entity_id)
        return lock is not None and lock.holder_user_id == user_id

    async def _live_locks(self) -> list[tuple[StoreEntry, EntityLock]]:
        entries = await self._store.scan_prefix(self._keys.lock_namespace)
        return [(entry, self._bind(EntityLock.from_payload(entry.value), entry)) for entry in entries]

    async def get_user_locks(self, user_id: str) -> list[EntityLock]:
        """List all live locks held by a user, oldest first.

        Rebuilt from a scan of the lock namespace on every call, so it can
        never disagree with the primary lock entries.
        """
        locks = [lock for _, lock in await self._live_locks() if lock.holder_user_id == user_id]
        locks.sort(key=lambda lock: (lock.acquired_at_ns, lock.entity_type, lock.entity_id))
        return locks

    async def release_user_locks(self, user_id: str) -> int:
        """Release every lock a user holds, e.g. on sign-out.

        Returns:
            Number of locks released
        """
        released = 0
        for entry, lock in await self._live_locks():
            if lock.holder_user_id != user_id:
                continue
            if await self._store.delete(entry.key, expected_version=entry.version):
                released += 1
        if released:
            logger.info(f"Released {released} lock(s) held by {user_id}")
        return released

    async def force_release_lock(self, entity_type: str, entity_id: str) -> bool:
        """Remove a lock regardless of holder.

        Authorization is the caller's responsibility.

        Returns:
            True if a live lock was removed
        """
        entity = EntityKey(entity_type, entity_id)
        removed = await self._store.delete(self._keys.lock_key(entity))
        if removed:
            logger.warning(f"Lock force-released for {entity}")
        else:
            logger.debug(f"force_release_lock: no live lock for {entity}")
        return removed
