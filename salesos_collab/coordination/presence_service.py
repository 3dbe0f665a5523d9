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


"""Presence service: who is looking at which entity.

Best-effort and eventually consistent. Each viewer is one store entry whose
TTL every heartbeat renews; a client that disappears without saying goodbye
simply drops out once its TTL elapses.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from .keys import CoordinationKeys
from .models.entity_key import EntityKey
from .models.presence import PresenceInfo, PresenceRecord
from .store.base import CoordinationStore

logger = logging.getLogger(__name__)


class PresenceService:
    """Tracks viewers per (entity_type, entity_id).

    Example:
        >>> service = PresenceService(store=InMemoryCoordinationStore())
        >>> await service.record_view("deal", "42", "u1", "Ada", "ada@example.com")
        >>> await service.get_viewer_count("deal", "42")
        1
    """

    def __init__(
        self,
        *,
        store: CoordinationStore,
        presence_ttl_seconds: float = 60.0,
        key_prefix: str = "collab",
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        """Initialize presence service.

        Args:
            store: Shared coordination store
            presence_ttl_seconds: Inactivity window after which a viewer drops out (default: 60s)
            key_prefix: Namespace prefix for store keys
            clock: Nanosecond clock for entered_at/last_seen_at

        Raises:
            ValueError: If presence_ttl_seconds is not positive
        """
        if presence_ttl_seconds <= 0:
            raise ValueError(f"presence_ttl_seconds ({presence_ttl_seconds}) must be positive")
        self._store = store
        self._ttl = presence_ttl_seconds
        self._keys = CoordinationKeys(key_prefix)
        self._clock = clock

    async def record_view(
        self,
        entity_type: str,
        entity_id: str,
        user_id: str,
        display_name: str = "",
        email: str = "",
        avatar_url: str | None = None,
    ) -> None:
        """Record a view or heartbeat.

        Upserts the viewer's record and renews its TTL. entered_at is kept
        from a live record, so repeated heartbeats only move last_seen_at.
        """
        entity = EntityKey(entity_type, entity_id)
        key = self._keys.presence_key(entity, user_id)
        now = self._clock()

        entered_at_ns = now
        existing = await self._store.get(key)
        if existing is not None:
            entered_at_ns = PresenceRecord.from_payload(existing.value).entered_at_ns

        record = PresenceRecord(
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            display_name=display_name,
            email=email,
            avatar_url=avatar_url,
            entered_at_ns=entered_at_ns,
            last_seen_at_ns=now,
        )
        await self._store.put(key, record.to_payload(), self._ttl)
        if existing is None:
            logger.debug(f"Viewer {user_id} entered {entity}")

    async def leave(self, entity_type: str, entity_id: str, user_id: str) -> bool:
        """Drop a viewer immediately instead of waiting for the TTL.

        Returns:
            True if a live presence record was removed
        """
        entity = EntityKey(entity_type, entity_id)
        removed = await self._store.delete(self._keys.presence_key(entity, user_id))
        if removed:
            logger.debug(f"Viewer {user_id} left {entity}")
        return removed

    async def _records(self, entity: EntityKey) -> list[PresenceRecord]:
        entries = await self._store.scan_prefix(self._keys.presence_prefix(entity))
        return [PresenceRecord.from_payload(entry.value) for entry in entries]

    async def get_entity_viewers(self, entity_type: str, entity_id: str) -> list[PresenceInfo]:
        """Return live viewers of an entity, earliest arrival first."""
        records = await self._records(EntityKey(entity_type, entity_id))
        records.sort(key=lambda record: (record.entered_at_ns, record.user_id))
        return [record.to_info() for record in records]

    async def get_viewer_count(self, entity_type: str, entity_id: str) -> int:
        """Return the number of live viewers of an entity."""
        return len(await self._records(EntityKey(entity_type, entity_id)))

    async def get_presence_summary(self, entities: Iterable[EntityKey | tuple[str, str]]) -> dict[EntityKey, int]:
        """Return viewer counts for many entities with a single store scan.

        Every requested entity appears in the result, with 0 when nobody is
        viewing it.
        """
        summary = {EntityKey.coerce(entity): 0 for entity in entities}
        if not summary:
            return summary

        for entry in await self._store.scan_prefix(self._keys.presence_namespace):
            entity = PresenceRecord.from_payload(entry.value).entity_key
            if entity in summary:
                summary[entity] += 1

        logger.debug(f"Presence summary for {len(summary)} entities: {sum(summary.values())} viewer(s)")
        return summary
