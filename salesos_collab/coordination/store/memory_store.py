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


"""In-memory coordination store using pure Python objects.

This provides ephemeral, process-local storage with the same conditional
write semantics as the shared backends. All data is lost when the Python
process terminates, and nothing is shared between processes, so it suits
tests and single-instance deployments only.
"""

from __future__ import annotations

import copy
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from .base import CoordinationStore, JSONPayload, StoreEntry, new_version, ttl_to_ns

# Global singleton instance for shared in-memory storage
_shared_instance: InMemoryCoordinationStore | None = None


@dataclass
class _Slot:
    value: JSONPayload
    version: int
    expires_at_ns: int


class InMemoryCoordinationStore(CoordinationStore):
    """Thread-safe in-memory coordination store.

    Thread Safety:
        - Uses threading.RLock around every read and write
        - Each check-and-write runs under one lock acquisition, which makes
          conditional writes atomic for all tasks and threads in the process

    Expired slots are dropped when a read or write touches them; there is no
    sweeper.

    Example:
        >>> store = InMemoryCoordinationStore()
        >>> entry = await store.set_if_absent("collab:lock:deal:42", {"holder_user_id": "u1"}, 300)
        >>> await store.set_if_absent("collab:lock:deal:42", {"holder_user_id": "u2"}, 300) is None
        True
    """

    def __init__(self, *, clock: Callable[[], int] = time.time_ns) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Nanosecond clock used for TTL bookkeeping (default: time.time_ns)
        """
        self._slots: dict[str, _Slot] = {}
        self._clock = clock
        self._lock = threading.RLock()

    @staticmethod
    def get_shared_instance() -> InMemoryCoordinationStore:
        """Get the global shared instance of InMemoryCoordinationStore.

        Services built without an explicit store share this instance so that
        locks and presence agree within one process.
        """
        global _shared_instance
        if _shared_instance is None:
            _shared_instance = InMemoryCoordinationStore()
        return _shared_instance

    def _live_slot(self, key: str, now_ns: int) -> _Slot | None:
        """Return the slot for key if it has not expired, evicting it otherwise."""
        slot = self._slots.get(key)
        if slot is None:
            return None
        if slot.expires_at_ns <= now_ns:
            del self._slots[key]
            return None
        return slot

    def _write(self, key: str, value: JSONPayload, ttl_seconds: float, now_ns: int) -> StoreEntry:
        slot = _Slot(
            value=copy.deepcopy(value),
            version=new_version(),
            expires_at_ns=now_ns + ttl_to_ns(ttl_seconds),
        )
        self._slots[key] = slot
        return self._to_entry(key, slot)

    @staticmethod
    def _to_entry(key: str, slot: _Slot) -> StoreEntry:
        return StoreEntry(
            key=key,
            value=copy.deepcopy(slot.value),
            version=slot.version,
            expires_at_ns=slot.expires_at_ns,
        )

    async def get(self, key: str) -> StoreEntry | None:
        with self._lock:
            slot = self._live_slot(key, self._clock())
            return self._to_entry(key, slot) if slot is not None else None

    async def set_if_absent(self, key: str, value: JSONPayload, ttl_seconds: float) -> StoreEntry | None:
        with self._lock:
            now = self._clock()
            if self._live_slot(key, now) is not None:
                return None
            return self._write(key, value, ttl_seconds, now)

    async def compare_and_swap(
        self,
        key: str,
        expected_version: int,
        value: JSONPayload,
        ttl_seconds: float,
    ) -> StoreEntry | None:
        with self._lock:
            now = self._clock()
            slot = self._live_slot(key, now)
            if slot is None or slot.version != expected_version:
                return None
            return self._write(key, value, ttl_seconds, now)

    async def put(self, key: str, value: JSONPayload, ttl_seconds: float) -> StoreEntry:
        with self._lock:
            return self._write(key, value, ttl_seconds, self._clock())

    async def delete(self, key: str, *, expected_version: int | None = None) -> bool:
        with self._lock:
            slot = self._live_slot(key, self._clock())
            if slot is None:
                return False
            if expected_version is not None and slot.version != expected_version:
                return False
            del self._slots[key]
            return True

    async def scan_prefix(self, prefix: str) -> list[StoreEntry]:
        with self._lock:
            now = self._clock()
            keys = [key for key in self._slots if key.startswith(prefix)]
            entries: list[StoreEntry] = []
            for key in sorted(keys):
                slot = self._live_slot(key, now)
                if slot is not None:
                    entries.append(self._to_entry(key, slot))
            return entries
