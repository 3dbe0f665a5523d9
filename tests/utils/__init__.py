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


"""
Test utilities and helper functions.

This module contains helpers shared by the coordination tests.
"""

import asyncio
from typing import Any

from salesos_collab.coordination.store import CoordinationStore, JSONPayload, StoreEntry

START_NS = 1_700_000_000 * 1_000_000_000


class FakeClock:
    """Manually advanced nanosecond clock."""

    def __init__(self, start_ns: int = START_NS) -> None:
        self.now_ns = start_ns

    def __call__(self) -> int:
        return self.now_ns

    def advance(self, seconds: float) -> None:
        self.now_ns += int(seconds * 1_000_000_000)


class YieldingStore(CoordinationStore):
    """Wraps a store and yields to the event loop before every call.

    Lets concurrently gathered coroutines interleave between their reads and
    their conditional writes, as they would against a remote store.
    """

    def __init__(self, inner: CoordinationStore) -> None:
        self.inner = inner

    async def get(self, key: str) -> StoreEntry | None:
        await asyncio.sleep(0)
        return await self.inner.get(key)

    async def set_if_absent(self, key: str, value: JSONPayload, ttl_seconds: float) -> StoreEntry | None:
        await asyncio.sleep(0)
        return await self.inner.set_if_absent(key, value, ttl_seconds)

    async def compare_and_swap(
        self,
        key: str,
        expected_version: int,
        value: JSONPayload,
        ttl_seconds: float,
    ) -> StoreEntry | None:
        await asyncio.sleep(0)
        return await self.inner.compare_and_swap(key, expected_version, value, ttl_seconds)

    async def put(self, key: str, value: JSONPayload, ttl_seconds: float) -> StoreEntry:
        await asyncio.sleep(0)
        return await self.inner.put(key, value, ttl_seconds)

    async def delete(self, key: str, *, expected_version: int | None = None) -> bool:
        await asyncio.sleep(0)
        return await self.inner.delete(key, expected_version=expected_version)

    async def scan_prefix(self, prefix: str) -> list[StoreEntry]:
        await asyncio.sleep(0)
        return await self.inner.scan_prefix(prefix)


def lock_service_kwargs(**overrides: Any) -> dict[str, Any]:
    """Lock service TTL settings with a 1s floor so expiry tests stay short."""
    kwargs: dict[str, Any] = {"default_ttl_seconds": 300, "min_ttl_seconds": 1, "max_ttl_seconds": 3600}
    kwargs.update(overrides)
    return kwargs
