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


"""Redis coordination store.

Entries are JSON documents ``{"version": str, "expires_at_ns": int, "value": {...}}``
stored with a server-side ``PX`` TTL. Expiry is decided by Redis alone, so API
instances with drifting clocks still agree on whether a lock is live.

- set_if_absent: ``SET key doc NX PX ttl``
- compare_and_swap / versioned delete: Lua scripts, atomic on the server
- scan_prefix: ``SCAN MATCH prefix*`` followed by ``MGET``
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .base import NS_PER_SECOND, CoordinationStore, JSONPayload, StoreEntry, StoreUnavailableError, new_version

logger = logging.getLogger(__name__)

_COMPARE_AND_SWAP_LUA = """
local current = redis.call('GET', KEYS[1])
if not current then
  return 0
end
local doc = cjson.decode(current)
if doc['version'] ~= ARGV[1] then
  return 0
end
redis.call('SET', KEYS[1], ARGV[2], 'PX', ARGV[3])
return 1
"""

_DELETE_IF_VERSION_LUA = """
local current = redis.call('GET', KEYS[1])
if not current then
  return 0
end
local doc = cjson.decode(current)
if doc['version'] ~= ARGV[1] then
  return 0
end
return redis.call('DEL', KEYS[1])
"""

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


@contextmanager
def _unavailable_on_failure(operation: str, key: str) -> Iterator[None]:
    """Translate connectivity failures into StoreUnavailableError."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        logger.warning(f"Redis coordination store unavailable during {operation} for key={key}: {e}")
        raise StoreUnavailableError(f"Redis coordination store unavailable during {operation}") from e


def _ttl_ms(ttl_seconds: float) -> int:
    if ttl_seconds <= 0:
        raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
    return max(1, int(ttl_seconds * 1000))


class RedisCoordinationStore(CoordinationStore):
    """Coordination store shared by every API instance through Redis.

    Example:
        >>> store = RedisCoordinationStore.from_url("redis://localhost:6379/0")
        >>> entry = await store.set_if_absent("collab:lock:deal:42", {"holder_user_id": "u1"}, 300)
    """

    def __init__(self, client: aioredis.Redis, *, clock: Callable[[], int] = time.time_ns) -> None:
        """Initialize the store.

        Args:
            client: redis.asyncio client created with decode_responses=True
            clock: Nanosecond clock used only to report expires_at_ns
        """
        self._redis = client
        self._clock = clock
        self._cas_script = client.register_script(_COMPARE_AND_SWAP_LUA)
        self._delete_script = client.register_script(_DELETE_IF_VERSION_LUA)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float | None = 5.0,
        clock: Callable[[], int] = time.time_ns,
        **kwargs: Any,
    ) -> RedisCoordinationStore:
        """Create store from a redis:// or rediss:// URL."""
        if not url.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError(f"URL must use redis://, rediss:// or unix:// scheme: {url}")
        client = aioredis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            **kwargs,
        )
        return cls(client, clock=clock)

    def _encode(self, key: str, value: JSONPayload, ttl_seconds: float) -> tuple[str, StoreEntry]:
        version = new_version()
        expires_at_ns = self._clock() + int(ttl_seconds * NS_PER_SECOND)
        doc = {"version": str(version), "expires_at_ns": expires_at_ns, "value": value}
        return json.dumps(doc), StoreEntry(key=key, value=value, version=version, expires_at_ns=expires_at_ns)

    @staticmethod
    def _decode(key: str, raw: str) -> StoreEntry:
        doc = json.loads(raw)
        return StoreEntry(
            key=key,
            value=doc["value"],
            version=int(doc["version"]),
            expires_at_ns=int(doc["expires_at_ns"]),
        )

    async def get(self, key: str) -> StoreEntry | None:
        with _unavailable_on_failure("get", key):
            raw = await self._redis.get(key)
        return self._decode(key, raw) if raw is not None else None

    async def set_if_absent(self, key: str, value: JSONPayload, ttl_seconds: float) -> StoreEntry | None:
        payload, entry = self._encode(key, value, ttl_seconds)
        with _unavailable_on_failure("set_if_absent", key):
            written = await self._redis.set(key, payload, nx=True, px=_ttl_ms(ttl_seconds))
        if not written:
            return None
        return entry

    async def compare_and_swap(
        self,
        key: str,
        expected_version: int,
        value: JSONPayload,
        ttl_seconds: float,
    ) -> StoreEntry | None:
        payload, entry = self._encode(key, value, ttl_seconds)
        with _unavailable_on_failure("compare_and_swap", key):
            swapped = await self._cas_script(keys=[key], args=[str(expected_version), payload, _ttl_ms(ttl_seconds)])
        if int(swapped) != 1:
            return None
        return entry

    async def put(self, key: str, value: JSONPayload, ttl_seconds: float) -> StoreEntry:
        payload, entry = self._encode(key, value, ttl_seconds)
        with _unavailable_on_failure("put", key):
            await self._redis.set(key, payload, px=_ttl_ms(ttl_seconds))
        return entry

    async def delete(self, key: str, *, expected_version: int | None = None) -> bool:
        with _unavailable_on_failure("delete", key):
            if expected_version is None:
                removed = await self._redis.delete(key)
            else:
                removed = await self._delete_script(keys=[key], args=[str(expected_version)])
        return int(removed) > 0

    async def scan_prefix(self, prefix: str) -> list[StoreEntry]:
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        with _unavailable_on_failure("scan_prefix", prefix):
            keys = sorted({key async for key in self._redis.scan_iter(match=pattern, count=500)})
            if not keys:
                return []
            raws = await self._redis.mget(keys)
        # Keys may expire between SCAN and MGET
        return [self._decode(key, raw) for key, raw in zip(keys, raws) if raw is not None]

    async def close(self) -> None:
        await self._redis.aclose()
