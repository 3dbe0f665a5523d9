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


"""Coordination store abstract base class."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

JSONPayload = dict[str, Any]

NS_PER_SECOND = 1_000_000_000


class CoordinationError(Exception):
    """Base class for coordination failures."""


class StoreUnavailableError(CoordinationError):
    """Raised when the backing store is unreachable or times out."""


@dataclass(frozen=True)
class StoreEntry:
    """A live entry read from a coordination store.

    Attributes:
        key: Full store key
        value: JSON-compatible payload
        version: Unique write token, the guard for compare_and_swap
        expires_at_ns: Nanosecond timestamp when the entry expires
    """

    key: str
    value: JSONPayload
    version: int
    expires_at_ns: int


def new_version() -> int:
    """Return a fresh write token.

    Tokens are random rather than sequential so a key that is deleted and
    recreated never reuses a version a stale writer may still hold.
    """
    return uuid.uuid4().int >> 66


def ttl_to_ns(ttl_seconds: float) -> int:
    if ttl_seconds <= 0:
        raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
    return int(ttl_seconds * NS_PER_SECOND)


class CoordinationStore(ABC):
    """Shared key/value store with per-key TTL and atomic conditional writes.

    Every read filters logically expired entries, so callers never observe an
    entry whose TTL has elapsed even if the backend has not collected it yet.
    Conditional writes (set_if_absent, compare_and_swap, versioned delete)
    must be atomic across every process sharing the store.
    """

    @abstractmethod
    async def get(self, key: str) -> StoreEntry | None:
        """Return the live entry for key, or None."""

    @abstractmethod
    async def set_if_absent(self, key: str, value: JSONPayload, ttl_seconds: float) -> StoreEntry | None:
        """Write only if no live entry exists. Returns the new entry or None."""

    @abstractmethod
    async def compare_and_swap(
        self,
        key: str,
        expected_version: int,
        value: JSONPayload,
        ttl_seconds: float,
    ) -> StoreEntry | None:
        """Write only if the live entry still has expected_version. Returns the new entry or None."""

    @abstractmethod
    async def put(self, key: str, value: JSONPayload, ttl_seconds: float) -> StoreEntry:
        """Unconditionally write key with a fresh TTL."""

    @abstractmethod
    async def delete(self, key: str, *, expected_version: int | None = None) -> bool:
        """Delete key, optionally only at expected_version. Returns True if a live entry was removed."""

    @abstractmethod
    async def scan_prefix(self, prefix: str) -> list[StoreEntry]:
        """Return all live entries whose key starts with prefix."""

    async def close(self) -> None:
        """Release backend resources."""
        return None
