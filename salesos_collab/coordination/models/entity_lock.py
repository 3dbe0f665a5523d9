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


"""Entity lock data models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from .entity_key import EntityKey


def ns_to_datetime(value_ns: int) -> datetime:
    """Convert a nanosecond epoch timestamp to an aware UTC datetime."""
    return datetime.fromtimestamp(value_ns / 1_000_000_000, tz=UTC)


class EntityLock(BaseModel):
    """Exclusive edit lock on a single entity.

    Lock key: (entity_type, entity_id)
    - At most one live lock per key
    - Re-acquire or refresh by the holder pushes expires_at_ns forward
    - A lock whose expires_at_ns has passed is treated as absent

    Attributes:
        entity_type: CRM object type of the locked entity
        entity_id: Identifier of the locked entity
        holder_user_id: User currently holding the lock
        holder_display_name: Display name of the holder (metadata)
        holder_email: Email of the holder (metadata)
        acquired_at_ns: Nanosecond timestamp when the lock was first acquired
        expires_at_ns: Nanosecond timestamp when the lock expires
        ttl_seconds: TTL applied at the last acquire or refresh
    """

    model_config = ConfigDict(frozen=True)

    entity_type: str
    entity_id: str
    holder_user_id: str
    holder_display_name: str = ""
    holder_email: str = ""
    acquired_at_ns: int
    expires_at_ns: int
    ttl_seconds: int

    @property
    def entity_key(self) -> EntityKey:
        return EntityKey(self.entity_type, self.entity_id)

    @property
    def acquired_at(self) -> datetime:
        return ns_to_datetime(self.acquired_at_ns)

    @property
    def expires_at(self) -> datetime:
        return ns_to_datetime(self.expires_at_ns)

    def is_expired(self, now_ns: int) -> bool:
        return self.expires_at_ns <= now_ns

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> EntityLock:
        return cls.model_validate(payload)


class LockFailureReason(str, Enum):
    """Why a lock operation did not succeed."""

    HELD_BY_OTHER = "held_by_other"
    NOT_FOUND = "not_found"


class LockResult(BaseModel):
    """Outcome of acquire_lock / refresh_lock.

    Contention and a missing lock are ordinary outcomes, not errors:
    - success=True: ``lock`` is the caller's lock
    - HELD_BY_OTHER: ``lock`` is the other holder's live lock
    - NOT_FOUND: ``lock`` is None, the caller should acquire instead
    """

    success: bool
    lock: EntityLock | None = None
    reason: LockFailureReason | None = None

    @classmethod
    def acquired(cls, lock: EntityLock) -> LockResult:
        return cls(success=True, lock=lock)

    @classmethod
    def held_by_other(cls, lock: EntityLock | None) -> LockResult:
        return cls(success=False, lock=lock, reason=LockFailureReason.HELD_BY_OTHER)

    @classmethod
    def not_found(cls) -> LockResult:
        return cls(success=False, reason=LockFailureReason.NOT_FOUND)
