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


"""Presence data models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from .entity_key import EntityKey
from .entity_lock import ns_to_datetime


class PresenceRecord(BaseModel):
    """Stored presence of one user on one entity.

    Keyed by (entity_type, entity_id, user_id). Volatile: the record lives only
    as long as its store TTL, which every heartbeat renews.
    """

    model_config = ConfigDict(frozen=True)

    entity_type: str
    entity_id: str
    user_id: str
    display_name: str = ""
    email: str = ""
    avatar_url: str | None = None
    entered_at_ns: int
    last_seen_at_ns: int

    @property
    def entity_key(self) -> EntityKey:
        return EntityKey(self.entity_type, self.entity_id)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PresenceRecord:
        return cls.model_validate(payload)

    def to_info(self) -> PresenceInfo:
        return PresenceInfo(
            user_id=self.user_id,
            display_name=self.display_name,
            email=self.email,
            avatar_url=self.avatar_url,
            entered_at=ns_to_datetime(self.entered_at_ns),
            last_seen_at=ns_to_datetime(self.last_seen_at_ns),
        )


class PresenceInfo(BaseModel):
    """Viewer entry returned to callers."""

    user_id: str
    display_name: str
    email: str = ""
    avatar_url: str | None = None
    entered_at: datetime
    last_seen_at: datetime
