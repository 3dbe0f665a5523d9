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


"""Store key layout for locks and presence.

    {prefix}:lock:{type}:{id}
    {prefix}:presence:{type}:{id}:{user}

Every component is percent-encoded, so a per-entity presence prefix
("...:deal:1:") never matches the keys of another entity ("...:deal:10:").
"""

from __future__ import annotations

from urllib.parse import quote

from .models.entity_key import EntityKey


class CoordinationKeys:
    """Builds store keys under a shared prefix."""

    def __init__(self, prefix: str = "collab") -> None:
        if not prefix:
            raise ValueError("key prefix must not be empty")
        self._prefix = prefix

    @property
    def lock_namespace(self) -> str:
        return f"{self._prefix}:lock:"

    @property
    def presence_namespace(self) -> str:
        return f"{self._prefix}:presence:"

    def lock_key(self, entity: EntityKey) -> str:
        return self.lock_namespace + entity.storage_fragment()

    def presence_prefix(self, entity: EntityKey) -> str:
        return f"{self.presence_namespace}{entity.storage_fragment()}:"

    def presence_key(self, entity: EntityKey, user_id: str) -> str:
        return self.presence_prefix(entity) + quote(user_id, safe="")
