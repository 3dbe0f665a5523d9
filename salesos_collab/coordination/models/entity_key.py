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


"""Entity addressing for coordination records."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote, unquote

_SEPARATOR = ":"


@dataclass(frozen=True, order=True)
class EntityKey:
    """Composite identifier of a CRM record taking part in coordination.

    ``entity_type`` is an open string ("deal", "lead", "account", ...) so new
    object types can be coordinated without changes here.

    Attributes:
        entity_type: CRM object type
        entity_id: Record identifier within that type
    """

    entity_type: str
    entity_id: str

    def storage_fragment(self) -> str:
        """Render the key as a store key fragment.

        Both components are percent-encoded, so separators inside a type or
        id never produce the same fragment for two different keys.

        Example:
            >>> EntityKey("deal", "a:b").storage_fragment()
            'deal:a%3Ab'
        """
        return f"{_encode(self.entity_type)}{_SEPARATOR}{_encode(self.entity_id)}"

    @classmethod
    def from_storage_fragment(cls, fragment: str) -> EntityKey:
        """Parse a fragment produced by storage_fragment().

        Raises:
            ValueError: If the fragment is not made of exactly two components
        """
        parts = fragment.split(_SEPARATOR)
        if len(parts) != 2:
            raise ValueError(f"Invalid entity key fragment: {fragment!r}")
        return cls(entity_type=unquote(parts[0]), entity_id=unquote(parts[1]))

    @classmethod
    def coerce(cls, value: EntityKey | tuple[str, str]) -> EntityKey:
        """Accept either an EntityKey or an (entity_type, entity_id) pair."""
        if isinstance(value, EntityKey):
            return value
        entity_type, entity_id = value
        return cls(entity_type=entity_type, entity_id=entity_id)

    def __str__(self) -> str:
        return f"{self.entity_type}/{self.entity_id}"


def _encode(component: str) -> str:
    return quote(component, safe="")
