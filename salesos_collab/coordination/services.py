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


"""Service bundle wiring locks and presence onto one store."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import CoordinationConfig
from .lock_service import EntityLockService
from .presence_service import PresenceService
from .store.base import CoordinationStore

logger = logging.getLogger(__name__)


@dataclass
class CollaborationServices:
    """Lock and presence services sharing one coordination store.

    This is what a controller layer holds on to. The two services share only
    the store and the key prefix, never state.
    """

    store: CoordinationStore
    locks: EntityLockService
    presence: PresenceService

    @classmethod
    def from_config(cls, config: CoordinationConfig | None = None) -> CollaborationServices:
        config = config or CoordinationConfig()
        store = config.create_store()
        logger.info(f"Collaboration services using {type(store).__name__} with prefix '{config.key_prefix}'")
        return cls(
            store=store,
            locks=EntityLockService(
                store=store,
                default_ttl_seconds=config.lock.default_ttl_seconds,
                min_ttl_seconds=config.lock.min_ttl_seconds,
                max_ttl_seconds=config.lock.max_ttl_seconds,
                key_prefix=config.key_prefix,
            ),
            presence=PresenceService(
                store=store,
                presence_ttl_seconds=config.presence.ttl_seconds,
                key_prefix=config.key_prefix,
            ),
        )

    async def aclose(self) -> None:
        await self.store.close()
