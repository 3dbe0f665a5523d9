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


"""Collaborative entity coordination: locks and presence."""

from .keys import CoordinationKeys
from .lock_service import EntityLockService
from .models import (
    EntityKey,
    EntityLock,
    LockFailureReason,
    LockResult,
    PresenceInfo,
    PresenceRecord,
)
from .presence_service import PresenceService
from .services import CollaborationServices
from .store import (
    CoordinationError,
    CoordinationStore,
    InMemoryCoordinationStore,
    RedisCoordinationStore,
    SQLCoordinationStore,
    StoreEntry,
    StoreUnavailableError,
)

__all__ = [
    # Models
    "EntityKey",
    "EntityLock",
    "LockResult",
    "LockFailureReason",
    "PresenceInfo",
    "PresenceRecord",
    # Stores
    "CoordinationStore",
    "StoreEntry",
    "InMemoryCoordinationStore",
    "SQLCoordinationStore",
    "RedisCoordinationStore",
    # Errors
    "CoordinationError",
    "StoreUnavailableError",
    # Services
    "CoordinationKeys",
    "EntityLockService",
    "PresenceService",
    "CollaborationServices",
]
