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


"""Coordination models.

- EntityKey: (entity_type, entity_id) addressing
- EntityLock / LockResult / LockFailureReason: lock manager values
- PresenceRecord / PresenceInfo: presence tracker values
- CoordinationEntryModel: SQL table backing SQLCoordinationStore
"""

from .coordination_entry import CoordinationEntryModel
from .entity_key import EntityKey
from .entity_lock import EntityLock, LockFailureReason, LockResult, ns_to_datetime
from .presence import PresenceInfo, PresenceRecord

__all__ = [
    "CoordinationEntryModel",
    "EntityKey",
    "EntityLock",
    "LockFailureReason",
    "LockResult",
    "PresenceInfo",
    "PresenceRecord",
    "ns_to_datetime",
]
