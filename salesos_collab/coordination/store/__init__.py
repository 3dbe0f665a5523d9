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


"""Coordination store backends."""

from .base import (
    CoordinationError,
    CoordinationStore,
    JSONPayload,
    StoreEntry,
    StoreUnavailableError,
    new_version,
)
from .memory_store import InMemoryCoordinationStore
from .redis_store import RedisCoordinationStore
from .sql_store import SQLCoordinationStore

__all__ = [
    # Base
    "CoordinationStore",
    "StoreEntry",
    "JSONPayload",
    "new_version",
    # Errors
    "CoordinationError",
    "StoreUnavailableError",
    # Backends
    "InMemoryCoordinationStore",
    "SQLCoordinationStore",
    "RedisCoordinationStore",
]
