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


"""Coordination entry storage model for SQL-backed stores."""

from __future__ import annotations

from sqlalchemy import BigInteger
from sqlmodel import Field, SQLModel


class CoordinationEntryModel(SQLModel, table=True):
    """Single key/value row with a TTL and a write version.

    Expiration-based storage:
    - Row is live while expires_at_ns > current time
    - Expired rows are ignored on query and replaced on the next write
    - version is replaced by a fresh random token on every write and guards compare-and-swap

    Attributes:
        key: Full store key (primary key)
        value: JSON-encoded payload
        version: Write token for optimistic concurrency
        expires_at_ns: Nanosecond timestamp when the entry expires
    """

    __tablename__ = "coordination_entries"  # type: ignore[assignment]

    key: str = Field(primary_key=True)
    value: str
    version: int = Field(default=1, sa_type=BigInteger)
    expires_at_ns: int = Field(sa_type=BigInteger, index=True)
