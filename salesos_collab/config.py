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


"""Configuration schema for the coordination services."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .utils import ConfigError, load_yaml_with_vars

if TYPE_CHECKING:
    from .coordination.store import CoordinationStore


class LockSettings(BaseModel):
    """TTL policy for entity locks, in seconds."""

    model_config = ConfigDict(extra="forbid")

    default_ttl_seconds: int = Field(default=300, gt=0)
    min_ttl_seconds: int = Field(default=30, gt=0)
    max_ttl_seconds: int = Field(default=3600, gt=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> LockSettings:
        if not self.min_ttl_seconds <= self.default_ttl_seconds <= self.max_ttl_seconds:
            raise ValueError("lock TTLs must satisfy min_ttl_seconds <= default_ttl_seconds <= max_ttl_seconds")
        return self


class PresenceSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ttl_seconds: float = Field(default=60.0, gt=0)


class MemoryStoreConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["memory"] = "memory"
    shared: bool = True


class SQLStoreConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["sql"] = "sql"
    url: str
    echo: bool = False


class RedisStoreConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["redis"] = "redis"
    url: str
    socket_timeout: float | None = Field(default=5.0, gt=0)


StoreConfig = Annotated[MemoryStoreConfig | SQLStoreConfig | RedisStoreConfig, Field(discriminator="type")]


def _default_store() -> StoreConfig:
    return MemoryStoreConfig()


class CoordinationConfig(BaseModel):
    """Top-level schema for coordination YAML files.

    Example YAML:

        key_prefix: collab
        lock:
          default_ttl_seconds: 300
        presence:
          ttl_seconds: 45
        store:
          type: redis
          url: ${env.REDIS_URL}
    """

    model_config = ConfigDict(extra="forbid")

    key_prefix: str = Field(default="collab", min_length=1)
    lock: LockSettings = Field(default_factory=LockSettings)
    presence: PresenceSettings = Field(default_factory=PresenceSettings)
    store: StoreConfig = Field(default_factory=_default_store)

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> CoordinationConfig:
        """Load and validate configuration from a YAML file.

        Raises:
            ConfigError: If the file is missing, unparsable or invalid
        """
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")

        try:
            config = load_yaml_with_vars(path)
        except (yaml.YAMLError, OSError) as e:
            raise ConfigError(f"YAML parsing error in {config_path}: {e}") from e

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigError(f"Invalid configuration file (expected a mapping): {config_path}")

        try:
            return cls.model_validate(config)
        except ValidationError as exc:
            raise ConfigError(f"Invalid coordination configuration in {config_path}: {exc}") from exc

    def create_store(self) -> CoordinationStore:
        """Build the configured store backend."""
        from .coordination.store import InMemoryCoordinationStore, RedisCoordinationStore, SQLCoordinationStore

        store = self.store
        if isinstance(store, SQLStoreConfig):
            return SQLCoordinationStore.from_url(store.url, echo=store.echo)
        if isinstance(store, RedisStoreConfig):
            return RedisCoordinationStore.from_url(store.url, socket_timeout=store.socket_timeout)
        if store.shared:
            return InMemoryCoordinationStore.get_shared_instance()
        return InMemoryCoordinationStore()
