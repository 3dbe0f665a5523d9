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


"""Shared helpers."""

from __future__ import annotations

import os
import re
from typing import Any, cast

import yaml

YamlValue = dict[str, Any] | list[Any] | str | int | float | bool | None


class ConfigError(Exception):
    """Exception raised for configuration errors."""

    pass


def load_yaml_with_vars(path: str | os.PathLike[str]) -> YamlValue:
    """Load a YAML file, resolving placeholders in its raw text.

    Supported placeholders:
        ${this_file_dir}      directory of the YAML file
        ${env.NAME}           environment variable NAME (must be set)
        ${variables.a.b}      scalar from the file's top-level ``variables`` mapping

    Raises:
        ConfigError: On a missing environment variable or undefined/non-scalar variable
    """
    with open(path, encoding="utf-8") as f:
        config_text = f.read()

    base_dir = os.path.dirname(os.path.abspath(path))
    config_text = config_text.replace("${this_file_dir}", base_dir)

    env_pattern = re.compile(r"\$\{env\.([A-Za-z_][A-Za-z0-9_]*)\}")

    def _replace_env(match: re.Match[str]) -> str:
        env_name = match.group(1)
        if env_name not in os.environ:
            raise ConfigError(f"Environment variable '{env_name}' is not set")
        return os.environ[env_name]

    config_text = env_pattern.sub(_replace_env, config_text)

    loaded_config: YamlValue = yaml.safe_load(config_text)
    if not isinstance(loaded_config, dict):
        return loaded_config

    yaml_variables = loaded_config.get("variables")
    if yaml_variables is None:
        return loaded_config
    if not isinstance(yaml_variables, dict):
        raise ConfigError("'variables' must be a mapping if provided in YAML")
    yaml_variables = cast(dict[str, Any], yaml_variables)

    var_pattern = re.compile(r"\$\{variables\.([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)\}")

    def _resolve_var(match: re.Match[str]) -> str:
        current: YamlValue = yaml_variables
        for part in match.group(1).split("."):
            if not isinstance(current, dict) or part not in current:
                raise ConfigError(f"Variable '{match.group(1)}' is not defined in 'variables'")
            current = current[part]
        if isinstance(current, (dict, list)):
            raise ConfigError(
                f"Variable '{match.group(1)}' resolves to a non-scalar value and cannot be embedded in a string",
            )
        return str(current)

    config_text = var_pattern.sub(_resolve_var, config_text)
    resolved_config: YamlValue = yaml.safe_load(config_text)
    if isinstance(resolved_config, dict):
        resolved_config.pop("variables", None)
    return resolved_config
