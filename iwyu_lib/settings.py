#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ****************************************************************************************************************************************************
# * BSD 3-Clause License
# *
# * Copyright (c) 2025, Mana Battery
# * All rights reserved.
# *
# * Redistribution and use in source and binary forms, with or without modification, are permitted provided that the following conditions are met:
# *
# * 1. Redistributions of source code must retain the above copyright notice, this list of conditions and the following disclaimer.
# * 2. Redistributions in binary form must reproduce the above copyright notice, this list of conditions and the following disclaimer in the
# *    documentation and/or other materials provided with the distribution.
# * 3. Neither the name of the copyright holder nor the names of its contributors may be used to endorse or promote products derived from this
# *    software without specific prior written permission.
# *
# * THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO,
# * THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
# * CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
# * PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# * LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
# * EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
"""Project settings for iwyu-check.

Settings use the same keys as the include-what-you-use editor configuration
so an existing setup can be copied into ``.iwyu-check.json`` in the project
root:

    {
        "iwyu.path": "/opt/iwyu/bin/include-what-you-use",
        "iwyu.mappingFiles": ["tools/qt5.imp"],
        "iwyu.additionalArgs": ["--no_fwd_decls"],
        "fixIncludes.path": "fix_includes.py",
        "fixIncludes.additionalArgs": ["--nosafe_headers"],
        "compileCommands.path": "build/release"
    }

Subscribers registered with on_did_change() are told which keys changed
whenever a value is updated or the settings file is reloaded.
"""

import os
import json
import logging
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from iwyu_lib.constants import SETTINGS_FILE, DEFAULT_IWYU_PATH, DEFAULT_FIX_INCLUDES_PATH, ConfigurationError
from iwyu_lib.command_translator import TranslatorOptions

logger = logging.getLogger(__name__)

IWYU_PATH = "iwyu.path"
IWYU_MAPPING_FILES = "iwyu.mappingFiles"
IWYU_ADDITIONAL_ARGS = "iwyu.additionalArgs"
FIX_INCLUDES_PATH = "fixIncludes.path"
FIX_INCLUDES_ADDITIONAL_ARGS = "fixIncludes.additionalArgs"
COMPILE_COMMANDS_PATH = "compileCommands.path"

# Key -> (expected type, default)
SETTINGS_SCHEMA: Dict[str, Any] = {
    IWYU_PATH: (str, DEFAULT_IWYU_PATH),
    IWYU_MAPPING_FILES: (list, []),
    IWYU_ADDITIONAL_ARGS: (list, []),
    FIX_INCLUDES_PATH: (str, DEFAULT_FIX_INCLUDES_PATH),
    FIX_INCLUDES_ADDITIONAL_ARGS: (list, []),
    COMPILE_COMMANDS_PATH: (str, ""),
}


class ConfigurationChangeEvent:
    """Describes which settings changed in one update."""

    def __init__(self, keys: FrozenSet[str]):
        self.keys = keys

    def affects_configuration(self, key: str) -> bool:
        """Check if the given setting (or a section prefix of it) changed.

        Args:
            key: Full key like "compileCommands.path" or a section like "iwyu"

        Returns:
            True if the change touches the key
        """
        return any(changed == key or changed.startswith(key + ".") for changed in self.keys)

    def __repr__(self) -> str:
        return f"ConfigurationChangeEvent({sorted(self.keys)})"


def _validate(key: str, value: Any) -> Any:
    """Type check a setting value against the schema.

    Raises:
        ConfigurationError: If the value has the wrong type
    """
    expected, _ = SETTINGS_SCHEMA[key]
    if not isinstance(value, expected):
        raise ConfigurationError(f"Setting '{key}' must be a {expected.__name__}, got {type(value).__name__}")
    if expected is list and not all(isinstance(item, str) for item in value):
        raise ConfigurationError(f"Setting '{key}' must be a list of strings")
    return value


def read_settings_file(path: str) -> Dict[str, Any]:
    """Read and validate a settings file.

    Args:
        path: Path to the JSON settings file

    Returns:
        Dictionary of known keys to validated values; unknown keys are dropped

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (IOError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to read settings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid settings file {path}: expected object, got {type(data).__name__}")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in SETTINGS_SCHEMA:
            logger.warning("Ignoring unknown setting '%s' in %s", key, path)
            continue
        values[key] = _validate(key, value)
    return values


class Settings:
    """Settings store with change notification.

    Attributes:
        path: Settings file backing this store, or None for in-memory settings
    """

    def __init__(self, values: Optional[Dict[str, Any]] = None, path: Optional[str] = None):
        self.path = path
        self._values: Dict[str, Any] = {}
        self._overrides: Dict[str, Any] = {}
        self._listeners: List[Callable[[ConfigurationChangeEvent], None]] = []
        for key, value in (values or {}).items():
            if key not in SETTINGS_SCHEMA:
                raise ConfigurationError(f"Unknown setting '{key}'")
            self._values[key] = _validate(key, value)

    @classmethod
    def load(cls, project_root: str, path: Optional[str] = None) -> "Settings":
        """Load settings for a project.

        Args:
            project_root: Project root directory
            path: Explicit settings file; defaults to .iwyu-check.json in the project root

        Returns:
            Settings instance (defaults only if no settings file exists)

        Raises:
            ConfigurationError: If an explicit settings file is missing or the file is invalid
        """
        if path is None:
            path = os.path.join(project_root, SETTINGS_FILE)
            if not os.path.exists(path):
                logger.debug("No settings file at %s, using defaults", path)
                return cls(path=path)
        elif not os.path.exists(path):
            raise ConfigurationError(f"Settings file not found: {path}")

        logger.debug("Loading settings from %s", path)
        return cls(read_settings_file(path), path=path)

    def get(self, key: str) -> Any:
        """Return the effective value of a setting.

        Command line overrides win over the settings file, which wins over the default.
        Lists are returned as copies.
        """
        if key not in SETTINGS_SCHEMA:
            raise KeyError(key)
        if key in self._overrides:
            value = self._overrides[key]
        else:
            value = self._values.get(key, SETTINGS_SCHEMA[key][1])
        return list(value) if isinstance(value, list) else value

    def on_did_change(self, listener: Callable[[ConfigurationChangeEvent], None]) -> Callable[[], None]:
        """Subscribe to configuration changes.

        Args:
            listener: Called with a ConfigurationChangeEvent after values changed

        Returns:
            Function that removes the subscription
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _snapshot(self) -> Dict[str, Any]:
        return {key: self.get(key) for key in SETTINGS_SCHEMA}

    def _notify(self, before: Dict[str, Any]) -> None:
        after = self._snapshot()
        changed = frozenset(key for key in SETTINGS_SCHEMA if before[key] != after[key])
        if not changed:
            return
        event = ConfigurationChangeEvent(changed)
        logger.debug("Settings changed: %s", ", ".join(sorted(changed)))
        for listener in list(self._listeners):
            listener(event)

    def update(self, key: str, value: Any) -> None:
        """Set a value in the settings file layer and notify subscribers."""
        if key not in SETTINGS_SCHEMA:
            raise ConfigurationError(f"Unknown setting '{key}'")
        before = self._snapshot()
        self._values[key] = _validate(key, value)
        self._notify(before)

    def override(self, key: str, value: Any) -> None:
        """Set a command line override that survives reload()."""
        if key not in SETTINGS_SCHEMA:
            raise ConfigurationError(f"Unknown setting '{key}'")
        before = self._snapshot()
        self._overrides[key] = _validate(key, value)
        self._notify(before)

    def reload(self) -> None:
        """Re-read the settings file and notify subscribers about changed keys.

        A settings file that has disappeared resets the file layer to defaults.

        Raises:
            ConfigurationError: If the settings file is invalid
        """
        if self.path is None:
            return
        values = read_settings_file(self.path) if os.path.exists(self.path) else {}
        before = self._snapshot()
        self._values = values
        self._notify(before)

    def translator_options(self, project_root: str) -> TranslatorOptions:
        """Build the translator options from the current settings."""
        return TranslatorOptions(
            project_root=project_root,
            mapping_files=self.get(IWYU_MAPPING_FILES),
            additional_args=self.get(IWYU_ADDITIONAL_ARGS),
            fix_includes_args=self.get(FIX_INCLUDES_ADDITIONAL_ARGS),
        )
