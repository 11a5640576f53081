"""Read-only hierarchical configuration store.

Holds application settings as ``:``-separated keys (for example
``ExternalConnections:analytics:HostPort``). The resolver uses the store in
two ways: as a fallback when an environment variable is not set in the
process, and as the home of named connection profiles.

Keys are compared case-insensitively, matching the usual conventions of
hierarchical application settings.

Usage:
    store = ConfigStore.from_file("appsettings.yaml")
    store.get("ExternalConnections:analytics:HostPort")

    # Layer environment variables over a file (later sources win)
    store = ConfigStore.merged(
        ConfigStore.from_file("appsettings.yaml"),
        ConfigStore.from_environ(prefix="APP_"),
    )
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import yaml

from chsources.lib.errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["ConfigSection", "ConfigStore", "SEPARATOR"]

SEPARATOR = ":"

# Double underscore stands in for the separator in environment variable names
ENV_SEPARATOR = "__"


def _flatten(data: Any, prefix: str, out: Dict[str, Tuple[str, str]]) -> None:
    if isinstance(data, Mapping):
        for key, value in data.items():
            path = f"{prefix}{SEPARATOR}{key}" if prefix else str(key)
            _flatten(value, path, out)
    elif isinstance(data, (list, tuple)):
        for index, value in enumerate(data):
            path = f"{prefix}{SEPARATOR}{index}" if prefix else str(index)
            _flatten(value, path, out)
    elif data is None:
        return
    else:
        if isinstance(data, bool):
            text = "true" if data else "false"
        else:
            text = str(data)
        out[prefix.lower()] = (prefix, text)


class ConfigStore:
    """Immutable string-keyed configuration store.

    Args:
        data: Nested mapping (as parsed from YAML/JSON) or a flat mapping
              whose keys already contain ``:`` separators.
    """

    def __init__(self, data: Optional[Mapping[str, Any]] = None) -> None:
        values: Dict[str, Tuple[str, str]] = {}
        if data:
            _flatten(data, "", values)
        self._values = values

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ConfigStore":
        """Load a store from a YAML or JSON file.

        Raises:
            FileNotFoundError: If the file does not exist
            ConfigurationError: If the file is malformed or not a mapping
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"Invalid syntax in configuration file {path}: {e}",
                    field="root",
                ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file {path} must contain a mapping at the top level",
                field="root",
            )

        logger.debug("Loaded configuration store from %s", path)
        return cls(data)

    @classmethod
    def from_environ(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        *,
        prefix: str = "",
    ) -> "ConfigStore":
        """Build a store from environment variables.

        ``ExternalConnections__analytics__HostPort`` becomes the key
        ``ExternalConnections:analytics:HostPort``. When ``prefix`` is given
        only matching variables are used and the prefix is stripped.
        """
        source = os.environ if environ is None else environ
        flat: Dict[str, str] = {}
        for name, value in source.items():
            if prefix:
                if not name.startswith(prefix):
                    continue
                name = name[len(prefix):]
            flat[name.replace(ENV_SEPARATOR, SEPARATOR)] = value
        return cls(flat)

    @classmethod
    def merged(cls, *stores: "ConfigStore") -> "ConfigStore":
        """Combine stores; keys from later stores override earlier ones."""
        result = cls()
        for store in stores:
            result._values.update(store._values)
        return result

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a value by its full ``:``-separated key."""
        entry = self._values.get(key.lower())
        if entry is None:
            return default
        return entry[1]

    def __getitem__(self, key: str) -> Optional[str]:
        return self.get(key)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._values.values())

    def exists(self, path: str) -> bool:
        """Check whether a key or any key below it is present."""
        lowered = path.lower()
        if lowered in self._values:
            return True
        child_prefix = lowered + SEPARATOR
        return any(key.startswith(child_prefix) for key in self._values)

    def section(self, path: str) -> "ConfigSection":
        """Return a view over the keys below ``path``."""
        return ConfigSection(self, path)


class ConfigSection:
    """A view over one section of a :class:`ConfigStore`."""

    def __init__(self, store: ConfigStore, path: str) -> None:
        self._store = store
        self.path = path

    def exists(self) -> bool:
        return self._store.exists(self.path)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._store.get(f"{self.path}{SEPARATOR}{key}", default)

    def __getitem__(self, key: str) -> Optional[str]:
        return self.get(key)

    def keys(self) -> List[str]:
        """Immediate child key names of this section."""
        prefix = self.path.lower() + SEPARATOR
        names: List[str] = []
        for original in self._store:
            if original.lower().startswith(prefix):
                child = original[len(prefix):].split(SEPARATOR, 1)[0]
                if child not in names:
                    names.append(child)
        return names
