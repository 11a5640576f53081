"""Environment variable utilities.

Provides loading of .env files and point-in-time reads of the process
environment for the connection resolver.

Uses python-dotenv for .env file loading.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv

__all__ = ["get_env_value", "load_env_file", "process_environment"]


def load_env_file(
    path: Optional[Union[str, Path]] = None,
    *,
    override: bool = False,
) -> bool:
    """Load environment variables from a .env file.

    Args:
        path: Path to .env file. If None, searches for .env in current
              directory and parent directories.
        override: If True, override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.

    Example:
        >>> load_env_file()  # Loads from .env in current dir
        True
        >>> load_env_file(".env.production")  # Load specific file
        True
    """
    return load_dotenv(dotenv_path=path, override=override)


def process_environment() -> Mapping[str, str]:
    """Return the live process environment mapping.

    ``os.environ`` is returned itself rather than a copy so that every
    resolution sees the current value of a rotated variable.
    """
    return os.environ


def get_env_value(
    name: str,
    environ: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Read a single environment variable, treating empty values as unset.

    Args:
        name: Variable name
        environ: Mapping to read from (defaults to the process environment)

    Returns:
        The value, or None when the variable is missing or empty

    Example:
        >>> get_env_value("PG_PASSWORD", {"PG_PASSWORD": "secret"})
        'secret'
        >>> get_env_value("PG_PASSWORD", {"PG_PASSWORD": ""}) is None
        True
    """
    source = process_environment() if environ is None else environ
    value = source.get(name)
    if not value:
        return None
    return value
