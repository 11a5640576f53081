"""Connection parameter resolution.

Turns literal-or-environment fields and named connection profiles into
concrete strings. Resolution happens on every call; nothing is cached, so
a rotated environment variable is picked up by the next render.

Precedence for a single field:
    1. A profile name on the owning connection supersedes every field.
    2. An environment reference is read from the process environment,
       then from the configuration store under the same key. A required
       reference that resolves nowhere is an error; the literal on the
       same field is not consulted.
    3. A non-empty literal.
    4. Required fields fail, optional fields resolve to "".

Profiles live in the configuration store under
``ExternalConnections:<name>``:

    ExternalConnections:
      analytics:
        HostPort: pg.internal:5432
        Database: analytics
        UserEnv: ANALYTICS_USER
        PasswordEnv: ANALYTICS_PASSWORD
        Schema: reporting
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple

from chsources.lib.config_store import ConfigStore
from chsources.lib.env import get_env_value
from chsources.lib.errors import (
    ConfigurationError,
    MissingConfigurationValueError,
    MissingConnectionProfileError,
    MissingEnvironmentVariableError,
    MissingProfileFieldError,
)
from chsources.lib.models import ConnectionSettings, ResolvableValue, parse_bounded_int

logger = logging.getLogger(__name__)

__all__ = [
    "CONNECTION_FIELDS",
    "ConnectionResolver",
    "PROFILE_SECTION",
    "ResolvedConnection",
]

PROFILE_SECTION = "ExternalConnections"
DEFAULT_SCHEMA = "public"
MAX_PORT = 65535

# Attribute name -> profile sub-key
PROFILE_KEYS: Dict[str, str] = {
    "host_port": "HostPort",
    "database": "Database",
    "user": "User",
    "password": "Password",
}

# Attribute name -> human-readable setting name used in errors
SETTING_NAMES: Dict[str, str] = {
    "host_port": "host:port",
    "host": "host",
    "port": "port",
    "database": "database",
    "user": "user",
    "password": "password",
}

CONNECTION_FIELDS: Tuple[str, ...] = ("host_port", "database", "user", "password")


@dataclass(frozen=True)
class ResolvedConnection:
    """Concrete connection values produced by the resolver."""

    host_port: str = ""
    database: str = ""
    user: str = ""
    password: str = ""
    schema: str = DEFAULT_SCHEMA

    @property
    def host(self) -> str:
        return self.host_port.rpartition(":")[0] or self.host_port

    @property
    def port(self) -> Optional[int]:
        host, sep, port = self.host_port.rpartition(":")
        if not sep or not port.isdigit():
            return None
        return int(port)

    def __repr__(self) -> str:
        # Keep secrets out of logs and tracebacks
        return (
            f"ResolvedConnection(host_port={self.host_port!r}, "
            f"database={self.database!r}, user={self.user!r}, "
            f"password='***', schema={self.schema!r})"
        )


class ConnectionResolver:
    """Resolve connection fields against the environment and a config store.

    Args:
        config: Optional configuration store used as environment fallback
                and as the home of connection profiles.
        environ: Optional environment mapping. Defaults to the live process
                 environment, read at call time.

    Example:
        >>> resolver = ConnectionResolver(environ={"PG_PASSWORD": "secret"})
        >>> resolver.resolve(ResolvableValue.from_env("PG_PASSWORD"), setting="password")
        'secret'
    """

    def __init__(
        self,
        config: Optional[ConfigStore] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._config = config
        self._environ = environ

    @property
    def config(self) -> Optional[ConfigStore]:
        return self._config

    # ------------------------------------------------------------------
    # Single fields
    # ------------------------------------------------------------------

    def lookup_env(self, name: str) -> Optional[str]:
        """Read ``name`` from the environment, then from the config store."""
        value = get_env_value(name, self._environ)
        if value:
            return value

        if self._config is not None:
            value = self._config.get(name)
            if value:
                logger.debug("Environment variable %s resolved from configuration store", name)
                return value

        return None

    def require_env(self, name: str, *, entity: Optional[str] = None) -> str:
        """Like :meth:`lookup_env` but missing values are an error."""
        value = self.lookup_env(name)
        if value is None:
            raise MissingEnvironmentVariableError(name, entity=entity)
        return value

    def resolve(
        self,
        field: ResolvableValue,
        *,
        required: bool = True,
        setting: str = "value",
        entity: Optional[str] = None,
    ) -> str:
        """Resolve one literal-or-environment field.

        Raises:
            MissingEnvironmentVariableError: Required env reference unresolved
            MissingConfigurationValueError: Required field not configured
        """
        if field.env:
            value = self.lookup_env(field.env)
            if value:
                logger.debug("Resolved %s for %s from environment variable %s", setting, entity, field.env)
                return value
            if required:
                raise MissingEnvironmentVariableError(field.env, entity=entity)

        if field.value:
            return field.value

        if required:
            raise MissingConfigurationValueError(setting, entity=entity)

        return ""

    def resolve_int(
        self,
        text: str,
        *,
        setting: str,
        entity: Optional[str] = None,
        minimum: Optional[int] = None,
        maximum: Optional[int] = None,
    ) -> int:
        """Parse a resolved numeric field and check its range.

        Raises:
            InvalidRangeError: If the text is not an integer or out of range
        """
        return parse_bounded_int(text, setting, entity=entity, minimum=minimum, maximum=maximum)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def resolve_profile(
        self,
        name: str,
        fields: Iterable[str] = CONNECTION_FIELDS,
        *,
        entity: Optional[str] = None,
        optional: Iterable[str] = (),
    ) -> ResolvedConnection:
        """Resolve the needed fields of a named connection profile.

        Raises:
            MissingConnectionProfileError: If the profile section is absent
            MissingProfileFieldError: If a needed field has no value or Env key
            MissingEnvironmentVariableError: If a ``<Key>Env`` reference is unset
        """
        if self._config is None:
            raise MissingConnectionProfileError(
                name,
                entity=entity,
                suggestion="Pass a ConfigStore to ConnectionResolver to use connection profiles.",
            )

        section = self._config.section(f"{PROFILE_SECTION}:{name}")
        if not section.exists():
            raise MissingConnectionProfileError(name, entity=entity)

        logger.debug("Resolving connection profile %s for %s", name, entity)

        optional_fields = set(optional)
        values: Dict[str, str] = {}
        for attr in fields:
            key = PROFILE_KEYS[attr]
            value = section.get(key)
            if value:
                values[attr] = value
                continue

            env_name = section.get(f"{key}Env")
            if env_name:
                values[attr] = self.require_env(env_name, entity=entity)
                continue

            if attr in optional_fields:
                values[attr] = ""
                continue

            raise MissingProfileFieldError(name, key, entity=entity)

        schema = section.get("Schema") or DEFAULT_SCHEMA
        return ResolvedConnection(schema=schema, **values)

    # ------------------------------------------------------------------
    # Whole connections
    # ------------------------------------------------------------------

    def resolve_connection(
        self,
        settings: ConnectionSettings,
        fields: Iterable[str] = CONNECTION_FIELDS,
        *,
        entity: Optional[str] = None,
        optional: Iterable[str] = (),
    ) -> ResolvedConnection:
        """Resolve connection fields, short-circuiting to a profile if named."""
        if settings.uses_profile:
            return self.resolve_profile(
                settings.profile or "", fields, entity=entity, optional=optional
            )

        optional_fields = set(optional)
        values = {
            attr: self.resolve(
                getattr(settings, attr),
                required=attr not in optional_fields,
                setting=SETTING_NAMES[attr],
                entity=entity,
            )
            for attr in fields
        }
        return ResolvedConnection(**values)

    def resolve_host_and_port(
        self,
        settings: ConnectionSettings,
        *,
        entity: Optional[str] = None,
        default_port: Optional[int] = None,
    ) -> Tuple[str, int]:
        """Resolve a host and port from ``host:port`` or separate fields.

        The port falls back to ``default_port`` when only a host is set.
        """
        if settings.uses_profile:
            resolved = self.resolve_profile(settings.profile or "", ("host_port",), entity=entity)
            return self.split_host_port(resolved.host_port, entity=entity)

        host_port = self.resolve(
            settings.host_port, required=False, setting="host:port", entity=entity
        )
        if host_port:
            return self.split_host_port(host_port, entity=entity)

        host = self.resolve(settings.host, setting="host", entity=entity)

        port_text = self.resolve(settings.port, required=False, setting="port", entity=entity)
        if port_text:
            port = self.resolve_int(port_text, setting="port", entity=entity, minimum=1, maximum=MAX_PORT)
        elif default_port is not None:
            port = default_port
        else:
            raise MissingConfigurationValueError("port", entity=entity)

        return host, port

    def split_host_port(self, host_port: str, *, entity: Optional[str] = None) -> Tuple[str, int]:
        """Split ``"host:port"`` into its parts.

        Raises:
            ConfigurationError: If there is no ``:port`` suffix
            InvalidRangeError: If the port is not a valid TCP port
        """
        host, sep, port_text = host_port.rpartition(":")
        if not sep or not host:
            raise ConfigurationError(
                f"Invalid host:port format: '{host_port}'. Expected 'hostname:port'.",
                entity=entity,
                field="host:port",
            )
        port = self.resolve_int(port_text, setting="port", entity=entity, minimum=1, maximum=MAX_PORT)
        return host, port
