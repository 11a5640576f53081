"""Structured exception hierarchy for the external source compiler.

Every failure raised while resolving connection parameters or rendering
table functions and dictionary DDL derives from :class:`SourceError`, so
callers can catch one type and still get entity, field and missing-key
context for troubleshooting.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "SourceError",
    "ConfigurationError",
    "MissingEnvironmentVariableError",
    "MissingConfigurationValueError",
    "MissingConnectionProfileError",
    "MissingProfileFieldError",
    "UnsupportedProviderError",
    "ProviderMismatchError",
    "MissingKeyColumnError",
    "MissingPrimaryKeyError",
    "MissingDictionarySourceError",
    "InvalidRangeError",
]


class SourceError(Exception):
    """Base exception for all compiler errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        entity: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.entity = entity
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if entity:
            parts.insert(0, f"[{entity}]")

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "entity": self.entity,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(SourceError):
    """Error in source configuration.

    Raised when a spec or catalog is invalid or incomplete in a way not
    covered by a more specific error.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class MissingEnvironmentVariableError(SourceError):
    """A required environment reference resolved to nothing.

    Both the process environment and the configuration store fallback
    were consulted.
    """

    def __init__(self, variable: str, *, entity: Optional[str] = None, **kwargs: Any) -> None:
        self.variable = variable

        details = kwargs.pop("details", {})
        details["variable"] = variable

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                f"Export {variable} or add a '{variable}' key to the "
                "configuration store."
            )

        super().__init__(
            f"Environment variable '{variable}' is not set",
            entity=entity,
            details=details,
            suggestion=suggestion,
            **kwargs,
        )


class MissingConfigurationValueError(SourceError):
    """A required literal-or-env field had neither form populated."""

    def __init__(self, setting: str, *, entity: Optional[str] = None, **kwargs: Any) -> None:
        self.setting = setting

        details = kwargs.pop("details", {})
        details["setting"] = setting

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                f"Configure {setting} with a literal value, an environment "
                "variable reference, or use a connection profile."
            )

        super().__init__(
            f"Missing configuration for '{setting}' on '{entity or '?'}'",
            entity=entity,
            details=details,
            suggestion=suggestion,
            **kwargs,
        )


class MissingConnectionProfileError(SourceError):
    """Named connection profile is absent from the configuration store."""

    def __init__(self, profile: str, *, entity: Optional[str] = None, **kwargs: Any) -> None:
        self.profile = profile

        details = kwargs.pop("details", {})
        details["profile"] = profile
        details["section"] = f"ExternalConnections:{profile}"

        super().__init__(
            f"Connection profile '{profile}' not found in configuration",
            entity=entity,
            details=details,
            **kwargs,
        )


class MissingProfileFieldError(SourceError):
    """Connection profile exists but lacks a required sub-key."""

    def __init__(
        self,
        profile: str,
        field: str,
        *,
        entity: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.profile = profile
        self.field = field

        details = kwargs.pop("details", {})
        details["profile"] = profile
        details["field"] = field

        super().__init__(
            f"Connection profile '{profile}' is missing field `{field}` "
            f"(set '{field}' or '{field}Env')",
            entity=entity,
            details=details,
            **kwargs,
        )


class UnsupportedProviderError(SourceError):
    """Provider tag not recognized by the renderer being invoked."""

    def __init__(self, provider: Any, *, entity: Optional[str] = None, **kwargs: Any) -> None:
        self.provider = getattr(provider, "value", provider)

        details = kwargs.pop("details", {})
        details["provider"] = self.provider

        super().__init__(
            f"Provider '{self.provider}' is not supported",
            entity=entity,
            details=details,
            **kwargs,
        )


class ProviderMismatchError(SourceError):
    """Renderer invoked for a provider different from the spec's."""

    def __init__(
        self,
        provider: Any,
        expected: Any,
        *,
        entity: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.provider = getattr(provider, "value", provider)
        self.expected = getattr(expected, "value", expected)

        details = kwargs.pop("details", {})
        details["provider"] = self.provider
        details["expected"] = self.expected

        super().__init__(
            f"Spec has provider '{self.provider}' but the "
            f"'{self.expected}' renderer was invoked",
            entity=entity,
            details=details,
            **kwargs,
        )


class MissingKeyColumnError(SourceError):
    """Redis binding without a key column."""

    def __init__(self, *, entity: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(
            "Redis external table requires a key column",
            entity=entity,
            **kwargs,
        )


class MissingPrimaryKeyError(SourceError):
    """Dictionary spec without any key columns."""

    def __init__(self, dictionary: str, **kwargs: Any) -> None:
        self.dictionary = dictionary
        super().__init__(
            f"Dictionary '{dictionary}' must have key columns defined",
            entity=dictionary,
            **kwargs,
        )


class MissingDictionarySourceError(SourceError):
    """Dictionary spec without a source binding."""

    def __init__(self, dictionary: str, **kwargs: Any) -> None:
        self.dictionary = dictionary
        super().__init__(
            f"Dictionary '{dictionary}' must have a source configured",
            entity=dictionary,
            **kwargs,
        )


class InvalidRangeError(SourceError):
    """Numeric field outside its valid domain or not a number at all."""

    def __init__(
        self,
        field: str,
        value: Any,
        *,
        minimum: Optional[int] = None,
        maximum: Optional[int] = None,
        entity: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value
        self.minimum = minimum
        self.maximum = maximum

        details = kwargs.pop("details", {})
        details["field"] = field
        details["value"] = str(value)

        if minimum is not None and maximum is not None:
            expected = f"between {minimum} and {maximum}"
        elif minimum is not None:
            expected = f"at least {minimum}"
        elif maximum is not None:
            expected = f"at most {maximum}"
        else:
            expected = "an integer"

        super().__init__(
            f"Value '{value}' for '{field}' must be {expected}",
            entity=entity,
            details=details,
            **kwargs,
        )
