"""Configuration-specific exceptions for doc-intake."""

from __future__ import annotations


__all__ = [
    "ConfigurationError",
    "ConfigurationFileNotFoundError",
    "ConfigurationValidationError",
    "MissingConfigurationError",
]


class ConfigurationError(Exception):
    """Base exception for configuration errors.

    All configuration-related exceptions inherit from this class,
    allowing callers to catch all config errors with a single except clause.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
        """
        super().__init__(message)
        self.message = message


class ConfigurationFileNotFoundError(ConfigurationError):
    """Raised when a configuration file cannot be found.

    Attributes:
        path: The path that was requested (may be None if searching defaults).
        searched_paths: List of paths that were searched.
    """

    def __init__(
        self,
        path: str | None = None,
        searched_paths: list[str] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            path: The specific path requested, or None if searching defaults.
            searched_paths: List of paths that were searched.
        """
        self.path = path
        self.searched_paths = searched_paths or []

        if self.searched_paths:
            paths_str = ", ".join(self.searched_paths)
            message = f"Configuration file not found. Searched: {paths_str}"
        elif path:
            message = f"Configuration file not found: {path}"
        else:
            message = "Configuration file not found"

        super().__init__(message)


class ConfigurationValidationError(ConfigurationError):
    """Raised when configuration validation fails.

    Wraps Pydantic validation errors with a friendlier message while
    keeping the detailed errors available.

    Attributes:
        errors: List of validation error details from Pydantic.
    """

    def __init__(
        self,
        message: str,
        errors: list[dict[str, object]] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable summary of the validation failure.
            errors: List of validation error details (from Pydantic).
        """
        super().__init__(message)
        self.errors = errors or []


class MissingConfigurationError(ConfigurationError):
    """Raised when a component is built without a value it requires.

    Settings load fine with these values unset; the component that needs
    them refuses to initialize.

    Attributes:
        component: Name of the component being built (e.g. "classification").
        fields: Dotted setting names that are missing.
    """

    def __init__(self, component: str, fields: list[str]) -> None:
        """Initialize the exception.

        Args:
            component: Name of the component being built.
            fields: Dotted setting names that are missing.
        """
        self.component = component
        self.fields = list(fields)
        joined = ", ".join(self.fields)
        super().__init__(f"{component} requires configuration: {joined}")
