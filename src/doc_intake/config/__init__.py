"""Configuration module for doc-intake.

This module provides configuration management using Pydantic settings with
support for YAML files and environment variable overrides. Configuration
values support ${VAR} and ${VAR:-default} syntax for environment variable
interpolation.

Example:
    >>> from doc_intake.config import load_settings, get_settings
    >>>
    >>> settings = load_settings()
    >>> print(settings.locations.input)
    input
    >>> print(settings.ocr.model_for("invoice"))
    prebuilt-read
    >>>
    >>> # Use cached singleton
    >>> settings = get_settings()
"""

from __future__ import annotations

from doc_intake.config.exceptions import (
    ConfigurationError,
    ConfigurationFileNotFoundError,
    ConfigurationValidationError,
    MissingConfigurationError,
)
from doc_intake.config.schema import (
    BlobBackend,
    ClassificationConfig,
    ConfigBaseModel,
    IntelligenceConfig,
    JobsConfig,
    LocationsConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    ObservabilityConfig,
    OCRConfig,
    RecordBackend,
    RecordsConfig,
    S3ConnectionConfig,
    StorageConfig,
    TriggersConfig,
)
from doc_intake.config.settings import (
    Settings,
    clear_settings_cache,
    find_config_file,
    get_settings,
    load_settings,
)


__all__ = [
    "BlobBackend",
    "ClassificationConfig",
    "ConfigBaseModel",
    "ConfigurationError",
    "ConfigurationFileNotFoundError",
    "ConfigurationValidationError",
    "IntelligenceConfig",
    "JobsConfig",
    "LocationsConfig",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "MissingConfigurationError",
    "OCRConfig",
    "ObservabilityConfig",
    "RecordBackend",
    "RecordsConfig",
    "S3ConnectionConfig",
    "Settings",
    "StorageConfig",
    "TriggersConfig",
    "clear_settings_cache",
    "find_config_file",
    "get_settings",
    "load_settings",
]
