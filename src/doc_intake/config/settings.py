"""Settings management for doc-intake.

This module provides the main Settings class and functions for loading
configuration from YAML files and environment variables.

Example:
    >>> from doc_intake.config import load_settings
    >>> settings = load_settings()
    >>> print(settings.locations.splitted)
    splitted
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from doc_intake.config.exceptions import (
    ConfigurationError,
    ConfigurationFileNotFoundError,
    ConfigurationValidationError,
    MissingConfigurationError,
)
from doc_intake.config.schema import (
    ClassificationConfig,
    IntelligenceConfig,
    JobsConfig,
    LocationsConfig,
    ObservabilityConfig,
    OCRConfig,
    RecordBackend,
    RecordsConfig,
    StorageConfig,
    TriggersConfig,
)


if TYPE_CHECKING:
    from collections.abc import Sequence


__all__ = [
    "Settings",
    "clear_settings_cache",
    "find_config_file",
    "get_settings",
    "load_settings",
]


# ---------------------------------------------------------------------------
# Environment Variable Interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-fallback}
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand(match: re.Match[str]) -> str:
    name, fallback = match.group(1), match.group(2)
    return os.environ.get(name, fallback if fallback is not None else "")


def _interpolate_env_vars(value: object) -> object:
    """Expand ``${VAR}`` references inside strings, dicts and lists.

    Unset variables without a fallback expand to an empty string, which
    leaves the setting unset for optional fields.

    Example:
        >>> os.environ["DI_KEY"] = "secret123"
        >>> _interpolate_env_vars({"api_key": "${DI_KEY}", "x": "${NOPE:-y}"})
        {'api_key': 'secret123', 'x': 'y'}
    """
    if isinstance(value, str):
        return _ENV_VAR_PATTERN.sub(_expand, value)
    if isinstance(value, dict):
        return {key: _interpolate_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_interpolate_env_vars(item) for item in value]
    return value


class _InterpolatingYamlConfigSettingsSource(YamlConfigSettingsSource):
    """YAML source that expands environment references after parsing."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: Path | str | None = None,
    ) -> None:
        kwargs: dict[str, Any] = {} if yaml_file is None else {"yaml_file": yaml_file}
        super().__init__(settings_cls, **kwargs)

    def _read_files(
        self,
        files: Path | str | Sequence[Path | str] | None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        expanded = _interpolate_env_vars(super()._read_files(files, **kwargs))
        return expanded if isinstance(expanded, dict) else {}


# ---------------------------------------------------------------------------
# Settings Class
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Application settings loaded from YAML file and environment variables.

    Settings are loaded in priority order (highest to lowest):
    1. Constructor arguments
    2. Environment variables (DOCINTAKE_*)
    3. YAML configuration file
    4. Default values

    Values a stage needs but which have no sensible default (service
    endpoint, keys, classifier model) may be left unset here; the stage
    that needs them fails to build instead (see ``require``).

    Attributes:
        intelligence: Document-understanding service connection.
        classification: Classification stage settings.
        ocr: OCR stage settings.
        storage: Blob storage settings.
        records: Record store settings.
        locations: Storage location names.
        triggers: Location polling settings.
        jobs: Concurrent invocation limits.
        observability: Logging settings.
    """

    model_config = SettingsConfigDict(
        yaml_file=None,
        yaml_file_encoding="utf-8",
        env_prefix="DOCINTAKE_",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    # Search paths for config file (class variable, not a setting)
    CONFIG_SEARCH_PATHS: ClassVar[list[Path]] = [
        Path("config.yaml"),
        Path("config.yml"),
        Path.home() / ".config" / "doc-intake" / "config.yaml",
        Path("/etc/doc-intake/config.yaml"),
    ]

    # Override for yaml_file path (set by load_settings before instantiation)
    _yaml_file_override: ClassVar[Path | str | None] = None

    intelligence: IntelligenceConfig = IntelligenceConfig()
    classification: ClassificationConfig = ClassificationConfig()
    ocr: OCRConfig = OCRConfig()
    storage: StorageConfig = StorageConfig()
    records: RecordsConfig = RecordsConfig()
    locations: LocationsConfig = LocationsConfig()
    triggers: TriggersConfig = TriggersConfig()
    jobs: JobsConfig = JobsConfig()
    observability: ObservabilityConfig = ObservabilityConfig()

    @model_validator(mode="after")
    def resolve_api_key(self) -> Settings:
        """Fill ``intelligence.api_key`` from a key file or the environment.

        An explicit key wins, then ``api_key_file``, then the
        DOCUMENT_INTELLIGENCE_KEY variable. A configured key file that does
        not exist is an error.
        """
        intelligence = self.intelligence
        if intelligence.api_key:
            return self

        key: str | None
        if intelligence.api_key_file is not None:
            if not intelligence.api_key_file.is_file():
                msg = f"API key file not found: {intelligence.api_key_file}"
                raise ValueError(msg)
            key = intelligence.api_key_file.read_text().strip()
        else:
            key = os.environ.get("DOCUMENT_INTELLIGENCE_KEY") or None

        if key:
            object.__setattr__(intelligence, "api_key", key)
        return self

    def require(self, component: str, *fields: str) -> None:
        """Fail if any dotted setting needed by ``component`` is unset.

        Args:
            component: Name of the component being built.
            *fields: Dotted paths such as ``"intelligence.endpoint"``.

        Raises:
            MissingConfigurationError: If any field is None or empty.
        """
        missing: list[str] = []
        for dotted in fields:
            value: object = self
            for part in dotted.split("."):
                value = getattr(value, part)
            if value is None or value == "":
                missing.append(dotted)
        if missing:
            raise MissingConfigurationError(component, missing)

    def require_record_store(self) -> None:
        """Fail if the configured record backend lacks its connection."""
        if self.records.backend == RecordBackend.POSTGRES:
            self.require("record store", "records.dsn")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Arguments beat environment, environment beats YAML. No dotenv."""
        return (
            init_settings,
            env_settings,
            _InterpolatingYamlConfigSettingsSource(
                settings_cls,
                yaml_file=cls._yaml_file_override,
            ),
            file_secret_settings,
        )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_cached_settings: Settings | None = None


def find_config_file(config_path: Path | str | None = None) -> Path | None:
    """Return the config file to load, or None.

    An explicit path is used only if it exists; otherwise the first
    existing entry of ``Settings.CONFIG_SEARCH_PATHS`` wins.
    """
    if config_path is not None:
        explicit = Path(config_path)
        return explicit if explicit.is_file() else None
    return next(
        (path for path in Settings.CONFIG_SEARCH_PATHS if path.is_file()),
        None,
    )


def load_settings(
    config_path: Path | str | None = None,
    *,
    require_config_file: bool = False,
) -> Settings:
    """Load, validate and cache settings.

    Args:
        config_path: YAML file to read. When None the search paths are
            tried and a missing file is fine unless ``require_config_file``.
        require_config_file: Fail when no config file is found.

    Raises:
        ConfigurationFileNotFoundError: No config file and one is required.
        ConfigurationValidationError: The merged settings do not validate.
    """
    global _cached_settings  # noqa: PLW0603

    config_file = find_config_file(config_path)
    if config_file is None and require_config_file:
        raise ConfigurationFileNotFoundError(
            path=str(config_path) if config_path else None,
            searched_paths=[str(p) for p in Settings.CONFIG_SEARCH_PATHS],
        )

    Settings._yaml_file_override = config_file  # noqa: SLF001
    try:
        settings = Settings()
    except ConfigurationError:
        raise
    except Exception as exc:
        msg = f"Failed to load configuration: {exc}"
        raise ConfigurationValidationError(msg) from exc
    finally:
        Settings._yaml_file_override = None  # noqa: SLF001

    _cached_settings = settings
    return settings


def get_settings() -> Settings:
    """Return the cached settings, loading them on first use."""
    global _cached_settings  # noqa: PLW0603
    if _cached_settings is None:
        _cached_settings = load_settings()
    return _cached_settings


def clear_settings_cache() -> None:
    """Forget cached settings (tests load fresh settings per case)."""
    global _cached_settings  # noqa: PLW0603
    _cached_settings = None
