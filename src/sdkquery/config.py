from __future__ import annotations

from contextvars import ContextVar
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from sdkquery.exceptions import ConfigError
from sdkquery.expressions.config import DEFAULTS
from sdkquery.logging import get_logger

__all__ = [
    "SdkQueryConfig",
    "EngineConfig",
    "ValidationConfig",
    "load_config",
    "get_user_config_path",
]

logger = get_logger(__name__)

PROJECT_CONFIG_NAME = "sdkquery.yaml"

# Project config path requested by load_config(), scoped to the current context
_project_config_path: ContextVar[Path | None] = ContextVar(
    "sdkquery_project_config_path", default=None
)


class EngineConfig(BaseModel):
    """Settings for the expression parser and evaluator.

    Attributes:
        max_depth: Maximum nesting depth accepted by the parser and evaluator.
    """

    max_depth: int = Field(default=DEFAULTS.MAX_DEPTH, ge=1, le=DEFAULTS.MAX_DEPTH_LIMIT)


class ValidationConfig(BaseModel):
    """Settings for validating expressions embedded in service configuration.

    Attributes:
        expression_keys: Keys whose string values are query expressions.
    """

    expression_keys: list[str] = Field(
        default_factory=lambda: list(DEFAULTS.EXPRESSION_KEYS)
    )

    @field_validator("expression_keys")
    @classmethod
    def check_not_empty(cls, v: list[str]) -> list[str]:
        """Warn if no expression keys are configured."""
        if not v:
            logger.warning(
                "No expression keys configured. "
                "Configuration validation will not find any expressions."
            )
        return v


class YamlConfigSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from YAML files."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        yaml_file: Path | None = None,
    ):
        super().__init__(settings_cls)
        self.yaml_file = yaml_file
        self._config_data: dict[str, Any] = {}
        if yaml_file and yaml_file.exists():
            try:
                with open(yaml_file) as f:
                    loaded = yaml.safe_load(f)
                    if loaded is None:
                        logger.warning(
                            f"Config file {yaml_file} is empty, using defaults."
                        )
                    elif loaded:
                        self._config_data = loaded
            except yaml.YAMLError as e:
                raise ConfigError(
                    message=f"Invalid YAML in {yaml_file}: {e}",
                    field=None,
                    value=None,
                ) from e

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get value for a specific field from the YAML config."""
        if field_name in self._config_data:
            return self._config_data[field_name], field_name, False
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return the complete config data."""
        return self._config_data


class SdkQueryConfig(BaseSettings):
    """Root configuration object containing all sdkquery settings."""

    model_config = SettingsConfigDict(
        env_prefix="SDKQUERY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    engine: EngineConfig = Field(default_factory=EngineConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    verbosity: Literal["error", "warning", "info", "debug"] = "warning"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of settings sources.

        Priority (highest to lowest):
        1. Init settings (explicit keyword arguments)
        2. Environment variables (SDKQUERY_*)
        3. Project YAML config (./sdkquery.yaml, or the path given to load_config)
        4. User YAML config (~/.config/sdkquery/config.yaml)
        """
        project_config_path = _project_config_path.get() or (
            Path.cwd() / PROJECT_CONFIG_NAME
        )
        return (
            init_settings,
            env_settings,
            YamlConfigSource(settings_cls, project_config_path),
            YamlConfigSource(settings_cls, get_user_config_path()),
        )


def get_user_config_path() -> Path:
    """Get the path to the user configuration file.

    Returns:
        Path to ~/.config/sdkquery/config.yaml
    """
    return Path.home() / ".config" / "sdkquery" / "config.yaml"


def load_config(config_path: Path | None = None) -> SdkQueryConfig:
    """Load configuration with hierarchy: defaults -> user -> project -> env.

    Args:
        config_path: Optional path to project config file.
            Defaults to ./sdkquery.yaml

    Returns:
        SdkQueryConfig instance with merged configuration

    Raises:
        ConfigError: If configuration is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / PROJECT_CONFIG_NAME

    if not config_path.exists():
        logger.info("No project configuration found, using defaults.")

    token = _project_config_path.set(config_path)
    try:
        return SdkQueryConfig()
    except ValidationError as e:
        first_error = e.errors()[0]
        field = ".".join(str(loc) for loc in first_error["loc"])
        raise ConfigError(
            message=f"Invalid configuration: {first_error['msg']}",
            field=field,
            value=first_error.get("input"),
        ) from e
    finally:
        _project_config_path.reset(token)
