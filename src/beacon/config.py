"""Client configuration surface.

Options are validated field by field: a value of the wrong type or outside its
allowed range is replaced by that field's default (and a warning is logged)
instead of failing initialization. Unknown keys are ignored. Keys may be given
in snake_case or in the camelCase spelling used by browser snippets.
"""

from __future__ import annotations

import locale
import logging
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic.alias_generators import to_camel

from beacon.constants import SERVER_SIDE_TRACKING_OPTIONS
from beacon.errors import ConfigError

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    "DISABLE": logging.CRITICAL + 10,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
}


def _default_language() -> str:
    lang = locale.getlocale()[0]
    return (lang or "en-US").replace("_", "-")


def _field_default(model: type[BaseModel], name: str) -> Any:
    return model.model_fields[name].get_default(call_default_factory=True)


class TrackingOptions(BaseModel):
    """Per-field switches for the device/context attributes attached to entries."""

    model_config = ConfigDict(extra="ignore")

    city: StrictBool = True
    country: StrictBool = True
    carrier: StrictBool = True
    device_manufacturer: StrictBool = True
    device_model: StrictBool = True
    dma: StrictBool = True
    ip_address: StrictBool = True
    language: StrictBool = True
    os_name: StrictBool = True
    os_version: StrictBool = True
    platform: StrictBool = True
    region: StrictBool = True
    version_name: StrictBool = True

    @field_validator("*", mode="wrap")
    @classmethod
    def _fallback_to_default(
        cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo
    ) -> Any:
        try:
            return handler(value)
        except ValidationError:
            logger.warning("Invalid tracking option %s=%r, using default", info.field_name, value)
            return _field_default(cls, info.field_name)

    def api_properties(self) -> dict[str, object]:
        """Server-side options that are switched off, in upload form."""
        disabled = {
            key: False for key in SERVER_SIDE_TRACKING_OPTIONS if not getattr(self, key)
        }
        return {"tracking_options": disabled} if disabled else {}


class ClientOptions(BaseModel):
    """Validated client options. See ``load_options`` for the lenient entry point."""

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    api_endpoint: StrictStr = Field(default="api.amplitude.com", min_length=1)
    batch_events: StrictBool = False
    cookie_expiration: StrictInt = Field(default=365 * 10, ge=0)
    cookie_name: StrictStr = Field(default="amplitude_id", min_length=1)
    path: StrictStr = Field(default="/", min_length=1)
    event_upload_period_millis: StrictInt = Field(default=30 * 1000, gt=0)
    event_upload_threshold: StrictInt = Field(default=30, gt=0)
    force_https: StrictBool = True
    language: StrictStr = Field(default_factory=_default_language, min_length=1)
    log_level: Literal["DISABLE", "ERROR", "WARN", "INFO"] = "WARN"
    opt_out: StrictBool = False
    platform: StrictStr = "Python"
    secure_cookie: StrictBool = False
    session_timeout: StrictInt = Field(default=30 * 60 * 1000, gt=0)
    unsent_key: StrictStr = Field(default="amplitude_unsent", min_length=1)
    unsent_identify_key: StrictStr = Field(default="amplitude_unsent_identify", min_length=1)
    upload_batch_size: StrictInt = Field(default=100, gt=0)
    save_events: StrictBool = True
    defer_initialization: StrictBool = False
    device_id: Annotated[StrictStr, Field(min_length=1)] | None = None
    include_library: StrictBool = True
    tracking_options: TrackingOptions = Field(default_factory=TrackingOptions)

    @field_validator("*", mode="wrap")
    @classmethod
    def _fallback_to_default(
        cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo
    ) -> Any:
        try:
            return handler(value)
        except ValidationError:
            logger.warning("Invalid option %s=%r, using default", info.field_name, value)
            return _field_default(cls, info.field_name)

    @property
    def api_properties(self) -> dict[str, object]:
        return self.tracking_options.api_properties()

    @property
    def upload_url(self) -> str:
        scheme = "https" if self.force_https else "http"
        return f"{scheme}://{self.api_endpoint}"

    def logging_level(self) -> int:
        return LOG_LEVELS[self.log_level]


def load_options(data: Mapping[str, Any] | ClientOptions | None = None) -> ClientOptions:
    """
    Build ClientOptions from a mapping, falling back to defaults per field.

    Args:
        data: Raw option mapping, an existing ClientOptions, or None

    Returns:
        Validated ClientOptions (never raises for bad values)
    """
    if isinstance(data, ClientOptions):
        return data.model_copy(deep=True)
    if not isinstance(data, Mapping):
        if data is not None:
            logger.warning("Ignoring options of type %s", type(data).__name__)
        return ClientOptions()
    return ClientOptions.model_validate(dict(data))


def load_options_file(path: Path) -> ClientOptions:
    """
    Read client options from a YAML or TOML file.

    A top-level ``beacon`` table/mapping is used when present, otherwise the
    whole document.

    Args:
        path: Path to a .yaml/.yml or .toml file

    Returns:
        Validated ClientOptions

    Raises:
        ConfigError: If the file is missing, unreadable, or not a mapping
    """
    try:
        if path.suffix == ".toml":
            with open(path, "rb") as f:
                data = tomllib.load(f)
        elif path.suffix in (".yaml", ".yml"):
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        else:
            raise ConfigError(f"Unsupported config format: {path.suffix or path.name}")
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    section = data.get("beacon", data)
    if not isinstance(section, dict):
        raise ConfigError(f"'beacon' section in {path} must be a mapping")

    return load_options(section)
