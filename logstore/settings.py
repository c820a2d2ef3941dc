from __future__ import annotations

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any

import boto3
import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from logstore.exceptions import ConfigurationError
from logstore.paths import DEFAULT_PATH_FORMAT, validate_path_template

DEFAULT_REGION = "us-east-1"
DEFAULT_CONFIG_PATH = Path("config/default.yaml")


@lru_cache(maxsize=1)
def known_s3_regions() -> frozenset[str]:
    """All S3 regions botocore ships endpoint data for, across partitions."""
    session = boto3.session.Session()
    regions: set[str] = set()
    for partition in session.get_available_partitions():
        regions.update(session.get_available_regions("s3", partition_name=partition))
    return frozenset(regions)


def _describe_validation_error(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)


class StorageSettings(BaseModel):
    bucket: str = Field(default="", validate_default=True)
    path: str = Field(default=DEFAULT_PATH_FORMAT, validate_default=True)
    region: str = DEFAULT_REGION
    # Custom endpoint for S3-compatible stores (MinIO, Ceph, R2, ...)
    endpoint: str | None = None
    path_style: bool = False
    access_key_id: str | None = None
    secret_access_key: str | None = None
    credentials_file: Path | None = None
    connect_timeout: float = Field(60.0, gt=0.0)
    read_timeout: float = Field(60.0, gt=0.0)
    max_attempts: int = Field(3, ge=1, le=20)

    @field_validator("bucket", mode="before")
    def _require_bucket(cls, value: Any) -> Any:  # noqa: D401
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValueError("bucket was not set")
        return value

    @field_validator("path", mode="before")
    def _check_path(cls, value: Any) -> Any:  # noqa: D401
        if value is None or isinstance(value, str):
            return validate_path_template(value)
        return value

    @field_validator("endpoint", "access_key_id", "secret_access_key", mode="before")
    def _blank_to_none(cls, value: Any) -> Any:  # noqa: D401
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_region(self) -> "StorageSettings":
        # Any region name is acceptable when talking to a custom endpoint
        if self.endpoint is None and self.region not in known_s3_regions():
            raise ValueError(f"Region was not found: {self.region}")
        return self

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> "StorageSettings":
        """Validate raw storage configuration.

        Raises:
            ConfigurationError: If any field is missing or invalid.
        """
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid storage configuration: {_describe_validation_error(exc)}"
            ) from exc


class LoggingSettings(BaseModel):
    level: str = "INFO"
    json_format: bool = False
    log_file: Path | None = None

    @field_validator("level", mode="before")
    def _normalize_level(cls, value: Any) -> str:  # noqa: D401
        if value is None:
            return "INFO"
        return str(value).strip().upper()


class Settings(BaseModel):
    storage: StorageSettings
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Load settings from YAML configuration file.

        Args:
            path: Optional path to configuration file. If not provided, uses
                LOGSTORE_CONFIG environment variable or defaults to config/default.yaml.

        Returns:
            Settings instance with loaded configuration.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid.
        """
        load_dotenv(find_dotenv(usecwd=True), override=False)
        config_path = path or Path(os.getenv("LOGSTORE_CONFIG", str(DEFAULT_CONFIG_PATH)))
        if not config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_path}", {"path": str(config_path)}
            )
        try:
            with config_path.open("r", encoding="utf-8") as fp:
                payload = yaml.safe_load(fp) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(
                f"Configuration file cannot be read: {exc}", {"path": str(config_path)}
            ) from exc
        if not isinstance(payload, dict):
            raise ConfigurationError(
                "Configuration file must contain a mapping", {"path": str(config_path)}
            )
        try:
            return cls(**payload)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid configuration: {_describe_validation_error(exc)}", {"path": str(config_path)}
            ) from exc


@lru_cache(maxsize=1)
def get_settings(path: str | None = None) -> Settings:
    return Settings.load(Path(path) if path else None)


__all__ = [
    "DEFAULT_REGION",
    "DEFAULT_PATH_FORMAT",
    "Settings",
    "StorageSettings",
    "LoggingSettings",
    "known_s3_regions",
    "get_settings",
]
