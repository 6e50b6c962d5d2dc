"""
Pydantic models for printer manager configuration.

Mirrors the defaults dict in loader.py, providing typed access
to all config.yml settings via ManagerConfig.settings().
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import BaseModel, ConfigDict, field_validator

from printer_manager.config.settings import (
    CONTROL_SEARCH_PATHS,
    CONTROL_SOCKET_NAME,
    DEFAULT_CACHE_PATH,
    parse_duration,
)


class DirectoryConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    base_url: str = ""
    timeout: float = 10.0

    @field_validator("base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str = DEFAULT_CACHE_PATH
    retention: timedelta = timedelta(days=14)

    @field_validator("retention", mode="before")
    @classmethod
    def _parse_retention(cls, value: object) -> timedelta:
        return parse_duration(value)


class SyncConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    interval: timedelta = timedelta(hours=1)
    ignored_users: list[str] = ["root"]

    @field_validator("interval", mode="before")
    @classmethod
    def _parse_interval(cls, value: object) -> timedelta:
        return parse_duration(value)

    @field_validator("ignored_users", mode="before")
    @classmethod
    def _split_users(cls, value: object) -> object:
        if isinstance(value, str):
            return [u.strip() for u in value.split(",") if u.strip()]
        return value


class SpoolerConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    driver_catalog_ttl: timedelta = timedelta(minutes=5)

    @field_validator("driver_catalog_ttl", mode="before")
    @classmethod
    def _parse_ttl(cls, value: object) -> timedelta:
        return parse_duration(value)


class RetryConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    initial: float = 1.0
    max_retries: int = 5
    max_backoff: float = 10.0
    max_jitter: float = 1.0


class ControlConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    search_paths: list[str] = list(CONTROL_SEARCH_PATHS)
    socket_name: str = CONTROL_SOCKET_NAME


class MetricsConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    port: int = 9464


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    level: str = "INFO"


class ManagerSettings(BaseModel):
    """Root settings model mirroring config.yml structure."""

    model_config = ConfigDict(extra="ignore")

    directory: DirectoryConfig = DirectoryConfig()
    cache: CacheConfig = CacheConfig()
    sync: SyncConfig = SyncConfig()
    spooler: SpoolerConfig = SpoolerConfig()
    retry: RetryConfig = RetryConfig()
    control: ControlConfig = ControlConfig()
    metrics: MetricsConfig = MetricsConfig()
    logging: LoggingConfig = LoggingConfig()
