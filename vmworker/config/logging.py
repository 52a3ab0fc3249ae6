"""Logging configuration for the pool service and its provider clients."""

import logging
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class LoggingConfig(BaseSettings):
    """Logging settings.

    ``service_name`` is stamped on every structured event. ``quiet_loggers``
    is a comma-separated list of third-party loggers held at WARNING.
    """

    level: str = Field(default="INFO", alias="log_level")
    format: str = Field(default="json", alias="log_format")
    file: str | None = Field(default=None, alias="log_file")
    max_size_mb: int = Field(default=100, ge=1, alias="log_max_size_mb")
    backup_count: int = Field(default=5, ge=1, alias="log_backup_count")
    service_name: str = Field(default="vmworker", min_length=1, alias="log_service_name")
    quiet_loggers: str = Field(
        default="uvicorn.access,httpx,httpcore,docker,paramiko", alias="log_quiet_loggers"
    )
    enable_access_logs: bool = Field(default=True)

    class Config:
        env_prefix = ""
        extra = "ignore"

    @property
    def level_number(self) -> int:
        return getattr(logging, self.level.upper(), logging.INFO)

    @property
    def quiet_logger_names(self) -> List[str]:
        return [name.strip() for name in self.quiet_loggers.split(",") if name.strip()]
