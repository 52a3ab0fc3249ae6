"""Configuration management for the VM pool service.

This module provides a unified Settings class with flat environment-backed
fields plus grouped views for the pieces other modules consume.

Usage:
    from vmworker.config import settings

    # Access grouped settings
    settings.redis.get_url()
    settings.providers.has_credentials("Hetzner")

    # Or flat access
    settings.vm_pool_limit
    settings.get_redis_url()
"""

from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Import grouped configurations
from .logging import LoggingConfig
from .providers import ProvidersConfig
from .redis import RedisConfig


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ========================================================================
    # SERVER
    # ========================================================================

    vmworker_host: str = Field(default="0.0.0.0")
    vmworker_port: int = Field(default=3100, ge=1, le=65535)
    api_debug: bool = Field(default=False)
    api_reload: bool = Field(default=False)
    enable_docs: bool = Field(default=True)

    # SSL/HTTPS Configuration
    enable_https: bool = Field(default=False)
    ssl_cert_file: str | None = Field(default=None)
    ssl_key_file: str | None = Field(default=None)

    # ========================================================================
    # REDIS (the shared pool store)
    # ========================================================================

    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_password: str | None = Field(default=None)
    redis_db: int = Field(default=0, ge=0, le=15)
    redis_url: str | None = Field(default=None)
    redis_max_connections: int = Field(default=50, ge=1)
    redis_socket_connect_timeout: int = Field(default=5, ge=1)

    # ========================================================================
    # PROVIDER CREDENTIALS
    # ========================================================================

    hetzner_token: str | None = Field(default=None)
    hetzner_gateway: str = Field(default="", description="Gateway handling SSL termination")
    hetzner_gateway_us: str = Field(default="", description="Gateway handling SSL termination (US)")
    hetzner_networks: str = Field(default="", description="Comma separated Hetzner network ids")
    hetzner_networks_us: str = Field(default="", description="Comma separated Hetzner network ids (US)")
    hetzner_ssh_keys: str = Field(default="", description="Comma separated Hetzner SSH key ids")
    hetzner_image: str = Field(default="", description="Hetzner snapshot image id")

    do_token: str | None = Field(default=None)
    do_gateway: str = Field(default="")
    do_image: str = Field(default="", description="DigitalOcean snapshot image id")
    do_ssh_keys: str = Field(default="", description="Comma separated DigitalOcean SSH key ids")

    scw_secret_key: str | None = Field(default=None)
    scw_organization_id: str | None = Field(default=None)
    scw_gateway: str = Field(default="")
    scw_image: str = Field(default="", description="Scaleway snapshot image id")

    docker_vm_host: str | None = Field(
        default=None,
        description="Docker host, either a bare hostname (reached over SSH) or a full docker URL",
    )
    docker_vm_host_ssh_user: str = Field(default="root")

    # ========================================================================
    # BROWSER IMAGE
    # ========================================================================

    vbrowser_image: str = Field(default="howardc93/vbrowser")
    vbrowser_tag: str = Field(default="", description="Tag/label applied to provisioned instances")
    vbrowser_resolution: str = Field(default="1280x720@30")
    vbrowser_resolution_large: str = Field(default="1920x1080@30")
    vbrowser_vp9: bool = Field(default=False)
    vbrowser_h264: bool = Field(default=False)
    vbrowser_session_seconds: int = Field(default=10800, ge=60)
    vbrowser_session_seconds_large: int = Field(default=43200, ge=60)

    # ========================================================================
    # POOL SIZING
    # ========================================================================

    vm_pool_limit: int = Field(default=0, ge=0, description="Max VMs in pool (0 = no limit)")
    vm_pool_limit_large: int = Field(default=0, ge=0)
    vm_pool_min_size: int = Field(default=0, ge=0, description="Standing ready VMs (0 = scale from zero)")
    vm_pool_min_size_large: int = Field(default=0, ge=0)
    vm_pool_min_buffer: int = Field(default=0, ge=0, description="Extra ready VMs above demand")
    vm_pool_min_buffer_large: int = Field(default=0, ge=0)
    vm_pool_ramp_down_hours: str = Field(default="", description="Comma separated start/end UTC hours")
    vm_pool_ramp_up_hours: str = Field(default="", description="Comma separated start/end UTC hours")
    vm_min_uptime_minutes: int = Field(
        default=0,
        ge=0,
        le=59,
        description="Minutes of the billing hour a VM must exist for before it can be terminated",
    )
    vm_max_lifetime_minutes: int = Field(
        default=0, ge=0, description="Terminate instead of reset after this age (0 = never)"
    )

    # ========================================================================
    # REPLENISHMENT LOOP
    # ========================================================================

    vm_pool_tick_seconds: float = Field(default=5.0, gt=0)
    vm_cleanup_interval_seconds: float = Field(default=60.0, gt=0)
    vm_staging_max_attempts: int = Field(default=120, ge=1)
    vm_orphan_grace_minutes: int = Field(default=10, ge=0)
    vm_health_check_timeout: float = Field(default=5.0, gt=0)

    # ========================================================================
    # ASSIGNMENT / COORDINATION
    # ========================================================================

    vm_assign_deadline_seconds: int = Field(
        default=0, ge=0, description="Outer deadline across lock-contention retries (0 = none)"
    )
    vm_scale_trigger_debounce_seconds: int = Field(default=5, ge=1)
    client_connection_timeout_seconds: int = Field(default=90, ge=1)
    waiting_gauge_interval_seconds: int = Field(default=60, ge=1)

    # ========================================================================
    # LOGGING
    # ========================================================================

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: str | None = Field(default=None)
    log_max_size_mb: int = Field(default=100, ge=1)
    log_backup_count: int = Field(default=5, ge=1)
    log_service_name: str = Field(default="vmworker", min_length=1)
    log_quiet_loggers: str = Field(
        default="uvicorn.access,httpx,httpcore,docker,paramiko",
        description="Comma-separated third-party loggers held at WARNING",
    )
    enable_access_logs: bool = Field(default=True)

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @field_validator("vm_pool_ramp_down_hours", "vm_pool_ramp_up_hours")
    @classmethod
    def validate_hour_range(cls, v):
        """Reject malformed ramp windows at startup rather than mid-loop."""
        from ..models.pool import parse_hour_range

        parse_hour_range(v)
        return v.strip()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v.lower() not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v.lower()

    # ========================================================================
    # GROUPED CONFIG ACCESS
    # ========================================================================

    @property
    def redis(self) -> RedisConfig:
        """Access Redis configuration group."""
        return RedisConfig(
            redis_host=self.redis_host,
            redis_port=self.redis_port,
            redis_password=self.redis_password,
            redis_db=self.redis_db,
            redis_url=self.redis_url,
            redis_max_connections=self.redis_max_connections,
            redis_socket_connect_timeout=self.redis_socket_connect_timeout,
        )

    @property
    def logging(self) -> LoggingConfig:
        """Access logging configuration group."""
        return LoggingConfig(
            log_level=self.log_level,
            log_format=self.log_format,
            log_file=self.log_file,
            log_max_size_mb=self.log_max_size_mb,
            log_backup_count=self.log_backup_count,
            log_service_name=self.log_service_name,
            log_quiet_loggers=self.log_quiet_loggers,
            enable_access_logs=self.enable_access_logs,
        )

    @property
    def providers(self) -> ProvidersConfig:
        """Access provider credentials group."""
        return ProvidersConfig(
            hetzner_token=self.hetzner_token,
            hetzner_gateway=self.hetzner_gateway,
            hetzner_gateway_us=self.hetzner_gateway_us,
            hetzner_networks=self.hetzner_networks,
            hetzner_networks_us=self.hetzner_networks_us,
            hetzner_ssh_keys=self.hetzner_ssh_keys,
            hetzner_image=self.hetzner_image,
            do_token=self.do_token,
            do_gateway=self.do_gateway,
            do_image=self.do_image,
            do_ssh_keys=self.do_ssh_keys,
            scw_secret_key=self.scw_secret_key,
            scw_organization_id=self.scw_organization_id,
            scw_gateway=self.scw_gateway,
            scw_image=self.scw_image,
            docker_vm_host=self.docker_vm_host,
            docker_vm_host_ssh_user=self.docker_vm_host_ssh_user,
        )

    def get_pool_configs(self):
        """Get the configured pool table.

        Only the standard US Hetzner pools take the sizing knobs; every other
        pool is scale-from-zero.
        """
        from ..models.pool import PoolConfig, parse_hour_range

        ramp_up = parse_hour_range(self.vm_pool_ramp_up_hours)
        ramp_down = parse_hour_range(self.vm_pool_ramp_down_hours)

        def sized(provider: str, large: bool, region: str) -> PoolConfig:
            return PoolConfig(
                provider=provider,
                large=large,
                region=region,
                limit_size=self.vm_pool_limit_large if large else self.vm_pool_limit,
                min_size=self.vm_pool_min_size_large if large else self.vm_pool_min_size,
                min_buffer=self.vm_pool_min_buffer_large if large else self.vm_pool_min_buffer,
                ramp_up_hours=ramp_up,
                ramp_down_hours=ramp_down,
                min_uptime_minutes=self.vm_min_uptime_minutes,
                session_limit_seconds=self.get_session_limit_seconds(large),
            )

        def on_demand(provider: str, large: bool, region: str) -> PoolConfig:
            return PoolConfig(
                provider=provider,
                large=large,
                region=region,
                min_uptime_minutes=self.vm_min_uptime_minutes,
                session_limit_seconds=self.get_session_limit_seconds(large),
            )

        return [
            sized("Hetzner", True, "US"),
            sized("Hetzner", False, "US"),
            on_demand("Hetzner", True, "EU"),
            on_demand("Hetzner", False, "EU"),
            on_demand("Scaleway", True, "US"),
            on_demand("Scaleway", False, "US"),
            on_demand("DO", True, "US"),
            on_demand("DO", False, "US"),
            on_demand("Docker", True, "US"),
        ]

    # ========================================================================
    # HELPER METHODS
    # ========================================================================

    def validate_ssl_files(self) -> bool:
        """Validate that SSL files exist when HTTPS is enabled."""
        if not self.enable_https:
            return True
        if not self.ssl_cert_file or not self.ssl_key_file:
            return False
        return Path(self.ssl_cert_file).exists() and Path(self.ssl_key_file).exists()

    def get_redis_url(self) -> str:
        """Get Redis connection URL."""
        return self.redis.get_url()

    def get_session_limit_seconds(self, large: bool) -> int:
        """Maximum session length for a size class."""
        return self.vbrowser_session_seconds_large if large else self.vbrowser_session_seconds

    def get_resolution(self, large: bool) -> str:
        return self.vbrowser_resolution_large if large else self.vbrowser_resolution

    @staticmethod
    def split_csv(value: Optional[str]) -> List[str]:
        """Split a comma separated setting into trimmed, non-empty items."""
        return [item.strip() for item in (value or "").split(",") if item.strip()]


# Global settings instance
settings = Settings()

__all__ = [
    "Settings",
    "settings",
    # Grouped configs
    "RedisConfig",
    "LoggingConfig",
    "ProvidersConfig",
]
