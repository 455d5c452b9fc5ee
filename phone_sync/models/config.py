"""Configuration management for the external data sync pipeline."""

import os
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator

SOURCE_NAMES = ("gsmarena", "priceTracking")


class SourceAPIConfig(BaseModel):
    """Settings shared by both upstream APIs."""
    api_key: str = Field(default="", description="Bearer token for the API")
    base_url: str = Field(default="https://api.gsmarena.com/v1", description="API root URL")
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    retry_attempts: int = Field(default=3, description="Total attempts per request")
    retry_delay: float = Field(default=1.0, description="Backoff base in seconds (delay = attempt * base)")
    min_request_interval: float = Field(default=1.0, description="Minimum seconds between requests to the host")

    @field_validator('base_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError(f"URL must start with http:// or https://, got: {v}")
        return v.rstrip('/')

    @field_validator('retry_attempts')
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"retry_attempts must be at least 1, got: {v}")
        return v


class GSMArenaConfig(SourceAPIConfig):
    """Specification API settings."""


class PriceTrackingConfig(SourceAPIConfig):
    """Price tracking API settings."""
    base_url: str = Field(default="https://api.pricetracking.com/v1", description="API root URL")
    retry_delay: float = Field(default=2.0, description="Backoff base in seconds")
    min_request_interval: float = Field(default=2.0, description="Minimum seconds between requests to the host")
    batch_size: int = Field(default=5, description="Phones per batch when tracking price changes")
    country: str = Field(default="IN", description="Market to query prices for")
    enabled_retailers: List[str] = Field(
        default=["amazon", "flipkart", "croma", "reliance"],
        description="Keywords selecting which known retailers are trusted"
    )

    @field_validator('enabled_retailers', mode='before')
    @classmethod
    def split_retailers(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [item.strip() for item in v.split(',') if item.strip()]
        return v


class DataSyncConfig(BaseModel):
    """Orchestrator settings."""
    sync_interval: float = Field(default=24 * 60 * 60, description="Automatic sync interval in seconds (0 disables)")
    batch_size: int = Field(default=10, description="Phones per price sync batch")
    enabled_sources: List[str] = Field(default=list(SOURCE_NAMES), description="Sources to sync")
    fallback_enabled: bool = Field(default=True, description="Route facade lookups through the fallback chain")
    brand_delay: float = Field(default=1.0, description="Pause between brands in seconds")
    batch_delay: float = Field(default=2.0, description="Pause between price batches in seconds")

    @field_validator('batch_size')
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"batch_size must be positive, got: {v}")
        return v

    @field_validator('enabled_sources', mode='before')
    @classmethod
    def validate_sources(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [item.strip() for item in v.split(',') if item.strip()]
        for source in v:
            if source not in SOURCE_NAMES:
                raise ValueError(f"Unknown source {source!r}, expected one of {SOURCE_NAMES}")
        return v


class FallbackConfig(BaseModel):
    """Fallback chain settings."""
    enable_cache: bool = True
    enable_static_data: bool = True
    enable_alternative_apis: bool = False
    cache_expiry_hours: float = Field(default=48, gt=0, description="TTL for cached phone and spec data")
    max_retries: int = Field(default=3, description="Primary fetch attempts before falling back")
    retry_delay_ms: int = Field(default=1000, description="Backoff base in milliseconds")

    @field_validator('max_retries')
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_retries must be at least 1, got: {v}")
        return v


class MonitoringConfig(BaseModel):
    """Event log, health rules and alerting."""
    enabled: bool = Field(default=True, description="Enable alerting")
    error_threshold: int = Field(default=10, description="Errors in the last hour before alerting")
    rate_limit_threshold: int = Field(default=5, description="Rate limit hits before alerting")
    sync_failure_threshold: int = Field(default=3, description="Consecutive sync failures before alerting")
    webhook_url: Optional[str] = Field(default=None, description="Alert webhook endpoint")
    max_events: int = Field(default=1000, description="Event ring buffer capacity")
    critical_failure_threshold: int = Field(default=3, description="Consecutive failures for a critical verdict")
    error_count_threshold: int = Field(default=50, description="Errors per health window before warning")
    api_error_rate_threshold: float = Field(default=10.0, description="API error rate (%) before warning")
    slow_response_ms: float = Field(default=5000, description="Average API latency before warning")
    rate_limit_warning_threshold: int = Field(default=10, description="Rate limit hits before warning")
    health_window_hours: float = Field(default=24, description="Rolling window for health rules")

    @field_validator('max_events')
    @classmethod
    def validate_capacity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"max_events must be positive, got: {v}")
        return v


class CacheConfig(BaseModel):
    """Key-value cache backend."""
    backend: str = Field(default="memory", description="memory or redis")
    redis_url: str = Field(default="redis://localhost:6379/0")
    key_prefix: str = Field(default="phone-sync:")

    @field_validator('backend')
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in ("memory", "redis"):
            raise ValueError(f"cache backend must be 'memory' or 'redis', got: {v}")
        return v


class ExternalDataConfig(BaseModel):
    """Top-level configuration for the integration facade."""
    gsmarena: GSMArenaConfig = Field(default_factory=GSMArenaConfig)
    price_tracking: PriceTrackingConfig = Field(default_factory=PriceTrackingConfig)
    data_sync: DataSyncConfig = Field(default_factory=DataSyncConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    log_level: str = Field(default="INFO", description="Logging level")
    catalog_file: Optional[str] = Field(default=None, description="YAML seed for the in-memory catalog")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError(f"Unknown log level: {v}")
        return v

    # Environment variable overrides
    ENV_MAPPINGS: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "GSMARENA_API_KEY": ("gsmarena", "api_key"),
        "GSMARENA_BASE_URL": ("gsmarena", "base_url"),
        "GSMARENA_TIMEOUT": ("gsmarena", "timeout"),
        "GSMARENA_RETRY_ATTEMPTS": ("gsmarena", "retry_attempts"),
        "PRICE_TRACKING_API_KEY": ("price_tracking", "api_key"),
        "PRICE_TRACKING_BASE_URL": ("price_tracking", "base_url"),
        "PRICE_TRACKING_TIMEOUT": ("price_tracking", "timeout"),
        "PRICE_TRACKING_RETRY_ATTEMPTS": ("price_tracking", "retry_attempts"),
        "ENABLED_RETAILERS": ("price_tracking", "enabled_retailers"),
        "SYNC_INTERVAL": ("data_sync", "sync_interval"),
        "SYNC_BATCH_SIZE": ("data_sync", "batch_size"),
        "SYNC_ENABLED_SOURCES": ("data_sync", "enabled_sources"),
        "CACHE_EXPIRY_HOURS": ("fallback", "cache_expiry_hours"),
        "ALERT_WEBHOOK_URL": ("monitoring", "webhook_url"),
        "ALERT_ERROR_THRESHOLD": ("monitoring", "error_threshold"),
        "ALERT_SYNC_FAILURE_THRESHOLD": ("monitoring", "sync_failure_threshold"),
        "CACHE_BACKEND": ("cache", "backend"),
        "REDIS_URL": ("cache", "redis_url"),
        "LOG_LEVEL": ("log_level",),
        "CATALOG_FILE": ("catalog_file",),
    }

    @classmethod
    def env_overrides(cls, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Collect environment overrides as a nested dict (values left for pydantic to coerce)."""
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}
        for env_var, path in cls.ENV_MAPPINGS.items():
            if env_var in environ:
                _set_path(overrides, path, environ[env_var])
        return overrides

    @classmethod
    def from_env(cls) -> "ExternalDataConfig":
        """Create configuration with environment variable overrides."""
        return cls.model_validate(cls.env_overrides())


def _set_path(target: Dict[str, Any], path: Tuple[str, ...], value: Any) -> None:
    for key in path[:-1]:
        target = target.setdefault(key, {})
    target[path[-1]] = value


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested dicts merge, other values replace."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """Manages configuration loading with override precedence."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = config_file or Path("config/config.yaml")
        self._config: Optional[ExternalDataConfig] = None

    def load_config(
        self,
        cli_overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> ExternalDataConfig:
        """
        Load configuration with override precedence: CLI > ENV > YAML > defaults.

        Args:
            cli_overrides: Nested dict of CLI flag overrides; None values are ignored
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Fully merged ExternalDataConfig instance

        Raises:
            ValueError: If configuration validation fails
        """
        config_dict: Dict[str, Any] = {}

        if self.config_file.exists():
            with open(self.config_file, 'r') as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    config_dict = deep_merge(config_dict, yaml_config)

        config_dict = deep_merge(config_dict, ExternalDataConfig.env_overrides(environ))

        if cli_overrides:
            cli_overrides = {k: v for k, v in cli_overrides.items() if v is not None}
            config_dict = deep_merge(config_dict, cli_overrides)

        self._config = ExternalDataConfig.model_validate(config_dict)
        return self._config

    @property
    def config(self) -> ExternalDataConfig:
        """Get the loaded configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config
