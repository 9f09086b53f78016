"""Configuration settings for the hyper sender."""

import os
from configparser import ConfigParser
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from hyper_sender.errors import ConfigurationError


@dataclass
class SenderConfig:
    """Configuration for a data sender."""

    server: Optional[str] = None
    data_source: Optional[str] = None
    update_threshold: Optional[int] = None  # no default, must be configured

    add_threshold: int = 100
    flush_period_seconds: float = 3.0
    flush_initial_delay_seconds: float = 1.0
    max_staleness_seconds: float = 1.0
    request_timeout_seconds: float = 30.0
    extra_headers: dict = field(default_factory=dict)

    def validate(self) -> None:
        """
        Check that the sender can be built from this configuration.

        Raises:
            ConfigurationError: If a required field is missing or a value is out of range
        """
        if not self.server:
            raise ConfigurationError("sender.server is required")
        if not self.data_source:
            raise ConfigurationError("sender.data_source is required")
        if self.update_threshold is None:
            raise ConfigurationError("sender.update_threshold is required")
        if self.update_threshold < 1 or self.add_threshold < 1:
            raise ConfigurationError("sender thresholds must be positive")
        if self.flush_period_seconds <= 0:
            raise ConfigurationError("sender.flush_period_seconds must be positive")
        if self.max_staleness_seconds < 0:
            raise ConfigurationError("sender.max_staleness_seconds must not be negative")
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError("sender.request_timeout_seconds must be positive")


@dataclass
class TelemetryConfig:
    """Configuration for telemetry (logging and metrics)."""

    log_level: str = "INFO"
    log_format: str = "json"

    # OpenTelemetry
    enabled: bool = False
    service_name: str = "hyper-sender"
    otlp_endpoint: Optional[str] = None
    trace_enabled: bool = True
    metrics_enabled: bool = True
    metrics_export_interval_ms: int = 5000


@dataclass
class Settings:
    """Complete settings for the hyper sender."""

    sender: SenderConfig = field(default_factory=SenderConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)


_INT_KEYS = ("update_threshold", "add_threshold")
_FLOAT_KEYS = (
    "flush_period_seconds",
    "flush_initial_delay_seconds",
    "max_staleness_seconds",
    "request_timeout_seconds",
)


def _load_ini_file(config_path: str) -> dict:
    """
    Load configuration from INI file.

    Args:
        config_path: Path to INI configuration file

    Returns:
        Dictionary with configuration data
    """
    config = ConfigParser()
    config.read(config_path, encoding="utf-8")

    config_data = {"sender": {}, "telemetry": {}}

    try:
        if config.has_section("sender"):
            for key, value in config.items("sender"):
                if key in _INT_KEYS:
                    # Handle null/None for optional integer values
                    if value.lower() in ("null", "none", ""):
                        config_data["sender"][key] = None
                    else:
                        config_data["sender"][key] = config.getint("sender", key)
                elif key in _FLOAT_KEYS:
                    config_data["sender"][key] = config.getfloat("sender", key)
                else:
                    config_data["sender"][key] = value

        # Headers are sent verbatim with every request
        if config.has_section("headers"):
            config_data["sender"]["extra_headers"] = dict(config.items("headers"))

        if config.has_section("telemetry"):
            for key, value in config.items("telemetry"):
                if key in ("enabled", "trace_enabled", "metrics_enabled"):
                    config_data["telemetry"][key] = config.getboolean("telemetry", key)
                elif key == "metrics_export_interval_ms":
                    config_data["telemetry"][key] = config.getint("telemetry", key)
                else:
                    config_data["telemetry"][key] = value
    except ValueError as e:
        raise ConfigurationError(f"Invalid value in {config_path}: {e}") from e

    return config_data


def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from INI file and environment variables.

    Environment variables take precedence over file configuration.

    Args:
        config_path: Path to INI configuration file

    Returns:
        Settings object with complete configuration
    """
    # Load environment variables
    load_dotenv()

    # Load from INI file if provided
    config_data = {}
    if config_path and os.path.exists(config_path):
        config_data = _load_ini_file(config_path)

    # Override with environment variables
    _apply_env_overrides(config_data)

    try:
        sender_config = SenderConfig(**config_data.get("sender", {}))
        telemetry_config = TelemetryConfig(**config_data.get("telemetry", {}))
    except TypeError as e:
        raise ConfigurationError(f"Unknown configuration option: {e}") from e

    return Settings(sender=sender_config, telemetry=telemetry_config)


def _env_number(name: str, cast):
    value = os.getenv(name)
    try:
        return cast(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from e


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to configuration."""
    sender = config_data.setdefault("sender", {})

    if os.getenv("HYPER_SERVER"):
        sender["server"] = os.getenv("HYPER_SERVER")
    if os.getenv("HYPER_DATA_SOURCE"):
        sender["data_source"] = os.getenv("HYPER_DATA_SOURCE")
    if os.getenv("HYPER_ADD_THRESHOLD"):
        sender["add_threshold"] = _env_number("HYPER_ADD_THRESHOLD", int)
    if os.getenv("HYPER_UPDATE_THRESHOLD"):
        sender["update_threshold"] = _env_number("HYPER_UPDATE_THRESHOLD", int)
    if os.getenv("HYPER_FLUSH_PERIOD_SECONDS"):
        sender["flush_period_seconds"] = _env_number("HYPER_FLUSH_PERIOD_SECONDS", float)
    if os.getenv("HYPER_MAX_STALENESS_SECONDS"):
        sender["max_staleness_seconds"] = _env_number("HYPER_MAX_STALENESS_SECONDS", float)
    if os.getenv("HYPER_REQUEST_TIMEOUT_SECONDS"):
        sender["request_timeout_seconds"] = _env_number("HYPER_REQUEST_TIMEOUT_SECONDS", float)

    # Telemetry overrides
    telemetry = config_data.setdefault("telemetry", {})

    if os.getenv("LOG_LEVEL"):
        telemetry["log_level"] = os.getenv("LOG_LEVEL")
    if os.getenv("OTEL_ENABLED"):
        telemetry["enabled"] = os.getenv("OTEL_ENABLED").lower() in ("true", "1", "yes")
    if os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"):
        telemetry["otlp_endpoint"] = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if os.getenv("OTEL_SERVICE_NAME"):
        telemetry["service_name"] = os.getenv("OTEL_SERVICE_NAME")
    if os.getenv("OTEL_METRIC_EXPORT_INTERVAL"):
        telemetry["metrics_export_interval_ms"] = _env_number("OTEL_METRIC_EXPORT_INTERVAL", int)
