"""Configuration management."""

from hyper_sender.config.settings import (
    SenderConfig,
    Settings,
    TelemetryConfig,
    load_config,
)

__all__ = [
    "Settings",
    "SenderConfig",
    "TelemetryConfig",
    "load_config",
]
