"""Logging, tracing and metrics setup."""

from hyper_sender.telemetry.setup import build_resource, setup_logging, setup_telemetry

__all__ = ["build_resource", "setup_logging", "setup_telemetry"]
