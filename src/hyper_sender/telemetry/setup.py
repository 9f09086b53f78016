"""
Logging, tracing and metrics for a sender run.

Log lines and exported telemetry are tagged with the server and data source
the sender writes to.
"""

import logging
import sys
from typing import Optional

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from hyper_sender import __version__
from hyper_sender.config.settings import SenderConfig, TelemetryConfig

logger = logging.getLogger(__name__)

SERVER_ATTRIBUTE = "hyper_sender.server"
DATA_SOURCE_ATTRIBUTE = "hyper_sender.data_source"

JSON_FORMAT = (
    '{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s",'
    '"thread":"%(threadName)s","data_source":"%(data_source)s",'
    '"message":"%(message)s","line":%(lineno)d}'
)
TEXT_FORMAT = (
    "%(asctime)s - %(name)s - [%(threadName)s] - %(data_source)s - %(levelname)s - %(message)s"
)

# Quieted to WARNING
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3")


class DataSourceFilter(logging.Filter):
    """Stamps every record with the data source being written to."""

    def __init__(self, data_source: Optional[str] = None):
        super().__init__()
        self.data_source = data_source or "-"

    def filter(self, record: logging.LogRecord) -> bool:
        record.data_source = self.data_source
        return True


def setup_logging(log_level: str, log_format: str, data_source: Optional[str] = None) -> None:
    """
    Send log records to stdout in the given format.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: 'json' or 'text'
        data_source: Data source stamped on every record
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(JSON_FORMAT if log_format == "json" else TEXT_FORMAT))
    handler.addFilter(DataSourceFilter(data_source))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers = [handler]

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def build_resource(config: TelemetryConfig, sender: Optional[SenderConfig] = None) -> Resource:
    """
    Describe this process to the telemetry backend.

    The sender's server and data source become resource attributes, so every
    send_batch span and hyper_sender.* counter carries them.
    """
    attributes = {
        "service.name": config.service_name,
        "service.version": __version__,
    }
    if sender is not None:
        if sender.server:
            attributes[SERVER_ATTRIBUTE] = sender.server
        if sender.data_source:
            attributes[DATA_SOURCE_ATTRIBUTE] = sender.data_source
    return Resource.create(attributes)


def setup_tracing(resource: Resource, otlp_endpoint: Optional[str]) -> TracerProvider:
    """Install a tracer provider, exporting spans when an endpoint is set."""
    tracer_provider = TracerProvider(resource=resource)
    if otlp_endpoint:
        tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
    trace.set_tracer_provider(tracer_provider)
    return tracer_provider


def setup_metrics(
    resource: Resource, otlp_endpoint: Optional[str], export_interval_millis: int
) -> MeterProvider:
    """Install a meter provider, exporting periodically when an endpoint is set."""
    readers = []
    if otlp_endpoint:
        readers.append(
            PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=otlp_endpoint, insecure=True),
                export_interval_millis=export_interval_millis,
            )
        )
    meter_provider = MeterProvider(resource=resource, metric_readers=readers)
    metrics.set_meter_provider(meter_provider)
    return meter_provider


def setup_telemetry(config: TelemetryConfig, sender: Optional[SenderConfig] = None) -> None:
    """
    Set up logging, and tracing and metrics when enabled.

    Args:
        config: Telemetry configuration
        sender: Sender the telemetry describes, if known
    """
    setup_logging(config.log_level, config.log_format, sender.data_source if sender else None)

    if not config.enabled:
        logger.info("OpenTelemetry disabled")
        return

    resource = build_resource(config, sender)
    exporter = f"endpoint: {config.otlp_endpoint}" if config.otlp_endpoint else "no exporter"
    if config.trace_enabled:
        setup_tracing(resource, config.otlp_endpoint)
        logger.info("Tracing initialized (%s)", exporter)
    if config.metrics_enabled:
        setup_metrics(resource, config.otlp_endpoint, config.metrics_export_interval_ms)
        logger.info("Metrics initialized (%s)", exporter)
