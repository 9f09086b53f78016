"""Batching write client for a single data source."""

import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any, Callable, Optional

import httpx
from opentelemetry import metrics, trace

from hyper_sender.cache import BatchKey, PendingCache
from hyper_sender.config.settings import SenderConfig
from hyper_sender.errors import ConfigurationError, NullInputError, ValidationError
from hyper_sender.metadata import DataSourceSpecLoader
from hyper_sender.partition import PartitionRouter
from hyper_sender.records import Action, make_batch_record
from hyper_sender.registry import SenderRegistry, get_default_registry
from hyper_sender.scheduler import DEFAULT_FLUSH_PERIOD, DEFAULT_INITIAL_DELAY, FlushScheduler
from hyper_sender.transport import HttpTransport, normalize_server
from hyper_sender.types import DataSourceMetadata, Transport

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)
meter = metrics.get_meter(__name__)

DEFAULT_SEND_THRESHOLD = 100
DEFAULT_MAX_STALENESS = 1.0  # seconds

TRIGGER_THRESHOLD = "caller thread"
TRIGGER_SCHEDULER = "cache flush thread"
TRIGGER_CLOSE = "close"
TRIGGER_FLUSH = "explicit flush"

# Metrics
rows_cached = meter.create_counter(
    "hyper_sender.rows_cached",
    description="Number of rows queued for sending",
    unit="1",
)
batches_sent = meter.create_counter(
    "hyper_sender.batches_sent",
    description="Number of batches delivered",
    unit="1",
)
rows_sent = meter.create_counter(
    "hyper_sender.rows_sent",
    description="Number of rows delivered",
    unit="1",
)
send_errors = meter.create_counter(
    "hyper_sender.send_errors",
    description="Number of batches that failed to send",
    unit="1",
)


def _format_value(value: Any) -> str:
    return "" if value is None else str(value)


class DataSender:
    """
    Batches add, update and delete operations for one data source.

    Rows are queued per (action, column signature, partition). A queue is
    sent as soon as it reaches its threshold, by the thread whose row tipped
    it over. A background thread sends queues that have waited longer than
    max_staleness, and close() sends whatever is left.
    """

    def __init__(
        self,
        data_source: str,
        transport: Transport,
        metadata: DataSourceMetadata,
        update_threshold: Optional[int],
        add_threshold: int = DEFAULT_SEND_THRESHOLD,
        flush_period: float = DEFAULT_FLUSH_PERIOD,
        flush_initial_delay: float = DEFAULT_INITIAL_DELAY,
        max_staleness: float = DEFAULT_MAX_STALENESS,
        router: Optional[PartitionRouter] = None,
        clock: Callable[[], float] = time.monotonic,
        start_scheduler: bool = True,
        on_close: Optional[Callable[["DataSender"], None]] = None,
    ):
        """
        Initialize sender.

        Args:
            data_source: Data source rows are written to
            transport: Delivers assembled batches
            metadata: Schema lookup for the data source
            update_threshold: Batch size that triggers sending update batches
            add_threshold: Batch size that triggers sending add and delete batches
            flush_period: Seconds between background flush scans
            flush_initial_delay: Seconds before the first background scan
            max_staleness: Seconds a non-empty batch may wait before the
                background thread sends it
            router: Partition router (defaults to the transport's partition count)
            clock: Monotonic time source for staleness bookkeeping
            start_scheduler: Start the background flush thread immediately
            on_close: Callback invoked once the sender has been closed
        """
        if update_threshold is None:
            raise ConfigurationError("update threshold must be set explicitly.")
        if update_threshold < 1 or add_threshold < 1:
            raise ConfigurationError(
                f"Thresholds must be positive, got add={add_threshold}, update={update_threshold}"
            )
        if max_staleness < 0:
            raise ConfigurationError(f"max staleness must not be negative, got: {max_staleness}")

        self.data_source = data_source
        self.transport = transport
        self.metadata = metadata
        self.update_threshold = update_threshold
        self.add_threshold = add_threshold
        self.max_staleness = max_staleness
        self.router = router or PartitionRouter(transport.partition_count)
        self.cache = PendingCache(clock=clock)
        self.closed = False
        self._on_close = on_close
        self.scheduler = FlushScheduler(
            self.flush_stale, period=flush_period, initial_delay=flush_initial_delay
        )
        if start_scheduler:
            self.scheduler.start()

    @staticmethod
    def builder(registry: Optional[SenderRegistry] = None) -> "Builder":
        return Builder(registry)

    def __enter__(self) -> "DataSender":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def add(self, row: Any) -> None:
        """
        Add a single row.

        A string is a delimited row, e.g. "1001|Nicolas|male|18" when the
        delimiter is "|". Any other sequence is a list of column values, e.g.
        ["1001", "Nicolas", "male", 18]. Either way the values must follow the
        column order of the data source.

        Args:
            row: Delimited row or list of column values

        Raises:
            NullInputError: If row is None
            ValidationError: If the row has fewer values than the data source has columns
        """
        self._check_open()
        if row is None:
            raise NullInputError("row can not be null.")
        if isinstance(row, str):
            self._add_line(row)
        elif isinstance(row, Sequence):
            self._add_values(row)
        else:
            raise ValidationError(f"row must be a string or a sequence, got: {type(row).__name__}")

    def update(self, row: Any, values: Optional[Sequence] = None) -> None:
        """
        Update an existing row.

        Either pass a mapping of column to new value, which must contain the
        primary column, e.g. {"id": "1001", "name": "Nicolas", "age": 20}; or
        pass the column names and their values as two equally long
        sequences, e.g. ["id", "name", "age"], ["1001", "Nicolas", 18].

        Columns of a mapping are sorted by name, so mappings with the same
        column set share a batch. Columns given as a sequence are kept in
        the order given.

        Raises:
            NullInputError: If the row, columns, values or primary value is None
            ValidationError: If the input is empty, lengths differ or the
                primary column is missing
        """
        self._check_open()
        if isinstance(row, Mapping):
            if values is not None:
                raise ValidationError("values must not be given together with a row mapping.")
            self._update_mapping(row)
        else:
            self._update_columns(row, values)

    def delete(self, primary_value: Any) -> None:
        """
        Delete rows by primary value.

        Args:
            primary_value: A single primary value, or a sequence of them,
                e.g. ["1001", "1002", "1006"], deleted in order

        Raises:
            NullInputError: If the value is None
            ValidationError: If an empty sequence is given
        """
        self._check_open()
        if isinstance(primary_value, Sequence) and not isinstance(primary_value, (str, bytes)):
            self._delete_many(primary_value)
        else:
            self._delete_one(primary_value)

    def _add_line(self, row: str) -> None:
        delimiter = self.metadata.delimiter()
        columns = self.metadata.columns()
        values = row.split(delimiter)
        if len(columns) > len(values):
            raise ValidationError(
                f"Column values size not matched, expected: {len(columns)}, "
                f"but actually: {len(values)}"
            )
        primary_value = values[self.metadata.primary_column_index()]
        key = BatchKey(Action.ADD, self.router.route(primary_value))
        self._append(key, row)

    def _add_values(self, column_values: Sequence) -> None:
        if len(column_values) < 1:
            raise ValidationError("column values can not be empty.")
        delimiter = self.metadata.delimiter()
        columns = self.metadata.columns()
        if len(columns) > len(column_values):
            raise ValidationError(
                f"Column values size not matched, expected: {len(columns)}, "
                f"but actually: {len(column_values)}"
            )
        primary_value = column_values[self.metadata.primary_column_index()]
        if primary_value is None:
            raise NullInputError("primary value can not be null.")
        row = delimiter.join(_format_value(v) for v in column_values)
        key = BatchKey(Action.ADD, self.router.route(primary_value))
        self._append(key, row)

    def _update_mapping(self, row: Mapping) -> None:
        if len(row) < 1:
            raise ValidationError("row can not be empty.")
        primary_column = self.metadata.primary_column_name()
        if primary_column not in row:
            raise ValidationError(f"row must contain primary column: {primary_column}")
        primary_value = row[primary_column]
        if primary_value is None:
            raise NullInputError("primary value can not be null.")

        # Column signature is order independent for mappings
        columns = sorted(row, key=str)
        delimiter = self.metadata.delimiter()
        signature = ",".join(str(c) for c in columns)
        payload = delimiter.join(_format_value(row[c]) for c in columns)
        key = BatchKey(Action.UPDATE, self.router.route(primary_value), signature)
        self._append(key, payload)

    def _update_columns(self, columns: Optional[Sequence], values: Optional[Sequence]) -> None:
        if columns is None:
            raise NullInputError("columns can not be null.")
        if values is None:
            raise NullInputError("values can not be null.")
        if isinstance(columns, str) or isinstance(values, str):
            raise ValidationError("columns and values must be sequences, not strings.")
        if len(columns) < 1:
            raise ValidationError("columns can not be empty.")
        if len(values) < 1:
            raise ValidationError("values can not be empty.")
        if len(columns) != len(values):
            raise ValidationError(
                f"columns and values size not matched: {len(columns)} != {len(values)}"
            )
        primary_column = self.metadata.primary_column_name()
        columns = list(columns)
        if primary_column not in columns:
            raise ValidationError(f"columns must contain primary column: {primary_column}")
        primary_value = values[columns.index(primary_column)]
        if primary_value is None:
            raise NullInputError("primary value can not be null.")

        delimiter = self.metadata.delimiter()
        signature = ",".join(str(c) for c in columns)
        payload = delimiter.join(_format_value(v) for v in values)
        key = BatchKey(Action.UPDATE, self.router.route(primary_value), signature)
        self._append(key, payload)

    def _delete_many(self, primary_values: Sequence) -> None:
        if len(primary_values) < 1:
            raise ValidationError("primary values can not be empty.")
        for primary_value in primary_values:
            self._delete_one(primary_value)

    def _delete_one(self, primary_value: Any) -> None:
        if primary_value is None:
            raise NullInputError("primary value can not be null.")
        key = BatchKey(Action.DELETE, self.router.route(primary_value))
        self._append(key, str(primary_value))

    def _threshold(self, action: Action) -> int:
        return self.update_threshold if action is Action.UPDATE else self.add_threshold

    def _append(self, key: BatchKey, payload: str) -> None:
        rows_cached.add(1, {"data_source": self.data_source, "action": key.action.value})
        self.cache.append(
            key,
            payload,
            self._threshold(key.action),
            lambda k, rows: self._send_batch(k, rows, TRIGGER_THRESHOLD),
        )

    def _send_batch(self, key: BatchKey, rows: list[str], trigger: str) -> None:
        """Assemble and deliver one batch. Called with the key's lock held."""
        attributes = {
            "data_source": self.data_source,
            "action": key.action.value,
            "trigger": trigger,
        }
        with tracer.start_as_current_span("send_batch") as span:
            span.set_attribute("batch.action", key.action.value)
            span.set_attribute("batch.partition", key.partition_num)
            span.set_attribute("batch.num_rows", len(rows))
            span.set_attribute("batch.trigger", trigger)

            logger.info(
                "Sending batch from %s: action=%s, size=%d, partition=%d",
                trigger,
                key.action.value,
                len(rows),
                key.partition_num,
            )
            record = make_batch_record(key, self.data_source, rows)
            try:
                self.transport.send(record)
            except Exception:
                send_errors.add(1, attributes)
                raise

        batches_sent.add(1, attributes)
        rows_sent.add(len(rows), attributes)

    def flush_stale(self) -> int:
        """
        Send every batch that has waited at least max_staleness seconds.

        Failures are logged per batch and leave its rows queued for the next
        attempt.

        Returns:
            Number of rows sent
        """
        sent = 0
        for entry in self.cache.entries():
            try:
                sent += self.cache.flush_entry(
                    entry,
                    lambda k, rows: self._send_batch(k, rows, TRIGGER_SCHEDULER),
                    max_staleness=self.max_staleness,
                )
            except Exception as e:
                logger.error("Cache flush thread send data error for %s: %s", entry.key, e, exc_info=True)
        return sent

    def flush(self) -> int:
        """
        Send every non-empty batch now, regardless of size or age.

        All batches are attempted; the first failure is raised afterwards.

        Returns:
            Number of rows sent
        """
        self._check_open()
        sent = 0
        first_error: Optional[Exception] = None
        for entry in self.cache.entries():
            try:
                sent += self.cache.flush_entry(
                    entry, lambda k, rows: self._send_batch(k, rows, TRIGGER_FLUSH)
                )
            except Exception as e:
                logger.error("Send data error on flush for %s: %s", entry.key, e)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
        return sent

    def pending_count(self) -> int:
        """Number of rows queued but not yet sent."""
        return self.cache.pending_count()

    def close(self) -> None:
        """
        Send everything still queued, then stop the background thread.

        Failures are logged per batch and do not stop the remaining batches
        from being sent. Calling close more than once is a no-op.
        """
        if self.closed:
            return
        self.closed = True
        logger.info("Closing sender for %s", self.data_source)

        for entry in self.cache.entries():
            try:
                self.cache.flush_entry(
                    entry, lambda k, rows: self._send_batch(k, rows, TRIGGER_CLOSE)
                )
            except Exception as e:
                logger.error("Send data error when closing for %s: %s", entry.key, e, exc_info=True)

        self.scheduler.stop()
        self.transport.close()
        if self._on_close is not None:
            self._on_close(self)

        remaining = self.cache.pending_count()
        if remaining:
            logger.warning("Sender for %s closed with %d unsent rows", self.data_source, remaining)

    def _check_open(self) -> None:
        if self.closed:
            raise RuntimeError(f"Sender for {self.data_source} is closed.")


class Builder:
    """
    Builds, or reuses, the sender for a (server, data source) pair.

    Example:
        sender = DataSender.builder() \\
            .to_server("hmaster:8086") \\
            .of_data_source("users") \\
            .with_update_threshold(50) \\
            .build()
    """

    def __init__(self, registry: Optional[SenderRegistry] = None):
        self.registry = registry
        self.server: Optional[str] = None
        self.data_source: Optional[str] = None
        self.add_threshold = DEFAULT_SEND_THRESHOLD
        self.update_threshold: Optional[int] = None
        self.flush_period = DEFAULT_FLUSH_PERIOD
        self.flush_initial_delay = DEFAULT_INITIAL_DELAY
        self.max_staleness = DEFAULT_MAX_STALENESS
        self.timeout = 30.0
        self.headers: dict = {}

    @classmethod
    def from_config(cls, config: SenderConfig, registry: Optional[SenderRegistry] = None) -> "Builder":
        """Create a builder pre-filled from sender settings."""
        return (
            cls(registry)
            .to_server(config.server)
            .of_data_source(config.data_source)
            .with_add_threshold(config.add_threshold)
            .with_update_threshold(config.update_threshold)
            .with_flush_period(config.flush_period_seconds, config.flush_initial_delay_seconds)
            .with_max_staleness(config.max_staleness_seconds)
            .with_timeout(config.request_timeout_seconds)
            .with_headers(config.extra_headers)
        )

    def to_server(self, server: str) -> "Builder":
        self.server = server
        return self

    def of_data_source(self, data_source: str) -> "Builder":
        self.data_source = data_source
        return self

    def with_add_threshold(self, threshold: int) -> "Builder":
        self.add_threshold = threshold
        return self

    def with_update_threshold(self, threshold: int) -> "Builder":
        self.update_threshold = threshold
        return self

    def with_flush_period(self, seconds: float, initial_delay: Optional[float] = None) -> "Builder":
        self.flush_period = seconds
        if initial_delay is not None:
            self.flush_initial_delay = initial_delay
        return self

    def with_max_staleness(self, seconds: float) -> "Builder":
        self.max_staleness = seconds
        return self

    def with_timeout(self, seconds: float) -> "Builder":
        self.timeout = seconds
        return self

    def with_headers(self, headers: dict) -> "Builder":
        self.headers = dict(headers)
        return self

    def in_registry(self, registry: SenderRegistry) -> "Builder":
        self.registry = registry
        return self

    def build(self) -> DataSender:
        """
        Return the shared sender for the configured server and data source.

        Raises:
            ConfigurationError: If server, data source or update threshold is missing
        """
        if not self.server:
            raise ConfigurationError("server can not be null.")
        if not self.data_source:
            raise ConfigurationError("data source can not be null.")
        if self.update_threshold is None:
            raise ConfigurationError("update threshold can not be null.")

        registry = self.registry or get_default_registry()
        server = normalize_server(self.server)
        sender = registry.get_or_create(
            server, self.data_source, lambda: self._create(registry, server)
        )
        if (sender.add_threshold, sender.update_threshold) != (
            self.add_threshold,
            self.update_threshold,
        ):
            logger.warning(
                "Reusing sender for %s on %s with thresholds add=%d, update=%d",
                self.data_source,
                server,
                sender.add_threshold,
                sender.update_threshold,
            )
        return sender

    def _create(self, registry: SenderRegistry, server: str) -> DataSender:
        data_source = self.data_source
        client = httpx.Client(base_url=server, timeout=self.timeout, headers=self.headers)
        transport = HttpTransport(server, data_source, timeout=self.timeout, client=client)
        metadata = DataSourceSpecLoader(server, data_source, timeout=self.timeout, client=client)
        try:
            return DataSender(
                data_source,
                transport,
                metadata,
                update_threshold=self.update_threshold,
                add_threshold=self.add_threshold,
                flush_period=self.flush_period,
                flush_initial_delay=self.flush_initial_delay,
                max_staleness=self.max_staleness,
                on_close=lambda sender: registry.discard(server, data_source, sender),
            )
        except Exception:
            client.close()
            raise
