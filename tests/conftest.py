"""Pytest configuration and fixtures."""

import threading

import pytest

from hyper_sender.partition import PartitionRouter
from hyper_sender.sender import DataSender
from hyper_sender.types import DataSourceMetadata, Transport


class StaticMetadata(DataSourceMetadata):
    """Metadata with a fixed schema."""

    def __init__(self, columns=None, primary="id", delimiter="|"):
        self._columns = columns or ["id", "name", "gender", "age"]
        self._primary = primary
        self._delimiter = delimiter

    def delimiter(self):
        return self._delimiter

    def columns(self):
        return list(self._columns)

    def primary_column_index(self):
        return self._columns.index(self._primary)

    def primary_column_name(self):
        return self._primary


class RecordingTransport(Transport):
    """Transport that keeps every record it is given."""

    def __init__(self, partitions=4):
        self.partitions = partitions
        self.records = []
        self.fail_with = None
        self.closed = False
        self._lock = threading.Lock()

    def partition_count(self):
        return self.partitions

    def send(self, record):
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.records.append(record)

    def close(self):
        self.closed = True

    def rows(self):
        return [row for record in self.records for row in record.rows]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def metadata():
    return StaticMetadata()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_sender(metadata, transport, clock):
    """Build senders without a background thread, closing them afterwards."""
    senders = []

    def _make(partition_map=None, **kwargs):
        kwargs.setdefault("update_threshold", 100)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("start_scheduler", False)
        if partition_map is not None:
            kwargs["router"] = PartitionRouter(
                transport.partition_count, lambda value, count: partition_map[str(value)]
            )
        sender = DataSender("users", transport, metadata, **kwargs)
        senders.append(sender)
        return sender

    yield _make

    for sender in senders:
        sender.close()
