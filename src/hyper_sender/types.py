"""Collaborator interfaces consumed by the sender."""

from abc import ABC, abstractmethod

from hyper_sender.records import BatchRecord


class DataSourceMetadata(ABC):
    """Abstract base class for data source schema lookups."""

    @abstractmethod
    def delimiter(self) -> str:
        """Delimiter separating column values in a row."""

    @abstractmethod
    def columns(self) -> list[str]:
        """Ordered column names of the data source."""

    @abstractmethod
    def primary_column_index(self) -> int:
        """Position of the primary column within columns()."""

    @abstractmethod
    def primary_column_name(self) -> str:
        """Name of the primary column."""


class Transport(ABC):
    """Abstract base class for delivering batches to the index service."""

    @abstractmethod
    def partition_count(self) -> int:
        """Current number of partitions of the data source."""

    @abstractmethod
    def send(self, record: BatchRecord) -> None:
        """
        Deliver one batch to the service.

        Args:
            record: Assembled batch to deliver

        Raises:
            TransportError: If the batch could not be delivered
        """

    @abstractmethod
    def close(self) -> None:
        """Release any connections held by the transport."""
