"""HTTP transport delivering batches to the index service."""

import logging
from typing import Optional

import httpx
from opentelemetry import trace

from hyper_sender.errors import ConfigurationError, TransportError
from hyper_sender.records import BatchRecord
from hyper_sender.types import Transport

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

API_PREFIX = "/hyper/v1/datasources"


def normalize_server(server: str) -> str:
    """Turn a bare host:port into a base URL."""
    server = server.strip().rstrip("/")
    if "://" not in server:
        server = f"http://{server}"
    return server


class HttpTransport(Transport):
    """
    Transport that posts batch records to the index service over HTTP.

    Also answers partition count queries for the data source, since the
    same server owns both.
    """

    def __init__(
        self,
        server: str,
        data_source: str,
        timeout: float = 30.0,
        headers: Optional[dict] = None,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize HTTP transport.

        Args:
            server: Index service address (host:port or URL)
            data_source: Data source batches are written to
            timeout: Request timeout in seconds
            headers: Extra headers sent with every request
            client: Pre-built httpx client (mainly for tests)
        """
        self.server = normalize_server(server)
        self.data_source = data_source
        self.timeout = timeout
        self.client = client or httpx.Client(
            base_url=self.server, timeout=timeout, headers=headers or {}
        )

    @property
    def _base_path(self) -> str:
        return f"{API_PREFIX}/{self.data_source}"

    def partition_count(self) -> int:
        """Query the current partition count of the data source."""
        try:
            response = self.client.get(f"{self._base_path}/partitions")
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise ConfigurationError(
                f"Failed to look up partitions of {self.data_source}: "
                f"HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ConfigurationError(
                f"Failed to look up partitions of {self.data_source}: {e}"
            ) from e

        partitions = payload.get("partitions") if isinstance(payload, dict) else None
        if not isinstance(partitions, int) or isinstance(partitions, bool) or partitions < 1:
            raise ConfigurationError(
                f"Invalid partition count for {self.data_source}: {partitions!r}"
            )
        return partitions

    def send(self, record: BatchRecord) -> None:
        """Post one batch record to the service."""
        with tracer.start_as_current_span("http_send") as span:
            span.set_attribute("http.data_source", self.data_source)
            span.set_attribute("batch.num_rows", len(record))
            try:
                response = self.client.post(f"{self._base_path}/records", json=record.to_dict())
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                raise TransportError(
                    f"Index service rejected {record.action.value} batch for partition "
                    f"{record.partition_num}: HTTP {status}",
                    status_code=status,
                ) from e
            except httpx.HTTPError as e:
                raise TransportError(
                    f"Failed to send {record.action.value} batch for partition "
                    f"{record.partition_num}: {e}"
                ) from e
            logger.debug(
                "Delivered %s batch: partition=%d, rows=%d",
                record.action.value,
                record.partition_num,
                len(record),
            )

    def close(self) -> None:
        logger.info("Closing transport to %s", self.server)
        self.client.close()
