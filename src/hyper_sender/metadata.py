"""Data source schema lookup from the index service."""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

import httpx

from hyper_sender.errors import ConfigurationError
from hyper_sender.transport import API_PREFIX, normalize_server
from hyper_sender.types import DataSourceMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataSourceSpec:
    """Parsed schema of a data source."""

    delimiter: str
    columns: list[str]
    primary_column: str

    @property
    def primary_index(self) -> int:
        return self.columns.index(self.primary_column)

    @classmethod
    def from_dict(cls, data_source: str, payload: dict) -> "DataSourceSpec":
        """
        Build a spec from the service's JSON answer.

        Raises:
            ConfigurationError: If a field is missing or inconsistent
        """
        if not isinstance(payload, dict):
            raise ConfigurationError(f"Malformed spec for data source {data_source}")

        delimiter = payload.get("delimiter")
        columns = payload.get("columns")
        primary_column = payload.get("primaryColumn")

        if not delimiter or not isinstance(delimiter, str):
            raise ConfigurationError(f"Data source {data_source} has no delimiter")
        if not columns or not isinstance(columns, list):
            raise ConfigurationError(f"Data source {data_source} has no columns")
        if not primary_column:
            raise ConfigurationError(f"Data source {data_source} has no primary column")
        if primary_column not in columns:
            raise ConfigurationError(
                f"Primary column {primary_column} not found in columns of {data_source}: {columns}"
            )
        return cls(delimiter=delimiter, columns=[str(c) for c in columns], primary_column=primary_column)


class DataSourceSpecLoader(DataSourceMetadata):
    """
    Metadata backed by the index service.

    The spec is fetched on first use and cached for the life of the loader.
    A failed fetch raises ConfigurationError and is retried on the next call.
    """

    def __init__(
        self,
        server: str,
        data_source: str,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.server = normalize_server(server)
        self.data_source = data_source
        self.client = client or httpx.Client(base_url=self.server, timeout=timeout)
        self._spec: Optional[DataSourceSpec] = None
        self._lock = threading.Lock()

    def spec(self) -> DataSourceSpec:
        """Return the cached spec, loading it if needed."""
        spec = self._spec
        if spec is None:
            with self._lock:
                if self._spec is None:
                    self._spec = self._load()
                spec = self._spec
        return spec

    def refresh(self) -> None:
        """Drop the cached spec so the next call reloads it."""
        with self._lock:
            self._spec = None

    def _load(self) -> DataSourceSpec:
        logger.info("Loading spec of data source %s from %s", self.data_source, self.server)
        try:
            response = self.client.get(f"{API_PREFIX}/{self.data_source}/spec")
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise ConfigurationError(
                f"Failed to load spec of {self.data_source}: HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ConfigurationError(f"Failed to load spec of {self.data_source}: {e}") from e

        spec = DataSourceSpec.from_dict(self.data_source, payload)
        logger.info(
            "Loaded spec of %s: columns=%s, primary=%s",
            self.data_source,
            spec.columns,
            spec.primary_column,
        )
        return spec

    def delimiter(self) -> str:
        return self.spec().delimiter

    def columns(self) -> list[str]:
        return list(self.spec().columns)

    def primary_column_index(self) -> int:
        return self.spec().primary_index

    def primary_column_name(self) -> str:
        return self.spec().primary_column

    def close(self) -> None:
        self.client.close()
