"""Reading import files and feeding their rows to a sender."""

import logging
from pathlib import Path
from typing import Iterator, Union

import pyarrow as pa
import pyarrow.csv as pacsv
import pyarrow.parquet as pq
from opentelemetry import trace

from hyper_sender.errors import ValidationError
from hyper_sender.sender import DataSender

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

INPUT_FORMATS = ("lines", "csv", "parquet")
ACTIONS = ("add", "update", "delete")

Row = Union[str, dict]


def _iter_lines(path: Path) -> Iterator[str]:
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.rstrip("\r\n")
            if line:
                yield line


def _iter_batches(batches: Iterator[pa.RecordBatch]) -> Iterator[dict]:
    for batch in batches:
        logger.debug("Read batch: %d rows", batch.num_rows)
        yield from batch.to_pylist()


def _csv_batches(path: Path, delimiter: str, batch_size: int) -> Iterator[pa.RecordBatch]:
    parse_options = pacsv.ParseOptions(delimiter=delimiter)
    with pacsv.open_csv(path, parse_options=parse_options) as header_reader:
        names = header_reader.schema.names
    # All columns as strings
    convert_options = pacsv.ConvertOptions(column_types={name: pa.string() for name in names})
    read_options = pacsv.ReadOptions(block_size=max(batch_size, 1) * 1024)
    with pacsv.open_csv(
        path,
        read_options=read_options,
        parse_options=parse_options,
        convert_options=convert_options,
    ) as reader:
        yield from reader


def iter_rows(
    path: Union[str, Path],
    input_format: str = "lines",
    csv_delimiter: str = ",",
    batch_size: int = 1000,
) -> Iterator[Row]:
    """
    Read rows from an import file.

    Args:
        path: File to read
        input_format: 'lines' (one raw row per line), 'csv' (with header) or 'parquet'
        csv_delimiter: Field delimiter of CSV input
        batch_size: Rows per Parquet batch, approximate KiB per CSV block

    Yields:
        Raw line strings for 'lines' input, column->value dicts otherwise
    """
    path = Path(path)
    if input_format == "lines":
        yield from _iter_lines(path)
    elif input_format == "csv":
        yield from _iter_batches(_csv_batches(path, csv_delimiter, batch_size))
    elif input_format == "parquet":
        yield from _iter_batches(pq.ParquetFile(path).iter_batches(batch_size=batch_size))
    else:
        raise ValueError(f"Unsupported input format: {input_format}")


def import_rows(sender: DataSender, rows: Iterator[Row], action: str) -> int:
    """
    Apply one action to every row.

    Records read from CSV or Parquet are matched to the data source columns
    by name, so file column order does not matter.

    Args:
        sender: Sender writing to the target data source
        rows: Rows from iter_rows()
        action: 'add', 'update' or 'delete'

    Returns:
        Number of rows handed to the sender
    """
    if action not in ACTIONS:
        raise ValueError(f"Unsupported action: {action}")

    count = 0
    with tracer.start_as_current_span("import_rows") as span:
        span.set_attribute("import.action", action)
        for row in rows:
            if action == "add":
                if isinstance(row, dict):
                    sender.add([row.get(column) for column in sender.metadata.columns()])
                else:
                    sender.add(row)
            elif action == "update":
                if not isinstance(row, dict):
                    raise ValidationError("update needs csv or parquet input with a header")
                sender.update(row)
            else:
                if isinstance(row, dict):
                    sender.delete(row.get(sender.metadata.primary_column_name()))
                else:
                    sender.delete(row)
            count += 1
            if count % 10000 == 0:
                logger.info("Imported %d rows", count)
        span.set_attribute("import.rows", count)
    return count
