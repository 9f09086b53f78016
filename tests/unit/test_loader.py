"""Tests for reading import files."""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pyarrow as pa
import pyarrow.csv as pacsv
import pyarrow.parquet as pq
import pytest

from hyper_sender.errors import ValidationError
from hyper_sender.loader import import_rows, iter_rows


@pytest.fixture
def tmpdir_path():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_sender():
    sender = MagicMock()
    sender.metadata.columns.return_value = ["id", "name", "gender", "age"]
    sender.metadata.primary_column_name.return_value = "id"
    return sender


def test_iter_lines_skips_blank_lines(tmpdir_path):
    path = tmpdir_path / "rows.txt"
    path.write_text("1001|Nicolas|male|18\n\n1002|Ada|female|30\r\n")

    assert list(iter_rows(path)) == ["1001|Nicolas|male|18", "1002|Ada|female|30"]


def test_iter_csv_keeps_values_as_text(tmpdir_path):
    path = tmpdir_path / "rows.csv"
    path.write_text("id,name,age\n007,Bond,40\n1002,Ada,30\n")

    rows = list(iter_rows(path, "csv"))

    assert rows == [
        {"id": "007", "name": "Bond", "age": "40"},
        {"id": "1002", "name": "Ada", "age": "30"},
    ]


class TrackingReader:
    """Wraps a CSV reader and records whether it was closed."""

    def __init__(self, reader):
        self.reader = reader
        self.closed = False

    @property
    def schema(self):
        return self.reader.schema

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.closed = True
        self.reader.close()
        return False

    def __iter__(self):
        return iter(self.reader)


def test_iter_csv_closes_readers(tmpdir_path):
    path = tmpdir_path / "rows.csv"
    path.write_text("id,name\n1001,Nicolas\n")
    readers = []
    real_open_csv = pacsv.open_csv

    def tracking_open_csv(*args, **kwargs):
        reader = TrackingReader(real_open_csv(*args, **kwargs))
        readers.append(reader)
        return reader

    with patch("hyper_sender.loader.pacsv.open_csv", side_effect=tracking_open_csv):
        rows = list(iter_rows(path, "csv"))

    assert rows == [{"id": "1001", "name": "Nicolas"}]
    assert readers
    assert all(reader.closed for reader in readers)


def test_iter_parquet(tmpdir_path):
    path = tmpdir_path / "rows.parquet"
    table = pa.table({"id": ["1001", "1002", "1003"], "age": [18, 30, 22]})
    pq.write_table(table, path)

    rows = list(iter_rows(path, "parquet", batch_size=2))

    assert [row["id"] for row in rows] == ["1001", "1002", "1003"]
    assert rows[0]["age"] == 18


def test_iter_unknown_format(tmpdir_path):
    with pytest.raises(ValueError):
        list(iter_rows(tmpdir_path / "rows.xml", "xml"))


def test_import_add_records_in_column_order(mock_sender):
    rows = [{"age": 18, "name": "Nicolas", "id": "1001"}]

    assert import_rows(mock_sender, iter(rows), "add") == 1

    mock_sender.add.assert_called_once_with(["1001", "Nicolas", None, 18])


def test_import_add_lines(mock_sender):
    import_rows(mock_sender, iter(["1001|Nicolas|male|18"]), "add")

    mock_sender.add.assert_called_once_with("1001|Nicolas|male|18")


def test_import_update_and_delete(mock_sender):
    row = {"id": "1001", "age": 19}

    import_rows(mock_sender, iter([row]), "update")
    import_rows(mock_sender, iter([row, "1002"]), "delete")

    mock_sender.update.assert_called_once_with(row)
    assert [c.args[0] for c in mock_sender.delete.call_args_list] == ["1001", "1002"]


def test_import_update_needs_records(mock_sender):
    with pytest.raises(ValidationError):
        import_rows(mock_sender, iter(["1001|x"]), "update")


def test_import_unknown_action(mock_sender):
    with pytest.raises(ValueError):
        import_rows(mock_sender, iter([]), "upsert")
