"""Tests for the command-line interface."""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from hyper_sender.cli import main
from hyper_sender.errors import TransportError


@pytest.fixture
def rows_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "rows.txt"
        path.write_text("1001|Nicolas|male|18\n1002|Ada|female|30\n")
        yield str(path)


@pytest.fixture(autouse=True)
def no_telemetry(monkeypatch):
    monkeypatch.setattr("hyper_sender.cli.setup_telemetry", lambda *args, **kwargs: None)
    monkeypatch.setattr("hyper_sender.config.settings.load_dotenv", lambda: None)
    for name in ("HYPER_SERVER", "HYPER_DATA_SOURCE", "HYPER_UPDATE_THRESHOLD"):
        monkeypatch.delenv(name, raising=False)


def test_cli_imports_rows(rows_file):
    sender = MagicMock()
    sender.__exit__.return_value = False

    with patch("hyper_sender.cli.Builder") as builder_cls:
        builder_cls.from_config.return_value.build.return_value = sender
        result = CliRunner().invoke(
            main,
            [
                rows_file,
                "--server",
                "hmaster:8086",
                "--data-source",
                "users",
                "--update-threshold",
                "50",
            ],
        )

    assert result.exit_code == 0
    config = builder_cls.from_config.call_args.args[0]
    assert config.server == "hmaster:8086"
    assert config.update_threshold == 50
    assert [c.args[0] for c in sender.add.call_args_list] == [
        "1001|Nicolas|male|18",
        "1002|Ada|female|30",
    ]


def test_cli_fails_without_update_threshold(rows_file):
    with patch("hyper_sender.cli.Builder") as builder_cls:
        result = CliRunner().invoke(
            main, [rows_file, "--server", "hmaster:8086", "--data-source", "users"]
        )

    assert result.exit_code == 1
    builder_cls.from_config.assert_not_called()


def test_cli_failure_exit_code(rows_file):
    sender = MagicMock()
    sender.__exit__.return_value = False
    sender.add.side_effect = RuntimeError("boom")

    with patch("hyper_sender.cli.Builder") as builder_cls:
        builder_cls.from_config.return_value.build.return_value = sender
        result = CliRunner().invoke(
            main,
            [rows_file, "--server", "s:1", "--data-source", "users", "--update-threshold", "5"],
        )

    assert result.exit_code == 1


def test_cli_fails_when_final_drain_fails(rows_file, make_sender, transport):
    sender = make_sender(add_threshold=100)
    transport.fail_with = TransportError("down")

    with patch("hyper_sender.cli.Builder") as builder_cls:
        builder_cls.from_config.return_value.build.return_value = sender
        result = CliRunner().invoke(
            main,
            [rows_file, "--server", "s:1", "--data-source", "users", "--update-threshold", "5"],
        )

    assert result.exit_code == 1
    assert transport.records == []
    assert sender.pending_count() == 2
    assert sender.closed


def test_cli_sends_everything_before_exit(rows_file, make_sender, transport):
    sender = make_sender(add_threshold=100)

    with patch("hyper_sender.cli.Builder") as builder_cls:
        builder_cls.from_config.return_value.build.return_value = sender
        result = CliRunner().invoke(
            main,
            [rows_file, "--server", "s:1", "--data-source", "users", "--update-threshold", "5"],
        )

    assert result.exit_code == 0
    assert sorted(transport.rows()) == ["1001|Nicolas|male|18", "1002|Ada|female|30"]
    assert sender.pending_count() == 0
