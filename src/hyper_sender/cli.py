"""Command-line interface for hyper-sender."""

import logging
import sys

import click

from hyper_sender.config import load_config
from hyper_sender.loader import ACTIONS, INPUT_FORMATS, import_rows, iter_rows
from hyper_sender.registry import SenderRegistry
from hyper_sender.sender import Builder
from hyper_sender.telemetry import setup_telemetry

logger = logging.getLogger(__name__)


@click.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Path to configuration file (INI format)",
)
@click.option(
    "--action",
    "-a",
    type=click.Choice(ACTIONS),
    default="add",
    help="Operation applied to every input row",
)
@click.option(
    "--format",
    "input_format",
    type=click.Choice(INPUT_FORMATS),
    default="lines",
    help="Input file format",
)
@click.option("--csv-delimiter", default=",", help="Field delimiter of CSV input")
@click.option("--server", help="Index service address (host:port)")
@click.option("--data-source", help="Target data source")
@click.option("--update-threshold", type=int, help="Batch size for update batches")
@click.option("--add-threshold", type=int, help="Batch size for add and delete batches")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    default="INFO",
    help="Logging level",
)
def main(
    input_path,
    config,
    action,
    input_format,
    csv_delimiter,
    server,
    data_source,
    update_threshold,
    add_threshold,
    log_level,
):
    """
    Hyper Sender - batch rows from a file into an index service data source.

    INPUT_PATH holds one raw delimited row per line ('lines'), or records
    with named columns ('csv', 'parquet').

    Configuration can be provided via:
    - INI configuration file (--config)
    - Environment variables
    - Command-line options

    Environment variables take precedence over config file values, and
    command-line options take precedence over both.
    """
    try:
        settings = load_config(config)

        # Override with CLI options
        if server:
            settings.sender.server = server
        if data_source:
            settings.sender.data_source = data_source
        if update_threshold:
            settings.sender.update_threshold = update_threshold
        if add_threshold:
            settings.sender.add_threshold = add_threshold
        if log_level:
            settings.telemetry.log_level = log_level

        setup_telemetry(settings.telemetry, settings.sender)
        settings.sender.validate()

        logger.info("Server: %s", settings.sender.server)
        logger.info("Data source: %s", settings.sender.data_source)
        logger.info("Action: %s, input: %s (%s)", action, input_path, input_format)

        # Sender is scoped to this run
        sender = Builder.from_config(settings.sender, SenderRegistry()).build()
        with sender:
            rows = iter_rows(input_path, input_format, csv_delimiter=csv_delimiter)
            count = import_rows(sender, rows, action)
            sender.flush()

        logger.info("Import completed: %d rows", count)
        sys.exit(0)

    except KeyboardInterrupt:
        logger.info("Import interrupted by user")
        sys.exit(130)

    except Exception as e:
        logger.error("Import failed: %s", e, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
