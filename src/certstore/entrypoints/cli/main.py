"""certstore CLI entry point.

Defines the top-level ``certstore`` group, configures logging for every
subcommand, and registers:

- ``certstore verify``: run the storage conformance suite.
- ``certstore db``: forward-only schema management for the SQL backend.

Examples
    $ certstore --version
    $ certstore -vv verify /var/lib/certs
    $ certstore db upgrade
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import click
from platformdirs import user_log_dir

from certstore import __version__
from certstore.logging import config_console_handler, config_flight_recorder, log_startup

from .db import db as db_group
from .helpers import parse_log_level
from .verify import verify as verify_command

if TYPE_CHECKING:
    from logging import Handler

logger = logging.getLogger(__name__)

HELP = """certstore command-line interface.

    Hierarchical key-value storage with advisory locks for TLS certificate
    caches, plus a conformance suite that checks any storage backend against
    the same contract.
    """


def _default_log_path() -> Path:
    return Path(user_log_dir("certstore", appauthor=False)) / "latest.log"


@click.group(help=HELP)
@click.version_option(__version__, prog_name="certstore")
@click.option(
    "--verbose",
    "-v",
    "verbose_count",
    count=True,
    help="Lower the console threshold (WARNING) one level per repetition.",
)
@click.option(
    "--quiet",
    "-q",
    "quiet_count",
    count=True,
    help="Raise the console threshold (WARNING) one level per repetition.",
)
@click.option(
    "--debug/--no-debug",
    default=False,
    help="Debug console format: DEBUG level, timestamps and source locations.",
)
@click.option(
    "--color/--no-color",
    default=True,
    envvar="CERTSTORE_COLOR",
    show_envvar=True,
    help="Colorize console output.",
)
@click.option(
    "--log-path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=_default_log_path,
    envvar="CERTSTORE_LOG_PATH",
    show_default="user log directory/latest.log",
    show_envvar=True,
    help="File the flight recorder writes to.",
)
@click.option(
    "--flight-recorder-capacity",
    type=int,
    default=2000,
    hidden=True,
    envvar="CERTSTORE_FLIGHT_RECORDER_CAPACITY",
    help="Number of log records the flight recorder keeps.",
)
@click.option(
    "--flight-recorder/--no-flight-recorder",
    default=True,
    show_envvar=True,
    help=(
        "Keep recent DEBUG records in memory (independent of -v/-q) and write "
        "them to --log-path when a WARNING or ERROR occurs."
    ),
)
@click.option(
    "--force-flush/--no-force-flush",
    "force_flush_flight_recorder",
    default=False,
    envvar="CERTSTORE_FORCE_FLUSH_FLIGHT_RECORDER",
    show_envvar=True,
    help="Also write the flight recorder buffer to --log-path on exit.",
)
@click.option(
    "-L",
    "--logger-level",
    "logger_levels",
    multiple=True,
    callback=parse_log_level,
    envvar="CERTSTORE_LOGGER_LEVELS",
    show_envvar=True,
    default=("sqlalchemy=WARNING", "alembic=WARNING"),
    show_default=True,
    help=(
        "Set the minimum level of a logger (NAME=LEVEL), for console and "
        "flight recorder alike. Repeatable."
    ),
)
@click.pass_context
def certstore(  # pylint: disable=too-many-arguments, too-many-positional-arguments
    ctx: click.Context,
    verbose_count: int,
    quiet_count: int,
    debug: bool,
    color: bool,
    log_path: Path,
    flight_recorder_capacity: int,
    flight_recorder: bool,
    force_flush_flight_recorder: bool,
    logger_levels: dict[str, int],
) -> None:
    """certstore command-line interface."""

    level = logging.WARNING - 10 * verbose_count + 10 * quiet_count
    level = max(logging.DEBUG, min(logging.CRITICAL, level))

    handlers: list[Handler] = [
        config_console_handler(level=level, debug_mode=debug, color=color)
    ]
    if flight_recorder:
        handlers.append(
            config_flight_recorder(
                path=log_path,
                capacity=flight_recorder_capacity,
                flush_on_close=force_flush_flight_recorder,
            )
        )

    # handlers do the filtering
    logging.basicConfig(level=logging.DEBUG, handlers=handlers, force=True)

    for name, lvl in logger_levels.items():
        logging.getLogger(name).setLevel(lvl)

    log_startup(
        logger,
        app_version=__version__,
        level=level,
        handlers=handlers,
        log_path=log_path if flight_recorder else None,
        flight_recorder=flight_recorder,
        logger_levels=logger_levels,
    )

    ctx.call_on_close(logging.shutdown)


certstore.add_command(verify_command)
certstore.add_command(db_group)
