"""``certstore verify``: run the conformance suite against a storage backend.

Examples
    $ certstore verify memory://
    $ certstore verify /var/lib/certs
    $ CERTSTORE_STORAGE=sqlite:///certs.db certstore verify --seed 42
"""

from __future__ import annotations

import logging
import random

import click
from sqlalchemy.exc import ArgumentError

from certstore import config
from certstore.adapters.db.dialects import UnsupportedDialect
from certstore.bootstrap import build_storage
from certstore.conformance import (
    CHECK_NAMES,
    KEY_PREFIX,
    ConformanceError,
    ConformanceSuite,
)
from certstore.interfaces.storage import StorageError

from .helpers import error, sanitize_url, success

logger = logging.getLogger(__name__)


def _display_target(target: str) -> str:
    try:
        return sanitize_url(target)
    except ArgumentError:
        return target


@click.command()
@click.argument("target", required=False)
@click.option(
    "--seed",
    type=int,
    default=0,
    show_default=True,
    help="Seed for generated key names; the same seed reproduces the same keys.",
)
@click.option(
    "--lock-timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds the backend waits for a contended lock [default: backend's own].",
)
@click.option(
    "--join-timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=60.0,
    show_default=True,
    help="Seconds the lock stress test may run before it counts as hung.",
)
@click.option(
    "--key-prefix",
    default=KEY_PREFIX,
    show_default=True,
    help="Prefix for generated keys (must not contain '/').",
)
def verify(
    target: str | None,
    seed: int,
    lock_timeout: float | None,
    join_timeout: float,
    key_prefix: str,
) -> None:
    """Check that the storage at TARGET obeys the storage contract.

    TARGET is memory://, a directory (or file:///path), or a SQLAlchemy
    database URL. It defaults to $CERTSTORE_STORAGE, then memory://.
    """
    target = target or config.get_storage_target()
    shown = _display_target(target)

    try:
        storage = build_storage(target, lock_timeout=lock_timeout)
        suite = ConformanceSuite(
            storage,
            random.Random(seed),
            key_prefix=key_prefix,
            join_timeout=join_timeout,
        )
    except (
        ArgumentError,
        OSError,
        StorageError,
        UnsupportedDialect,
        ValueError,
    ) as e:
        raise click.ClickException(f"Cannot open storage {shown}: {e}") from e

    logger.info("Verifying %s (seed=%d)", shown, seed)
    try:
        suite.run(on_pass=lambda name: success(f"{name} passed"))
    except ConformanceError as e:
        error(f"{type(storage).__name__} at {shown} does not conform")
        raise click.ClickException(str(e)) from e

    success(
        f"{type(storage).__name__} at {shown} passed all {len(CHECK_NAMES)} check groups"
    )
