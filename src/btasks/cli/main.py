"""CLI entry point: ``btasks PORT``."""

from __future__ import annotations

import errno
import logging
import sys
from pathlib import Path

import click

from btasks.core.config import DEFAULT_HOST, database_path, resolve_data_dir
from btasks.server.http import create_server
from btasks.storage.store import Store

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


@click.command()
@click.argument("port", type=click.IntRange(1, 65535))
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding database.json (default: per-user data dir, or $BTASKS_DATA_DIR).",
)
@click.option("-v", "--verbose", is_flag=True, help="Log every request.")
def cli(port: int, data_dir: Path | None, verbose: bool) -> None:
    """Serve the btasks HTTP API on 127.0.0.1:PORT until interrupted."""
    _configure_logging(verbose)

    store = Store.open(database_path(resolve_data_dir(data_dir)))

    try:
        server = create_server(store, DEFAULT_HOST, port)
    except OSError as exc:
        if exc.errno == errno.EADDRINUSE:
            click.echo(f"ERROR: Port {port} is already in use", err=True)
        else:
            click.echo(f"ERROR: Could not bind {DEFAULT_HOST}:{port}: {exc}", err=True)
        raise SystemExit(1)

    click.echo(f"* Listening on port {port}", err=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted; waiting for in-flight requests")
    finally:
        # Joins request threads still running before returning.
        server.server_close()
    raise SystemExit(0)


def main(argv: list[str] | None = None) -> None:
    """Console-script entry point.

    Any bad invocation prints a one-line usage message and exits 1.
    """
    try:
        cli.main(args=argv, prog_name="btasks", standalone_mode=False)
    except click.UsageError:
        click.echo(f"ERROR: Usage {sys.argv[0]} PORT", err=True)
        raise SystemExit(1)
    except click.ClickException as exc:
        exc.show()
        raise SystemExit(exc.exit_code)
    except click.Abort:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
