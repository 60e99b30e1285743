"""Command-line entry point for gpupgrade."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .check import CheckCommand, CheckOptions
from .config import AppConfig, load_config
from .errors import CheckError
from .models import DEFAULT_DATABASE_NAME, DEFAULT_DATABASE_TYPE, DEFAULT_MASTER_PORT
from .writer import writer_for

LOG = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gpupgrade", description="Greenplum upgrade helpers")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    check = commands.add_parser("check", help="Collect cluster topology ahead of an upgrade")
    # Required by the command itself rather than argparse so the error matches other failures.
    check.add_argument("--master-host", default="", help="Domain name or IP of host")
    check.add_argument("--master-port", type=int, default=DEFAULT_MASTER_PORT, help="Port for master database")
    check.add_argument("--database-name", default=DEFAULT_DATABASE_NAME, help=argparse.SUPPRESS)
    check.add_argument("--database_type", default=DEFAULT_DATABASE_TYPE, help=argparse.SUPPRESS)
    check.add_argument("--database_config_file", default="", help=argparse.SUPPRESS)
    check.add_argument("--state-dir", type=Path, default=None, help="Directory for cluster_config.json")
    return parser


def configure_logging(config: AppConfig, *, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def run(args: argparse.Namespace, config: AppConfig) -> int:
    if args.state_dir is not None:
        config = config.with_state_dir(args.state_dir)
    options = CheckOptions(
        master_host=args.master_host,
        master_port=args.master_port,
        database_name=args.database_name,
        database_type=args.database_type,
        database_config=args.database_config_file,
    )
    command = CheckCommand(
        options,
        writer_factory=writer_for(config.state_dir),
        connect_timeout=config.connect_timeout,
        query_timeout=config.query_timeout,
    )
    try:
        path = command.execute()
    except CheckError as exc:
        LOG.debug("check failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Cluster configuration written to {path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config()
    configure_logging(config, verbose=args.verbose)
    return run(args, config)


__all__ = ["build_parser", "main", "run"]
