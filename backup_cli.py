#!/usr/bin/env python3
"""
Back up every table of the database and drop expired backups.

Usage:
  python backup_cli.py                          # dry run, only logs actions
  python backup_cli.py --run                    # create and drop tables
  python backup_cli.py --config config.json     # read settings from a file
  python backup_cli.py --prefix bk --retention-days 30 --run

Connection settings come from PG_* (or DATABASE_URL) unless the config file
sets them.
"""

import argparse
import logging
import sys

import psycopg2

from backup import BackupError, run_backup
from config import ConfigError, load_settings, parse_retention, validate_prefix

logger = logging.getLogger(__name__)


def build_parser():
    p = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    p.add_argument(
        "--run",
        action="store_true",
        default=False,
        help="Normal run instead of a dry run",
    )
    p.add_argument("--config", help="JSON config file")
    p.add_argument("--prefix", help="Backup table prefix (default: autobackup)")
    p.add_argument(
        "--retention-days",
        type=int,
        help="Days to keep backup tables (default: 14)",
    )
    p.add_argument("--verbose", "-v", action="store_true", default=False)
    return p


def main(argv=None, connect_fn=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        settings = load_settings(args.config)
        if args.prefix is not None:
            settings.prefix = validate_prefix(args.prefix)
        if args.retention_days is not None:
            settings.retention_days = parse_retention(args.retention_days)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 1

    if not args.run:
        logger.info("Dry run: no tables will be created or dropped (use --run)")

    try:
        report = run_backup(settings, real_run=args.run, connect_fn=connect_fn)
    except psycopg2.OperationalError as e:
        logger.error("Could not connect to PostgreSQL: %s", e)
        return 1
    except BackupError as e:
        logger.error("Backup failed: %s", e)
        return 1

    for table, error in sorted(report.drop_failures.items()):
        logger.warning("Not dropped: %s (%s)", table, error)
    for table, error in sorted(report.create_failures.items()):
        logger.warning("Not backed up: %s (%s)", table, error)

    logger.info("backup done")
    return 0


if __name__ == "__main__":
    sys.exit(main())
