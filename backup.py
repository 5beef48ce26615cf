"""
Table-level backups inside one PostgreSQL database.

Every table in the public schema that does not start with the backup prefix is
copied to ``{prefix}_{table}_{YYYYMMDD}``; backup tables whose date suffix is
older than the retention window are dropped. Nothing is written unless the run
is a real run; a dry run only logs what it would do.

Only base tables are considered. Views are neither copied nor dropped, and
the table copy carries no indexes, constraints or triggers.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple
import logging

import psycopg2
from psycopg2 import sql

import database
from naming import (
    backup_table_name,
    fits_identifier,
    format_date,
    is_expired,
    like_prefix_pattern,
    retention_threshold,
    split_backup_name,
)

logger = logging.getLogger(__name__)

SCHEMA = "public"

BACKUP_CANDIDATES_QUERY = (
    "SELECT table_name FROM information_schema.tables "
    "WHERE table_schema = %s AND table_type = 'BASE TABLE' "
    "AND table_name LIKE %s ORDER BY table_name"
)
SOURCE_TABLES_QUERY = (
    "SELECT table_name FROM information_schema.tables "
    "WHERE table_schema = %s AND table_type = 'BASE TABLE' "
    "AND table_name NOT LIKE %s ORDER BY table_name"
)


class BackupError(Exception):
    """Base class for errors that abort a backup run."""


class CatalogError(BackupError):
    """The list of tables could not be read from the catalog."""


@dataclass
class BackupReport:
    real_run: bool
    threshold: str = ""
    backup_date: str = ""
    # In a dry run these hold what a real run would have done
    dropped: List[str] = field(default_factory=list)
    created: List[Tuple[str, str]] = field(default_factory=list)
    drop_failures: Dict[str, str] = field(default_factory=dict)
    create_failures: Dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return bool(self.drop_failures or self.create_failures)


def _mode(real_run):
    return "real-run" if real_run else "dry-run"


def _list_tables(conn, query, prefix, what):
    try:
        return database.fetch_column(conn, query, (SCHEMA, like_prefix_pattern(prefix)))
    except psycopg2.Error as e:
        raise CatalogError(f"failed to list {what}: {e}") from e


def drop_table_sql(table):
    return sql.SQL("DROP TABLE IF EXISTS {}").format(
        sql.Identifier(SCHEMA, table)
    )


def create_backup_sql(source, backup):
    return sql.SQL("CREATE TABLE {} AS SELECT * FROM {}").format(
        sql.Identifier(SCHEMA, backup), sql.Identifier(SCHEMA, source)
    )


def find_expired_backups(conn, prefix: str, threshold: str) -> List[str]:
    """Backup tables whose date suffix sorts before `threshold`."""
    tables = _list_tables(conn, BACKUP_CANDIDATES_QUERY, prefix, "backup tables")
    expired = [t for t in tables if is_expired(t, threshold)]
    logger.debug(
        "%d table(s) match prefix %r, %d older than %s",
        len(tables),
        prefix,
        len(expired),
        threshold,
    )
    return expired


def get_tables_to_backup(conn, prefix: str) -> List[str]:
    """Every table in the schema that is not itself a backup."""
    return _list_tables(conn, SOURCE_TABLES_QUERY, prefix, "tables to back up")


def delete_old_backups(
    conn,
    prefix: str,
    retention_days: int,
    real_run: bool = False,
    today: Optional[date] = None,
) -> Tuple[List[str], Dict[str, str]]:
    """Drop backup tables older than `retention_days`.

    Returns the dropped table names (the would-be drops in a dry run) and a
    mapping of table name to error for the drops that failed. A failure to
    list the tables raises CatalogError; a failed drop is only logged.
    """
    threshold = retention_threshold(retention_days, today)
    dropped: List[str] = []
    failures: Dict[str, str] = {}

    for table in find_expired_backups(conn, prefix, threshold):
        parts = split_backup_name(prefix, table)
        if parts is None:
            logger.warning("%s is expired but not named like a backup table", table)
        else:
            logger.debug("%s is a backup of %s taken on %s", table, *parts)
        if not real_run:
            logger.info("[dry-run] Would drop old backup table %s", table)
            dropped.append(table)
            continue
        try:
            database.execute(conn, drop_table_sql(table))
        except psycopg2.Error as e:
            logger.error("Failed to drop backup table %s: %s", table, e)
            failures[table] = str(e)
            continue
        logger.info("Dropped old backup table %s", table)
        dropped.append(table)

    return dropped, failures


def create_backup_table(conn, source: str, backup: str) -> None:
    database.execute(conn, create_backup_sql(source, backup))


def snapshot_tables(
    conn,
    prefix: str,
    real_run: bool = False,
    today: Optional[date] = None,
) -> Tuple[List[Tuple[str, str]], Dict[str, str]]:
    """Copy every non-backup table to a backup table stamped with today's date.

    Returns ``(source, backup)`` pairs for the copies made (or planned in a dry
    run) and a mapping of source table to error for the copies that failed.
    """
    # One date for the whole pass, even if it runs past midnight
    day = today or date.today()
    created: List[Tuple[str, str]] = []
    failures: Dict[str, str] = {}

    for table in get_tables_to_backup(conn, prefix):
        backup = backup_table_name(prefix, table, day)
        if not fits_identifier(backup):
            logger.error(
                "Cannot back up table %s: backup name %s is too long for PostgreSQL",
                table,
                backup,
            )
            failures[table] = "backup table name too long"
            continue
        if not real_run:
            logger.info("[dry-run] Would back up table %s as %s", table, backup)
            created.append((table, backup))
            continue
        try:
            create_backup_table(conn, table, backup)
        except psycopg2.Error as e:
            logger.error("Failed to back up table %s as %s: %s", table, backup, e)
            failures[table] = str(e)
            continue
        logger.info("Backed up table %s as %s", table, backup)
        created.append((table, backup))

    return created, failures


def perform_backup(
    conn,
    prefix: str,
    retention_days: int,
    real_run: bool = False,
    today: Optional[date] = None,
) -> BackupReport:
    """Run the retention sweep, then the snapshot pass.

    CatalogError from either phase stops the run. Whatever the sweep already
    dropped stays dropped.
    """
    today = today or date.today()
    report = BackupReport(
        real_run=real_run,
        threshold=retention_threshold(retention_days, today),
        backup_date=format_date(today),
    )
    logger.info(
        "Starting backup (%s): prefix=%s retention=%d days",
        _mode(real_run),
        prefix,
        retention_days,
    )

    report.dropped, report.drop_failures = delete_old_backups(
        conn, prefix, retention_days, real_run=real_run, today=today
    )
    report.created, report.create_failures = snapshot_tables(
        conn, prefix, real_run=real_run, today=today
    )

    logger.info(
        "Backup finished (%s): %d dropped, %d created, %d failed",
        _mode(real_run),
        len(report.dropped),
        len(report.created),
        len(report.drop_failures) + len(report.create_failures),
    )
    return report


def run_backup(settings, real_run: bool = False, today=None, connect_fn=None):
    """Open a connection from `settings`, run the backup and close it."""
    with database.get_db_connection(settings.postgres, connect_fn=connect_fn) as conn:
        return perform_backup(
            conn,
            settings.prefix,
            settings.retention_days,
            real_run=real_run,
            today=today,
        )
