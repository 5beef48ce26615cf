"""Backup table naming and date helpers.

Backup tables are named ``{prefix}_{table}_{YYYYMMDD}``. The last 8
characters of a backup name are always the date it was taken on.
"""

from datetime import date, timedelta
from typing import Optional, Tuple

DATE_FORMAT = "%Y%m%d"
DATE_LENGTH = 8

# PostgreSQL silently truncates identifiers longer than NAMEDATALEN - 1 bytes
MAX_IDENTIFIER_BYTES = 63


def format_date(day: date) -> str:
    return day.strftime(DATE_FORMAT)


def retention_threshold(retention_days: int, today: Optional[date] = None) -> str:
    """Return ``today - retention_days`` formatted like a backup date suffix."""
    today = today or date.today()
    return format_date(today - timedelta(days=retention_days))


def backup_table_name(prefix: str, table: str, day: date) -> str:
    return f"{prefix}_{table}_{format_date(day)}"


def date_suffix(name: str) -> Optional[str]:
    """Last 8 characters of `name`, or None when the name is too short."""
    if len(name) < DATE_LENGTH:
        return None
    return name[-DATE_LENGTH:]


def is_expired(name: str, threshold: str) -> bool:
    # Plain string comparison: a suffix that is not a real date but sorts
    # below the threshold still counts as expired.
    suffix = date_suffix(name)
    return suffix is not None and suffix < threshold


def split_backup_name(prefix: str, name: str) -> Optional[Tuple[str, str]]:
    """Split a backup name into ``(original_table, date_suffix)``.

    Returns None when `name` does not have the ``{prefix}_..._{8 chars}``
    shape. Original names that themselves end in ``_`` plus 8 digits cannot
    be told apart from a backup of a backup; only the last 8 characters are
    taken as the date.
    """
    head = f"{prefix}_"
    if not name.startswith(head) or len(name) < len(head) + DATE_LENGTH + 2:
        return None
    if name[-DATE_LENGTH - 1] != "_":
        return None
    return name[len(head) : -DATE_LENGTH - 1], name[-DATE_LENGTH:]


def like_prefix_pattern(prefix: str) -> str:
    """LIKE pattern matching names that literally start with `prefix`."""
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped + "%"


def fits_identifier(name: str) -> bool:
    return len(name.encode("utf-8")) <= MAX_IDENTIFIER_BYTES
