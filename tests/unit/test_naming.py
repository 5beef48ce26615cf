from datetime import date

import naming


def test_retention_threshold_counts_back_from_today():
    assert naming.retention_threshold(14, date(2023, 5, 15)) == "20230501"
    assert naming.retention_threshold(0, date(2023, 5, 15)) == "20230515"
    # crosses a year boundary
    assert naming.retention_threshold(14, date(2024, 1, 3)) == "20231220"


def test_backup_table_name():
    assert (
        naming.backup_table_name("autobackup", "users", date(2023, 5, 1))
        == "autobackup_users_20230501"
    )


def test_old_backup_is_expired():
    assert naming.is_expired("autobackup_foo_20230101", "20230501")


def test_backup_on_threshold_is_kept():
    assert not naming.is_expired("autobackup_foo_20230501", "20230501")
    assert not naming.is_expired("autobackup_foo_20230502", "20230501")


def test_short_names_are_never_expired():
    assert naming.date_suffix("auto") is None
    assert not naming.is_expired("auto", "99999999")
    assert not naming.is_expired("", "99999999")


def test_malformed_suffix_uses_string_order():
    # not a date, but "1" < "2" so it still counts as expired
    assert naming.is_expired("autobackup_x_1abcdefg", "20230501")
    # letters sort after digits
    assert not naming.is_expired("autobackup", "20230501")


def test_split_backup_name():
    assert naming.split_backup_name("autobackup", "autobackup_users_20230501") == (
        "users",
        "20230501",
    )
    assert naming.split_backup_name("autobackup", "autobackup_user_logs_20230501") == (
        "user_logs",
        "20230501",
    )
    # the last 8 characters are always the date
    assert naming.split_backup_name(
        "autobackup", "autobackup_t_20230101_20230501"
    ) == ("t_20230101", "20230501")


def test_split_backup_name_rejects_other_shapes():
    assert naming.split_backup_name("autobackup", "users") is None
    assert naming.split_backup_name("autobackup", "autobackup_20230501") is None
    assert naming.split_backup_name("autobackup", "autobackup_users20230501") is None


def test_like_prefix_pattern_escapes_wildcards():
    assert naming.like_prefix_pattern("autobackup") == "autobackup%"
    assert naming.like_prefix_pattern("auto_bk") == "auto\\_bk%"
    assert naming.like_prefix_pattern("50%") == "50\\%%"
    assert naming.like_prefix_pattern("a\\b") == "a\\\\b%"


def test_fits_identifier():
    assert naming.fits_identifier("a" * 63)
    assert not naming.fits_identifier("a" * 64)
    # multibyte characters count by bytes
    assert not naming.fits_identifier("é" * 32)
