import itertools

import botocore.exceptions
import pytest

from nextcloud_restore.errors import NoBackupsFound, ResolutionError, TransferError
from nextcloud_restore.resolver import BackupEntry, BackupKind, resolve, select_backup

LISTING = [BackupEntry("20240301_0200.sql.gz"), BackupEntry("20240115_0200.sql.gz")]


def test_no_fragment_picks_most_recent():
    assert select_backup(LISTING).name == "20240301_0200.sql.gz"


def test_fragment_picks_matching_entry():
    assert select_backup(LISTING, "0115").name == "20240115_0200.sql.gz"


@pytest.mark.parametrize("fragment", [None, "0115", "2024"])
def test_empty_listing_fails(fragment):
    with pytest.raises(NoBackupsFound):
        select_backup([], fragment)


def test_unmatched_fragment_fails_with_fragment_in_message():
    with pytest.raises(ResolutionError, match="19991231"):
        select_backup(LISTING, "19991231")


def test_empty_fragment_means_latest():
    assert select_backup(LISTING, "").name == "20240301_0200.sql.gz"


def test_result_is_max_for_every_ordering():
    names = ["20231231_2359.sql.gz", "20240101_0000.sql.gz", "20240101_0001.sql.gz", "20230615_1200.sql.gz"]
    for order in itertools.permutations(names):
        entries = [BackupEntry(n) for n in order]
        assert select_backup(entries).name == "20240101_0001.sql.gz"


def test_fragment_returns_first_match_in_listing_order():
    names = ["20240101_0200.sql.gz", "20240201_0200.sql.gz", "20240301_0200.sql.gz", "20240102_0200.sql.gz"]
    entries = [BackupEntry(n) for n in names]
    for fragment in ["2024", "01_", "0200", "0301", "02", "x", "20240102"]:
        expected = next((n for n in names if fragment in n), None)
        if expected is None:
            with pytest.raises(ResolutionError):
                select_backup(entries, fragment)
        else:
            assert select_backup(entries, fragment).name == expected


def test_entry_key_includes_kind_prefix():
    assert BackupEntry("20240115.tar.gz").key(BackupKind.CONFIG) == "config/20240115.tar.gz"


def test_resolve_lists_the_kind_prefix(s3, settings):
    s3.objects = {
        "database/20240301_0200.sql.gz": b"a",
        "database/20240115_0200.sql.gz": b"bb",
        "config/20250101_0200.tar.gz": b"c",
    }
    entry = resolve(s3, settings, BackupKind.DATABASE)
    assert entry == BackupEntry("20240301_0200.sql.gz", 1)

    entry = resolve(s3, settings, BackupKind.DATABASE, "0115")
    assert entry == BackupEntry("20240115_0200.sql.gz", 2)


def test_resolve_skips_directory_markers(s3, settings):
    s3.objects = {"config/": b"", "config/20240101_config.tar.gz": b"x"}
    assert resolve(s3, settings, BackupKind.CONFIG).name == "20240101_config.tar.gz"


def test_resolve_empty_prefix_fails(s3, settings):
    s3.objects = {"database/20240301_0200.sql.gz": b"a"}
    with pytest.raises(ResolutionError, match="config"):
        resolve(s3, settings, BackupKind.CONFIG)


def test_resolve_listing_failure_is_transfer_error(s3, settings):
    s3.list_error = botocore.exceptions.EndpointConnectionError(endpoint_url=settings.endpoint)
    with pytest.raises(TransferError):
        resolve(s3, settings, BackupKind.DATABASE)


def test_data_kind_has_no_resolution(s3, settings):
    with pytest.raises(ValueError):
        resolve(s3, settings, BackupKind.DATA)
