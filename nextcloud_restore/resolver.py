# ==========================================================
# 🔎  resolver.py — Pick the backup object to restore
# ==========================================================
# Backup names start with a zero-padded timestamp
# (e.g. 20240115_0200.sql.gz), so plain string order is
# chronological order.
#
# Rules:
#   - no fragment  → newest entry (max by name)
#   - fragment     → first entry, in listing order, whose
#                    name contains the fragment
#   - nothing left → ResolutionError
# ==========================================================

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from nextcloud_restore.errors import ResolutionError
from nextcloud_restore.s3_utils import list_backups


class BackupKind(Enum):
    DATABASE = "database"
    DATA = "data"
    CONFIG = "config"

    @property
    def prefix(self) -> str:
        return f"{self.value}/"

    @property
    def resolvable(self) -> bool:
        # data/ is a live tree, not a set of timestamped archives
        return self is not BackupKind.DATA


@dataclass(frozen=True)
class BackupEntry:
    name: str
    size: int = 0

    def key(self, kind: BackupKind) -> str:
        return kind.prefix + self.name


def select_backup(entries: Iterable[BackupEntry], fragment: Optional[str] = None,
                  kind: BackupKind = BackupKind.DATABASE) -> BackupEntry:
    """Apply the selection rules to an already fetched listing."""
    entries = list(entries)
    if not fragment:
        if not entries:
            raise ResolutionError(f"No {kind.value} backup found in the bucket")
        return max(entries, key=lambda e: e.name)

    for entry in entries:
        if fragment in entry.name:
            return entry
    raise ResolutionError(f"No {kind.value} backup found for timestamp: {fragment}")


def fetch_entries(s3, bucket: str, kind: BackupKind) -> list:
    return [BackupEntry(name, size) for name, size in list_backups(s3, bucket, kind.prefix)]


def resolve(s3, settings, kind: BackupKind, fragment: Optional[str] = None) -> BackupEntry:
    """
    Resolve kind + optional timestamp fragment to one remote backup.

    Raises:
        ValueError: for BackupKind.DATA, which has no resolution step.
        TransferError: if the bucket cannot be listed.
        ResolutionError: if no entry matches.
    """
    if not kind.resolvable:
        raise ValueError(f"{kind.value} backups are synced directly, not resolved")
    return select_backup(fetch_entries(s3, settings.bucket, kind), fragment, kind)
