# ==========================================================
# ♻️  restore.py — Restore sequences for Nextcloud on R2
# ==========================================================
# Three independent sequences, each fail-fast:
#
#   database: resolve → download → maintenance on → gunzip | psql
#             → maintenance off
#   data:     confirm → maintenance on → mirror sync data/
#             → chown → files:scan → maintenance off
#   config:   resolve → download → extract into the config volume
#             via a throw-away container (no automatic restart)
#
# Maintenance toggles, chown and files:scan are best-effort:
# a failure is logged and the sequence continues. When a fatal
# step fails after maintenance mode was switched on, it is
# deliberately left on so no half-restored state is served.
#
# Downloaded files stay in BACKUP_PATH for inspection.
# ==========================================================

import shlex
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

from nextcloud_restore.config import Settings
from nextcloud_restore.docker_utils import DUMP_ERRORS, docker_exec, docker_run, stream_sql_dump
from nextcloud_restore.errors import RestoreError, RestoreExecutionError, TransferError
from nextcloud_restore.resolver import BackupEntry, BackupKind, fetch_entries, resolve
from nextcloud_restore.s3_utils import download_file, log, sync_prefix

LIST_LIMIT = 20


@dataclass
class RestoreSession:
    """State of one restore run."""

    settings: Settings
    kind: BackupKind
    entry: Optional[BackupEntry] = None
    maintenance_engaged: bool = False

    @property
    def staging_path(self) -> Path:
        return self.settings.backup_path

    @property
    def staged_file(self) -> Path:
        return self.staging_path / PurePosixPath(self.entry.name).name

    def occ(self, *args: str) -> int:
        return docker_exec(self.settings.app_container, ["php", "occ", *args])

    def enable_maintenance(self) -> None:
        log("🔧 Enabling maintenance mode ...")
        if best_effort("enable maintenance mode", self.occ("maintenance:mode", "--on")):
            self.maintenance_engaged = True

    def disable_maintenance(self) -> None:
        log("🔧 Disabling maintenance mode ...")
        if best_effort("disable maintenance mode", self.occ("maintenance:mode", "--off")):
            self.maintenance_engaged = False


def best_effort(step: str, status: int) -> bool:
    """Log a warning for a failed non-critical step. Never raises."""
    if status != 0:
        log(f"⚠️ Could not {step} (exit {status}), continuing.")
        return False
    return True


@contextmanager
def maintenance(session: RestoreSession):
    """Bracket the mutating steps with maintenance mode on / off."""
    session.enable_maintenance()
    try:
        yield session
    except RestoreError:
        if session.maintenance_engaged:
            log("⚠️ Maintenance mode left ON: the restore is incomplete. "
                "Disable it with 'php occ maintenance:mode --off' once fixed.")
        raise
    session.disable_maintenance()


def fetch_backup(s3, session: RestoreSession) -> Path:
    log(f"☁️ Restoring from: {session.entry.name}")
    session.staging_path.mkdir(parents=True, exist_ok=True)
    return download_file(s3, session.settings.bucket, session.entry.key(session.kind),
                         session.staged_file, progress=True)


# ---------- --list ----------
def list_available(s3, settings: Settings, limit: int = LIST_LIMIT) -> None:
    """Print the newest database and config backups, newest first."""
    for i, (kind, label) in enumerate([(BackupKind.DATABASE, "Database"),
                                       (BackupKind.CONFIG, "Configuration")]):
        if i:
            print()
        log(f"{label} backups available:")
        try:
            entries = fetch_entries(s3, settings.bucket, kind)
        except TransferError as e:
            log(f"⚠️ {e}")
            continue
        for entry in sorted(entries, key=lambda e: e.name, reverse=True)[:limit]:
            print(f"{entry.size:>12} {entry.name}")


# ---------- --db ----------
def restore_database(s3, settings: Settings, fragment: Optional[str] = None) -> RestoreSession:
    log("🔎 Looking for database backup ...")
    session = RestoreSession(settings, BackupKind.DATABASE,
                             resolve(s3, settings, BackupKind.DATABASE, fragment))
    dump = fetch_backup(s3, session)

    with maintenance(session):
        log("🗄️ Restoring database ...")
        try:
            status = stream_sql_dump(dump, settings.db_container,
                                     settings.postgres_user, settings.postgres_db)
        except DUMP_ERRORS as e:
            raise RestoreExecutionError(f"Database restore failed: {e}") from e
        if status != 0:
            raise RestoreExecutionError(f"Database restore failed (psql exit {status})")

    log("🎉 Database restored successfully!")
    return session


# ---------- --data ----------
def confirm_data_restore(ask: Optional[Callable[[str], str]] = None) -> bool:
    ask = ask or input
    log("⚠️ WARNING: this will synchronise the data directory from R2.")
    log("⚠️ Local files that are not present on R2 will be DELETED!")
    try:
        answer = ask("Continue? (y/N) ")
    except EOFError:
        answer = ""
    return answer.strip().lower() == "y"


def restore_data(s3, settings: Settings,
                 ask: Optional[Callable[[str], str]] = None) -> Optional[RestoreSession]:
    """Mirror data/ onto DATA_PATH. Returns None if the operator declined."""
    if not confirm_data_restore(ask):
        log("Restore cancelled.")
        return None

    session = RestoreSession(settings, BackupKind.DATA)
    with maintenance(session):
        log("☁️ Syncing data from R2 ...")
        sync_prefix(s3, settings.bucket, BackupKind.DATA.prefix, settings.data_path,
                    transfers=settings.sync_transfers, checkers=settings.sync_checkers,
                    progress=True)

        log("🔐 Fixing permissions ...")
        owner = f"{settings.app_user}:{settings.app_user}"
        best_effort("fix ownership",
                    docker_exec(settings.app_container, ["chown", "-R", owner, settings.app_data_dir]))

        log("🔍 Scanning Nextcloud files ...")
        best_effort("scan files",
                    docker_exec(settings.app_container, ["php", "occ", "files:scan", "--all"],
                                user=settings.app_user))

    log("🎉 Data restored successfully!")
    return session


# ---------- --config ----------
def restore_config(s3, settings: Settings, fragment: Optional[str] = None) -> RestoreSession:
    log("🔎 Looking for configuration backup ...")
    session = RestoreSession(settings, BackupKind.CONFIG,
                             resolve(s3, settings, BackupKind.CONFIG, fragment))
    archive = fetch_backup(s3, session)

    log("📦 Restoring configuration ...")
    status = docker_run(
        settings.helper_image,
        [f"{settings.config_volume}:/dest", f"{session.staging_path.resolve()}:/backup:ro"],
        ["sh", "-c", f"cd /dest && tar xzf /backup/{shlex.quote(archive.name)}"],
    )
    if status != 0:
        raise RestoreExecutionError(f"Configuration restore failed (exit {status})")

    log("🎉 Configuration restored successfully!")
    log("Restart the containers: docker compose restart")
    return session
