# ==========================================================
# ⚙️  config.py — Settings for the Nextcloud restore CLI
# ==========================================================
# Values come from the project's .env file, which wins over
# the process environment (same as `set -a; source .env`).
# Every value except the R2 endpoint has a default.
#
# Environment:
#   R2_BUCKET_NAME          – bucket holding the backups
#   R2_ENDPOINT             – S3 endpoint URL, or
#   R2_ACCOUNT_ID           – Cloudflare account id (endpoint derived)
#   R2_ACCESS_KEY_ID        – optional, else boto3 credential chain
#   R2_SECRET_ACCESS_KEY    – optional
#   R2_PROFILE, R2_REGION   – optional
#   BACKUP_PATH             – local staging directory
#   DATA_PATH               – local Nextcloud data directory
#   POSTGRES_USER, POSTGRES_DB
#   APP_CONTAINER, DB_CONTAINER, CONFIG_VOLUME, HELPER_IMAGE
#   APP_USER, APP_DATA_DIR
#   SYNC_TRANSFERS, SYNC_CHECKERS
# ==========================================================

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values

from nextcloud_restore.errors import ConfigurationError

DEFAULT_ENV_FILE = ".env"
DEFAULT_BUCKET = "nextcloud-backup"
DEFAULT_REGION = "auto"
DEFAULT_DATA_PATH = "/mnt/nextcloud_data"
R2_ENDPOINT_TEMPLATE = "https://{account_id}.r2.cloudflarestorage.com"


@dataclass(frozen=True)
class Settings:
    bucket: str
    endpoint: str
    backup_path: Path
    data_path: Path
    postgres_user: str = "nextcloud"
    postgres_db: str = "nextcloud"
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    profile: Optional[str] = None
    region: str = DEFAULT_REGION
    app_container: str = "nextcloud-app"
    db_container: str = "nextcloud-postgres"
    config_volume: str = "nextcloud_www"
    helper_image: str = "alpine"
    app_user: str = "www-data"
    app_data_dir: str = "/var/www/html/data"
    sync_transfers: int = 4
    sync_checkers: int = 8


def _int_setting(values: Mapping[str, str], name: str, default: int) -> int:
    raw = values.get(name) or str(default)
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise ConfigurationError(f"{name} must be at least 1, got {value}")
    return value


def settings_from_mapping(values: Mapping[str, str], project_dir: Path) -> Settings:
    """Build Settings from an already merged mapping of variables."""

    def get(name: str, default: Optional[str] = None) -> Optional[str]:
        # Empty strings count as unset, like ${VAR:-default} in the shell.
        return values.get(name) or default

    endpoint = get("R2_ENDPOINT")
    if not endpoint:
        account_id = get("R2_ACCOUNT_ID")
        if not account_id:
            raise ConfigurationError("R2_ENDPOINT or R2_ACCOUNT_ID must be set")
        endpoint = R2_ENDPOINT_TEMPLATE.format(account_id=account_id)

    return Settings(
        bucket=get("R2_BUCKET_NAME", DEFAULT_BUCKET),
        endpoint=endpoint,
        backup_path=Path(get("BACKUP_PATH", str(project_dir / "backups"))),
        data_path=Path(get("DATA_PATH", DEFAULT_DATA_PATH)),
        postgres_user=get("POSTGRES_USER", "nextcloud"),
        postgres_db=get("POSTGRES_DB", "nextcloud"),
        access_key_id=get("R2_ACCESS_KEY_ID"),
        secret_access_key=get("R2_SECRET_ACCESS_KEY"),
        profile=get("R2_PROFILE"),
        region=get("R2_REGION", DEFAULT_REGION),
        app_container=get("APP_CONTAINER", "nextcloud-app"),
        db_container=get("DB_CONTAINER", "nextcloud-postgres"),
        config_volume=get("CONFIG_VOLUME", "nextcloud_www"),
        helper_image=get("HELPER_IMAGE", "alpine"),
        app_user=get("APP_USER", "www-data"),
        app_data_dir=get("APP_DATA_DIR", "/var/www/html/data"),
        sync_transfers=_int_setting(values, "SYNC_TRANSFERS", 4),
        sync_checkers=_int_setting(values, "SYNC_CHECKERS", 8),
    )


def load_settings(env_file=None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Load settings from a .env file layered over the environment.

    Args:
        env_file: Path to the .env file. Defaults to $RESTORE_ENV_FILE or ./.env.
        environ: Base environment, os.environ when omitted.

    Raises:
        ConfigurationError: if the .env file is missing or a required value is unset.
    """
    environ = os.environ if environ is None else environ
    env_path = Path(env_file or environ.get("RESTORE_ENV_FILE") or DEFAULT_ENV_FILE)
    if not env_path.is_file():
        raise ConfigurationError(f".env file not found: {env_path}")

    file_values = {k: v for k, v in dotenv_values(env_path).items() if v is not None}
    merged = {**environ, **file_values}
    return settings_from_mapping(merged, env_path.resolve().parent)
