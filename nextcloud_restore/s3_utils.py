# ==========================================================
# 🔧  s3_utils.py — Shared R2 / S3 helpers for restores
# ==========================================================
# Provides:
#   - Timestamped console logging
#   - S3 client setup for Cloudflare R2 (boto3 Session)
#   - Prefix listing in bucket order
#   - Single-object download with a progress bar (tqdm)
#   - Mirror sync of a prefix onto a local directory with
#     bounded checker / transfer concurrency
#
# Listing, download and sync failures leave this module as
# TransferError; a broken client setup as ConfigurationError.
# ==========================================================
import os
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Tuple

import boto3
import botocore.exceptions
from tqdm import tqdm

from nextcloud_restore.errors import ConfigurationError, TransferError

S3_ERRORS = (botocore.exceptions.BotoCoreError, botocore.exceptions.ClientError)

# ---------- Console helpers ----------
def log(msg: str) -> None:
    print(f"[{datetime.now():%Y-%m-%d %H:%M:%S}] {msg}", flush=True)

def is_tty() -> bool:
    try:
        return sys.stdout.isatty()
    except Exception:
        return False

# ---------- Client ----------
def get_s3_client(settings):
    # Return a boto3 S3 client for the R2 endpoint described by settings.
    try:
        session = boto3.Session(
            aws_access_key_id=settings.access_key_id,
            aws_secret_access_key=settings.secret_access_key,
            profile_name=settings.profile,
        )
        return session.client("s3", endpoint_url=settings.endpoint, region_name=settings.region)
    except S3_ERRORS as e:
        raise ConfigurationError(f"Could not set up the S3 client: {e}") from e

# ---------- Listing ----------
def iter_objects(s3, bucket: str, prefix: str) -> Iterator[dict]:
    """Yield raw ListObjectsV2 entries under prefix, skipping directory markers."""
    paginator = s3.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
        for obj in page.get("Contents", []):
            if obj["Key"].endswith("/"):
                continue
            yield obj

def list_backups(s3, bucket: str, prefix: str) -> List[Tuple[str, int]]:
    """
    List objects under prefix as (name, size) pairs.

    Names are relative to prefix and come back in bucket listing order
    (ascending by key for S3 / R2).
    """
    try:
        return [(obj["Key"][len(prefix):], obj["Size"]) for obj in iter_objects(s3, bucket, prefix)]
    except S3_ERRORS as e:
        raise TransferError(f"Could not list s3://{bucket}/{prefix}: {e}") from e

# ---------- Single download ----------
def download_file(s3, bucket: str, key: str, local_path, progress: bool = False) -> Path:
    local_path = Path(local_path)
    try:
        local_path.parent.mkdir(parents=True, exist_ok=True)
        meta = s3.head_object(Bucket=bucket, Key=key)
        total = meta["ContentLength"]
        with open(local_path, "wb") as f, tqdm(
            total=total, unit="B", unit_scale=True, disable=not progress or not is_tty(),
            desc=f"Downloading {local_path.name}"
        ) as bar:
            s3.download_fileobj(bucket, key, f, Callback=lambda n: bar.update(n))
    except S3_ERRORS + (OSError,) as e:
        raise TransferError(f"Download of s3://{bucket}/{key} failed: {e}") from e
    log(f"✅ Downloaded s3://{bucket}/{key}")
    return local_path

# ---------- Mirror sync ----------
def _needs_transfer(obj: dict, local_path: Path) -> bool:
    try:
        st = local_path.stat()
    except FileNotFoundError:
        return True
    if st.st_size != obj["Size"]:
        return True
    return int(st.st_mtime) != int(obj["LastModified"].timestamp())

def _is_inside(root: Path, rel: str) -> bool:
    return root in (root / rel).resolve().parents

def _transfer(s3, bucket: str, obj: dict, local_path: Path, bar) -> None:
    local_path.parent.mkdir(parents=True, exist_ok=True)
    partial = local_path.with_name(local_path.name + ".partial")
    s3.download_file(bucket, obj["Key"], str(partial), Callback=lambda n: bar.update(n))
    os.replace(partial, local_path)
    mtime = obj["LastModified"].timestamp()
    os.utime(local_path, (mtime, mtime))

def sync_prefix(s3, bucket: str, prefix: str, dest_dir, transfers: int = 4,
                checkers: int = 8, progress: bool = False) -> dict:
    """
    Make dest_dir an exact mirror of s3://bucket/prefix.

    Missing or changed files (size or mtime) are downloaded by `transfers`
    workers after `checkers` workers compared them. Local files with no
    remote counterpart are deleted. Empty directories are kept. Keys that
    would resolve outside dest_dir (`..`, absolute paths) are skipped.

    Returns:
        dict: counts for "checked", "transferred" and "deleted".
    """
    dest_dir = Path(dest_dir)
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        root = dest_dir.resolve()
        remote = {}
        for obj in iter_objects(s3, bucket, prefix):
            rel = obj["Key"][len(prefix):]
            if not _is_inside(root, rel):
                log(f"⚠️ Skipping {obj['Key']}: it would land outside {dest_dir}")
                continue
            remote[rel] = obj

        with ThreadPoolExecutor(max_workers=checkers) as pool:
            verdicts = pool.map(lambda rel: _needs_transfer(remote[rel], dest_dir / rel), remote)
            pending = [rel for rel, needed in zip(remote, verdicts) if needed]

        total = sum(remote[rel]["Size"] for rel in pending)
        with ThreadPoolExecutor(max_workers=transfers) as pool, tqdm(
            total=total, unit="B", unit_scale=True, disable=not progress or not is_tty(),
            desc=f"Syncing {prefix}"
        ) as bar:
            futures = [pool.submit(_transfer, s3, bucket, remote[rel], dest_dir / rel, bar)
                       for rel in pending]
            for future in as_completed(futures):
                future.result()

        deleted = 0
        for path in sorted(dest_dir.rglob("*")):
            if path.is_file() and path.relative_to(dest_dir).as_posix() not in remote:
                path.unlink()
                deleted += 1
    except S3_ERRORS + (OSError,) as e:
        raise TransferError(f"Sync of s3://{bucket}/{prefix} failed: {e}") from e

    stats = {"checked": len(remote), "transferred": len(pending), "deleted": deleted}
    log(f"✅ Synced s3://{bucket}/{prefix} → {dest_dir} "
        f"({stats['transferred']} transferred, {stats['deleted']} deleted, {stats['checked']} checked)")
    return stats
