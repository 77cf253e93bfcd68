#!/usr/bin/env python3
# ==========================================================
# ♻️  cli.py — Restore Nextcloud from R2 backups
# ==========================================================
# 💡 Usage:
#     restore --list                # list available backups
#     restore --db 20240115         # restore the DB of 15 Jan 2024
#     restore --data                # mirror the data directory
#     restore --config              # restore the latest config
#
# The timestamp is optional; without it the most recent
# backup is used. Settings come from .env (see config.py).
#
# Exit codes:
#   0   success, help, or data restore declined
#   1   any fatal error or unrecognized option
#   130 interrupted
# ==========================================================

import argparse
import sys

from nextcloud_restore import __version__
from nextcloud_restore.config import load_settings
from nextcloud_restore.errors import RestoreError
from nextcloud_restore.restore import list_available, restore_config, restore_data, restore_database
from nextcloud_restore.s3_utils import get_s3_client, log

EPILOG = "The timestamp is optional. Without it, the most recent backup is used."


class RestoreArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        log(f"❌ ERROR: {message}")
        self.print_usage(sys.stderr)
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = RestoreArgumentParser(
        prog="restore",
        description="Restore Nextcloud database, data or configuration from R2.",
        epilog=EPILOG,
        allow_abbrev=False,
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-l", "--list", action="store_true", help="List available backups")
    mode.add_argument("-d", "--db", nargs="?", const="", metavar="TIMESTAMP",
                      help="Restore the database")
    mode.add_argument("--data", action="store_true", help="Restore the data directory")
    mode.add_argument("-c", "--config", nargs="?", const="", metavar="TIMESTAMP",
                      help="Restore the configuration")
    parser.add_argument("--env-file", help="Settings file (default: $RESTORE_ENV_FILE or ./.env)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def run(args) -> int:
    settings = load_settings(args.env_file)
    s3 = get_s3_client(settings)

    if args.list:
        list_available(s3, settings)
    elif args.db is not None:
        restore_database(s3, settings, args.db or None)
    elif args.data:
        restore_data(s3, settings)
    else:
        restore_config(s3, settings, args.config or None)
    return 0


def main(argv=None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    argv = sys.argv[1:] if argv is None else list(argv)
    args, extra = parser.parse_known_args(argv)
    has_mode = args.list or args.data or args.db is not None or args.config is not None

    # Only the first argument selects the mode; anything after it is ignored.
    if extra and (not has_mode or argv[0] == extra[0]):
        parser.error(f"Unrecognized option: {extra[0]}")
    if extra:
        log(f"⚠️ Ignoring extra arguments: {' '.join(extra)}")

    if not has_mode:
        parser.print_help()
        return 0

    try:
        return run(args)
    except RestoreError as e:
        log(f"❌ ERROR: {e}")
        return 1
    except KeyboardInterrupt:
        log("🛑 Aborted by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
