"""Restore a Nextcloud instance (database, data, config) from R2 backups."""

__version__ = "1.0.0"
