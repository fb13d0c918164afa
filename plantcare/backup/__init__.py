"""Backup export and import of a user's plant data."""

from plantcare.backup.exporter import ExportArchive, ExportService
from plantcare.backup.importer import ImportService
from plantcare.backup.schemas import BackupManifest, ImportMode, ImportSummary

__all__ = [
    "BackupManifest",
    "ExportArchive",
    "ExportService",
    "ImportMode",
    "ImportService",
    "ImportSummary",
]
