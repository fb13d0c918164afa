"""Exceptions raised by the backup import/export pipeline.

Anything raised from here aborts the whole operation. Per-record problems
during a restore are not exceptions; they end up in ``ImportSummary.warnings``.
"""


class BackupError(Exception):
    """Base class for fatal backup pipeline errors."""


# --- Archive reading ---


class ArchiveError(BackupError):
    """The uploaded archive cannot be read safely."""


class CorruptArchiveError(ArchiveError):
    """The container is not a readable ZIP file."""


class MissingManifestError(ArchiveError):
    """The archive has no backup.json entry."""


class TooManyFilesError(ArchiveError):
    """The archive holds more entries than allowed."""


class ArchiveSizeError(ArchiveError):
    """A file, or the archive as a whole, decompresses past its size limit."""


class ArchiveTimeoutError(ArchiveError):
    """Decompressing a single entry took longer than allowed."""


class UnsafeFilenameError(ArchiveError):
    """An entry name could escape the extraction root or uses disallowed characters."""


# --- Manifest ---


class ManifestValidationError(BackupError):
    """backup.json is not valid JSON or does not match the expected shape."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


# --- Import ---


class ReplaceWipeError(BackupError):
    """Deleting existing data before a replace-mode import failed."""


class ImportInProgressError(BackupError):
    """Another import is already running for this account."""


class ImportCancelledError(BackupError):
    """The caller cancelled the import; nothing was committed."""
