"""Bounded reading of uploaded backup archives.

Uploaded archives are untrusted. Every entry is decompressed as a stream and
the size and time limits are checked after each chunk, so a small archive
cannot inflate past its limits before it is rejected.
"""

import io
import logging
import re
import time
import zipfile
import zlib
from dataclasses import dataclass, field

from plantcare.backup.exceptions import (
    ArchiveSizeError,
    ArchiveTimeoutError,
    CorruptArchiveError,
    MissingManifestError,
    TooManyFilesError,
    UnsafeFilenameError,
)
from plantcare.config import Settings, get_settings

logger = logging.getLogger(__name__)

MANIFEST_NAME = "backup.json"
IMAGES_PREFIX = "images/"
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg")

MAX_FILENAME_LENGTH = 255
SAFE_FILENAME_RE = re.compile(r"^[A-Za-z0-9._/-]+$")

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ArchiveLimits:
    """Resource bounds applied while reading an archive."""

    max_files: int = 100
    max_total_bytes: int = 10 * 1024 * 1024
    max_file_bytes: int = 5 * 1024 * 1024
    max_manifest_bytes: int = 1024 * 1024
    timeout_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ArchiveLimits":
        settings = settings or get_settings()
        return cls(
            max_files=settings.backup_max_files,
            max_total_bytes=settings.backup_max_total_bytes,
            max_file_bytes=settings.backup_max_file_bytes,
            max_manifest_bytes=settings.backup_max_manifest_bytes,
            timeout_seconds=settings.backup_extract_timeout_seconds,
        )


@dataclass
class ExtractedArchive:
    """Contents pulled out of a backup archive.

    Attributes:
        manifest_bytes: Raw backup.json content.
        image_files: Image bytes keyed by name relative to ``images/``.
        skipped: Entry names ignored during extraction, with the reason.
    """

    manifest_bytes: bytes
    image_files: dict[str, bytes] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


def is_safe_filename(name: str) -> bool:
    """Check an archive entry name against the path-safety rules.

    Args:
        name: Entry name as stored in the archive.

    Returns:
        bool: True if the name cannot escape the extraction root.
    """
    if ".." in name or "\\" in name or name.startswith("/"):
        return False
    return 0 < len(name) <= MAX_FILENAME_LENGTH and SAFE_FILENAME_RE.match(name) is not None


def has_image_extension(name: str) -> bool:
    return name.lower().endswith(IMAGE_EXTENSIONS)


def _is_symlink(info: zipfile.ZipInfo) -> bool:
    return (info.external_attr >> 16) & 0o170000 == 0o120000


class _BoundedExtractor:
    """Streams entries out of an open ZipFile while tracking the shared byte budget."""

    def __init__(self, zf: zipfile.ZipFile, limits: ArchiveLimits):
        self.zf = zf
        self.limits = limits
        self.total_bytes = 0

    def read(self, info: zipfile.ZipInfo, max_bytes: int) -> bytes:
        """Decompress one entry, enforcing per-file, total and time limits.

        Args:
            info: Entry to read.
            max_bytes: Size limit for this entry.

        Returns:
            bytes: Decompressed content.

        Raises:
            ArchiveSizeError: If a size limit is exceeded.
            ArchiveTimeoutError: If decompression takes too long.
            CorruptArchiveError: If the entry data is damaged.
        """
        # Declared size is untrusted; the streamed count below is what enforces the limit
        if info.file_size > max_bytes:
            raise ArchiveSizeError(
                f"File '{info.filename}' exceeds size limit: "
                f"{info.file_size // 1024}KB > {max_bytes // 1024}KB"
            )

        deadline = time.monotonic() + self.limits.timeout_seconds
        chunks: list[bytes] = []
        size = 0

        try:
            with self.zf.open(info) as stream:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break

                    size += len(chunk)
                    self.total_bytes += len(chunk)

                    if size > max_bytes:
                        raise ArchiveSizeError(
                            f"File '{info.filename}' exceeds size limit during extraction: "
                            f"{size // 1024}KB > {max_bytes // 1024}KB"
                        )
                    if self.total_bytes > self.limits.max_total_bytes:
                        raise ArchiveSizeError(
                            "Total extracted size exceeds limit: "
                            f"{self.total_bytes // 1024}KB > "
                            f"{self.limits.max_total_bytes // 1024}KB"
                        )
                    if time.monotonic() > deadline:
                        raise ArchiveTimeoutError(
                            f"Extraction of '{info.filename}' timed out after "
                            f"{self.limits.timeout_seconds:g}s"
                        )

                    chunks.append(chunk)
        except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError) as e:
            raise CorruptArchiveError(f"Failed to extract '{info.filename}': {e}") from e

        return b"".join(chunks)


def _list_files(zf: zipfile.ZipFile, limits: ArchiveLimits) -> list[zipfile.ZipInfo]:
    """Enumerate file entries, enforcing count and name rules before any decompression."""
    files: list[zipfile.ZipInfo] = []
    for info in zf.infolist():
        if info.is_dir():
            continue

        files.append(info)
        if len(files) > limits.max_files:
            raise TooManyFilesError(
                f"Archive contains too many files (more than {limits.max_files})"
            )

        if not is_safe_filename(info.filename) or _is_symlink(info):
            raise UnsafeFilenameError(f"Invalid or unsafe filename detected: {info.filename!r}")

    return files


def read_archive(data: bytes, limits: ArchiveLimits | None = None) -> ExtractedArchive:
    """Extract the manifest and bundled images from a backup archive.

    Args:
        data: Raw archive bytes.
        limits: Resource bounds; defaults to the configured limits.

    Returns:
        ExtractedArchive: Manifest bytes and image files.

    Raises:
        ArchiveError: If the archive is corrupt, unsafe or exceeds a bound.
    """
    limits = limits or ArchiveLimits.from_settings()

    try:
        zf = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, EOFError) as e:
        raise CorruptArchiveError(f"Invalid or corrupted ZIP file: {e}") from e

    with zf:
        files = _list_files(zf, limits)
        by_name = {info.filename: info for info in files}

        manifest_info = by_name.get(MANIFEST_NAME)
        if manifest_info is None:
            raise MissingManifestError(f"Required {MANIFEST_NAME} file not found in archive")

        extractor = _BoundedExtractor(zf, limits)
        result = ExtractedArchive(
            manifest_bytes=extractor.read(manifest_info, limits.max_manifest_bytes)
        )

        for info in files:
            name = info.filename
            if name == MANIFEST_NAME:
                continue

            if not name.startswith(IMAGES_PREFIX):
                logger.info(f"Ignoring unexpected archive entry: {name}")
                result.skipped.append(f"{name}: not part of a backup")
                continue

            image_name = name[len(IMAGES_PREFIX) :]
            if not has_image_extension(image_name):
                logger.warning(f"Skipping file with invalid image extension: {name}")
                result.skipped.append(f"{name}: unsupported image extension")
                continue

            content = extractor.read(info, limits.max_file_bytes)
            if not content:
                logger.warning(f"Skipping empty image file: {name}")
                result.skipped.append(f"{name}: empty file")
                continue

            result.image_files[image_name] = content

    logger.info(
        f"Archive extracted: {len(files)} files, {extractor.total_bytes // 1024}KB total, "
        f"{len(result.image_files)} images"
    )
    return result
