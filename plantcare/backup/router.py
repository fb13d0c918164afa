"""API endpoints for backup/restore of a user's data."""

import asyncio
import logging
import threading
from typing import Annotated

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import Response

from plantcare.backup.exceptions import (
    ArchiveError,
    ImportCancelledError,
    ImportInProgressError,
    ManifestValidationError,
    ReplaceWipeError,
)
from plantcare.backup.exporter import ExportService
from plantcare.backup.importer import ImportService
from plantcare.backup.schemas import BackupPreview, ImportMode, ImportResponse
from plantcare.config import get_settings
from plantcare.dependencies import CurrentUser, DbSession, ImageStore, UploadStore

logger = logging.getLogger(__name__)

router = APIRouter()

REPLACE_CONFIRMATION = "REPLACE"
ZIP_CONTENT_TYPES = {"application/zip", "application/x-zip-compressed"}
DISCONNECT_POLL_SECONDS = 0.5


async def _read_upload(upload: UploadFile) -> bytes:
    """Read an uploaded backup, enforcing type and size limits.

    Raises:
        HTTPException: If the file is not a ZIP or is too large.
    """
    filename = upload.filename or ""
    if upload.content_type not in ZIP_CONTENT_TYPES and not filename.lower().endswith(".zip"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file type. Please upload a ZIP file containing your backup data.",
        )

    max_bytes = get_settings().backup_max_upload_bytes
    content = await upload.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Maximum file size is {max_bytes // (1024 * 1024)}MB.",
        )
    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No backup file provided. Please upload a ZIP file containing your backup data.",
        )
    return content


async def _watch_disconnect(request: Request, cancelled: threading.Event) -> None:
    """Set ``cancelled`` once the client has gone away."""
    while not cancelled.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected during import; cancelling")
            cancelled.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@router.get("/export")
async def export_backup(
    user: CurrentUser,
    db: DbSession,
    upload_store: UploadStore,
) -> Response:
    """Export the current user's data as a ZIP download.

    The archive holds ``backup.json`` with plants, locations, watering history,
    health records, care activities and notification settings (without
    credentials), plus locally stored plant images under ``images/``.

    Args:
        user: Current user.
        db: Database session.
        upload_store: Local image uploads.

    Returns:
        ZIP file download.
    """
    service = ExportService(db, user.id, blob_store=upload_store)
    archive = service.export_archive()

    return Response(
        content=archive.content,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{archive.filename}"',
            "Access-Control-Expose-Headers": "Content-Disposition",
        },
    )


@router.post("/validate", response_model=BackupPreview)
async def validate_backup(
    user: CurrentUser,
    db: DbSession,
    backup: Annotated[UploadFile, File(description="Backup ZIP file")],
) -> BackupPreview:
    """Validate a backup archive without importing it.

    Args:
        user: Current user.
        db: Database session.
        backup: Uploaded backup ZIP.

    Returns:
        BackupPreview with record counts and any problems found.
    """
    content = await _read_upload(backup)
    service = ImportService(db, user.id)
    return await asyncio.to_thread(service.preview_archive, content)


@router.post("/import", response_model=ImportResponse)
async def import_backup(
    request: Request,
    user: CurrentUser,
    db: DbSession,
    image_store: ImageStore,
    backup: Annotated[UploadFile, File(description="Backup ZIP file")],
    mode: Annotated[
        ImportMode,
        Form(description="merge: reconcile with existing data; replace: delete it first"),
    ] = ImportMode.MERGE,
    confirmation: Annotated[
        str | None,
        Form(description="Must be 'REPLACE' when mode is replace"),
    ] = None,
    dry_run: Annotated[
        bool,
        Form(description="Run the import and roll it back"),
    ] = False,
) -> ImportResponse:
    """Import data from a backup archive into the current user's account.

    Replace mode deletes the user's plants, custom locations and notification
    settings before restoring, so it must be confirmed by sending
    ``confirmation=REPLACE``. The import is cancelled and rolled back if the
    client disconnects before it finishes.

    Args:
        request: Incoming request, watched for client disconnects.
        user: Current user.
        db: Database session.
        image_store: Where restored images are uploaded.
        backup: Uploaded backup ZIP.
        mode: Import mode.
        confirmation: Confirmation string for replace mode.
        dry_run: If True, validate by importing and rolling back.

    Returns:
        ImportResponse with the import summary.
    """
    if mode == ImportMode.REPLACE:
        if confirmation != REPLACE_CONFIRMATION:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "message": (
                        "Replace mode requires explicit confirmation. "
                        "Type 'REPLACE' to proceed with this destructive operation."
                    ),
                    "confirmationRequired": True,
                },
            )
        logger.info(f"AUDIT: User {user.id} confirmed REPLACE mode import")

    content = await _read_upload(backup)
    service = ImportService(db, user.id, blob_store=image_store)

    cancelled = threading.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancelled))
    try:
        summary = await asyncio.to_thread(
            service.import_archive,
            content,
            mode,
            should_cancel=cancelled.is_set,
            dry_run=dry_run,
        )
    except (ArchiveError, ManifestValidationError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid backup file: {e}",
        )
    except ImportInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ImportCancelledError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ReplaceWipeError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Import failed: {e}",
        )
    finally:
        watcher.cancel()

    action = "validated (dry run)" if dry_run else "completed successfully"
    return ImportResponse(
        success=True,
        message=f"Import {action} in {mode.value} mode",
        summary=summary,
    )
