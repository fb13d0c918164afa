"""Re-attach bundled plant images to restored plants."""

import io
import logging
import uuid
from enum import Enum

from PIL import Image

from plantcare.backup.serializers import image_prefix
from plantcare.db.models import Plant
from plantcare.storage.blobs import BlobStore
from plantcare.storage.repository import UserDataStore

logger = logging.getLogger(__name__)

# Pillow format expected for each restorable extension
IMAGE_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "gif": "GIF",
    "webp": "WEBP",
}

CONTENT_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}


class BindOutcome(str, Enum):
    """Result of trying to attach a bundled image to a plant."""

    BOUND = "bound"
    NOT_FOUND = "not_found"  # No image bundled for this plant
    UNSUPPORTED = "unsupported"  # No image storage configured
    REJECTED = "rejected"  # Not a valid image of its declared type
    FAILED = "failed"  # Upload or update raised


def verify_image(data: bytes, extension: str) -> bool:
    """Check that file bytes decode as an image of the type named by the extension.

    SVG and any other extension without a raster format are never accepted.

    Args:
        data: File content.
        extension: File extension without the dot.

    Returns:
        bool: True if Pillow verifies the content and detects the expected format.
    """
    expected = IMAGE_FORMATS.get(extension.lower())
    if expected is None:
        return False
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            return img.format == expected
    except Exception as e:
        logger.debug(f"Image verification failed: {e}")
        return False


class ImageBinder:
    """Uploads bundled images and points restored plants at them.

    Keys of every uploaded blob are kept in ``uploaded_keys`` so the caller
    can remove them if the surrounding import is rolled back.
    """

    def __init__(self, store: UserDataStore, blob_store: BlobStore | None):
        self.store = store
        self.blob_store = blob_store
        self.uploaded_keys: list[str] = []
        self.last_error: str | None = None

    @staticmethod
    def find_image(source_plant_id: int, image_files: dict[str, bytes]) -> str | None:
        """Find the bundled image name for a source plant.

        Args:
            source_plant_id: Plant ID in the exporting account.
            image_files: Extracted images keyed by name.

        Returns:
            str | None: Matching image name.
        """
        prefix = image_prefix(source_plant_id)
        for name in sorted(image_files):
            if name.startswith(prefix):
                return name
        return None

    def bind(
        self, source_plant_id: int, plant: Plant, image_files: dict[str, bytes]
    ) -> BindOutcome:
        """Attach the image bundled for ``source_plant_id`` to ``plant``.

        Args:
            source_plant_id: Plant ID in the exporting account.
            plant: Restored plant in the destination account.
            image_files: Extracted images keyed by name.

        Returns:
            BindOutcome: What happened; details of failures are in ``last_error``.
        """
        self.last_error = None
        name = self.find_image(source_plant_id, image_files)
        if name is None:
            return BindOutcome.NOT_FOUND

        if self.blob_store is None:
            self.last_error = "image storage is not configured"
            return BindOutcome.UNSUPPORTED

        extension = name.rsplit(".", 1)[-1].lower()
        data = image_files[name]
        if extension == "svg":
            # Uploads are served from the app's origin, where SVG can carry script
            self.last_error = f"SVG image '{name}' cannot be restored"
            logger.warning(f"Rejected bundled image {name}: {self.last_error}")
            return BindOutcome.REJECTED
        if not verify_image(data, extension):
            self.last_error = f"content of '{name}' is not a valid {extension} image"
            logger.warning(f"Rejected bundled image {name}: {self.last_error}")
            return BindOutcome.REJECTED

        key = f"users/{self.store.user_id}/plants/{plant.id}/{uuid.uuid4().hex}.{extension}"
        try:
            image_url = self.blob_store.write_bytes(key, data, CONTENT_TYPES[extension])
        except Exception as e:
            self.last_error = str(e)
            logger.exception(f"Failed to upload image for plant {plant.id}")
            return BindOutcome.FAILED

        try:
            self.store.update_plant(plant, image_url=image_url)
        except Exception as e:
            self.last_error = str(e)
            logger.exception(f"Failed to link image to plant {plant.id}")
            self._delete_blob(key)
            return BindOutcome.FAILED
        self.uploaded_keys.append(key)

        logger.debug(f"Bound image {name} to plant {plant.id}")
        return BindOutcome.BOUND

    def discard_uploads(self) -> None:
        """Delete every blob uploaded by this binder."""
        if self.blob_store is None:
            return
        for key in self.uploaded_keys:
            self._delete_blob(key)
        self.uploaded_keys.clear()

    def _delete_blob(self, key: str) -> None:
        try:
            self.blob_store.delete_by_key(key)
        except Exception:
            logger.exception(f"Failed to delete orphaned image {key}")
