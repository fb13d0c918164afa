"""Storage collaborators: user-scoped rows and image blobs."""

from plantcare.storage.blobs import BlobStore, LocalBlobStore, R2BlobStore
from plantcare.storage.repository import UserDataStore

__all__ = ["BlobStore", "LocalBlobStore", "R2BlobStore", "UserDataStore"]
