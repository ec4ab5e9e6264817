import uuid
from abc import ABC, abstractmethod
from pathlib import PurePosixPath

from pydantic import BaseModel

from app.core.config import get_settings
from app.core.exceptions import UploadError

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}
MAX_IMAGE_BYTES = 5 * 1024 * 1024


class StoredImage(BaseModel):
    url: str
    public_id: str


class StorageBackend(ABC):
    @abstractmethod
    async def put(self, key: str, body: bytes, content_type: str | None = None) -> str:
        """Store file; return public URL."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete file."""
        ...

    async def upload_image(self, body: bytes, filename: str | None, content_type: str | None) -> StoredImage:
        """Validate and store a product image under a generated key."""
        if not body:
            raise UploadError("Empty image file")
        if len(body) > MAX_IMAGE_BYTES:
            raise UploadError("Image exceeds 5 MB limit")
        ext = ALLOWED_IMAGE_TYPES.get((content_type or "").lower())
        if ext is None:
            suffix = PurePosixPath(filename or "").suffix.lower()
            if suffix not in ALLOWED_IMAGE_TYPES.values() and suffix != ".jpeg":
                raise UploadError("Unsupported image type", details={"content_type": content_type})
            ext = suffix
        key = f"products/{uuid.uuid4().hex}{ext}"
        try:
            url = await self.put(key, body, content_type=content_type)
        except OSError as e:
            raise UploadError(details={"error": e.__class__.__name__}) from e
        return StoredImage(url=url, public_id=key)


def get_storage() -> StorageBackend:
    settings = get_settings()
    if settings.storage_backend == "gcs":
        from app.storage.gcs import GCSStorage
        return GCSStorage()
    from app.storage.local import LocalStorage
    return LocalStorage()
