from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from app.core.config import get_settings
from app.core.exceptions import UploadError
from app.core.logging import get_logger
from app.storage.base import StorageBackend

log = get_logger(__name__)

# product image keys are content-unique, so objects never change in place
IMAGE_CACHE_CONTROL = "public, max-age=31536000, immutable"


class GCSStorage(StorageBackend):
    """Product images in a public-read bucket."""

    def __init__(self) -> None:
        settings = get_settings()
        self.bucket_name = settings.gcs_bucket_name or "agritech-uploads"
        self._bucket = storage.Client().bucket(self.bucket_name)

    def public_url(self, key: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket_name}/{key}"

    async def put(self, key: str, body: bytes, content_type: str | None = None) -> str:
        blob = self._bucket.blob(key)
        blob.cache_control = IMAGE_CACHE_CONTROL
        try:
            blob.upload_from_string(body, content_type=content_type or "application/octet-stream")
        except gcs_exceptions.GoogleAPIError as e:
            raise UploadError(details={"bucket": self.bucket_name, "error": str(e)}) from e
        return self.public_url(key)

    async def delete(self, key: str) -> None:
        try:
            self._bucket.blob(key).delete()
        except gcs_exceptions.NotFound:
            log.info("image_already_gone", bucket=self.bucket_name, key=key)
