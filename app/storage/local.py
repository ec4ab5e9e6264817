from pathlib import Path

from app.core.config import get_settings
from app.storage.base import StorageBackend

UPLOADS_URL_PATH = "/uploads"


class LocalStorage(StorageBackend):
    """Files under STORAGE_LOCAL_PATH, served by the app at /uploads."""

    def __init__(self) -> None:
        settings = get_settings()
        self.root = Path(settings.storage_local_path)
        self.root.mkdir(parents=True, exist_ok=True)
        self.base_url = settings.public_base_url.rstrip("/")

    async def put(self, key: str, body: bytes, content_type: str | None = None) -> str:
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body)
        return f"{self.base_url}{UPLOADS_URL_PATH}/{key}"

    async def delete(self, key: str) -> None:
        path = self.root / key
        if path.exists():
            path.unlink()
