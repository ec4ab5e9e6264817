from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    if v is None or v == "":
        return _DEFAULT_CORS.copy()
    if isinstance(v, list):
        return [x for x in v if isinstance(x, str) and x.strip()]
    s = str(v).strip()
    if not s:
        return _DEFAULT_CORS.copy()
    if s.startswith("["):
        import json
        try:
            out = json.loads(s)
        except ValueError:
            return _DEFAULT_CORS.copy()
        return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
    return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")
    api_prefix: str = Field(default="/agritech/v1", alias="API_PREFIX")
    public_base_url: str = Field(default="http://localhost:3300", alias="PUBLIC_BASE_URL")
    allow_admin_signup: bool = Field(default=False, alias="ALLOW_ADMIN_SIGNUP")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="agritech", alias="MONGODB_DB_NAME")

    # PayPack
    paypack_base_url: str = Field(default="https://paypack.rw/api", alias="PAYPACK_BASE_URL")
    paypack_client_id: str = Field(default="", alias="PAYPACK_CLIENT_ID")
    paypack_client_secret: str = Field(default="", alias="PAYPACK_CLIENT_SECRET")
    paypack_callback_url: str = Field(default="", alias="PAYPACK_CALLBACK_URL")
    paypack_webhook_secret: str = Field(default="", alias="PAYPACK_WEBHOOK_SECRET")
    paypack_timeout_seconds: float = Field(default=15.0, alias="PAYPACK_TIMEOUT_SECONDS")
    paypack_default_token_ttl: int = Field(default=3600, alias="PAYPACK_DEFAULT_TOKEN_TTL")

    # Storage
    storage_backend: str = Field(default="local", alias="STORAGE_BACKEND")
    storage_local_path: str = Field(default="./uploads", alias="STORAGE_LOCAL_PATH")
    gcs_bucket_name: str | None = Field(default=None, alias="GCS_BUCKET_NAME")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Bearer tokens
    access_token_max_age_seconds: int = 7 * 24 * 3600


@lru_cache
def get_settings() -> Settings:
    return Settings()
