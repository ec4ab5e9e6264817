import base64
import hashlib
import hmac
from typing import Any

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.core.config import get_settings
from app.core.exceptions import UnauthorizedError


def get_token_serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(
        settings.secret_key,
        salt="agritech-access-token",
        signer_kwargs={"key_derivation": "hmac", "digest_method": hashlib.sha256},
    )


def create_access_token(payload: dict[str, Any]) -> str:
    """Sign payload into an opaque bearer token; expiry is enforced on load."""
    return get_token_serializer().dumps(payload)


def load_access_token(token: str) -> dict[str, Any]:
    """Verify bearer token; raise UnauthorizedError on bad signature or age."""
    serializer = get_token_serializer()
    try:
        return serializer.loads(token, max_age=get_settings().access_token_max_age_seconds)
    except SignatureExpired as e:
        raise UnauthorizedError("Token expired") from e
    except BadSignature as e:
        raise UnauthorizedError("Invalid token") from e


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def sign_paypack_webhook(payload: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_paypack_webhook(payload: bytes, signature: str | None, secret: str | None) -> bool:
    """Base64 HMAC-SHA256 of the raw body, compared in constant time."""
    if not secret or not signature:
        return False
    expected = sign_paypack_webhook(payload, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8", "ignore"))
